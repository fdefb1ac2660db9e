import asyncio
import logging

import httpx
import pytest
from aiohttp import web

from core.chat_manager import ChatManager, SessionStore, RESPONSE_TEMPLATES
from core.proxy_manager import ProxyManager
from core.suggest_client import SuggestClient


async def test_index_page(proxy_client):
    response = await proxy_client.get('/')
    assert response.status == 200
    assert 'Redio' in await response.text()

    for path in ('/cloak', '/games', '/static/style.css'):
        response = await proxy_client.get(path)
        assert response.status == 200


async def test_missing_pages_are_404(aiohttp_client, config, tmp_path):
    config.set('server.public_dir', str(tmp_path / 'nothing'))
    client = await aiohttp_client(ProxyManager(config).create_app())
    response = await client.get('/games')
    assert response.status == 404


async def test_suggest_without_query(proxy_client):
    response = await proxy_client.get('/api/suggest')
    assert await response.json() == []


async def test_suggest_upstream_failure_is_empty(proxy_client):
    response = await proxy_client.get('/api/suggest', params={'q': 'python'})
    assert response.status == 200
    assert await response.json() == []


def _suggest_client(handler):
    return SuggestClient('https://suggest.test/complete/search', transport=httpx.MockTransport(handler))


async def test_suggest_returns_second_element():
    def handler(request):
        assert request.url.params['q'] == 'pyth'
        assert request.url.params['client'] == 'firefox'
        return httpx.Response(200, json=['pyth', ['python', 'pythagoras', 3]])

    client = _suggest_client(handler)
    try:
        assert await client.suggest('pyth') == ['python', 'pythagoras']
    finally:
        await client.cleanup()


@pytest.mark.parametrize('response', [
    httpx.Response(500, json=['x', ['y']]),
    httpx.Response(200, text='not json'),
    httpx.Response(200, json={'unexpected': True}),
])
async def test_suggest_failures_are_empty(response):
    client = _suggest_client(lambda request: response)
    try:
        assert await client.suggest('x') == []
    finally:
        await client.cleanup()


async def test_chat_replies_with_canned_response(proxy_client):
    ws = await proxy_client.ws_connect('/ws/chat')
    await ws.send_json({'type': 'ai-message', 'sessionId': 'abc', 'message': 'weather'})

    typing = await ws.receive_json(timeout=5)
    assert typing == {'type': 'ai-typing', 'sessionId': 'abc'}

    reply = await ws.receive_json(timeout=5)
    assert reply['type'] == 'ai-response'
    assert reply['sessionId'] == 'abc'
    assert reply['response'] in [t.format(message='weather') for t in RESPONSE_TEMPLATES]
    assert reply['timestamp'].endswith('Z')
    await ws.close()


async def test_chat_defaults_session_to_connection(proxy_client):
    ws = await proxy_client.ws_connect('/ws/chat')
    await ws.send_json({'message': 'hi'})
    typing = await ws.receive_json(timeout=5)
    assert typing['sessionId']
    await ws.close()


async def test_chat_malformed_message(proxy_client):
    ws = await proxy_client.ws_connect('/ws/chat')
    await ws.send_str('{not json')
    assert await ws.receive_json(timeout=5) == {'type': 'ai-error', 'error': 'Failed to process message'}
    await ws.close()


class _DroppedSocket:
    closed = False

    async def send_json(self, data):
        raise ConnectionResetError('Cannot write to closing transport')


async def test_chat_send_failure_is_logged(caplog):
    caplog.set_level(logging.DEBUG, logger='core.chat_manager')
    chat = ChatManager(min_delay=0, max_delay=0)

    task = chat._dispatch(_DroppedSocket(), '{"message": "hi"}', 'conn', SessionStore())
    await asyncio.wait([task])
    await asyncio.sleep(0)

    assert isinstance(task.exception(), ConnectionResetError)
    assert 'Ответ чата не доставлен' in caplog.text


def test_session_store_trims_history():
    store = SessionStore(maxsize=10, history_limit=20, history_keep=10)
    for i in range(21):
        store.append('s', 'user', str(i))
    history = store.get('s')
    assert len(history) == 10
    assert history[-1]['content'] == '20'


def test_session_store_evicts_least_recent():
    store = SessionStore(maxsize=2)
    store.append('a', 'user', '1')
    store.append('b', 'user', '1')
    store.append('a', 'user', '2')
    store.append('c', 'user', '1')
    assert 'a' in store
    assert 'b' not in store
    assert len(store) == 2
