import asyncio

import pytest
from aiohttp import web

from core.config_manager import ConfigManager
from core.proxy_manager import ProxyManager

HITS = web.AppKey('hits', dict)

PAGE_HTML = """<!DOCTYPE html>
<html>
<head>
    <link rel="stylesheet" href="../css/site.css">
    <style>body { background: url(/img/bg.png); }</style>
</head>
<body>
    <img src="c.png">
    <a href="/x">Home</a>
    <a href="https://other.org/page?a=1">Other</a>
    <script src="//cdn.example.net/lib.js"></script>
    <div style="background-image: url('tile.gif')"></div>
    <p>src="fake.png"</p>
</body>
</html>
"""

PNG_BYTES = b'\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\xff\xfe'

CYRILLIC_HTML = (
    '<html><head><meta charset="windows-1251"></head>'
    '<body><p>привет</p><img src="a.png"></body></html>'
)


def make_upstream_app() -> web.Application:
    """Тестовый "внешний" сайт"""
    routes = web.RouteTableDef()

    @routes.get('/a/b.html')
    async def page(request):
        return web.Response(text=PAGE_HTML, content_type='text/html', charset='utf-8')

    @routes.get('/image.png')
    async def image(request):
        return web.Response(body=PNG_BYTES, content_type='image/png')

    @routes.get('/latin.html')
    async def latin(request):
        body = '<p>café</p><img src="logo.png">'.encode('iso-8859-1')
        return web.Response(body=body, headers={'Content-Type': 'text/html; charset=iso-8859-1'})

    @routes.get('/cyrillic.html')
    async def cyrillic(request):
        # кодировка объявлена только в <meta>
        return web.Response(body=CYRILLIC_HTML.encode('cp1251'), headers={'Content-Type': 'text/html'})

    @routes.get('/headers')
    async def headers(request):
        return web.json_response({k.lower(): v for k, v in request.headers.items()})

    @routes.get('/missing')
    async def missing(request):
        return web.Response(text='<p>gone</p>', status=404, content_type='text/html')

    @routes.get('/slow')
    async def slow(request):
        await asyncio.sleep(2)
        return web.Response(text='late', content_type='text/html')

    @routes.get('/loop')
    async def loop(request):
        raise web.HTTPFound('/loop')

    @routes.get(r'/chain/{n:\d+}')
    async def chain(request):
        n = int(request.match_info['n'])
        if n > 0:
            raise web.HTTPFound(f'/chain/{n - 1}')
        return web.Response(text='<a href="next.html">next</a>', content_type='text/html')

    @web.middleware
    async def count_hits(request, handler):
        request.app[HITS]['count'] += 1
        return await handler(request)

    app = web.Application(middlewares=[count_hits])
    app[HITS] = {'count': 0}
    app.add_routes(routes)
    return app


@pytest.fixture
def config(tmp_path):
    config = ConfigManager(config_path=tmp_path / 'config.json')
    config.set('proxy.timeout', 0.5)
    config.set('chat.min_delay', 0)
    config.set('chat.max_delay', 0)
    config.set('suggest.url', 'http://127.0.0.1:1/complete/search')
    return config


@pytest.fixture
async def upstream(aiohttp_server):
    return await aiohttp_server(make_upstream_app())


@pytest.fixture
def manager(config):
    return ProxyManager(config)


@pytest.fixture
async def proxy_client(aiohttp_client, manager):
    return await aiohttp_client(manager.create_app())
