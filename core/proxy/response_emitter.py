# core/proxy/response_emitter.py
"""Формирование ответа прокси"""

import logging
from typing import Optional, Union

from aiohttp import web

from core.proxy.upstream_fetcher import FetchResult

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, POST, PUT, DELETE, OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type, Authorization, X-Requested-With',
}

# Заголовки, которые получает любой ответ /proxy, включая 400/500/503
PROXY_HEADERS = {
    **CORS_HEADERS,
    'X-Content-Type-Options': 'nosniff',
}


def proxy_headers(extra: Optional[dict] = None) -> dict:
    """Копия PROXY_HEADERS с дополнительными заголовками"""
    headers = dict(PROXY_HEADERS)
    if extra:
        headers.update(extra)
    return headers


def encode_body(body: Union[bytes, str], encoding: str = None) -> bytes:
    """Кодирует текст обратно в ту же кодировку, из которой он был декодирован"""
    if isinstance(body, bytes):
        return body
    try:
        return body.encode(encoding or 'utf-8', errors='xmlcharrefreplace')
    except LookupError:
        return body.encode('utf-8', errors='xmlcharrefreplace')


def emit(result: FetchResult, body: Union[bytes, str, None] = None) -> web.Response:
    """
    Создаёт web.Response для результата загрузки

    Статус upstream зеркалируется, Content-Type берётся из upstream,
    добавляются CORS заголовки и X-Content-Type-Options.

    Args:
        result: Результат загрузки
        body: Переписанное тело, если перезапись применялась

    Returns:
        web.Response
    """
    if body is None:
        body = result.body

    headers = proxy_headers()
    headers['Content-Type'] = result.content_type

    return web.Response(
        body=encode_body(body, result.encoding),
        status=result.status,
        headers=headers
    )


def emit_text(text: str, status: int, headers: Optional[dict] = None) -> web.Response:
    """Короткий текстовый ответ самого прокси (400, 503)"""
    return web.Response(text=text, status=status, headers=proxy_headers(headers))


def emit_preflight() -> web.Response:
    """Ответ на CORS preflight (OPTIONS)"""
    return web.Response(status=204, headers=proxy_headers())
