# core/proxy/error_page.py
"""HTML страница ошибки прокси"""

import html
import logging

from aiohttp import web

from core.proxy.response_emitter import proxy_headers
from core.proxy.url_resolver import is_valid_target

logger = logging.getLogger(__name__)

ERROR_PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Proxy Error</title>
    <style>
        body {{ font-family: Arial, sans-serif; padding: 40px; text-align: center; }}
        .error {{ background: #ffebee; padding: 20px; border-radius: 8px; margin: 20px 0; word-break: break-all; }}
        .button {{ display: inline-block; background: #2196F3; color: white; text-decoration: none;
                   padding: 10px 20px; border-radius: 4px; margin: 0 4px; }}
    </style>
</head>
<body>
    <h2>🚫 Unable to Load Page</h2>
    <div class="error">
        <p><strong>URL:</strong> {url}</p>
        <p><strong>Error:</strong> {message}</p>
    </div>
    {open_directly}
    <a class="button" href="/">🏠 Return to Redio</a>
</body>
</html>
"""

OPEN_DIRECTLY_TEMPLATE = '<a class="button" href="{url}" target="_top">🔄 Open Directly</a>'


def render_error_page(target_url: str, error: BaseException) -> str:
    """
    Генерирует страницу ошибки

    URL и текст ошибки считаются недоверенными и экранируются.
    Кнопка прямого перехода показывается только для http/https URL,
    чтобы не превращать javascript: ссылки в кликабельные.

    Args:
        target_url: URL, который не удалось загрузить
        error: Исключение с текстом ошибки

    Returns:
        str: HTML документ
    """
    url = html.escape(target_url or '', quote=True)
    message = html.escape(str(error) or error.__class__.__name__, quote=True)

    open_directly = ''
    if target_url and is_valid_target(target_url):
        open_directly = OPEN_DIRECTLY_TEMPLATE.format(url=url)

    return ERROR_PAGE_TEMPLATE.format(url=url, message=message, open_directly=open_directly)


def present(target_url: str, error: BaseException) -> web.Response:
    """Ответ 500 со страницей ошибки"""
    return web.Response(
        text=render_error_page(target_url, error),
        status=500,
        content_type='text/html',
        charset='utf-8',
        headers=proxy_headers()
    )
