# core/proxy/__init__.py
"""
Proxy modules package.

Pipeline: proxy_request -> upstream_fetcher -> content_rewriter -> response_emitter,
any failure goes to error_page.
"""

from core.proxy.errors import ProxyError, MissingUrlError, ProxyBusyError, FetchError, FetchErrorReason
from core.proxy.url_resolver import ProxyMode, is_absolute, resolve, build_proxy_url
from core.proxy.proxy_request import ProxyRequest, parse_proxy_request
from core.proxy.upstream_fetcher import UpstreamFetcher, FetchResult
from core.proxy.content_rewriter import ContentRewriter, should_rewrite

__all__ = [
    'ProxyError', 'MissingUrlError', 'ProxyBusyError', 'FetchError', 'FetchErrorReason',
    'ProxyMode', 'is_absolute', 'resolve', 'build_proxy_url',
    'ProxyRequest', 'parse_proxy_request',
    'UpstreamFetcher', 'FetchResult',
    'ContentRewriter', 'should_rewrite',
]
