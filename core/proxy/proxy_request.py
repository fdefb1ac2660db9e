# core/proxy/proxy_request.py
"""Разбор входящего запроса /proxy"""

from dataclasses import dataclass
from typing import Mapping

from core.proxy.errors import MissingUrlError, FetchError, FetchErrorReason
from core.proxy.url_resolver import ProxyMode, is_valid_target


@dataclass(frozen=True)
class ProxyRequest:
    target_url: str
    mode: ProxyMode = ProxyMode.FULL


def parse_proxy_request(query: Mapping[str, str]) -> ProxyRequest:
    """
    Достаёт url и mode из query string

    Значение url уже декодировано парсером query string и повторно
    не декодируется, иначе proxy-URL перестанет быть обратимым.

    Raises:
        MissingUrlError: Параметр url отсутствует или пустой
        FetchError: url не является абсолютным http/https URL
    """
    target_url = (query.get('url') or '').strip()
    if not target_url:
        raise MissingUrlError()

    if not is_valid_target(target_url):
        raise FetchError(FetchErrorReason.INVALID_URL, f"Invalid URL: {target_url}")

    return ProxyRequest(target_url=target_url, mode=ProxyMode.parse(query.get('mode')))
