# core/proxy/errors.py
"""Исключения прокси-ядра"""

from enum import Enum


class ProxyError(Exception):
    """Базовое исключение прокси"""


class MissingUrlError(ProxyError):
    """Клиент не передал параметр url (ответ 400)"""

    def __init__(self, message: str = "URL parameter required"):
        super().__init__(message)


class ProxyBusyError(ProxyError):
    """Превышен лимит одновременных загрузок (ответ 503)"""


class FetchErrorReason(str, Enum):
    TIMEOUT = "timeout"
    TOO_MANY_REDIRECTS = "too_many_redirects"
    NETWORK_FAILURE = "network_failure"
    DNS = "dns"
    TLS = "tls"
    INVALID_URL = "invalid_url"


class FetchError(ProxyError):
    """
    Ошибка загрузки целевого URL (ответ 500 со страницей ошибки)

    Args:
        reason: Причина из FetchErrorReason
        message: Текст ошибки, который увидит пользователь
    """

    def __init__(self, reason: FetchErrorReason, message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message

    def __repr__(self):
        return f"FetchError(reason={self.reason.value!r}, message={self.message!r})"
