# core/proxy/url_resolver.py
"""Разрешение относительных ссылок и построение proxy-URL"""

import re
import logging
from enum import Enum
from typing import Optional
from urllib.parse import urljoin, urlsplit, quote

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "/proxy"

# Схема по RFC 3986: буква, затем буквы/цифры/+/-/.
_SCHEME_PATTERN = re.compile(r'^[a-zA-Z][a-zA-Z0-9+.\-]*:')


class ProxyMode(str, Enum):
    FULL = "full"
    RAW = "raw"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ProxyMode":
        """Всё, кроме 'raw', считается режимом full"""
        if value and value.strip().lower() == cls.RAW.value:
            return cls.RAW
        return cls.FULL


def is_absolute(reference: str) -> bool:
    """
    Проверяет, является ли ссылка абсолютной

    Абсолютной считается ссылка со схемой (http:, https:, data:, ...)
    или protocol-relative ссылка, начинающаяся с //

    Args:
        reference: Значение атрибута или url(...)

    Returns:
        bool: True если ссылку не нужно переписывать
    """
    reference = reference.strip()
    return reference.startswith('//') or bool(_SCHEME_PATTERN.match(reference))


def resolve(reference: str, base_url: str) -> Optional[str]:
    """
    Разрешает ссылку относительно base_url

    Args:
        reference: Относительная или абсолютная ссылка
        base_url: Абсолютный URL документа

    Returns:
        str или None: Абсолютный URL, None если ссылку не удалось разобрать
    """
    reference = reference.strip()
    if is_absolute(reference):
        return reference

    try:
        return urljoin(base_url, reference)
    except ValueError as e:
        logger.debug(f"Не удалось разрешить ссылку {reference!r} относительно {base_url}: {e}")
        return None


def is_valid_target(url: str) -> bool:
    """Целевой URL должен быть абсолютным http/https URL с хостом"""
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme.lower() in ('http', 'https') and bool(parts.netloc)


def build_proxy_url(absolute_url: str, mode: ProxyMode = ProxyMode.FULL,
                    endpoint: str = DEFAULT_ENDPOINT) -> str:
    """
    Строит URL, направляющий браузер обратно через прокси

    Args:
        absolute_url: Абсолютный URL ресурса
        mode: Режим загрузки ресурса
        endpoint: Путь прокси-эндпоинта

    Returns:
        str: Например /proxy?url=https%3A%2F%2Fexample.com%2Fc.png&mode=raw
    """
    proxy_url = f"{endpoint}?url={quote(absolute_url, safe='')}"
    if mode is ProxyMode.RAW:
        proxy_url += f"&mode={ProxyMode.RAW.value}"
    return proxy_url
