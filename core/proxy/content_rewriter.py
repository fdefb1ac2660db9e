# core/proxy/content_rewriter.py
"""Модуль для перезаписи URL в HTML контенте"""

import re
import logging
from typing import Optional

from bs4 import BeautifulSoup
from bs4.element import Stylesheet

from core.proxy.url_resolver import ProxyMode, DEFAULT_ENDPOINT, is_absolute, resolve, build_proxy_url

logger = logging.getLogger(__name__)


def should_rewrite(content_type: str, mode: ProxyMode) -> bool:
    """Переписываем только HTML и только в режиме full"""
    return mode is not ProxyMode.RAW and 'text/html' in (content_type or '').lower()


class ContentRewriter:
    """Класс для перезаписи относительных ссылок HTML в proxy-URL"""

    # src ведёт на подресурсы (картинки, скрипты, фреймы), href на страницы
    _ATTRIBUTE_MODES = {
        'src': ProxyMode.RAW,
        'href': ProxyMode.FULL,
    }

    # Предкомпилированное выражение для url(...) в CSS
    _CSS_URL_PATTERN = re.compile(
        r'url\(\s*(?P<quote>[\'"]?)(?P<url>[^\'"()]*?)(?P=quote)\s*\)',
        re.IGNORECASE
    )

    def __init__(self, endpoint: str = DEFAULT_ENDPOINT):
        """
        Инициализация ContentRewriter

        Args:
            endpoint: Путь прокси-эндпоинта, на который указывают переписанные ссылки
        """
        self.endpoint = endpoint

    def rewrite(self, html: str, base_url: str, encoding: Optional[str] = None) -> str:
        """
        Перезаписывает относительные ссылки в HTML

        Обходит дерево документа: атрибуты src уходят в режим raw,
        атрибуты href остаются в режиме full, url(...) из атрибутов style
        и элементов <style> уходят в режим raw.

        Документ сериализуется заново средствами bs4, поэтому результат
        совпадает с исходником по смыслу, а не побайтно: в атрибутах & пишется
        как &amp; (src="/proxy?url=...&amp;mode=raw"), пустые элементы как <img .../>.
        После разбора браузером значения атрибутов те же самые.

        Args:
            html: HTML контент
            base_url: Абсолютный URL документа
            encoding: Кодировка, в которой тело уйдёт клиенту; <meta charset>
                переписывается на неё, чтобы объявление совпадало с байтами

        Returns:
            str: Обработанный HTML
        """
        soup = BeautifulSoup(html, 'html.parser')
        rewritten = 0

        for tag in soup.find_all(True):
            for attribute, mode in self._ATTRIBUTE_MODES.items():
                value = tag.get(attribute)
                if not isinstance(value, str):
                    continue
                proxied = self._proxy_reference(value, base_url, mode)
                if proxied is not None:
                    tag[attribute] = proxied
                    rewritten += 1

            style = tag.get('style')
            if isinstance(style, str):
                tag['style'] = self.rewrite_css(style, base_url)

            if tag.name == 'style' and tag.string:
                tag.string = Stylesheet(self.rewrite_css(str(tag.string), base_url))

        logger.debug(f"ContentRewriter: {rewritten} атрибутов переписано для {base_url}")
        return soup.decode(eventual_encoding=encoding or 'utf-8')

    def rewrite_css(self, css: str, base_url: str) -> str:
        """
        Перезаписывает url(...) в CSS тексте

        Args:
            css: Содержимое атрибута style или элемента <style>
            base_url: Абсолютный URL документа

        Returns:
            str: CSS с proxy-URL
        """
        def replace(match):
            reference = match.group('url')
            if not reference.strip():
                return match.group(0)
            proxied = self._proxy_reference(reference, base_url, ProxyMode.RAW)
            if proxied is None:
                return match.group(0)
            quote = match.group('quote')
            return f"url({quote}{proxied}{quote})"

        return self._CSS_URL_PATTERN.sub(replace, css)

    def _proxy_reference(self, reference: str, base_url: str, mode: ProxyMode) -> Optional[str]:
        """Возвращает proxy-URL или None, если ссылку трогать не нужно"""
        if is_absolute(reference):
            return None

        absolute_url = resolve(reference, base_url)
        if absolute_url is None:
            return None

        return build_proxy_url(absolute_url, mode, self.endpoint)
