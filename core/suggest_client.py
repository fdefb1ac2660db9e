# core/suggest_client.py
"""Проксирование поисковых подсказок"""

import logging
from typing import List, Optional

import httpx
from aiohttp import web

logger = logging.getLogger(__name__)


class SuggestClient:
    def __init__(self, url: str, client: str = 'firefox', timeout: float = 5.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            url: Адрес сервиса подсказок
            client: Значение параметра client
            timeout: Таймаут запроса в секундах
            transport: Транспорт httpx (подменяется в тестах)
        """
        self.url = url
        self.client_name = client
        self.timeout = timeout
        self.transport = transport
        self.client = None

    async def initialize(self):
        if self.client is None:
            self.client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout), transport=self.transport)

    async def cleanup(self):
        if self.client:
            await self.client.aclose()
            self.client = None

    async def suggest(self, query: str) -> List[str]:
        """
        Возвращает подсказки для запроса

        Returns:
            List[str]: Подсказки по порядку, пустой список при любой ошибке
        """
        if not query:
            return []

        await self.initialize()
        try:
            response = await self.client.get(self.url, params={'client': self.client_name, 'q': query})
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Подсказки недоступны для {query!r}: {e}")
            return []

        if not isinstance(data, list) or len(data) < 2 or not isinstance(data[1], list):
            return []
        return [item for item in data[1] if isinstance(item, str)]

    async def handle_suggest(self, request: web.Request) -> web.Response:
        """GET /api/suggest?q=..."""
        suggestions = await self.suggest(request.query.get('q', '').strip())
        return web.json_response(suggestions)
