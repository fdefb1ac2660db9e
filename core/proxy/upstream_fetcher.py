# core/proxy/upstream_fetcher.py
"""Загрузка целевых ресурсов для прокси"""

import asyncio
import codecs
import logging
import socket
from dataclasses import dataclass
from typing import Optional, Union

from aiohttp import (
    ClientSession, TCPConnector, ClientTimeout, ClientError, ClientConnectorError,
    ClientSSLError, InvalidURL, TooManyRedirects
)
from bs4.dammit import EncodingDetector

from core.proxy.errors import FetchError, FetchErrorReason, ProxyBusyError
from core.proxy.url_resolver import ProxyMode, is_valid_target

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = 'text/html'

# Заголовки обычного десктопного браузера, чтобы сайты не блокировали прокси
BROWSER_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
                  '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.5',
    'Accept-Encoding': 'identity',
    'DNT': '1',
    'Connection': 'keep-alive',
    'Upgrade-Insecure-Requests': '1',
    'Sec-Fetch-Dest': 'document',
    'Sec-Fetch-Mode': 'navigate',
    'Sec-Fetch-Site': 'none',
}


@dataclass(frozen=True)
class FetchResult:
    """Результат загрузки: живёт ровно один запрос"""
    body: Union[bytes, str]
    content_type: str
    status: int
    url: str
    encoding: Optional[str] = None

    @property
    def is_text(self) -> bool:
        return isinstance(self.body, str)


class UpstreamFetcher:
    def __init__(self, timeout: float = 15.0, max_redirects: int = 5,
                 max_concurrent: int = 50, admission_timeout: float = 10.0,
                 connector_limit: int = 100, verify_ssl: bool = True):
        """
        Args:
            timeout: Общий таймаут загрузки в секундах
            max_redirects: Сколько редиректов разрешено пройти
            max_concurrent: Максимум одновременных загрузок
            admission_timeout: Сколько ждать свободный слот, прежде чем отказать
            connector_limit: Размер пула соединений
            verify_ssl: Проверять ли сертификаты целевых сайтов
        """
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.max_concurrent = max_concurrent
        self.admission_timeout = admission_timeout
        self.connector_limit = connector_limit
        self.verify_ssl = verify_ssl

        # Connection pool для переиспользования соединений
        self.connector = None
        self.session = None

        # Семафор для ограничения одновременных загрузок
        self.fetch_semaphore = asyncio.Semaphore(max_concurrent)

    async def initialize(self):
        """Инициализация connection pool"""
        if self.connector is None:
            self.connector = TCPConnector(
                ssl=self.verify_ssl,
                limit=self.connector_limit,
                ttl_dns_cache=300,
                keepalive_timeout=60,
            )

        if self.session is None:
            self.session = ClientSession(
                connector=self.connector,
                timeout=ClientTimeout(total=self.timeout),
                headers=BROWSER_HEADERS,
                auto_decompress=True,
            )
            logger.debug(f"UpstreamFetcher: пул создан, лимит={self.connector_limit}, "
                         f"одновременно={self.max_concurrent}")

    async def cleanup(self):
        """Очистка ресурсов"""
        if self.session:
            await self.session.close()
            self.session = None
        if self.connector:
            await self.connector.close()
            self.connector = None

    async def fetch(self, target_url: str, mode: ProxyMode = ProxyMode.FULL,
                    method: str = 'GET') -> FetchResult:
        """
        Загружает целевой URL

        Args:
            target_url: Абсолютный URL
            mode: raw - тело остаётся байтами, full - HTML декодируется в текст
            method: HTTP метод входящего запроса

        Returns:
            FetchResult

        Raises:
            FetchError: Таймаут, слишком много редиректов, сетевая ошибка, DNS, TLS
            ProxyBusyError: Все слоты заняты дольше admission_timeout
        """
        if not is_valid_target(target_url):
            raise FetchError(FetchErrorReason.INVALID_URL, f"Invalid URL: {target_url}")

        await self._acquire_slot()
        try:
            await self.initialize()
            return await self._fetch(target_url, mode, method)
        finally:
            self.fetch_semaphore.release()

    async def _acquire_slot(self):
        try:
            await asyncio.wait_for(self.fetch_semaphore.acquire(), timeout=self.admission_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Все {self.max_concurrent} слотов загрузки заняты, запрос отклонён")
            raise ProxyBusyError(
                f"Too many concurrent requests (limit {self.max_concurrent})"
            ) from None

    async def _fetch(self, target_url: str, mode: ProxyMode, method: str) -> FetchResult:
        try:
            # aiohttp обрывает цепочку, когда число редиректов достигает max_redirects,
            # поэтому +1, чтобы пройти ровно self.max_redirects переходов
            async with self.session.request(
                    method=method,
                    url=target_url,
                    allow_redirects=True,
                    max_redirects=self.max_redirects + 1,
            ) as response:
                raw = await response.read()
                content_type = response.headers.get('Content-Type') or DEFAULT_CONTENT_TYPE
                final_url = str(response.url)

                body = raw
                encoding = None
                if mode is ProxyMode.FULL and 'text/html' in content_type.lower():
                    encoding = self._detect_encoding(response, raw)
                    body = raw.decode(encoding, errors='replace')

                logger.debug(f"Upstream {response.status} {final_url} ({content_type}, {len(raw)} байт)")
                return FetchResult(
                    body=body,
                    content_type=content_type,
                    status=response.status,
                    url=final_url,
                    encoding=encoding,
                )

        except asyncio.TimeoutError:
            raise FetchError(
                FetchErrorReason.TIMEOUT,
                f"timeout of {self.timeout:g}s exceeded"
            ) from None
        except TooManyRedirects as e:
            raise FetchError(
                FetchErrorReason.TOO_MANY_REDIRECTS,
                f"Maximum number of redirects exceeded ({self.max_redirects}): {e}"
            ) from e
        except ClientSSLError as e:
            raise FetchError(FetchErrorReason.TLS, str(e)) from e
        except ClientConnectorError as e:
            if isinstance(e.os_error, socket.gaierror):
                raise FetchError(FetchErrorReason.DNS, str(e)) from e
            raise FetchError(FetchErrorReason.NETWORK_FAILURE, str(e)) from e
        except InvalidURL as e:
            raise FetchError(FetchErrorReason.INVALID_URL, f"Invalid URL: {e}") from e
        except ClientError as e:
            raise FetchError(FetchErrorReason.NETWORK_FAILURE, str(e) or e.__class__.__name__) from e

    @staticmethod
    def _detect_encoding(response, raw: bytes) -> str:
        """
        Определяет кодировку HTML документа

        Порядок как у браузера: charset из Content-Type, затем <meta charset>
        или <meta http-equiv> в самом документе, затем то, что определит aiohttp,
        иначе utf-8.
        """
        candidates = [
            response.charset,
            EncodingDetector.find_declared_encoding(raw, is_html=True),
        ]
        try:
            candidates.append(response.get_encoding())
        except (RuntimeError, LookupError):
            pass

        for encoding in candidates:
            if not encoding:
                continue
            try:
                return codecs.lookup(encoding).name
            except LookupError:
                logger.debug(f"Неизвестная кодировка {encoding!r}, пропускаем")
        return 'utf-8'
