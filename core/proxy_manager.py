# core/proxy_manager.py
import asyncio
import logging
from pathlib import Path
from typing import Optional

from aiohttp import web

from core.config_manager import ConfigManager, get_config
from core.chat_manager import ChatManager
from core.suggest_client import SuggestClient
from core.proxy.errors import MissingUrlError, ProxyBusyError, FetchError
from core.proxy.proxy_request import parse_proxy_request
from core.proxy.upstream_fetcher import UpstreamFetcher
from core.proxy.content_rewriter import ContentRewriter, should_rewrite
from core.proxy.response_emitter import emit, emit_text, emit_preflight
from core.proxy.error_page import present
from utils.port_utils import check_port_availability

logger = logging.getLogger(__name__)


class RedioProxy:
    def __init__(self, fetcher: UpstreamFetcher, endpoint: str = '/proxy'):
        """
        Args:
            fetcher: Загрузчик целевых ресурсов
            endpoint: Путь, на который ведут переписанные ссылки
        """
        self.fetcher = fetcher
        self.endpoint = endpoint
        self.rewriter = ContentRewriter(endpoint)

        # Статистика
        self.stats = {
            'total_requests': 0,
            'total_responses': 0,
            'active_connections': 0,
            'rejected': 0,
            'errors': 0
        }

    async def handle_proxy(self, request: web.Request) -> web.Response:
        """
        Обработка GET /proxy?url=...&mode=full|raw

        url отсутствует -> 400, ошибка загрузки -> 500 со страницей ошибки,
        нет свободных слотов -> 503.
        """
        self.stats['total_requests'] += 1
        target_url = request.query.get('url', '')

        try:
            proxy_request = parse_proxy_request(request.query)
        except MissingUrlError as e:
            return emit_text(str(e), 400)
        except FetchError as e:
            self.stats['errors'] += 1
            logger.error(f"❌ Proxy error for {target_url!r}: {e}")
            return present(target_url, e)

        self.stats['active_connections'] += 1
        try:
            result = await self.fetcher.fetch(proxy_request.target_url, proxy_request.mode, method=request.method)

            body = None
            if should_rewrite(result.content_type, proxy_request.mode) and result.is_text:
                body = self.rewriter.rewrite(result.body, result.url, result.encoding)

            self.stats['total_responses'] += 1
            return emit(result, body)

        except ProxyBusyError as e:
            self.stats['rejected'] += 1
            return emit_text(str(e), 503, {'Retry-After': '1'})

        except FetchError as e:
            self.stats['errors'] += 1
            logger.error(f"❌ Proxy error for {proxy_request.target_url} [{e.reason.value}]: {e}")
            return present(proxy_request.target_url, e)

        except asyncio.CancelledError:
            logger.debug(f"Client disconnected, fetch cancelled: {proxy_request.target_url}")
            raise

        except Exception as e:
            self.stats['errors'] += 1
            logger.error(f"❌ Unexpected proxy error for {proxy_request.target_url}: {e}", exc_info=True)
            return present(proxy_request.target_url, e)

        finally:
            self.stats['active_connections'] -= 1

    async def handle_preflight(self, request: web.Request) -> web.Response:
        return emit_preflight()

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(self.get_full_stats())

    def get_full_stats(self):
        """Получить полную статистику прокси"""
        return {
            'requests': self.stats['total_requests'],
            'responses': self.stats['total_responses'],
            'active': self.stats['active_connections'],
            'rejected': self.stats['rejected'],
            'errors': self.stats['errors']
        }


def _page_handler(path: Path):
    async def handler(request: web.Request) -> web.StreamResponse:
        if not path.is_file():
            raise web.HTTPNotFound()
        return web.FileResponse(path)
    return handler


class ProxyManager:
    def __init__(self, config: Optional[ConfigManager] = None):
        self.config = config or get_config()
        server_config = self.config.get_server_config()

        self.host = server_config.get('host', '0.0.0.0')
        self.local_port = int(server_config.get('port', 3000))
        self.public_dir = Path(server_config.get('public_dir', 'public'))

        self.is_running = False
        self.proxy = None
        self.chat = None
        self.suggest = None
        self.runner = None
        self.site = None
        self.last_error_details = None

    def create_app(self) -> web.Application:
        """Собирает aiohttp приложение со всеми маршрутами"""
        proxy_config = self.config.get_proxy_config()
        chat_config = self.config.get_chat_config()
        suggest_config = self.config.get_suggest_config()
        endpoint = proxy_config.get('endpoint', '/proxy')

        fetcher = UpstreamFetcher(
            timeout=float(proxy_config.get('timeout', 15)),
            max_redirects=int(proxy_config.get('max_redirects', 5)),
            max_concurrent=int(proxy_config.get('max_concurrent_fetches', 50)),
            admission_timeout=float(proxy_config.get('admission_timeout', 10)),
            connector_limit=int(proxy_config.get('connector_limit', 100)),
            verify_ssl=bool(proxy_config.get('verify_ssl', True)),
        )
        self.proxy = RedioProxy(fetcher, endpoint)
        self.chat = ChatManager(
            min_delay=float(chat_config.get('min_delay', 1.0)),
            max_delay=float(chat_config.get('max_delay', 3.0)),
            max_sessions=int(chat_config.get('max_sessions', 100)),
            history_limit=int(chat_config.get('history_limit', 20)),
            history_keep=int(chat_config.get('history_keep', 10)),
        )
        self.suggest = SuggestClient(
            url=suggest_config.get('url', 'https://suggestqueries.google.com/complete/search'),
            client=suggest_config.get('client', 'firefox'),
            timeout=float(suggest_config.get('timeout', 5)),
        )

        app = web.Application()
        app.router.add_get(endpoint, self.proxy.handle_proxy)
        app.router.add_route('OPTIONS', endpoint, self.proxy.handle_preflight)
        app.router.add_get('/health', self.proxy.handle_health)
        app.router.add_get('/api/suggest', self.suggest.handle_suggest)
        app.router.add_get('/ws/chat', self.chat.handle_ws)

        app.router.add_get('/', _page_handler(self.public_dir / 'index.html'))
        app.router.add_get('/cloak', _page_handler(self.public_dir / 'cloak' / 'index.html'))
        app.router.add_get('/games', _page_handler(self.public_dir / 'games' / 'index.html'))
        if self.public_dir.is_dir():
            app.router.add_static('/static', self.public_dir)
        else:
            logger.warning(f"⚠️ Каталог статики не найден: {self.public_dir}")

        app.on_startup.append(self._on_startup)
        app.on_cleanup.append(self._on_cleanup)
        return app

    async def _on_startup(self, app: web.Application):
        """Инициализация connection pool"""
        await self.proxy.fetcher.initialize()
        await self.suggest.initialize()

    async def _on_cleanup(self, app: web.Application):
        await self.proxy.fetcher.cleanup()
        await self.suggest.cleanup()

    async def start(self) -> bool:
        """
        Асинхронный запуск сервера

        Returns:
            bool: True если сервер слушает порт
        """
        if self.is_running:
            logger.warning("⚠️ Прокси уже запущен")
            return False

        port_available, port_message = check_port_availability(self.local_port, self.host)
        if not port_available:
            logger.error(f"❌ {port_message}")
            self.last_error_details = port_message
            return False

        try:
            # Отключение клиента отменяет обработчик и вместе с ним загрузку upstream
            self.runner = web.AppRunner(self.create_app(), access_log=None, handler_cancellation=True)
            await self.runner.setup()

            self.site = web.TCPSite(self.runner, host=self.host, port=self.local_port)
            await self.site.start()

            self.is_running = True
            logger.info(f"✅ Сервер успешно запущен на порту {self.local_port}")
            logger.info(f"📍 Local: http://localhost:{self.local_port}")
            logger.info(f"🛡️  Cloak: http://localhost:{self.local_port}/cloak")
            logger.info(f"🎮 Games: http://localhost:{self.local_port}/games")
            return True

        except OSError as e:
            logger.error(f"❌ Ошибка запуска сервера: {e}")
            self.last_error_details = str(e)
            await self.stop()
            return False

    async def stop(self):
        """Асинхронная остановка сервера"""
        if self.runner:
            await self.runner.cleanup()
        self.runner = None
        self.site = None

        if self.is_running and self.proxy:
            stats = self.proxy.get_full_stats()
            logger.info(
                f"📊 Session statistics:\n"
                f"   Total requests: {stats['requests']}\n"
                f"   Total responses: {stats['responses']}\n"
                f"   Rejected: {stats['rejected']}\n"
                f"   Errors: {stats['errors']}"
            )
        self.is_running = False
        logger.info("✅ Proxy stopped")

    def run(self) -> int:
        """Запускает сервер и блокируется до Ctrl+C"""
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

        try:
            if not loop.run_until_complete(self.start()):
                return 1
            logger.info("Нажмите Ctrl+C для остановки")
            loop.run_forever()
        except KeyboardInterrupt:
            logger.info("🛑 Stopping proxy...")
        finally:
            loop.run_until_complete(self.stop())
            loop.close()

        return 0
