# core/chat_manager.py
"""Чат-заглушка поверх WebSocket: шаблонные ответы с искусственной задержкой"""

import asyncio
import json
import logging
import random
import uuid
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Dict, List, Optional

from aiohttp import web, WSMsgType

logger = logging.getLogger(__name__)

RESPONSE_TEMPLATES = [
    'I understand you\'re asking about "{message}". Let me provide you with comprehensive information and resources.',
    'Regarding "{message}", I\'ve gathered relevant insights that should help answer your question thoroughly.',
    'That\'s an interesting topic! For "{message}", I can offer detailed explanations and guide you to the best resources.',
    'I\'d be happy to help with "{message}". Let me break this down and provide you with the most useful information.',
    'Great question about "{message}"! I\'ll organize the information to give you a clear understanding.',
]


class SessionStore:
    """История сессий одного соединения с LRU вытеснением"""

    def __init__(self, maxsize: int = 100, history_limit: int = 20, history_keep: int = 10):
        """
        Args:
            maxsize: Максимальное количество сессий
            history_limit: После скольких сообщений история обрезается
            history_keep: Сколько последних сообщений оставить после обрезки
        """
        self.sessions: "OrderedDict[str, List[Dict[str, str]]]" = OrderedDict()
        self.maxsize = maxsize
        self.history_limit = history_limit
        self.history_keep = history_keep

    def append(self, session_id: str, role: str, content: str) -> List[Dict[str, str]]:
        """Добавляет сообщение в историю сессии"""
        if session_id in self.sessions:
            # Перемещаем в конец (most recently used)
            self.sessions.move_to_end(session_id)
        else:
            self.sessions[session_id] = []

        history = self.sessions[session_id]
        history.append({'role': role, 'content': content})
        if len(history) > self.history_limit:
            del history[:-self.history_keep]

        # Проверяем лимит и вытесняем старую сессию
        if len(self.sessions) > self.maxsize:
            evicted = self.sessions.popitem(last=False)[0]
            logger.debug(f"Chat session EVICT: {evicted}")

        return history

    def get(self, session_id: str) -> Optional[List[Dict[str, str]]]:
        return self.sessions.get(session_id)

    def clear(self):
        self.sessions.clear()

    def __len__(self) -> int:
        return len(self.sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self.sessions


class ChatManager:
    def __init__(self, min_delay: float = 1.0, max_delay: float = 3.0, max_sessions: int = 100,
                 history_limit: int = 20, history_keep: int = 10):
        self.min_delay = min_delay
        self.max_delay = max(max_delay, min_delay)
        self.max_sessions = max_sessions
        self.history_limit = history_limit
        self.history_keep = history_keep
        self.active_connections = 0

    def _new_store(self) -> SessionStore:
        return SessionStore(self.max_sessions, self.history_limit, self.history_keep)

    @staticmethod
    def compose_response(message: str) -> str:
        return random.choice(RESPONSE_TEMPLATES).format(message=message)

    async def handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        """
        Обработка WebSocket соединения чата

        Сессии живут ровно столько, сколько соединение: при отключении
        история удаляется, а отложенные ответы отменяются.
        """
        ws = web.WebSocketResponse(heartbeat=30)
        await ws.prepare(request)

        connection_id = uuid.uuid4().hex
        store = self._new_store()
        pending = set()
        self.active_connections += 1
        logger.info(f"🔌 User connected: {connection_id}")

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    task = self._dispatch(ws, msg.data, connection_id, store)
                    if task is not None:
                        pending.add(task)
                        task.add_done_callback(pending.discard)
                elif msg.type == WSMsgType.ERROR:
                    logger.warning(f"⚠️ WebSocket error: {ws.exception()}")
        finally:
            for task in pending:
                task.cancel()
            store.clear()
            self.active_connections -= 1
            logger.info(f"🔌 User disconnected: {connection_id}")

        return ws

    def _dispatch(self, ws: web.WebSocketResponse, raw: str, connection_id: str,
                  store: SessionStore) -> Optional[asyncio.Task]:
        """Разбирает входящее сообщение и запускает отложенный ответ"""
        try:
            data = json.loads(raw)
            if data.get('type', 'ai-message') != 'ai-message':
                raise ValueError(f"unknown event type {data.get('type')!r}")
            message = data['message']
            if not isinstance(message, str):
                raise ValueError("message must be a string")
        except (ValueError, KeyError, AttributeError) as e:
            logger.debug(f"Некорректное сообщение чата: {e}")
            return self._track(ws.send_json({'type': 'ai-error', 'error': 'Failed to process message'}))

        session_id = data.get('sessionId') or connection_id
        store.append(session_id, 'user', message)
        return self._track(self._respond(ws, store, session_id, message))

    @classmethod
    def _track(cls, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        task.add_done_callback(cls._task_done)
        return task

    @staticmethod
    def _task_done(task: asyncio.Task):
        """Забирает исключение фоновой отправки (обычно обрыв соединения) и пишет его в лог"""
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.debug(f"Ответ чата не доставлен: {error!r}")

    async def _respond(self, ws: web.WebSocketResponse, store: SessionStore, session_id: str, message: str):
        await ws.send_json({'type': 'ai-typing', 'sessionId': session_id})

        await asyncio.sleep(random.uniform(self.min_delay, self.max_delay))

        response = self.compose_response(message)
        store.append(session_id, 'assistant', response)

        if ws.closed:
            return
        await ws.send_json({
            'type': 'ai-response',
            'response': response,
            'sessionId': session_id,
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
        })
