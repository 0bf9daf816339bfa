"""
Registry: единственный источник правды о ролях соединений.

Все методы синхронны: мутация и постановка уведомлений в очереди
соединений происходят за один шаг цикла событий, без ожидания пиров.
"""

import logging
from typing import Callable, Optional

from .connection import Connection, Role
from .utils import new_identity

logger = logging.getLogger(__name__)


class Registry:
    def __init__(self):
        self.broadcaster: Optional[Connection] = None
        self.listeners: dict[str, Connection] = {}
        self.connections: set[Connection] = set()
        # Вызываются сразу после вставки нового слушателя
        self.listener_hooks: list[Callable[[Connection], None]] = []

    def attach(self, conn: Connection):
        self.connections.add(conn)
        logger.info(f"Соединение принято {conn.origin} ({len(self.connections)} всего)")

    def status(self) -> dict:
        return {
            "type": "status",
            "broadcasterOnline": self.broadcaster is not None,
            "listenerCount": len(self.listeners),
        }

    def is_broadcaster(self, conn: Connection) -> bool:
        return conn is not None and self.broadcaster is conn

    def lookup_listener(self, identity) -> Optional[Connection]:
        if not isinstance(identity, str):
            return None
        return self.listeners.get(identity)

    def register_broadcaster(self, conn: Connection):
        """
        Занять слот broadcaster. Предыдущий владелец не закрывается:
        он остаётся «сиротой» до своего отключения или таймаута heartbeat.
        """
        if conn.role is Role.LISTENER:
            self.remove_listener(conn.identity)
        previous = self.broadcaster
        self.broadcaster = conn
        conn.role = Role.BROADCASTER
        conn.identity = None
        if previous is not None and previous is not conn:
            logger.warning(f"Broadcaster заменён: {previous.origin} -> {conn.origin}")
        else:
            logger.info(f"Broadcaster подключен: {conn.origin}")

        conn.send_json({"type": "role", "role": "broadcaster"})
        for identity in self.listeners:
            conn.send_json(self._peer_message("peer-joined", identity))
        self.broadcast_status()

    def register_listener(self, conn: Connection) -> str:
        """
        Добавить слушателя и вернуть его identity.
        Повторная регистрация сохраняет прежний identity.
        """
        if conn.role is Role.LISTENER and self.listeners.get(conn.identity) is conn:
            conn.send_json({"type": "role", "role": "listener", "id": conn.identity})
            conn.send_json(self.status())
            return conn.identity
        if conn.role is Role.BROADCASTER:
            self.clear_broadcaster(conn)

        identity = new_identity(self.listeners)
        conn.role = Role.LISTENER
        conn.identity = identity
        conn.outbound.clear_frames()
        self.listeners[identity] = conn
        logger.info(f"Listener {identity} подключен ({len(self.listeners)} всего)")

        conn.send_json({"type": "role", "role": "listener", "id": identity})
        for hook in self.listener_hooks:
            hook(conn)
        if self.broadcaster is not None:
            self.broadcaster.send_json(self._peer_message("peer-joined", identity))
        self.broadcast_status()
        return identity

    def remove_listener(self, identity) -> bool:
        conn = self.lookup_listener(identity)
        if conn is None:
            return False
        del self.listeners[identity]
        conn.outbound.clear_frames()
        logger.info(f"Listener {identity} отключен ({len(self.listeners)} осталось)")
        if self.broadcaster is not None:
            self.broadcaster.send_json(self._peer_message("peer-left", identity))
        self.broadcast_status()
        return True

    def clear_broadcaster(self, conn: Optional[Connection] = None) -> bool:
        """
        Освободить слот. Если передан conn, слот освобождается только когда
        его занимает именно он (отключение «сироты» ничего не трогает).
        """
        if self.broadcaster is None:
            return False
        if conn is not None and self.broadcaster is not conn:
            return False
        logger.info(f"Broadcaster отключен: {self.broadcaster.origin}")
        self.broadcaster = None
        self.broadcast_status()
        return True

    def detach(self, conn: Connection):
        """
        Общая точка удаления для закрытия соединения и для liveness.
        Повторный вызов ничего не делает.
        """
        self.connections.discard(conn)
        conn.outbound.cancel()
        if conn.role is Role.LISTENER and self.listeners.get(conn.identity) is conn:
            self.remove_listener(conn.identity)
        elif self.broadcaster is conn:
            self.clear_broadcaster(conn)

    def broadcast_status(self):
        """status всем участникам: слушателям и текущему broadcaster'у."""
        message = self.status()
        for conn in self.listeners.values():
            conn.send_json(message)
        if self.broadcaster is not None:
            self.broadcaster.send_json(message)

    def _peer_message(self, kind: str, identity: str) -> dict:
        return {"type": kind, "id": identity, "listenerCount": len(self.listeners)}
