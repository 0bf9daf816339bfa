"""
Маршрутизация управляющих сообщений между broadcaster'ом и слушателями.
"""

import asyncio
import logging

from .broadcast import RelayFlowController
from .connection import Connection, Role
from .messages import (
    Answer,
    Candidate,
    MalformedMessage,
    Offer,
    RegisterBroadcaster,
    RegisterListener,
    parse_message,
)
from .policy import AccessPolicy
from .registry import Registry

logger = logging.getLogger(__name__)

POLICY_VIOLATION = 1008


class Router:
    """
    Таблица: тип сообщения × роль отправителя -> действие.

    Ни одно сообщение, кроме бинарных кадров, не копится для повторной
    доставки: неразрешённая цель означает, что сообщение выброшено.
    Пересылка только ставит сообщение в очередь адресата.
    """

    def __init__(self, registry: Registry, flow: RelayFlowController, policy: AccessPolicy):
        self.registry = registry
        self.flow = flow
        self.policy = policy
        self._handlers = {
            RegisterBroadcaster: self._register_broadcaster,
            RegisterListener: self._register_listener,
            Offer: self._offer,
            Answer: self._answer,
            Candidate: self._candidate,
        }

    async def handle_text(self, conn: Connection, raw):
        try:
            message = parse_message(raw)
        except MalformedMessage as exc:
            logger.debug(f"Сообщение от {conn.label} отброшено: {exc}")
            return
        await self._handlers[type(message)](conn, message)

    def handle_binary(self, conn: Connection, frame: bytes):
        if not self.registry.is_broadcaster(conn):
            logger.debug(f"Бинарный кадр от {conn.label} отброшен: не broadcaster")
            return
        self.flow.relay(frame)

    def _is_listener(self, conn: Connection) -> bool:
        return conn.role is Role.LISTENER and self.registry.lookup_listener(conn.identity) is conn

    async def _register_broadcaster(self, conn, message: RegisterBroadcaster):
        if not self.policy.authorize(conn.origin, message.token):
            logger.warning(f"Отказ в роли broadcaster для {conn.origin}")
            await conn.close(POLICY_VIOLATION, "broadcaster role not authorized")
            return
        self.registry.register_broadcaster(conn)

    async def _register_listener(self, conn, message: RegisterListener):
        self.registry.register_listener(conn)

    async def _offer(self, conn, message: Offer):
        if not self.registry.is_broadcaster(conn):
            logger.debug(f"offer от {conn.label} отброшен: не broadcaster")
            return
        target = self.registry.lookup_listener(message.target)
        if target is None:
            logger.warning(f"offer для неизвестного listener {message.target} отброшен")
            return
        target.send_json({**message.model_dump(exclude={"target"}), "from": "broadcaster"})

    async def _answer(self, conn, message: Answer):
        if not self._is_listener(conn):
            logger.debug(f"answer от {conn.label} отброшен: не listener")
            return
        broadcaster = self.registry.broadcaster
        if broadcaster is None:
            logger.warning(f"answer от {conn.identity} отброшен: broadcaster отсутствует")
            return
        broadcaster.send_json({**message.model_dump(exclude={"target"}), "from": conn.identity})

    async def _candidate(self, conn, message: Candidate):
        payload = message.model_dump(exclude={"target"})
        if self._is_listener(conn):
            broadcaster = self.registry.broadcaster
            if broadcaster is None:
                logger.warning(f"candidate от {conn.identity} отброшен: broadcaster отсутствует")
                return
            broadcaster.send_json({**payload, "from": conn.identity})
        elif self.registry.is_broadcaster(conn):
            # Только одному адресату: кандидаты раскрывают сетевой путь
            target = self.registry.lookup_listener(message.target)
            if target is None:
                logger.warning(f"candidate для неизвестного listener {message.target} отброшен")
                return
            target.send_json({**payload, "from": "broadcaster"})
        else:
            logger.debug(f"candidate от {conn.label} отброшен: роль не назначена")


async def run_status_loop(registry: Registry, interval: float):
    """
    Периодическая рассылка status всем участникам.
    """
    while True:
        await asyncio.sleep(interval)
        registry.broadcast_status()
