"""
WebSocket сервер. Принимает broadcaster'а и слушателей, отдаёт health-check.
"""

import asyncio
import logging
from http import HTTPStatus

import websockets
from websockets.exceptions import ConnectionClosed

from .broadcast import RelayFlowController
from .config import settings
from .connection import Connection
from .liveness import LivenessMonitor
from .policy import build_policy
from .registry import Registry
from .router import Router, run_status_loop
from .utils import origin_address

logger = logging.getLogger(__name__)


class Relay:
    """
    Сборка компонентов релея вокруг одного Registry.
    """

    def __init__(self, cfg=settings, policy=None):
        self.cfg = cfg
        self.registry = Registry()
        self.flow = RelayFlowController(self.registry, cfg.RELAY_BUFFER_SIZE)
        self.router = Router(self.registry, self.flow, policy or build_policy(cfg))
        self.monitor = LivenessMonitor(self.registry, cfg.HEARTBEAT_INTERVAL)

    async def ws_handler(self, websocket):
        """
        Обработка одного WebSocket-клиента.
        """
        conn = Connection(
            websocket,
            origin_address(websocket, self.cfg.TRUST_FORWARDED_FOR),
            self.cfg.LISTENER_QUEUE_SIZE,
        )
        self.registry.attach(conn)
        try:
            async for message in websocket:
                if isinstance(message, str):
                    await self.router.handle_text(conn, message)
                else:
                    self.router.handle_binary(conn, message)
        except ConnectionClosed as exc:
            logger.info(f"WS-подключение {conn.label} оборвано: {exc}")
        finally:
            self.registry.detach(conn)
            logger.info(f"WS-подключение {conn.label} закрыто.")

    def process_request(self, connection, request):
        if request.path == self.cfg.HEALTH_PATH:
            return connection.respond(HTTPStatus.OK, "OK\n")
        return None

    async def serve(self):
        async with websockets.serve(
            self.ws_handler,
            self.cfg.HOST,
            self.cfg.PORT,
            process_request=self.process_request,
            ping_interval=None,  # heartbeat ведёт LivenessMonitor
            close_timeout=5,
            max_size=self.cfg.MAX_MESSAGE_SIZE,
        ):
            logger.info(f"WS сервер: слушаем {self.cfg.HOST}:{self.cfg.PORT}")
            await asyncio.gather(
                self.monitor.run(),
                run_status_loop(self.registry, self.cfg.STATUS_INTERVAL),
            )


async def run_ws_server(cfg=settings):
    """
    Запуск WS-сервера.
    """
    await Relay(cfg).serve()
