"""
Liveness: периодический ping всех соединений и вытеснение молчащих.
"""

import asyncio
import logging

from .connection import Connection, Liveness
from .registry import Registry

logger = logging.getLogger(__name__)
diag = logging.getLogger("relay_diag")

GOING_AWAY = 1001


class LivenessMonitor:
    """
    На каждом тике: соединение, не ответившее на прошлый ping, удаляется
    из Registry и закрывается; остальным отправляется новый ping.
    Молчащее соединение удаляется не позже чем через два интервала.

    Тик ничего не ждёт: ping и закрытие идут отдельными задачами,
    поэтому пир, переставший читать, не останавливает монитор.
    """

    def __init__(self, registry: Registry, interval: float = 30.0):
        self.registry = registry
        self.interval = interval
        self._closing: set[asyncio.Task] = set()

    def tick(self) -> list[Connection]:
        dead = []
        for conn in list(self.registry.connections):
            if conn.liveness is Liveness.ALIVE:
                conn.heartbeat()
            else:
                conn.liveness = Liveness.DEAD
                dead.append(conn)
                self._evict(conn)
        return dead

    def _evict(self, conn: Connection):
        diag.info(f"{conn.label}: нет pong, соединение вытеснено")
        logger.info(f"{conn.label} не отвечает на ping, отключаем")
        self.registry.detach(conn)
        task = asyncio.get_running_loop().create_task(conn.close(GOING_AWAY, "heartbeat timeout"))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def run(self):
        logger.info(f"Heartbeat каждые {self.interval} сек")
        while True:
            await asyncio.sleep(self.interval)
            self.tick()
