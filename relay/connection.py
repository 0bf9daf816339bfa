"""
Соединение: роль, состояние живости и очередь исходящих сообщений.
"""

import asyncio
import enum
import json
import logging
from collections import deque
from typing import Awaitable, Callable, Optional, Union

from websockets.exceptions import ConnectionClosed

logger = logging.getLogger(__name__)
diag = logging.getLogger("relay_diag")


class Role(enum.Enum):
    UNASSIGNED = "unassigned"
    BROADCASTER = "broadcaster"
    LISTENER = "listener"


class Liveness(enum.Enum):
    ALIVE = "alive"
    AWAITING_PONG = "awaiting-pong"
    DEAD = "dead"


class OutboundQueue:
    """
    Единственный писатель в соединение.

    Две полосы: управляющие сообщения (отправляются первыми) и бинарные
    кадры (ограничены maxsize, при переполнении выбрасываются самые старые).
    Не больше одной отправки в полёте; после ошибки отправки очередь
    останавливается, соединение добивает liveness/закрытие.
    """

    CONTROL_LIMIT = 256

    def __init__(self, send: Callable[[Union[str, bytes]], Awaitable[None]], maxsize: int, name: str = ""):
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self._send = send
        self._control: deque[str] = deque()
        self._frames: deque[bytes] = deque()
        self._task: Optional[asyncio.Task] = None
        self.maxsize = maxsize
        self.name = name
        self.draining = False
        self.halted = False
        self.dropped = 0

    def __len__(self):
        return len(self._frames)

    def pending(self) -> list[bytes]:
        return list(self._frames)

    def push(self, frame: bytes):
        if self.halted:
            return
        while len(self._frames) >= self.maxsize:
            self._frames.popleft()
            self.dropped += 1
            diag.info(f"[{self.name}] очередь переполнена, старый кадр выброшен (всего {self.dropped})")
        self._frames.append(frame)
        self._kick()

    def push_control(self, message: str):
        if self.halted:
            return
        if len(self._control) >= self.CONTROL_LIMIT:
            self._control.popleft()
            diag.info(f"[{self.name}] управляющая очередь переполнена, старое сообщение выброшено")
        self._control.append(message)
        self._kick()

    def clear_frames(self):
        self._frames.clear()

    def _kick(self):
        if not self.draining:
            self.draining = True
            self._task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self):
        try:
            while (self._control or self._frames) and not self.halted:
                item = self._control.popleft() if self._control else self._frames.popleft()
                try:
                    await self._send(item)
                except (ConnectionClosed, OSError) as exc:
                    self.halted = True
                    self._control.clear()
                    self._frames.clear()
                    diag.info(f"[{self.name}] отправка не удалась, очередь остановлена: {exc}")
        finally:
            self.draining = False

    async def drained(self):
        """Дождаться, пока текущий цикл отправки опустеет."""
        while self.draining and self._task is not None:
            await asyncio.wait({self._task})

    def cancel(self):
        self.halted = True
        self._control.clear()
        self._frames.clear()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self.draining = False


class Connection:
    """
    Одно принятое WebSocket-соединение.

    Роль меняется только через Registry; identity есть только у слушателя.
    Все записи идут через outbound, вызывающий никогда не ждёт пира.
    """

    def __init__(self, websocket, origin: str, queue_size: int = 32):
        self.websocket = websocket
        self.origin = origin
        self.role = Role.UNASSIGNED
        self.identity: Optional[str] = None
        self.liveness = Liveness.ALIVE
        self.outbound = OutboundQueue(websocket.send, queue_size, name=origin)
        self._ping_task: Optional[asyncio.Task] = None

    def __repr__(self):
        who = self.identity or self.role.value
        return f"<Connection {who} {self.origin}>"

    @property
    def label(self) -> str:
        if self.role is Role.LISTENER:
            return f"listener {self.identity}"
        return f"{self.role.value} {self.origin}"

    def send_json(self, message: dict):
        self.outbound.push_control(json.dumps(message))

    def heartbeat(self):
        """
        Отправить ping в отдельной задаче; pong вернёт состояние alive.
        Пока прошлый ping не ушёл, новый не отправляется.
        """
        self.liveness = Liveness.AWAITING_PONG
        if self._ping_task is not None and not self._ping_task.done():
            return
        self._ping_task = asyncio.get_running_loop().create_task(self._ping())

    async def _ping(self):
        try:
            waiter = await self.websocket.ping()
        except (ConnectionClosed, OSError) as exc:
            logger.debug(f"ping не отправлен {self.label}: {exc}")
            return
        waiter.add_done_callback(self._on_pong)

    def _on_pong(self, waiter: asyncio.Future):
        if waiter.cancelled() or waiter.exception() is not None:
            return
        if self.liveness is Liveness.AWAITING_PONG:
            self.liveness = Liveness.ALIVE

    async def close(self, code: int = 1000, reason: str = ""):
        self.outbound.cancel()
        if self._ping_task is not None and not self._ping_task.done():
            self._ping_task.cancel()
        try:
            await self.websocket.close(code, reason)
        except (ConnectionClosed, OSError):
            pass
