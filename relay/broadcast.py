"""
Broadcast: рассылка бинарных кадров broadcaster'а всем слушателям.
"""

import logging
from collections import deque

from .connection import Connection
from .registry import Registry

logger = logging.getLogger(__name__)


class RelayFlowController:
    """
    Кольцевой буфер последних кадров + раздача по очередям слушателей.

    Медленный слушатель не тормозит остальных: у каждого своя ограниченная
    очередь, при переполнении выбрасываются старые кадры.
    """

    def __init__(self, registry: Registry, buffer_size: int = 5):
        self.registry = registry
        self.buffer: deque[bytes] = deque(maxlen=buffer_size)
        self.frames_relayed = 0
        registry.listener_hooks.append(self.bootstrap)

    def relay(self, frame: bytes):
        """
        Рассылка кадра: сначала в буфер, затем в очередь каждого слушателя.

        :param frame: Непрозрачные байты от broadcaster'а
        """
        self.buffer.append(frame)
        self.frames_relayed += 1
        for conn in self.registry.listeners.values():
            conn.outbound.push(frame)

    def bootstrap(self, conn: Connection):
        """
        Новому слушателю: копия буфера в исходном порядке, до живых кадров.
        """
        for frame in self.buffer:
            conn.outbound.push(frame)
        if self.buffer:
            logger.debug(f"Listener {conn.identity}: отправлено {len(self.buffer)} кадров из буфера")
