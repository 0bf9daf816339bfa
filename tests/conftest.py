import asyncio
import json

import pytest
from websockets.exceptions import ConnectionClosedError

from relay.broadcast import RelayFlowController
from relay.connection import Connection
from relay.policy import AllowAll
from relay.registry import Registry
from relay.router import Router


class FakeWebSocket:
    """Подмена соединения websockets: запоминает всё отправленное."""

    def __init__(self, address="10.0.0.5", inbound=()):
        self.remote_address = (address, 50000)
        self.inbound = list(inbound)
        self.sent = []
        self.pings = []
        self.closed_with = None
        self.fail_sends = False
        # send/ping висят, пока gate/ping_gate не открыты (пир не читает)
        self.gate = None
        self.ping_gate = None

    async def send(self, message):
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_sends:
            raise ConnectionClosedError(None, None)
        self.sent.append(message)

    async def ping(self):
        if self.ping_gate is not None:
            await self.ping_gate.wait()
        waiter = asyncio.get_running_loop().create_future()
        self.pings.append(waiter)
        return waiter

    async def close(self, code=1000, reason=""):
        self.closed_with = (code, reason)

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for message in self.inbound:
            await asyncio.sleep(0)
            yield message
        await asyncio.sleep(0)

    def messages(self, kind=None):
        decoded = [json.loads(m) for m in self.sent if isinstance(m, str)]
        if kind is None:
            return decoded
        return [m for m in decoded if m.get("type") == kind]

    def frames(self):
        return [m for m in self.sent if isinstance(m, bytes)]


def make_conn(address="10.0.0.5", queue_size=8):
    return Connection(FakeWebSocket(address), address, queue_size)


async def settle(rounds=10):
    for _ in range(rounds):
        await asyncio.sleep(0)


async def delivered(*conns):
    """Дождаться, пока очереди соединений отправят всё поставленное."""
    for conn in conns:
        await conn.outbound.drained()


@pytest.fixture
def registry():
    return Registry()


@pytest.fixture
def flow(registry):
    return RelayFlowController(registry, buffer_size=3)


@pytest.fixture
def router(registry, flow):
    return Router(registry, flow, AllowAll())
