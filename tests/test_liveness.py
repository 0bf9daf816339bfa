import asyncio

import pytest

from conftest import delivered, make_conn, settle
from relay.connection import Liveness
from relay.liveness import LivenessMonitor


def attached(registry, address="10.0.0.5"):
    conn = make_conn(address)
    registry.attach(conn)
    return conn


def answer_pings(conn):
    for waiter in conn.websocket.pings:
        if not waiter.done():
            waiter.set_result(0.001)


class TestLivenessMonitor:
    """Heartbeat и вытеснение молчащих соединений."""

    @pytest.mark.asyncio
    async def test_first_tick_only_pings(self, registry):
        monitor = LivenessMonitor(registry, interval=0.01)
        conn = attached(registry)

        assert monitor.tick() == []
        await settle()
        assert conn.liveness is Liveness.AWAITING_PONG
        assert len(conn.websocket.pings) == 1

    @pytest.mark.asyncio
    async def test_responsive_connection_survives(self, registry):
        monitor = LivenessMonitor(registry, interval=0.01)
        conn = attached(registry)
        registry.register_listener(conn)

        for _ in range(3):
            monitor.tick()
            await settle()
            answer_pings(conn)
            await settle()

        assert conn in registry.connections
        assert registry.lookup_listener(conn.identity) is conn
        assert conn.websocket.closed_with is None

    @pytest.mark.asyncio
    async def test_silent_listener_evicted_on_second_tick(self, registry):
        monitor = LivenessMonitor(registry, interval=0.01)
        broadcaster = attached(registry, "10.0.0.1")
        registry.register_broadcaster(broadcaster)
        listener = attached(registry)
        identity = registry.register_listener(listener)

        monitor.tick()
        await settle()
        answer_pings(broadcaster)
        await settle()
        evicted = monitor.tick()
        await settle()
        await delivered(broadcaster)

        assert evicted == [listener]
        assert listener.liveness is Liveness.DEAD
        assert registry.lookup_listener(identity) is None
        assert listener not in registry.connections
        assert listener.websocket.closed_with[0] == 1001
        assert broadcaster.websocket.messages("peer-left") == [
            {"type": "peer-left", "id": identity, "listenerCount": 0}
        ]

    @pytest.mark.asyncio
    async def test_silent_broadcaster_evicted(self, registry):
        monitor = LivenessMonitor(registry, interval=0.01)
        broadcaster = attached(registry, "10.0.0.1")
        registry.register_broadcaster(broadcaster)
        listener = attached(registry)
        registry.register_listener(listener)

        monitor.tick()
        await settle()
        answer_pings(listener)
        await settle()
        monitor.tick()
        await delivered(listener)

        assert registry.broadcaster is None
        assert listener.websocket.messages("status")[-1]["broadcasterOnline"] is False

    @pytest.mark.asyncio
    async def test_stalled_ping_does_not_stop_monitor(self, registry):
        """Пир, который не читает, не блокирует тик и вытесняется вовремя."""
        monitor = LivenessMonitor(registry, interval=0.01)
        stalled = attached(registry, "10.0.0.7")
        stalled.websocket.ping_gate = asyncio.Event()
        silent = attached(registry, "10.0.0.8")

        assert monitor.tick() == []
        await settle()
        evicted = monitor.tick()
        await settle()

        assert set(evicted) == {stalled, silent}
        assert registry.connections == set()
        assert stalled.websocket.closed_with[0] == 1001
        assert silent.websocket.closed_with[0] == 1001

    @pytest.mark.asyncio
    async def test_close_after_eviction_sends_nothing_twice(self, registry):
        monitor = LivenessMonitor(registry, interval=0.01)
        broadcaster = attached(registry, "10.0.0.1")
        registry.register_broadcaster(broadcaster)
        listener = attached(registry)
        registry.register_listener(listener)

        monitor.tick()
        await settle()
        answer_pings(broadcaster)
        await settle()
        monitor.tick()
        # Закрытие транспорта приходит в обработчик соединения следом
        registry.detach(listener)
        await delivered(broadcaster)

        assert len(broadcaster.websocket.messages("peer-left")) == 1

    @pytest.mark.asyncio
    async def test_unassigned_connection_also_monitored(self, registry):
        monitor = LivenessMonitor(registry, interval=0.01)
        conn = attached(registry)

        monitor.tick()
        await settle()
        monitor.tick()
        await settle()

        assert conn not in registry.connections
        assert conn.websocket.closed_with is not None
