"""주기 정리 작업 단위 테스트"""

import asyncio

import pytest

from duochat.services.maintenance import MaintenanceRunner


def test_sweep_rooms_removes_inactive(hub, clock):
    hub.store.create_room(name="Idle")
    clock.advance(3601)

    removed = MaintenanceRunner(hub).sweep_rooms()

    assert len(removed) == 1
    assert len(hub.store) == 0


def test_sweep_connections_removes_stale(hub, clock):
    hub.registry.register("conn-a")
    clock.advance(301)

    assert MaintenanceRunner(hub).sweep_connections() == ["conn-a"]


@pytest.mark.asyncio
async def test_start_and_stop_loops(hub, clock):
    """루프가 주기마다 정리하고 stop 후 멈춤"""
    hub.registry.register("conn-a")
    clock.advance(301)
    runner = MaintenanceRunner(hub, room_sweep_interval=0.01, connection_sweep_interval=0.01)

    runner.start()
    assert runner.running is True
    await asyncio.sleep(0.05)
    await runner.stop()

    assert "conn-a" not in hub.registry
    assert runner.running is False
