import asyncio
from datetime import datetime, timedelta

import pytest

from conftest import FakeGateway, FakeTransport, make_game
from feedbot.services.dispatcher import Dispatcher
from feedbot.services.formatter import payload_hash
from feedbot.services.notification_service import NotificationService
from feedbot.storage.models import GameStatus

T0 = datetime(2024, 9, 8, 17, 0, 0)


def _service(store, gateway, transport, **kwargs) -> NotificationService:
    return NotificationService(
        store=store,
        gateway=gateway,
        dispatcher=Dispatcher(transport, timeout=1),
        **kwargs
    )


@pytest.mark.asyncio
async def test_no_subscribers_short_circuits_without_fetching(store, gateway, transport) -> None:
    report = await _service(store, gateway, transport).run_tick(T0)

    assert report.due == []
    assert gateway.scoreboard_calls == 0
    assert transport.sent == []


@pytest.mark.asyncio
async def test_due_subscriber_receives_rendered_update(store, gateway, transport) -> None:
    store.upsert("user-1", ["Chiefs"], timedelta(minutes=15))

    report = await _service(store, gateway, transport).run_tick(T0)

    assert report.dispatched == 1
    assert len(transport.sent) == 1
    user_id, text = transport.sent[0]
    assert user_id == "user-1"
    assert "Kansas City Chiefs vs Baltimore Ravens: 7 - 3" in text
    subscriber = store.get("user-1")
    assert subscriber.last_delivered_at == T0
    assert subscriber.last_payload_hash == payload_hash(text)


@pytest.mark.asyncio
async def test_shared_team_is_fetched_once_per_tick(store, gateway, transport) -> None:
    store.upsert("a", ["Chiefs"], timedelta(minutes=5))
    store.upsert("b", ["Chiefs", "Giants"], timedelta(minutes=5))

    report = await _service(store, gateway, transport).run_tick(T0)

    assert report.dispatched == 2
    assert report.fetched_entities == 2
    assert gateway.scoreboard_calls == 1


@pytest.mark.asyncio
async def test_unchanged_payload_is_suppressed_but_clock_advances(store, gateway, transport) -> None:
    store.upsert("a", ["Chiefs"], timedelta(minutes=5))
    service = _service(store, gateway, transport)

    first = await service.run_tick(T0)
    second = await service.run_tick(T0 + timedelta(minutes=5))

    assert first.dispatched == 1
    assert second.suppressed == 1
    assert len(transport.sent) == 1
    assert store.get("a").last_delivered_at == T0 + timedelta(minutes=5)


@pytest.mark.asyncio
async def test_delivery_failure_leaves_bookkeeping_for_retry(store, gateway, transport) -> None:
    store.upsert("a", ["Chiefs"], timedelta(minutes=5))
    store.upsert("b", ["Chiefs"], timedelta(minutes=5))
    transport.failing_users["a"] = True
    service = _service(store, gateway, transport)

    report = await service.run_tick(T0)

    assert report.failed == 1
    assert report.dispatched == 1
    assert store.get("a").last_delivered_at is None
    assert store.get("b").last_delivered_at == T0

    transport.failing_users.clear()
    retry = await service.run_tick(T0 + timedelta(minutes=1))

    assert retry.due == ["a"]
    assert retry.dispatched == 1
    assert store.get("a").last_delivered_at == T0 + timedelta(minutes=1)


@pytest.mark.asyncio
async def test_transport_exception_does_not_break_tick(store, gateway, transport) -> None:
    store.upsert("a", ["Chiefs"], timedelta(minutes=5))
    transport.error = RuntimeError("socket closed")

    report = await _service(store, gateway, transport).run_tick(T0)

    assert report.failed == 1
    assert store.get("a").last_delivered_at is None


@pytest.mark.asyncio
async def test_upstream_outage_records_nothing_and_retries_next_tick(store, gateway, transport) -> None:
    store.upsert("a", ["Chiefs"], timedelta(minutes=5))
    store.upsert("b", ["Giants"], timedelta(minutes=5))
    service = _service(store, gateway, transport)
    gateway.available = False

    report = await service.run_tick(T0)

    assert report.skipped == 2
    assert transport.sent == []
    assert store.get("a").last_delivered_at is None
    assert store.get("b").last_delivered_at is None

    gateway.available = True
    retry = await service.run_tick(T0 + timedelta(minutes=1))

    assert sorted(retry.due) == ["a", "b"]
    assert retry.dispatched == 2


@pytest.mark.asyncio
async def test_unknown_team_is_not_a_fetch_failure(store, gateway, transport) -> None:
    store.upsert("a", ["Sharks"], timedelta(minutes=5))

    report = await _service(store, gateway, transport).run_tick(T0)

    assert report.dispatched == 1
    assert "No data for sharks." in transport.sent[0][1]


@pytest.mark.asyncio
async def test_end_to_end_cadence_scenario(store, transport) -> None:
    gateway = FakeGateway(games=[
        make_game("chiefs", "ravens", "7", "3"),
        make_game("giants", "eagles", "0", "0"),
    ])
    service = _service(store, gateway, transport)
    store.upsert("+15550001", ["Chiefs", "Giants"], timedelta(minutes=15))

    tick1 = await service.run_tick(T0)
    assert tick1.dispatched == 1
    assert gateway.scoreboard_calls == 1
    assert store.get("+15550001").last_delivered_at == T0

    tick2 = await service.run_tick(T0 + timedelta(minutes=10))
    assert tick2.due == []
    assert gateway.scoreboard_calls == 1
    assert len(transport.sent) == 1

    gateway.games = [
        make_game("chiefs", "ravens", "7", "3"),
        make_game("giants", "eagles", "7", "0"),
    ]
    tick3 = await service.run_tick(T0 + timedelta(minutes=16))
    assert tick3.dispatched == 1
    assert len(transport.sent) == 2
    assert "New York Giants vs Philadelphia Eagles: 7 - 0" in transport.sent[1][1]
    assert store.get("+15550001").last_delivered_at == T0 + timedelta(minutes=16)


@pytest.mark.asyncio
async def test_subscriber_removed_mid_tick_is_not_resurrected(store, gateway, transport) -> None:
    store.upsert("a", ["Chiefs"], timedelta(minutes=5))
    transport.delay = 0.05
    service = _service(store, gateway, transport)

    tick = asyncio.ensure_future(service.run_tick(T0))
    await asyncio.sleep(0.01)
    store.remove("a")
    await tick

    assert store.get("a") is None


@pytest.mark.asyncio
async def test_stop_waits_for_in_flight_tick(store, gateway, transport) -> None:
    store.upsert("a", ["Chiefs"], timedelta(minutes=5))
    transport.delay = 0.1
    service = _service(store, gateway, transport, tick_interval=60)

    loop_task = asyncio.ensure_future(service.start())
    await asyncio.sleep(0.02)
    await service.stop()
    await asyncio.wait_for(loop_task, timeout=1)

    assert len(transport.sent) == 1
    assert store.get("a").last_delivered_at is not None


@pytest.mark.asyncio
async def test_scheduled_game_renders_matchup(store, transport) -> None:
    gateway = FakeGateway(games=[
        make_game("giants", "eagles", status=GameStatus.SCHEDULED, detail="Sun 1:00 PM"),
    ])
    store.upsert("a", ["Giants"], timedelta(minutes=5))

    await _service(store, gateway, transport).run_tick(T0)

    assert "Philadelphia Eagles at New York Giants (Sun 1:00 PM)" in transport.sent[0][1]


@pytest.mark.asyncio
async def test_stop_before_loop_starts_is_not_lost(store, gateway, transport) -> None:
    store.upsert("a", ["Chiefs"], timedelta(minutes=5))
    service = _service(store, gateway, transport, tick_interval=60)

    loop_task = asyncio.create_task(service.start())
    await service.stop()
    await asyncio.wait_for(loop_task, timeout=1)

    assert service.running is False
    assert gateway.scoreboard_calls == 0
    assert transport.sent == []


@pytest.mark.asyncio
async def test_partial_fetch_failure_still_sends_fetched_teams(store, transport) -> None:
    gateway = FakeGateway(games=[make_game("chiefs", "ravens", "7", "3")])
    gateway.teams_available = False
    store.upsert("a", ["Chiefs", "Giants"], timedelta(minutes=5))

    report = await _service(store, gateway, transport).run_tick(T0)

    assert report.dispatched == 1
    assert report.fetched_entities == 1
    text = transport.sent[0][1]
    assert "Kansas City Chiefs vs Baltimore Ravens: 7 - 3 (Q1 15:00)" in text
    assert "giants" not in text.lower()
    assert store.get("a").last_delivered_at == T0
