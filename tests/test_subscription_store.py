from datetime import datetime, timedelta

import pytest

from feedbot.errors import EmptyEntitySet, InvalidCadence
from feedbot.storage.subscription_store import SubscriptionStore

T0 = datetime(2024, 9, 8, 17, 0, 0)


def test_upsert_normalizes_and_deduplicates_entities(store) -> None:
    subscriber = store.upsert("+15551234", ["Chiefs", " chiefs ", "New  York Giants"], timedelta(minutes=15))

    assert subscriber.watched_entities == frozenset({"chiefs", "new york giants"})
    assert subscriber.cadence == timedelta(minutes=15)
    assert subscriber.last_delivered_at is None
    assert subscriber.last_payload_hash is None


def test_upsert_rejects_cadence_below_minimum_and_keeps_existing(store) -> None:
    store.upsert("+15551234", ["Chiefs"], timedelta(minutes=15))

    with pytest.raises(InvalidCadence) as excinfo:
        store.upsert("+15551234", ["Giants"], timedelta(seconds=30))

    assert excinfo.value.minimum_minutes == 1
    subscriber = store.get("+15551234")
    assert subscriber.watched_entities == frozenset({"chiefs"})
    assert subscriber.cadence == timedelta(minutes=15)


def test_upsert_rejects_cadence_below_minimum_for_new_subscriber(store) -> None:
    with pytest.raises(InvalidCadence):
        store.upsert("+15551234", ["Chiefs"], timedelta(0))

    assert store.get("+15551234") is None
    assert store.count() == 0


@pytest.mark.parametrize("entities", [[], ["", "   "]])
def test_upsert_rejects_empty_entity_set(store, entities) -> None:
    with pytest.raises(EmptyEntitySet):
        store.upsert("+15551234", entities, timedelta(minutes=5))

    assert store.get("+15551234") is None


def test_upsert_replaces_watch_set_and_keeps_bookkeeping(store) -> None:
    store.upsert("+15551234", ["Chiefs", "Giants"], timedelta(minutes=15))
    store.record_delivery("+15551234", "abc", T0)

    subscriber = store.upsert("+15551234", ["Ravens"], timedelta(minutes=30))

    assert subscriber.watched_entities == frozenset({"ravens"})
    assert subscriber.cadence == timedelta(minutes=30)
    assert subscriber.last_delivered_at == T0
    assert subscriber.last_payload_hash == "abc"


def test_remove_is_idempotent(store) -> None:
    store.upsert("+15551234", ["Chiefs"], timedelta(minutes=15))

    assert store.remove("+15551234") is True
    assert store.remove("+15551234") is False
    assert store.get("+15551234") is None
    assert store.count() == 0


def test_remove_unknown_subscriber_is_noop(store) -> None:
    store.upsert("+15550000", ["Chiefs"], timedelta(minutes=15))

    store.remove("+15559999")

    assert store.count() == 1


def test_due_subscribers_includes_never_delivered(store) -> None:
    store.upsert("a", ["Chiefs"], timedelta(minutes=15))

    assert [s.subscriber_id for s in store.due_subscribers(T0)] == ["a"]


def test_due_subscribers_respects_cadence_boundary(store) -> None:
    store.upsert("a", ["Chiefs"], timedelta(minutes=15))
    store.record_delivery("a", "h", T0)

    assert list(store.due_subscribers(T0 + timedelta(minutes=14, seconds=59))) == []
    assert [s.subscriber_id for s in store.due_subscribers(T0 + timedelta(minutes=15))] == ["a"]


def test_due_subscribers_is_restartable(store) -> None:
    store.upsert("a", ["Chiefs"], timedelta(minutes=5))
    store.upsert("b", ["Giants"], timedelta(minutes=5))

    first = [s.subscriber_id for s in store.due_subscribers(T0)]
    second = [s.subscriber_id for s in store.due_subscribers(T0)]

    assert first == second == ["a", "b"]


def test_due_subscribers_excludes_rows_without_entities(store) -> None:
    store.upsert("a", ["Chiefs"], timedelta(minutes=5))
    store.upsert("b", ["Giants"], timedelta(minutes=5))
    with store._get_connection() as conn:
        conn.execute("DELETE FROM watched_entities WHERE subscriber_id = 'b'")
        conn.commit()

    assert [s.subscriber_id for s in store.due_subscribers(T0)] == ["a"]


def test_record_delivery_updates_bookkeeping(store) -> None:
    store.upsert("a", ["Chiefs"], timedelta(minutes=5))

    store.record_delivery("a", "deadbeef", T0)

    subscriber = store.get("a")
    assert subscriber.last_delivered_at == T0
    assert subscriber.last_payload_hash == "deadbeef"


def test_record_delivery_for_removed_subscriber_is_discarded(store) -> None:
    store.upsert("a", ["Chiefs"], timedelta(minutes=5))
    store.remove("a")

    store.record_delivery("a", "deadbeef", T0)

    assert store.get("a") is None
    assert store.count() == 0


def test_subscriptions_survive_reopening(tmp_path) -> None:
    path = str(tmp_path / "bot.db")
    first = SubscriptionStore(db_path=path)
    first.upsert("a", ["Chiefs"], timedelta(minutes=10))
    first.record_delivery("a", "h", T0)

    reopened = SubscriptionStore(db_path=path)

    subscriber = reopened.get("a")
    assert subscriber.watched_entities == frozenset({"chiefs"})
    assert subscriber.last_delivered_at == T0


def test_favorite_round_trip(store) -> None:
    assert store.get_favorite("a") is None

    store.set_favorite("a", "Kansas City  Chiefs")
    store.set_favorite("a", "Giants")

    assert store.get_favorite("a") == "giants"
