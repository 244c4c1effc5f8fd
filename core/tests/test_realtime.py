from __future__ import annotations

import asyncio

import pytest

from archive_pmn.db.users import UserRow
from archive_pmn.realtime import ChangeFeed, record_from_row


def _drain(queue: asyncio.Queue) -> list:
    out = []
    while not queue.empty():
        out.append(queue.get_nowait())
    return out


def test_record_from_row_hides_password_hash() -> None:
    row = UserRow(
        user_id="u1",
        email="alice@pmn.sn",
        full_name="Alice",
        fonction=None,
        role="user",
        password_hash="scrypt$...",
        avatar_url=None,
        is_verified=True,
        is_active=True,
        created_at="2024-01-01T00:00:00.000Z",
        updated_at="2024-01-01T00:00:00.000Z",
    )
    rec = record_from_row(row)
    assert "password_hash" not in rec
    assert rec["email"] == "alice@pmn.sn"
    assert record_from_row({"a": 1}) == {"a": 1}


def test_publish_rejects_unknown_table_and_event() -> None:
    feed = ChangeFeed()
    with pytest.raises(ValueError):
        feed.publish("sessions", "INSERT", {})
    with pytest.raises(ValueError):
        feed.publish("messages", "UPSERT", {})
    # No subscribers: nothing to deliver.
    feed.publish("messages", "INSERT", {"sender_id": "a"})


def test_messages_and_shares_are_filtered_per_user() -> None:
    async def scenario() -> None:
        feed = ChangeFeed()
        alice = feed.subscribe(user_id="alice", channel_ids=["c1"])
        bob = feed.subscribe(user_id="bob")
        assert feed.subscriber_count == 2

        feed.publish("messages", "INSERT", {"sender_id": "alice", "receiver_id": "bob"})
        feed.publish("messages", "INSERT", {"sender_id": "carol", "channel_id": "c1"})
        feed.publish("shares", "INSERT", {"shared_by": "carol", "shared_with": "bob"})
        feed.publish("documents", "DELETE", {"document_id": "d1"})

        got_alice = [(e.table, e.record) for e in _drain(alice.queue)]
        got_bob = [(e.table, e.record) for e in _drain(bob.queue)]

        assert got_alice == [
            ("messages", {"sender_id": "alice", "receiver_id": "bob"}),
            ("messages", {"sender_id": "carol", "channel_id": "c1"}),
            ("documents", {"document_id": "d1"}),
        ]
        assert got_bob == [
            ("messages", {"sender_id": "alice", "receiver_id": "bob"}),
            ("shares", {"shared_by": "carol", "shared_with": "bob"}),
            ("documents", {"document_id": "d1"}),
        ]

        feed.unsubscribe(alice)
        feed.unsubscribe(bob)
        assert feed.subscriber_count == 0

    asyncio.run(scenario())


def test_joining_a_channel_extends_the_subscription() -> None:
    async def scenario() -> None:
        feed = ChangeFeed()
        sub = feed.subscribe(user_id="bob")

        feed.publish("messages", "INSERT", {"sender_id": "carol", "channel_id": "c9"})
        assert _drain(sub.queue) == []

        feed.publish("channel_members", "INSERT", {"channel_id": "c9", "user_id": "bob"})
        feed.publish("messages", "INSERT", {"sender_id": "carol", "channel_id": "c9"})

        events = _drain(sub.queue)
        assert [e.table for e in events] == ["channel_members", "messages"]
        assert "c9" in sub.channel_ids

    asyncio.run(scenario())


def test_full_queue_drops_events() -> None:
    async def scenario() -> None:
        feed = ChangeFeed(max_queue_size=2)
        sub = feed.subscribe(user_id="u")
        for i in range(5):
            feed.publish("folders", "INSERT", {"folder_id": str(i)})

        assert sub.queue.qsize() == 2
        assert sub.dropped == 3
        first = sub.queue.get_nowait()
        assert first.to_dict() == {
            "table": "folders",
            "event": "INSERT",
            "record": {"folder_id": "0"},
        }

    asyncio.run(scenario())
