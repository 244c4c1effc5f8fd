from __future__ import annotations

import asyncio
import dataclasses
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Final

logger = logging.getLogger(__name__)

CHANGE_EVENTS: Final[tuple[str, ...]] = ("INSERT", "UPDATE", "DELETE")

WATCHED_TABLES: Final[frozenset[str]] = frozenset(
    {
        "messages",
        "channels",
        "channel_members",
        "user_status",
        "folders",
        "documents",
        "shares",
    }
)


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event: str
    record: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"table": self.table, "event": self.event, "record": self.record}


def record_from_row(row: Any) -> dict[str, Any]:
    """Turn a frozen db row dataclass into a JSON-friendly dict."""

    if dataclasses.is_dataclass(row) and not isinstance(row, type):
        out = dataclasses.asdict(row)
        out.pop("password_hash", None)
        return out
    return dict(row)


class Subscription:
    def __init__(
        self,
        *,
        user_id: str,
        channel_ids: Iterable[str],
        loop: asyncio.AbstractEventLoop,
        max_queue_size: int,
    ) -> None:
        self.user_id = user_id
        self.channel_ids: set[str] = set(channel_ids)
        self.loop = loop
        self.queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=max_queue_size)
        self.dropped = 0

    def wants(self, event: ChangeEvent) -> bool:
        rec = event.record
        if event.table == "messages":
            if self.user_id in (rec.get("sender_id"), rec.get("receiver_id")):
                return True
            return rec.get("channel_id") in self.channel_ids
        if event.table == "shares":
            return self.user_id in (rec.get("shared_by"), rec.get("shared_with"))
        return True

    def offer(self, event: ChangeEvent) -> None:
        if (
            event.table == "channel_members"
            and event.event == "INSERT"
            and event.record.get("user_id") == self.user_id
        ):
            self.channel_ids.add(str(event.record.get("channel_id")))

        if not self.wants(event):
            return
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1


class ChangeFeed:
    """In-process broker fanning table changes out to SSE subscribers.

    Delivery is best effort: a subscriber whose queue is full misses the event.
    """

    def __init__(self, *, max_queue_size: int = 100) -> None:
        self._max_queue_size = max_queue_size
        self._subs: set[Subscription] = set()
        self._lock = threading.Lock()

    def subscribe(self, *, user_id: str, channel_ids: Iterable[str] = ()) -> Subscription:
        """Register a subscriber; must be called from inside the event loop."""

        sub = Subscription(
            user_id=user_id,
            channel_ids=channel_ids,
            loop=asyncio.get_running_loop(),
            max_queue_size=self._max_queue_size,
        )
        with self._lock:
            self._subs.add(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            self._subs.discard(sub)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subs)

    def publish(self, table: str, event: str, record: Any) -> None:
        if table not in WATCHED_TABLES:
            raise ValueError(f"Unknown table for change feed: {table}")
        if event not in CHANGE_EVENTS:
            raise ValueError(f"Unknown change event: {event}")

        change = ChangeEvent(table=table, event=event, record=record_from_row(record))

        with self._lock:
            subs = list(self._subs)
        if not subs:
            return

        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None

        for sub in subs:
            if sub.loop is current:
                sub.offer(change)
                continue
            try:
                sub.loop.call_soon_threadsafe(sub.offer, change)
            except RuntimeError:
                # Loop already closed; the subscriber is gone.
                self.unsubscribe(sub)
                logger.debug("Dropped subscriber for closed event loop (user %s)", sub.user_id)
