"""In-process change feed for submissions and chat messages.

Every write made through the data layer publishes a `Change`. Live sessions
(the WebSocket endpoints in `stagingpro.api.realtime`) subscribe to the feed and
fold changes into a `SubmissionCache`, so a dashboard stays current without
re-fetching.

Changes are applied in the order they are received. There are no sequence
numbers on notifications, so out-of-order delivery is not corrected; inserts are
deduplicated against ids already in the cache because an insert notification
can arrive after an explicit fetch has already returned the same row.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

SUBMISSIONS = "submissions"
MESSAGES = "messages"


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass
class Change:
    table: str
    type: ChangeType
    # the new row for INSERT/UPDATE (wire form), the removed row for DELETE
    record: Dict[str, Any]

    @property
    def record_id(self) -> Any:
        return self.record.get("id")

    def to_json(self) -> Dict[str, Any]:
        return {"table": self.table, "eventType": self.type.value, "record": self.record}


class Subscription:
    def __init__(self, feed: "ChangeFeed", table: str, submission_id: Optional[str] = None):
        self.feed = feed
        self.table = table
        self.submission_id = submission_id
        self.queue: "asyncio.Queue[Change]" = asyncio.Queue()
        try:
            self._loop: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

    def matches(self, change: Change) -> bool:
        if change.table != self.table:
            return False
        if self.submission_id is None:
            return True
        return change.record.get("submission_id") == self.submission_id

    def deliver(self, change: Change) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if self._loop is None or running is self._loop:
            self.queue.put_nowait(change)
        else:
            self._loop.call_soon_threadsafe(self.queue.put_nowait, change)

    async def get(self) -> Change:
        return await self.queue.get()

    def drain(self) -> List[Change]:
        changes = []
        while not self.queue.empty():
            changes.append(self.queue.get_nowait())
        return changes

    def close(self) -> None:
        self.feed.unsubscribe(self)


class ChangeFeed:
    def __init__(self):
        self._subscriptions: List[Subscription] = []

    def subscribe(self, table: str, submission_id: Optional[str] = None) -> Subscription:
        sub = Subscription(self, table, submission_id)
        self._subscriptions.append(sub)
        logger.debug("Subscribed to %s (submission_id=%s)", table, submission_id)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    def publish(self, change: Change) -> None:
        for sub in list(self._subscriptions):
            if sub.matches(change):
                try:
                    sub.deliver(change)
                except Exception as e:
                    logger.warning("Dropping change for subscriber on %s: %s", sub.table, e)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)


change_feed = ChangeFeed()


@dataclass
class SubmissionCache:
    """Scoped, in-memory submission list kept current by change notifications."""

    in_scope: Callable[[Dict[str, Any]], bool] = lambda row: True
    _rows: List[Dict[str, Any]] = field(default_factory=list)

    def reset(self, rows: Iterable[Dict[str, Any]]) -> None:
        self._rows = [dict(r) for r in rows]
        self._sort()

    @property
    def rows(self) -> List[Dict[str, Any]]:
        return list(self._rows)

    def ids(self) -> List[Any]:
        return [r.get("id") for r in self._rows]

    def _index(self, record_id: Any) -> Optional[int]:
        for i, row in enumerate(self._rows):
            if row.get("id") == record_id:
                return i
        return None

    def _sort(self) -> None:
        self._rows.sort(key=lambda r: r.get("timestamp") or 0, reverse=True)

    def apply(self, change: Change) -> bool:
        """Fold one change into the cache. Returns True when the cache changed."""
        idx = self._index(change.record_id)

        if change.type == ChangeType.INSERT:
            if idx is not None or not self.in_scope(change.record):
                return False
            self._rows.append(dict(change.record))
            self._sort()
            return True

        if change.type == ChangeType.UPDATE:
            if idx is None:
                if not self.in_scope(change.record):
                    return False
                self._rows.append(dict(change.record))
                self._sort()
                return True
            merged = {**self._rows[idx], **change.record}
            if not self.in_scope(merged):
                del self._rows[idx]
                return True
            self._rows[idx] = merged
            return True

        if change.type == ChangeType.DELETE:
            if idx is None:
                return False
            del self._rows[idx]
            return True

        return False
