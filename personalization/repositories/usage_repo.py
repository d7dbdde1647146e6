import json
import logging
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from personalization.core.clock import Clock, utc_now
from personalization.core.storage import USAGE_HISTORY_SCOPE, KeyValueStorage, StorageError
from personalization.models.schemas.usage import ToolCountModel, UsageEventModel

logger = logging.getLogger(__name__)

MAX_HISTORY = 50

_history_adapter = TypeAdapter(List[UsageEventModel])


class UsageHistoryRepository:
    """Capped, newest-first log of tool visits per visitor."""

    def __init__(
        self,
        storage: KeyValueStorage,
        capacity: int = MAX_HISTORY,
        clock: Optional[Clock] = None,
    ):
        self.storage = storage
        self.capacity = capacity
        self.clock = clock or utc_now

    def _load(self, visitor_id: str) -> List[UsageEventModel]:
        return self._decode(visitor_id, self.storage.get(USAGE_HISTORY_SCOPE, visitor_id))

    def _decode(self, visitor_id: str, raw: Optional[str]) -> List[UsageEventModel]:
        if raw is None:
            return []
        try:
            return _history_adapter.validate_json(raw)
        except ValidationError as e:
            logger.error("Discarding unreadable usage history for visitor %s: %s", visitor_id, e)
            return []

    def history(self, visitor_id: str) -> List[UsageEventModel]:
        """All recorded visits, newest first."""
        try:
            return self._load(visitor_id)
        except StorageError as e:
            logger.warning("Usage history unavailable for visitor %s: %s", visitor_id, e)
            return []

    def record(self, visitor_id: str, tool_id: str) -> UsageEventModel:
        """Prepends a visit stamped with the current time and evicts the oldest past capacity.

        The event is returned even when it could not be persisted.
        """
        event = UsageEventModel(
            tool_id=tool_id,
            timestamp=int(self.clock().timestamp() * 1000),
        )

        def prepend(raw: Optional[str]) -> str:
            events = self._decode(visitor_id, raw)
            events.insert(0, event)
            del events[self.capacity:]
            return json.dumps([e.model_dump() for e in events])

        try:
            self.storage.update(USAGE_HISTORY_SCOPE, visitor_id, prepend)
        except StorageError as e:
            logger.warning("Could not record usage of %s for visitor %s: %s", tool_id, visitor_id, e)
        return event

    def recent_distinct(self, visitor_id: str, limit: int = 3) -> List[str]:
        """Most recently used tools, each listed once at its latest visit."""
        seen = set()
        recent = []
        for event in self.history(visitor_id):
            if len(recent) >= limit:
                break
            if event.tool_id not in seen:
                seen.add(event.tool_id)
                recent.append(event.tool_id)
        return recent

    def frequent(self, visitor_id: str, limit: int = 4) -> List[ToolCountModel]:
        """Tools by visit count, descending; ties keep newest-first discovery order."""
        counts = {}
        for event in self.history(visitor_id):
            counts[event.tool_id] = counts.get(event.tool_id, 0) + 1

        # reverse=True keeps equal counts in first-seen order
        ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
        return [ToolCountModel(tool_id=tool_id, count=count) for tool_id, count in ranked[:max(limit, 0)]]

    def clear(self, visitor_id: str) -> bool:
        try:
            self.storage.remove(USAGE_HISTORY_SCOPE, visitor_id)
        except StorageError as e:
            logger.warning("Could not clear usage history for visitor %s: %s", visitor_id, e)
            return False
        return True
