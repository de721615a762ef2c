from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
import logging

from citetally.logging_utils import structured_log

EVENT_ADD = "add"
TYPE_ITEM = "item"

RecordsAddedHandler = Callable[[list[int]], Awaitable[object]]

logger = logging.getLogger(__name__)


class RecordAddedNotifier:
    """Routes host change notifications; only newly added items are acted on."""

    def __init__(self, handler: RecordsAddedHandler) -> None:
        self._handler = handler

    async def notify(self, event: str, item_type: str, ids: Iterable[int]) -> bool:
        if event != EVENT_ADD or item_type != TYPE_ITEM:
            structured_log(logger, "debug", "notifier.ignored", change=event, item_type=item_type)
            return False
        record_ids = [int(value) for value in ids]
        if not record_ids:
            return False
        structured_log(logger, "info", "notifier.records_added", record_ids=record_ids)
        await self._handler(record_ids)
        return True
