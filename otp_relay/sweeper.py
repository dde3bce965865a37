"""
Periodic eviction of pending requests past their deadline.
"""

from datetime import datetime
from typing import Callable, List
from loguru import logger

from app.core.timezone_utils import now_utc

from .events import EventSink
from .models import LifecycleEvent
from .registry import PendingRequestRegistry


class ExpirySweeper:
    """Evicts expired requests and reports each one as ``expired``."""

    def __init__(
        self,
        registry: PendingRequestRegistry,
        event_sink: EventSink,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.registry = registry
        self.event_sink = event_sink
        self.clock = clock

    async def tick(self) -> List[str]:
        """Run one sweep; errors are logged and never escape."""
        try:
            expired_ids = self.registry.sweep_expired(self.clock())
        except Exception as e:
            logger.error(f"Error sweeping expired requests: {e}")
            return []

        for request_id in expired_ids:
            logger.info(f"Expired pending request: {request_id}")
            try:
                await self.event_sink.emit(
                    LifecycleEvent(event="expired", request_id=request_id)
                )
            except Exception as e:
                logger.error(f"Failed to report expiry of {request_id}: {e}")

        return expired_ids
