"""
Incremental poller over a single capture source.

Each tick reads the window of messages added since the cursor, extracts a
candidate code from each, and hands matches to the dispatcher. The cursor
only moves once the whole window has been processed, so a failed tick is
replayed in full by the next one; registry consumption is idempotent by
removal, so replaying never delivers a request twice.
"""

import asyncio
from typing import List, Optional, Protocol, Tuple
from loguru import logger

from .dispatcher import DeliveryDispatcher
from .errors import CursorInvalidError
from .extractor import extract
from .models import CaptureSource, DeliveryResult, MailCursor, SourceMessage
from .registry import PendingRequestRegistry


class CaptureSourceClient(Protocol):
    """What the poller needs from a capture source (blocking calls)."""

    name: CaptureSource

    def __enter__(self): ...

    def __exit__(self, exc_type, exc_val, exc_tb): ...

    def baseline(self) -> str: ...

    def list_new_message_ids(self, cursor: str) -> Tuple[List[str], str]: ...

    def fetch_message(self, message_id: str) -> Optional[SourceMessage]: ...


class IncrementalSourcePoller:
    """Owns the cursor into one capture source."""

    def __init__(
        self,
        source: CaptureSourceClient,
        registry: PendingRequestRegistry,
        dispatcher: DeliveryDispatcher,
    ):
        self.source = source
        self.registry = registry
        self.dispatcher = dispatcher
        self.cursor: Optional[MailCursor] = None

    @property
    def name(self) -> str:
        return self.source.name.value

    def _set_cursor(self, position: str) -> None:
        self.cursor = MailCursor(source=self.source.name, source_history_id=position)

    def _read_baseline(self) -> str:
        with self.source:
            return self.source.baseline()

    def _read_window(self, position: str) -> Tuple[List[SourceMessage], str, bool]:
        """
        Blocking half of a tick, run in a worker thread.

        Returns:
            Tuple of (messages in source order, next cursor, re-baselined flag)
        """
        with self.source:
            try:
                message_ids, next_position = self.source.list_new_message_ids(position)
            except CursorInvalidError as e:
                logger.warning(f"{self.name} cursor {position} rejected ({e}), re-baselining")
                return [], self.source.baseline(), True

            messages = []
            for message_id in message_ids:
                message = self.source.fetch_message(message_id)
                if message is not None:
                    messages.append(message)

        return messages, next_position, False

    async def prime(self) -> None:
        """Take the source's current position as the starting cursor."""
        position = await asyncio.to_thread(self._read_baseline)
        self._set_cursor(position)
        logger.info(f"Watching {self.name} from position {position}")

    async def tick(self) -> None:
        """Run one poll; errors are logged and never escape."""
        try:
            await self._poll()
        except Exception as e:
            logger.error(f"Error checking {self.name} for new messages: {e}")

    async def _poll(self) -> None:
        if self.registry.is_empty():
            logger.debug(f"No pending requests, skipping {self.name} poll")
            return

        if self.cursor is None:
            await self.prime()
            return

        messages, next_position, rebaselined = await asyncio.to_thread(
            self._read_window, self.cursor.source_history_id
        )
        if rebaselined:
            self._set_cursor(next_position)
            logger.warning(f"{self.name} cursor re-baselined to {next_position}")
            return

        if messages:
            logger.info(f"Processing {len(messages)} new {self.name} messages")

        for message in messages:
            try:
                await self.process_message(message)
            except Exception as e:
                logger.error(f"Error processing {self.name} message {message.message_id}: {e}")

        self._set_cursor(next_position)

    async def process_message(self, message: SourceMessage) -> Optional[DeliveryResult]:
        """Extract, match and deliver a single message."""
        candidate = extract(message.subject, message.body, message.source)
        if candidate is None:
            return None

        logger.debug(
            f"Found potential OTP in {self.name} message {message.message_id} "
            f"(rule={candidate.pattern_id}, confidence={candidate.confidence})"
        )

        match = self.registry.find_and_consume_match(candidate, message)
        if match is None:
            return None

        return await self.dispatcher.deliver(match, match.recipient_public_key)
