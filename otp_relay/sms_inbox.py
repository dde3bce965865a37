"""
In-process SMS capture source.

A forwarder device pushes each SMS to the HTTP ingest endpoint, which appends
it here. The poller then reads the buffer incrementally exactly as it reads a
mailbox: the cursor is the last sequence number seen, and a cursor that points
before the oldest retained message is reported as invalid.
"""

import threading
from collections import deque
from datetime import datetime
from typing import Deque, List, Optional, Tuple
from loguru import logger

from app.core.timezone_utils import ensure_utc, now_utc

from .errors import CursorInvalidError
from .models import CaptureSource, SourceMessage


class SmsInbox:
    """Bounded, append-only buffer of received SMS messages."""

    name = CaptureSource.SMS

    def __init__(self, max_messages: int = 500):
        self._messages: Deque[Tuple[int, SourceMessage]] = deque(maxlen=max_messages)
        self._last_seq = 0
        self._lock = threading.Lock()

    def push(
        self,
        sender: str,
        body: str,
        received_at: Optional[datetime] = None,
        message_id: Optional[str] = None,
    ) -> SourceMessage:
        """Append an incoming SMS and return the stored message."""
        with self._lock:
            self._last_seq += 1
            seq = self._last_seq
            message = SourceMessage(
                source=CaptureSource.SMS,
                message_id=message_id or f"sms_{seq}",
                sender=sender,
                body=body,
                received_at=ensure_utc(received_at) if received_at else now_utc(),
            )
            self._messages.append((seq, message))

        logger.debug(f"Buffered SMS {message.message_id} as #{seq}")
        return message

    def baseline(self) -> str:
        with self._lock:
            return str(self._last_seq)

    def list_new_message_ids(self, cursor: str) -> Tuple[List[str], str]:
        """
        List buffered messages newer than ``cursor``.

        Raises:
            CursorInvalidError: If the cursor is unparsable, ahead of the
                buffer, or older than the oldest retained message
        """
        try:
            last_seen = int(cursor)
        except (TypeError, ValueError) as e:
            raise CursorInvalidError(f"Unparsable SMS cursor: {cursor!r}") from e

        with self._lock:
            if last_seen > self._last_seq:
                raise CursorInvalidError(
                    f"SMS cursor {last_seen} is ahead of the buffer ({self._last_seq})"
                )
            oldest = self._messages[0][0] if self._messages else self._last_seq + 1
            if last_seen < oldest - 1:
                raise CursorInvalidError(
                    f"SMS messages {last_seen + 1}..{oldest - 1} were dropped from the buffer"
                )
            new_seqs = [seq for seq, _ in self._messages if seq > last_seen]

        new_cursor = str(new_seqs[-1]) if new_seqs else str(last_seen)
        return [str(seq) for seq in new_seqs], new_cursor

    def fetch_message(self, message_id: str) -> Optional[SourceMessage]:
        """Look up a buffered message by the id returned from the listing."""
        seq = int(message_id)
        with self._lock:
            for stored_seq, message in self._messages:
                if stored_seq == seq:
                    return message

        logger.warning(f"SMS #{seq} was dropped before it could be read")
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return None
