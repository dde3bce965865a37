"""
Thread-safe registry of pending OTP requests.

The registry is the only shared mutable state in the relay. Webhook handlers,
poller ticks and sweeper ticks all go through the operations below, each of
which runs entirely under one lock, so a request id is retired by exactly one
of: a match, an explicit removal, or an expiry sweep.
"""

import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from loguru import logger

from app.core.timezone_utils import now_utc

from . import sender_matcher
from .models import ExtractedCandidate, MatchedOTP, PendingOTPRequest, SourceMessage

# Date headers are second-resolution and mail servers drift a little
RECEIVED_AT_TOLERANCE = timedelta(seconds=5)


class PendingRequestRegistry:
    """In-memory, process-lifetime store of requests waiting for a code."""

    def __init__(self):
        self._requests: Dict[str, PendingOTPRequest] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)

    def __contains__(self, request_id: object) -> bool:
        with self._lock:
            return request_id in self._requests

    def is_empty(self) -> bool:
        return len(self) == 0

    def add(self, request: PendingOTPRequest) -> None:
        """Insert a request, replacing any entry with the same id."""
        with self._lock:
            replaced = request.request_id in self._requests
            self._requests[request.request_id] = request

        if replaced:
            logger.warning(f"Replaced pending request: {request.request_id}")
        else:
            logger.info(f"Added pending request: {request.request_id}")

    def remove(self, request_id: str) -> bool:
        """
        Stop watching a request.

        Removing an id that is not present is a no-op.

        Returns:
            True if an entry was removed
        """
        with self._lock:
            removed = self._requests.pop(request_id, None) is not None

        if removed:
            logger.info(f"Removed pending request: {request_id}")
        else:
            logger.debug(f"Remove ignored, request not pending: {request_id}")
        return removed

    def find_and_consume_match(
        self,
        candidate: ExtractedCandidate,
        message: SourceMessage,
        now: Optional[datetime] = None,
    ) -> Optional[MatchedOTP]:
        """
        Match a candidate against pending requests and consume the winner.

        Entries are considered when they accept the message's source, have
        not yet expired, and were created before the message arrived (within
        RECEIVED_AT_TOLERANCE). The sender pattern and the expected sender
        hint are applied in turn when set. The first entry passing every configured
        filter is removed and returned; selection and removal happen under the
        same lock so concurrent callers can never both consume it.

        Args:
            candidate: Code extracted from the message
            message: The message the code came from
            now: Clock override, defaults to the current UTC time

        Returns:
            MatchedOTP or None when no pending request matches
        """
        now = now or now_utc()

        with self._lock:
            request = next(
                (r for r in self._requests.values() if self._passes(r, message, now)),
                None,
            )
            if request is None:
                return None
            del self._requests[request.request_id]

        logger.info(
            f"Matched {message.source.value} message {message.message_id} to request {request.request_id}"
        )
        return MatchedOTP(
            request_id=request.request_id,
            code=candidate.code,
            confidence=candidate.confidence,
            source=message.source,
            source_message_id=message.message_id,
            sender_raw=message.sender,
            subject_raw=message.subject,
            received_at=message.received_at,
            recipient_public_key=request.recipient_public_key,
        )

    @staticmethod
    def _passes(
        request: PendingOTPRequest, message: SourceMessage, now: datetime
    ) -> bool:
        if not request.accepts(message.source):
            return False
        if request.expires_at <= now:
            return False
        if message.received_at < request.created_at - RECEIVED_AT_TOLERANCE:
            return False
        if request.sender_pattern and not sender_matcher.matches_pattern(
            message.sender, request.sender_pattern
        ):
            return False
        if request.expected_sender_hint and not sender_matcher.mentions_sender(
            message.searchable_content, request.expected_sender_hint
        ):
            return False
        return True

    def sweep_expired(self, now: Optional[datetime] = None) -> List[str]:
        """
        Remove every request whose deadline has passed.

        Returns:
            Ids of the evicted requests
        """
        now = now or now_utc()

        with self._lock:
            expired_ids = [
                request_id
                for request_id, request in self._requests.items()
                if request.expires_at <= now
            ]
            for request_id in expired_ids:
                del self._requests[request_id]

        if expired_ids:
            logger.info(f"Swept {len(expired_ids)} expired pending requests")
        return expired_ids

    def pending_ids(self) -> List[str]:
        """Snapshot of the ids currently being watched."""
        with self._lock:
            return list(self._requests)
