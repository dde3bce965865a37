"""
Delivery of matched OTPs to the policy API.

By the time a match reaches the dispatcher its registry entry is gone. A
failure here is terminal for that request: it is reported, never re-queued.
"""

from typing import Any, Dict, Optional
from loguru import logger

from .api_client import PolicyApiClient
from .encryption import seal
from .errors import DeliveryRejectedError, EncryptionError, TransientFetchError
from .events import EventSink, LoggingEventSink
from .models import CaptureSource, DeliveryResult, LifecycleEvent, MatchedOTP


def build_metadata(match: MatchedOTP) -> Dict[str, Any]:
    """Non-secret details about the source message sent alongside the envelope."""
    id_key = "smsId" if match.source == CaptureSource.SMS else "emailId"
    metadata: Dict[str, Any] = {
        id_key: match.source_message_id,
        "from": match.sender_raw,
        "receivedAt": match.received_at.isoformat(),
        "confidence": match.confidence,
    }
    if match.subject_raw:
        metadata["subject"] = match.subject_raw
    return metadata


class DeliveryDispatcher:
    """Seals a matched code and submits it to the policy API."""

    def __init__(
        self, api_client: PolicyApiClient, event_sink: Optional[EventSink] = None
    ):
        self.api_client = api_client
        self.event_sink = event_sink or LoggingEventSink()

    async def deliver(self, match: MatchedOTP, public_key: str) -> DeliveryResult:
        """
        Encrypt and submit one match.

        Args:
            match: Consumed registry match
            public_key: Base64 SPKI key of the requesting agent

        Returns:
            DeliveryResult describing the outcome; errors are never raised
        """
        logger.info(f"Processing matched OTP for request {match.request_id}")

        try:
            envelope = seal(match.code, public_key)
            await self.api_client.submit_otp(
                match.request_id,
                envelope.to_payload(),
                match.source.value,
                build_metadata(match),
            )
        except EncryptionError as e:
            return await self._fail(match, f"encryption failed: {e}")
        except DeliveryRejectedError as e:
            return await self._fail(match, f"rejected ({e.status_code}): {e}")
        except TransientFetchError as e:
            return await self._fail(match, f"policy API unreachable: {e}")

        logger.info(f"OTP submitted for request {match.request_id}")
        await self._emit(LifecycleEvent(event="delivered", request_id=match.request_id))
        return DeliveryResult(request_id=match.request_id, success=True)

    async def _fail(self, match: MatchedOTP, reason: str) -> DeliveryResult:
        logger.error(f"Delivery failed for request {match.request_id}: {reason}")
        await self._emit(
            LifecycleEvent(
                event="delivery_failed", request_id=match.request_id, detail=reason
            )
        )
        return DeliveryResult(request_id=match.request_id, success=False, error=reason)

    async def _emit(self, event: LifecycleEvent) -> None:
        try:
            await self.event_sink.emit(event)
        except Exception as e:
            logger.error(f"Failed to emit {event.event} for {event.request_id}: {e}")
