"""
Ingress adapter for lifecycle webhooks sent by the policy service.

``approved`` starts a watch; ``cancelled``, ``expired`` and ``consumed`` all
stop one. Event names are accepted bare or with the ``otp_request.`` prefix
the policy service uses on the wire.
"""

import hmac
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional
import pydantic
from loguru import logger

from app.core.timezone_utils import ensure_utc, now_utc

from .errors import AuthError, ValidationError
from .models import CaptureSource, PendingOTPRequest, WebhookData, WebhookPayload
from .registry import PendingRequestRegistry

EVENT_PREFIX = "otp_request."
APPROVED_EVENT = "approved"
REMOVAL_EVENTS = {"cancelled", "expired", "consumed"}


class LifecycleWebhookHandler:
    """Turns verified webhook calls into registry inserts and removals."""

    def __init__(
        self,
        registry: PendingRequestRegistry,
        webhook_secret: str,
        default_sources: Iterable[CaptureSource] = (CaptureSource.EMAIL, CaptureSource.SMS),
        default_ttl_seconds: int = 300,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.registry = registry
        self.webhook_secret = webhook_secret
        self.default_sources: List[CaptureSource] = list(default_sources)
        self.default_ttl = timedelta(seconds=default_ttl_seconds)
        self.clock = clock

    def verify_signature(self, signature: Optional[str]) -> None:
        """
        Compare the shared secret carried by the call.

        Raises:
            AuthError: If no secret is configured or the header does not match
        """
        if not self.webhook_secret:
            logger.error("Webhook secret is not configured, rejecting webhook")
            raise AuthError("Webhook secret not configured")

        if not signature or not hmac.compare_digest(
            signature.encode("utf-8"), self.webhook_secret.encode("utf-8")
        ):
            logger.warning("Invalid webhook signature")
            raise AuthError("Invalid webhook signature")

    def handle(self, signature: Optional[str], body: Dict[str, Any]) -> str:
        """
        Verify and apply one webhook call.

        Args:
            signature: Value of the X-Webhook-Signature header
            body: Decoded JSON body

        Returns:
            The normalised event name that was applied

        Raises:
            AuthError: Bad or missing secret; the registry is untouched
            ValidationError: Malformed payload or unknown event
        """
        self.verify_signature(signature)

        try:
            payload = WebhookPayload.model_validate(body)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Malformed webhook payload: {e}") from e

        event = payload.event.removeprefix(EVENT_PREFIX)
        request_id = payload.data.request_id
        logger.info(f"Received webhook: {event} for request {request_id}")

        if event == APPROVED_EVENT:
            self.registry.add(self._build_request(payload.data))
        elif event in REMOVAL_EVENTS:
            self.registry.remove(request_id)
        else:
            raise ValidationError(f"Unknown webhook event: {payload.event}")

        return event

    def _build_request(self, data: WebhookData) -> PendingOTPRequest:
        if not data.public_key:
            raise ValidationError(f"Request {data.request_id} is missing a public key")

        now = self.clock()
        created_at = ensure_utc(data.created_at) if data.created_at else now
        expires_at = ensure_utc(data.expires_at) if data.expires_at else now + self.default_ttl

        sources = self.default_sources
        sender_pattern = None
        if data.filter:
            if data.filter.sources is not None:
                sources = data.filter.sources
            sender_pattern = data.filter.sender_pattern
        if not sources:
            raise ValidationError(f"Request {data.request_id} accepts no capture sources")

        try:
            return PendingOTPRequest(
                request_id=data.request_id,
                recipient_public_key=data.public_key,
                expected_sender_hint=data.expected_sender or None,
                sender_pattern=sender_pattern or None,
                accepted_sources=sources,
                created_at=created_at,
                expires_at=expires_at,
            )
        except ValueError as e:
            raise ValidationError(f"Invalid request {data.request_id}: {e}") from e
