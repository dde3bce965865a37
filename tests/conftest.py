"""
Shared pytest fixtures and configuration for all tests.
"""

import base64
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pytest

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from app.core.timezone_utils import now_utc
from otp_relay.errors import CursorInvalidError, TransientFetchError
from otp_relay.models import CaptureSource, PendingOTPRequest, SourceMessage

NOW = now_utc().replace(microsecond=0)


class FakeSource:
    """Capture source backed by a list, with switches for failure modes."""

    def __init__(self, name: CaptureSource = CaptureSource.EMAIL):
        self.name = name
        self.order: List[str] = []
        self.messages: Dict[str, SourceMessage] = {}
        self.invalidate_next = False
        self.list_error: Optional[Exception] = None
        self.failing_fetch_ids: set = set()
        self.list_calls = 0
        self.baseline_calls = 0
        self.sessions = 0

    def add(
        self,
        message_id: str,
        body: str,
        sender: str = "noreply@acme.com",
        subject: str = "",
        received_at: Optional[datetime] = None,
    ):
        self.order.append(message_id)
        self.messages[message_id] = SourceMessage(
            source=self.name,
            message_id=message_id,
            sender=sender,
            subject=subject,
            body=body,
            received_at=received_at or NOW,
        )

    def __enter__(self):
        self.sessions += 1
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return None

    def baseline(self) -> str:
        self.baseline_calls += 1
        return str(len(self.order))

    def list_new_message_ids(self, cursor: str):
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        if self.invalidate_next:
            self.invalidate_next = False
            raise CursorInvalidError(f"cursor {cursor} is stale")
        start = int(cursor)
        return self.order[start:], str(len(self.order))

    def fetch_message(self, message_id: str) -> Optional[SourceMessage]:
        if message_id in self.failing_fetch_ids:
            raise TransientFetchError(f"fetch of {message_id} timed out")
        return self.messages.get(message_id)


@pytest.fixture(scope="session")
def rsa_private_key():
    """Test-only agent key pair; the relay itself only sees the public half."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def public_key_b64(rsa_private_key):
    """Base64 SPKI public key, as an agent would send it."""
    der = rsa_private_key.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return base64.b64encode(der).decode("ascii")


@pytest.fixture
def make_request(public_key_b64):
    """Factory for PendingOTPRequest objects with sensible defaults."""

    def _make(request_id: str = "req_1", **overrides) -> PendingOTPRequest:
        values = {
            "request_id": request_id,
            "recipient_public_key": public_key_b64,
            "accepted_sources": [CaptureSource.EMAIL, CaptureSource.SMS],
            "created_at": NOW,
            "expires_at": NOW + timedelta(minutes=5),
        }
        values.update(overrides)
        return PendingOTPRequest(**values)

    return _make


@pytest.fixture
def make_message():
    """Factory for SourceMessage objects."""

    def _make(
        body: str = "Your code is 123456",
        sender: str = "noreply@acme.com",
        subject: str = "",
        source: CaptureSource = CaptureSource.EMAIL,
        message_id: str = "msg_1",
        received_at: Optional[datetime] = None,
    ) -> SourceMessage:
        return SourceMessage(
            source=source,
            message_id=message_id,
            sender=sender,
            subject=subject,
            body=body,
            received_at=received_at or NOW,
        )

    return _make


@pytest.fixture
def fake_source():
    """An email-flavoured FakeSource."""
    return FakeSource()


@pytest.fixture
def now():
    """Reference instant that every factory-built request is relative to."""
    return NOW
