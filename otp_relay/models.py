"""
Pydantic models for the OTP relay data structures.
"""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


class CaptureSource(str, Enum):
    """Inbound message providers the relay can read from."""

    EMAIL = "email"
    SMS = "sms"


class PendingOTPRequest(BaseModel):
    """An outstanding watch for exactly one OTP."""

    request_id: str = Field(description="Correlates with the policy service request")
    recipient_public_key: str = Field(
        repr=False, description="Base64 SPKI public key used only for encryption"
    )
    expected_sender_hint: Optional[str] = Field(
        default=None, description="Free-text token expected in sender/subject/body"
    )
    sender_pattern: Optional[str] = Field(
        default=None, description="Glob pattern matched against the raw sender"
    )
    accepted_sources: List[CaptureSource] = Field(
        default_factory=lambda: [CaptureSource.EMAIL, CaptureSource.SMS]
    )
    created_at: datetime
    expires_at: datetime

    def model_post_init(self, __context) -> None:
        """Validate the request deadline."""
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be later than created_at")

    def accepts(self, source: CaptureSource) -> bool:
        return source in self.accepted_sources


class ExtractedCandidate(BaseModel):
    """Best-guess code pulled out of a message."""

    code: str
    confidence: float = Field(ge=0.0, le=1.0)
    pattern_id: str = Field(description="Which extraction rule fired")


class SourceMessage(BaseModel):
    """A full inbound message as seen by the poller."""

    source: CaptureSource
    message_id: str
    sender: str
    subject: str = ""
    body: str = ""
    received_at: datetime

    @property
    def searchable_content(self) -> str:
        """Text checked against an expected sender hint."""
        return f"{self.sender}\n{self.subject}\n{self.body}"


class MatchedOTP(BaseModel):
    """Result of a successful registry match."""

    request_id: str
    code: str = Field(repr=False)
    confidence: float
    source: CaptureSource
    source_message_id: str
    sender_raw: str
    subject_raw: str
    received_at: datetime
    recipient_public_key: str = Field(repr=False, exclude=True)


class EncryptedEnvelope(BaseModel):
    """Versioned encrypted wrapper around a matched code."""

    model_config = ConfigDict(populate_by_name=True)

    version: int = 1
    algorithm: str
    ciphertext: str
    produced_at: str = Field(alias="producedAt")

    def to_payload(self) -> str:
        """Serialize the envelope to the JSON string the policy API stores."""
        return self.model_dump_json(by_alias=True)


class MailCursor(BaseModel):
    """Position of a poller in its capture source's change stream."""

    source: CaptureSource
    source_history_id: str


class DeliveryResult(BaseModel):
    """Outcome of a single delivery attempt."""

    request_id: str
    success: bool
    error: Optional[str] = None


LifecycleEventType = Literal["expired", "delivered", "delivery_failed"]


class LifecycleEvent(BaseModel):
    """Notification emitted towards the external surfaces."""

    event: LifecycleEventType
    request_id: str
    detail: Optional[str] = None


class WebhookFilter(BaseModel):
    """Optional filter block of an approved webhook."""

    model_config = ConfigDict(populate_by_name=True)

    sources: Optional[List[CaptureSource]] = None
    sender_pattern: Optional[str] = Field(default=None, alias="senderPattern")


class WebhookData(BaseModel):
    """Data block shared by every lifecycle webhook."""

    model_config = ConfigDict(populate_by_name=True)

    request_id: str = Field(alias="requestId", min_length=1)
    public_key: Optional[str] = Field(default=None, alias="publicKey", repr=False)
    expected_sender: Optional[str] = Field(default=None, alias="expectedSender")
    filter: Optional[WebhookFilter] = None
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    expires_at: Optional[datetime] = Field(default=None, alias="expiresAt")


class WebhookPayload(BaseModel):
    """Lifecycle webhook body sent by the policy service."""

    event: str
    data: WebhookData


class SmsIngestRequest(BaseModel):
    """SMS pushed by a forwarder device."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    sender: str = Field(min_length=1)
    body: str
    received_at: Optional[datetime] = Field(default=None, alias="receivedAt")
