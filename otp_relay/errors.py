"""
Exception hierarchy for the OTP relay.
"""

from typing import Optional


class RelayError(Exception):
    """Base class for every error raised by the relay."""


class AuthError(RelayError):
    """Webhook or ingest call carried a bad shared secret."""


class ValidationError(RelayError):
    """Incoming payload is structurally invalid."""


class CursorInvalidError(RelayError):
    """Capture source no longer recognises the poller's cursor."""


class TransientFetchError(RelayError):
    """Network or server failure talking to a capture source."""


class EncryptionError(RelayError):
    """Public key is malformed or the cipher rejected the input."""


class DeliveryRejectedError(RelayError):
    """Policy API refused the submitted envelope."""

    def __init__(self, status_code: Optional[int], message: str):
        self.status_code = status_code
        super().__init__(message)
