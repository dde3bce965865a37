"""
Seals matched codes to the requesting agent's RSA public key.

The relay only ever holds public keys, so once a code is sealed nothing on
this side can recover it.
"""

import base64
import binascii
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from loguru import logger

from app.core.timezone_utils import now_utc_isoformat

from .errors import EncryptionError
from .models import EncryptedEnvelope

ENVELOPE_VERSION = 1
ENVELOPE_ALGORITHM = "RSA-OAEP-SHA256"

OAEP_PADDING = padding.OAEP(
    mgf=padding.MGF1(algorithm=hashes.SHA256()),
    algorithm=hashes.SHA256(),
    label=None,
)


def load_public_key(public_key_b64: str) -> rsa.RSAPublicKey:
    """
    Import a base64-encoded SPKI (DER) RSA public key.

    Raises:
        EncryptionError: If the key is not valid base64, not SPKI, or not RSA
    """
    try:
        key_data = base64.b64decode(public_key_b64, validate=True)
        public_key = serialization.load_der_public_key(key_data)
    except (binascii.Error, ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise EncryptionError(f"Malformed recipient public key: {e}") from e

    if not isinstance(public_key, rsa.RSAPublicKey):
        raise EncryptionError(
            f"Unsupported recipient key type: {type(public_key).__name__}"
        )
    return public_key


def seal(code: str, recipient_public_key_b64: str) -> EncryptedEnvelope:
    """
    Encrypt ``code`` for the holder of the matching private key.

    A fresh ciphertext is produced on every call; envelopes are never cached.

    Args:
        code: Plaintext OTP
        recipient_public_key_b64: Base64 SPKI public key of the agent

    Returns:
        EncryptedEnvelope ready to be submitted to the policy API

    Raises:
        EncryptionError: If the key is malformed or encryption fails
    """
    public_key = load_public_key(recipient_public_key_b64)

    try:
        ciphertext = public_key.encrypt(code.encode("utf-8"), OAEP_PADDING)
    except ValueError as e:
        raise EncryptionError(f"Encryption rejected input: {e}") from e

    logger.debug(f"Sealed code with {public_key.key_size}-bit RSA key")

    return EncryptedEnvelope(
        version=ENVELOPE_VERSION,
        algorithm=ENVELOPE_ALGORITHM,
        ciphertext=base64.b64encode(ciphertext).decode("ascii"),
        produced_at=now_utc_isoformat(),
    )
