"""
OTP extraction from free-form message text.

Rules are evaluated in a fixed priority order and the first one that matches
wins; later rules are never consulted once a code has been captured. The
resulting confidence score is a heuristic and says nothing about whether a
rule matched: "no candidate" is reported as ``None``, never as a
zero-confidence candidate.
"""

import re
from typing import List, Optional, Pattern, Tuple
from loguru import logger

from .models import CaptureSource, ExtractedCandidate

KEYWORDS = r"(?:code|otp|pin|verification|passcode|password|确认码|验证码)"
SHORT_KEYWORDS = r"(?:code|otp|pin|verification)"

# (pattern_id, compiled rule), highest priority first
OTP_RULES: List[Tuple[str, Pattern]] = [
    # "Your code is 123456", "verification code: 123456", "Your OTP is 1234"
    (
        "keyword_numeric",
        re.compile(KEYWORDS + r"\s*(?:is|:)\s*([0-9]{4,8})", re.IGNORECASE),
    ),
    # "Your code is: ABC123"
    (
        "keyword_alphanumeric",
        re.compile(SHORT_KEYWORDS + r"\s*(?:is|:)\s*([A-Z0-9]{4,8})", re.IGNORECASE),
    ),
    # "verification code: 123-456"
    (
        "keyword_dashed",
        re.compile(SHORT_KEYWORDS + r"\s*(?:is|:)\s*([0-9]{3}-[0-9]{3})", re.IGNORECASE),
    ),
    # "Enter 123456 to verify"
    ("enter_to_verify", re.compile(r"enter\s+([0-9]{4,8})\s+to\s+verify", re.IGNORECASE)),
    # "123456 is your verification code"
    (
        "code_is_yours",
        re.compile(
            r"([0-9]{4,8})\s+is\s+your\s+(?:verification\s+)?(?:code|otp)",
            re.IGNORECASE,
        ),
    ),
    # "验证码：123456"
    ("zh_colon", re.compile(r"验证码[：:]\s*([0-9]{4,8})")),
    # "您的验证码是 123456"
    ("zh_sentence", re.compile(r"您的验证码是\s*([0-9]{4,8})")),
    # A lone 6-digit run with no other digits around it
    ("standalone_six_digits", re.compile(r"\A[^\d]*([0-9]{6})[^\d]*\Z")),
]

CONFIDENCE_KEYWORDS = [
    "verification",
    "verify",
    "otp",
    "one-time",
    "passcode",
    "验证码",
    "确认码",
]

DO_NOT_SHARE_PHRASES = ["do not share", "not share this", "请勿分享", "请勿泄露"]

BASE_CONFIDENCE = 0.5
KEYWORD_BONUS = 0.1
SIX_DIGIT_BONUS = 0.1
WARNING_BONUS = 0.15
SHORT_MESSAGE_BONUS = 0.1

# Automated messages are short; SMS is held to a tighter bound than email
SHORT_MESSAGE_THRESHOLDS = {
    CaptureSource.EMAIL: 500,
    CaptureSource.SMS: 200,
}

_STRIP_SEPARATORS = re.compile(r"[-\s]")
_SIX_DIGITS = re.compile(r"[0-9]{6}")


def extract(
    subject: str, body: str, source: CaptureSource = CaptureSource.EMAIL
) -> Optional[ExtractedCandidate]:
    """
    Extract the most likely OTP from a message.

    Args:
        subject: Subject line (empty for SMS)
        body: Message body as plain text
        source: Capture source, used to pick the short-message threshold

    Returns:
        ExtractedCandidate or None when no rule matched
    """
    content = f"{subject or ''}\n{body or ''}"

    for pattern_id, rule in OTP_RULES:
        match = rule.search(content)
        if match and match.group(1):
            code = _STRIP_SEPARATORS.sub("", match.group(1))
            confidence = calculate_confidence(content, code, source)
            logger.debug(
                f"Extraction rule '{pattern_id}' matched a {len(code)}-character code"
            )
            return ExtractedCandidate(
                code=code, confidence=confidence, pattern_id=pattern_id
            )

    return None


def calculate_confidence(
    content: str, code: str, source: CaptureSource = CaptureSource.EMAIL
) -> float:
    """Score how likely ``code`` is a genuine OTP given its surrounding text."""
    confidence = BASE_CONFIDENCE
    lower_content = content.lower()

    for keyword in CONFIDENCE_KEYWORDS:
        if keyword in lower_content:
            confidence += KEYWORD_BONUS

    if _SIX_DIGITS.fullmatch(code):
        confidence += SIX_DIGIT_BONUS

    if any(phrase in lower_content for phrase in DO_NOT_SHARE_PHRASES):
        confidence += WARNING_BONUS

    if len(content) < SHORT_MESSAGE_THRESHOLDS[source]:
        confidence += SHORT_MESSAGE_BONUS

    return min(round(confidence, 4), 1.0)
