"""
Sender and content filters applied when matching a message to a request.
"""

import re

MIN_HINT_TOKEN_LENGTH = 3


def matches_pattern(sender: str, glob_pattern: str) -> bool:
    """
    Check a raw sender string against a glob pattern.

    ``*`` matches any run of characters and ``?`` a single character; every
    other character is literal. The whole sender must match, ignoring case.
    """
    regex = "".join(
        ".*" if char == "*" else "." if char == "?" else re.escape(char)
        for char in glob_pattern
    )
    return re.fullmatch(regex, sender or "", re.IGNORECASE | re.DOTALL) is not None


def mentions_sender(content: str, expected_hint: str) -> bool:
    """
    Loosely check whether ``content`` mentions the expected sender.

    The full hint as a substring is a hit; failing that, any whitespace
    separated token of the hint that is at least three characters long is
    enough, so "Acme Inc" is satisfied by a message that only says "Acme".
    """
    lower_content = (content or "").lower()
    lower_hint = (expected_hint or "").lower()

    if lower_hint in lower_content:
        return True

    return any(
        len(token) >= MIN_HINT_TOKEN_LENGTH and token in lower_content
        for token in lower_hint.split()
    )
