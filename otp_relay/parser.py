"""
Email parser for turning raw RFC822 messages into SourceMessage objects.
"""

from datetime import datetime
from typing import Optional
from bs4 import BeautifulSoup
from loguru import logger
import mailparser
import pytz

from app.core.timezone_utils import ensure_utc, now_utc

from .models import CaptureSource, SourceMessage


def html_to_text(html: str) -> str:
    """Visible text of an HTML body, with scripts and styles dropped."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return " ".join(soup.get_text(" ", strip=True).split())


class EmailParser:
    """Parser for converting raw email data to SourceMessage objects."""

    @staticmethod
    def extract_sender(from_field) -> str:
        """
        Get the bare address of the first From entry.

        mailparser reports ``from_`` as a list of ``(display name, address)``
        tuples, but plain strings show up for malformed headers.
        """
        if not from_field:
            return ""

        first_sender = from_field[0]
        if isinstance(first_sender, tuple) and len(first_sender) >= 2:
            return first_sender[1] or first_sender[0]
        if isinstance(first_sender, str):
            return first_sender
        return str(first_sender)

    @staticmethod
    def parse_raw_message(
        uid: str, raw_message: bytes, internal_date: Optional[datetime] = None
    ) -> Optional[SourceMessage]:
        """
        Parse a raw email message into a SourceMessage.

        Args:
            uid: Unique identifier from the email server
            raw_message: Raw email message bytes
            internal_date: Server receipt time, used when the Date header is missing

        Returns:
            SourceMessage or None if parsing fails
        """
        try:
            mail = mailparser.parse_from_bytes(raw_message)

            subject = str(mail.subject) if mail.subject else ""
            sender = EmailParser.extract_sender(mail.from_)

            if mail.text_plain:
                body = "\n".join(mail.text_plain)
            elif mail.text_html:
                body = html_to_text("\n".join(mail.text_html))
            else:
                body = ""

            # mailparser normalises the Date header to naive UTC
            if mail.date:
                received_at = ensure_utc(mail.date)
            elif internal_date:
                # imapclient reports INTERNALDATE as naive local time
                received_at = internal_date.astimezone(pytz.UTC)
            else:
                received_at = now_utc()

            message = SourceMessage(
                source=CaptureSource.EMAIL,
                message_id=uid,
                sender=sender,
                subject=subject,
                body=body.strip(),
                received_at=received_at,
            )

            logger.debug(f"Successfully parsed email {uid} from {sender}")
            return message

        except Exception as e:
            logger.error(f"Failed to parse email message {uid}: {e}")
            return None
