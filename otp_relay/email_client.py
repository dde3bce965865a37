"""
IMAP capture source using imapclient.

The cursor into the mailbox is ``"<UIDVALIDITY>:<last seen UID>"``. IMAP
UIDs only grow within one UIDVALIDITY epoch, so a changed UIDVALIDITY means
the cursor is meaningless and the poller has to re-baseline.
"""

import ssl
from typing import Callable, List, Optional, Tuple
from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError
from loguru import logger

from .errors import CursorInvalidError, TransientFetchError
from .models import CaptureSource, SourceMessage
from .parser import EmailParser


class EmailClient:
    """Incremental reader over one IMAP folder."""

    name = CaptureSource.EMAIL

    def __init__(
        self,
        server: str,
        email: str,
        password: str = "",
        port: int = 993,
        folder: str = "INBOX",
        timeout: float = 30.0,
        token_provider: Optional[Callable[[], str]] = None,
    ):
        self.server = server
        self.port = port
        self.email = email
        self.password = password
        self.folder = folder
        self.timeout = timeout
        self.token_provider = token_provider
        self.client: Optional[IMAPClient] = None

        if not self.email or not (self.password or self.token_provider):
            raise ValueError("Email address and password or OAuth token must be configured")

    def connect(self) -> None:
        """Connect to the IMAP server and login."""
        try:
            ssl_context = ssl.create_default_context()
            self.client = IMAPClient(
                self.server,
                port=self.port,
                ssl=True,
                ssl_context=ssl_context,
                timeout=self.timeout,
            )
            if self.token_provider:
                self.client.oauth2_login(self.email, self.token_provider())
            else:
                self.client.login(self.email, self.password)

        except (IMAPClientError, OSError) as e:
            logger.error(f"Failed to connect to IMAP server: {e}")
            self.disconnect()
            raise TransientFetchError(f"IMAP connect failed: {e}") from e

    def disconnect(self) -> None:
        """Disconnect from the IMAP server."""
        if self.client:
            try:
                self.client.logout()
            except (IMAPClientError, OSError) as e:
                logger.warning(f"Error during IMAP disconnect: {e}")
            finally:
                self.client = None

    def _select(self) -> dict:
        if not self.client:
            raise RuntimeError("Not connected to IMAP server")

        try:
            return self.client.select_folder(self.folder, readonly=True)
        except (IMAPClientError, OSError) as e:
            raise TransientFetchError(f"Failed to select {self.folder}: {e}") from e

    def baseline(self) -> str:
        """Cursor pointing just past the newest message in the folder."""
        status = self._select()
        uid_validity = int(status[b"UIDVALIDITY"])

        uid_next = status.get(b"UIDNEXT")
        if uid_next is not None:
            last_uid = int(uid_next) - 1
        else:
            try:
                last_uid = max(self.client.search(["ALL"]), default=0)
            except (IMAPClientError, OSError) as e:
                raise TransientFetchError(f"IMAP search failed: {e}") from e

        return f"{uid_validity}:{last_uid}"

    @staticmethod
    def _parse_cursor(cursor: str) -> Tuple[int, int]:
        try:
            validity, last_uid = cursor.split(":", 1)
            return int(validity), int(last_uid)
        except (AttributeError, ValueError) as e:
            raise CursorInvalidError(f"Unparsable IMAP cursor: {cursor!r}") from e

    def list_new_message_ids(self, cursor: str) -> Tuple[List[str], str]:
        """
        List UIDs added since ``cursor``.

        Returns:
            Tuple of (new UIDs in ascending order, advanced cursor)

        Raises:
            CursorInvalidError: If the folder's UIDVALIDITY changed
            TransientFetchError: On IMAP or network failures
        """
        uid_validity, last_uid = self._parse_cursor(cursor)
        status = self._select()

        current_validity = int(status[b"UIDVALIDITY"])
        if current_validity != uid_validity:
            raise CursorInvalidError(
                f"UIDVALIDITY changed from {uid_validity} to {current_validity}"
            )

        try:
            # "N:*" always includes the highest UID, even when it is below N
            uids = self.client.search(["UID", f"{last_uid + 1}:*"])
        except (IMAPClientError, OSError) as e:
            raise TransientFetchError(f"IMAP search failed: {e}") from e

        new_uids = sorted(uid for uid in uids if uid > last_uid)
        if new_uids:
            logger.debug(f"Found {len(new_uids)} new messages in {self.folder}")

        newest = new_uids[-1] if new_uids else last_uid
        return [str(uid) for uid in new_uids], f"{uid_validity}:{newest}"

    def fetch_message(self, message_id: str) -> Optional[SourceMessage]:
        """Fetch and parse one message, or None if it disappeared or is unparsable."""
        if not self.client:
            raise RuntimeError("Not connected to IMAP server")

        uid = int(message_id)
        try:
            response = self.client.fetch([uid], ["RFC822", "INTERNALDATE"])
        except (IMAPClientError, OSError) as e:
            raise TransientFetchError(f"Failed to fetch message {uid}: {e}") from e

        data = response.get(uid)
        if not data or b"RFC822" not in data:
            logger.warning(f"Message {uid} no longer available")
            return None

        return EmailParser.parse_raw_message(
            message_id, data[b"RFC822"], data.get(b"INTERNALDATE")
        )

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()
