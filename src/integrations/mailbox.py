"""
IMAP mailbox reader.

Connects to an IMAP server over TLS, searches a folder for messages received
since a date and streams them back as RawMessage objects in mailbox order.
"""

import imaplib
import logging
import os
from datetime import datetime
from typing import Iterator, List, Optional, Sequence

from domain.errors import ConfigurationError, MailboxConnectionError
from domain.models import RawMessage
from services import email as email_service

logger = logging.getLogger(__name__)

DEFAULT_IMAP_HOST = 'imap.gmail.com'
DEFAULT_IMAP_PORT = 993
DEFAULT_FOLDER = 'INBOX'

# IMAP date format is locale independent; strftime('%b') is not
_MONTHS = ('Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
           'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec')


def imap_date(value: datetime) -> str:
    """
    Format a date for an IMAP SINCE criterion.

    Example:
        >>> imap_date(datetime(2026, 6, 16))
        '16-Jun-2026'
    """
    return f"{value.day:02d}-{_MONTHS[value.month - 1]}-{value.year}"


class ImapMailboxReader:
    """
    Reads messages from one IMAP folder.

    Use as a context manager, or call connect() and close() explicitly:

        with ImapMailboxReader.from_env() as mailbox:
            ids = mailbox.search(since)
            for raw in mailbox.fetch(ids):
                ...
    """

    def __init__(
        self,
        username: str,
        password: str,
        host: str = DEFAULT_IMAP_HOST,
        port: int = DEFAULT_IMAP_PORT,
        folder: str = DEFAULT_FOLDER,
    ):
        self.username = username
        self.password = password
        self.host = host
        self.port = port
        self.folder = folder
        self._conn: Optional[imaplib.IMAP4_SSL] = None

    @classmethod
    def from_env(cls) -> "ImapMailboxReader":
        """
        Build a reader from GMAIL_USER, GMAIL_APP_PASSWORD, IMAP_HOST, IMAP_PORT, IMAP_FOLDER.

        Raises:
            ConfigurationError: If credentials are missing or IMAP_PORT is not a number
        """
        username = os.environ.get('GMAIL_USER', '').strip()
        password = os.environ.get('GMAIL_APP_PASSWORD', '').strip()
        if not username or not password:
            raise ConfigurationError("GMAIL_USER and GMAIL_APP_PASSWORD environment variables are required")
        try:
            port = int(os.environ.get('IMAP_PORT', str(DEFAULT_IMAP_PORT)))
        except ValueError:
            raise ConfigurationError(f"IMAP_PORT must be a number, got: {os.environ.get('IMAP_PORT')!r}")
        return cls(
            username=username,
            password=password,
            host=os.environ.get('IMAP_HOST', DEFAULT_IMAP_HOST),
            port=port,
            folder=os.environ.get('IMAP_FOLDER', DEFAULT_FOLDER),
        )

    def connect(self) -> None:
        """
        Open the TLS connection, log in and select the folder read-only.

        Raises:
            MailboxConnectionError: If any of those steps fails
        """
        logger.info(f"Connecting to {self.host}:{self.port} as {self.username}")
        try:
            self._conn = imaplib.IMAP4_SSL(self.host, self.port)
            self._conn.login(self.username, self.password)
            status, data = self._conn.select(self.folder, readonly=True)
        except (imaplib.IMAP4.error, OSError) as e:
            self.close()
            raise MailboxConnectionError(f"Cannot connect to mailbox {self.host}: {e}")

        if status != 'OK':
            self.close()
            raise MailboxConnectionError(f"Cannot select folder {self.folder}: {data}")
        count = (_first(data) or b'0').decode('ascii', errors='replace')
        logger.info(f"Selected folder {self.folder} ({count} messages)")

    def close(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.logout()
        except (imaplib.IMAP4.error, OSError) as e:
            logger.warning(f"IMAP logout failed: {e}")
        finally:
            self._conn = None

    def __enter__(self) -> "ImapMailboxReader":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _require_connection(self) -> imaplib.IMAP4_SSL:
        if self._conn is None:
            raise MailboxConnectionError("Mailbox is not connected; call connect() first")
        return self._conn

    def search(self, since: datetime) -> List[str]:
        """
        Find messages received on or after ``since``.

        Returns:
            Message sequence numbers as strings, in mailbox order

        Raises:
            MailboxConnectionError: If the search command fails
        """
        conn = self._require_connection()
        criterion = f'(SINCE {imap_date(since)})'
        try:
            status, data = conn.search(None, criterion)
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailboxConnectionError(f"Mailbox search {criterion} failed: {e}")
        if status != 'OK':
            raise MailboxConnectionError(f"Mailbox search {criterion} failed: {data}")

        ids = [token.decode('ascii') for token in (_first(data) or b'').split()]
        logger.info(f"Search {criterion} returned {len(ids)} message(s)")
        return ids

    def fetch(self, message_ids: Sequence[str]) -> Iterator[RawMessage]:
        """
        Fetch and parse messages one at a time, in the given order.

        Messages the server returns no payload for are logged and skipped.

        Raises:
            imaplib.IMAP4.error, OSError: If the connection breaks mid-stream
        """
        conn = self._require_connection()
        for message_id in message_ids:
            status, data = conn.fetch(message_id, '(RFC822)')
            payload = _rfc822_payload(data) if status == 'OK' else None
            if payload is None:
                logger.warning(f"Fetch of message {message_id} returned no payload ({status})")
                continue
            yield email_service.parse_raw_message(message_id, payload)


def _first(data) -> Optional[bytes]:
    return data[0] if data else None


def _rfc822_payload(data) -> Optional[bytes]:
    # imaplib returns [(b'1 (RFC822 {1234}', b'<message>'), b')']
    for item in data or []:
        if isinstance(item, tuple) and len(item) >= 2 and isinstance(item[1], bytes):
            return item[1]
    return None
