"""
Email processing utilities for the job email pipeline.

This module provides the pure functions that turn fetched mail into pipeline
input: MIME parsing, the job subject filter, body extraction and sender
extraction.
"""

import logging
import os
import re
from datetime import datetime
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import getaddresses, parsedate_to_datetime
from typing import Iterable, Optional, Tuple

from domain.models import BodyPart, Envelope, RawMessage

logger = logging.getLogger(__name__)

# Subject keywords that mark a message as job-application correspondence.
# Changing this list changes what counts as a job email downstream.
DEFAULT_JOB_KEYWORDS: Tuple[str, ...] = (
    "applied",
    "application",
    "thanks for applying",
    "thanks from",
    "follow-up",
    "update",
    "recruiting",
    "thank you for applying",
)

_HTML_TAG_RE = re.compile(r'<[^>]*>')


def load_job_keywords() -> Tuple[str, ...]:
    """
    Read the subject keyword list from JOB_SUBJECT_KEYWORDS.

    Returns:
        Tuple of lower-cased keywords; DEFAULT_JOB_KEYWORDS if the variable
        is unset or contains no keywords
    """
    raw = os.environ.get('JOB_SUBJECT_KEYWORDS', '')
    keywords = tuple(k.strip().lower() for k in raw.split(',') if k.strip())
    if keywords:
        logger.info(f"Using {len(keywords)} subject keyword(s) from JOB_SUBJECT_KEYWORDS")
        return keywords
    return DEFAULT_JOB_KEYWORDS


def is_job_related(subject: Optional[str], keywords: Optional[Iterable[str]] = None) -> bool:
    """
    Check whether a subject line looks like job-application correspondence.

    Args:
        subject: Subject line (None is treated as empty)
        keywords: Keywords to match (default: DEFAULT_JOB_KEYWORDS)

    Returns:
        True if the subject contains any keyword, ignoring case

    Example:
        >>> is_job_related("Thanks for applying to Acme")
        True
        >>> is_job_related("Weekly newsletter")
        False
    """
    if not subject:
        return False
    lowered = subject.lower()
    return any(k.lower() in lowered for k in (keywords or DEFAULT_JOB_KEYWORDS))


def parse_raw_message(message_id: str, email_content: bytes) -> RawMessage:
    """
    Parse raw RFC 822 bytes into a RawMessage.

    Args:
        message_id: Mailbox identifier of the message
        email_content: Raw email bytes as fetched from the mailbox

    Returns:
        RawMessage with envelope metadata and MIME leaf parts in order.
        The envelope is None when the message has no Subject, From or Date header.
    """
    msg = BytesParser(policy=policy.default).parsebytes(email_content)

    subject = msg.get('Subject')
    sender = msg.get('From')
    date_header = msg.get('Date')

    envelope = None
    if subject is not None or sender is not None or date_header is not None:
        envelope = Envelope(
            subject=str(subject or ''),
            sender=str(sender or ''),
            received_at=_parse_date(date_header),
        )

    parts = []
    for part in msg.walk():
        if part.is_multipart():
            continue
        content_type = _media_type(part)
        parts.append(BodyPart(
            content_type=content_type,
            text=_part_text(part, message_id) if content_type.startswith('text/') else '',
        ))

    return RawMessage(message_id=message_id, envelope=envelope, body_parts=parts)


def _media_type(part: EmailMessage) -> str:
    # get_content_type() reports text/plain for a missing or broken header
    header = part.get('Content-Type')
    if header is None or header.defects:
        return ''
    return part.get_content_type()


def _part_text(part: EmailMessage, message_id: str) -> str:
    """
    Decode a text part, honoring its charset parameter (UTF-8 when absent).

    Undecodable bytes are replaced rather than raising.
    """
    if part.get_content_charset():
        try:
            # get_content() handles quoted-printable, base64 and the charset
            return part.get_content()
        except (LookupError, ValueError) as e:
            logger.warning(f"Failed to decode part with get_content() in message {message_id}: {e}")

    payload = part.get_payload(decode=True) or b''
    return payload.decode('utf-8', errors='replace')


def _parse_date(value) -> Optional[datetime]:
    if not value:
        return None
    # policy.default already parses Date headers into a datetime
    parsed = getattr(value, 'datetime', None)
    if parsed is not None:
        return parsed
    try:
        return parsedate_to_datetime(str(value))
    except (TypeError, ValueError, IndexError):
        logger.warning(f"Unparsable Date header: {value}")
        return None


def strip_html_tags(html: str) -> str:
    """
    Remove markup from HTML and return trimmed text.

    Example:
        >>> strip_html_tags("<b>Hello</b>&nbsp;World")
        'Hello World'
    """
    text = _HTML_TAG_RE.sub('', html)
    text = text.replace('&nbsp;', ' ')
    return text.strip()


def extract_body(raw: RawMessage) -> str:
    """
    Extract a single plain-text body from a raw message.

    The first text/plain part wins outright and later parts are not inspected.
    If no plain-text part exists, the last HTML part seen is returned with tags
    stripped. Parts without a usable media type are skipped.

    Args:
        raw: Raw message with body parts in original order

    Returns:
        str: Body text, or empty string if neither plain text nor HTML exists
    """
    html_body = ''

    for part in raw.body_parts:
        if not part.content_type:
            logger.info(f"Skipping part without usable Content-Type in message {raw.message_id}")
            continue

        if part.content_type == 'text/plain':
            logger.info(f"Extracted plain text body (length: {len(part.text)})")
            return part.text

        if part.content_type == 'text/html':
            html_body = part.text

    if html_body:
        logger.info("No text/plain found, using HTML fallback")
        return strip_html_tags(html_body)

    logger.info(f"No text/plain or usable HTML body in message {raw.message_id}")
    return ''


def extract_sender(raw: RawMessage) -> str:
    """
    Return the first From address as mailbox@host.

    Args:
        raw: Raw message

    Returns:
        str: Sender address, or empty string if none can be determined
    """
    if not raw.sender:
        logger.info(f"No sender info in message {raw.message_id}")
        return ''

    for _name, address in getaddresses([raw.sender]):
        mailbox, at, host = address.rpartition('@')
        if at and mailbox and host:
            return f"{mailbox}@{host}"

    logger.info(f"No usable sender address in message {raw.message_id}: {raw.sender!r}")
    return ''
