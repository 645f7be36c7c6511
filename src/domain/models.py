"""
Data models for the job email sync domain.

These type-safe data structures define the contracts between pipeline stages.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

# Failure reasons written to the unparsed report
EMPTY_PARSER_OUTPUT = "Empty LLM output"


@dataclass(frozen=True)
class BodyPart:
    """
    One MIME leaf part of a fetched message.

    Attributes:
        content_type: Lower-case media type such as "text/plain"; empty when the
            part has no Content-Type header or the header is malformed
        text: Decoded content of text/* parts (empty for other parts)
    """
    content_type: str
    text: str = ''


@dataclass(frozen=True)
class Envelope:
    """
    Envelope metadata of a fetched message.

    Attributes:
        subject: Decoded Subject header
        sender: Raw From header value
        received_at: Parsed Date header (None if absent or unparsable)
    """
    subject: str
    sender: str
    received_at: Optional[datetime] = None


@dataclass(frozen=True)
class RawMessage:
    """
    A mailbox entry as produced by the mailbox reader, before any filtering.

    Attributes:
        message_id: Mailbox identifier the message was fetched with
        envelope: Envelope metadata (None when the message carries none)
        body_parts: MIME leaf parts in their original order
    """
    message_id: str
    envelope: Optional[Envelope]
    body_parts: List[BodyPart] = field(default_factory=list)

    @property
    def subject(self) -> str:
        return self.envelope.subject if self.envelope else ''

    @property
    def sender(self) -> str:
        return self.envelope.sender if self.envelope else ''

    @property
    def received_at(self) -> Optional[datetime]:
        return self.envelope.received_at if self.envelope else None


@dataclass(frozen=True)
class CandidateRecord:
    """
    A job-related message with normalized body and sender, awaiting parsing.

    Attributes:
        subject: Subject line
        normalized_body: Plain-text body (may be empty)
        sender: Sender address as mailbox@host (empty if unknown)
        received_at: When the message was received
    """
    subject: str
    normalized_body: str
    sender: str
    received_at: Optional[datetime] = None


class ApplicationStatus(str, Enum):
    """Status of a job application as tracked in the store."""
    APPLIED = "Applied"
    INTERVIEWING = "Interviewing"
    OFFER = "Offer"
    REJECTED = "Rejected"
    UNKNOWN = "Unknown"

    @classmethod
    def from_text(cls, value: Optional[str]) -> "ApplicationStatus":
        """
        Normalize free-text status returned by the parser.

        Args:
            value: Status text such as "applied", "Interview scheduled", "declined"

        Returns:
            ApplicationStatus: Matching status, UNKNOWN if nothing matches
        """
        text = (value or '').strip().lower()
        if not text:
            return cls.UNKNOWN

        for status in cls:
            if text == status.value.lower():
                return status

        if 'reject' in text or 'declin' in text or 'not moving forward' in text:
            return cls.REJECTED
        if 'offer' in text:
            return cls.OFFER
        if 'interview' in text or 'assessment' in text or 'screen' in text:
            return cls.INTERVIEWING
        if 'appl' in text or 'received' in text or 'submitted' in text:
            return cls.APPLIED
        return cls.UNKNOWN


@dataclass(frozen=True)
class StructuredRecord:
    """
    Company/position/status extracted from a candidate record.

    The natural identity in the store is (company, position).

    Attributes:
        company: Hiring company name
        position: Job title applied for
        status: Application status
        source_date: Date of the email the record came from
        source_email: Sender address of that email
    """
    company: str
    position: str
    status: ApplicationStatus = ApplicationStatus.UNKNOWN
    source_date: Optional[datetime] = None
    source_email: str = ''

    @property
    def is_empty(self) -> bool:
        """True when neither company nor position could be extracted."""
        return not self.company.strip() and not self.position.strip()


@dataclass(frozen=True)
class ParseOutcome:
    """
    Result of semantic parsing: either a parsed record or empty.

    Use the ``parsed`` and ``empty`` constructors instead of building this directly.
    """
    record: Optional[StructuredRecord] = None
    reason: str = EMPTY_PARSER_OUTPUT

    @classmethod
    def parsed(cls, record: StructuredRecord) -> "ParseOutcome":
        return cls(record=record, reason='')

    @classmethod
    def empty(cls, reason: str = EMPTY_PARSER_OUTPUT) -> "ParseOutcome":
        return cls(record=None, reason=reason or EMPTY_PARSER_OUTPUT)

    @property
    def is_empty(self) -> bool:
        return self.record is None or self.record.is_empty


@dataclass(frozen=True)
class ReconcileResult:
    """
    Result of upserting a record into the tracking store.

    Attributes:
        success: Whether the upsert succeeded
        page_id: Store identifier of the created/updated entry
        created: True if a new entry was created, False if one was updated
        error_message: Failure description (if the upsert failed)
    """
    success: bool
    page_id: Optional[str] = None
    created: bool = False
    error_message: Optional[str] = None

    @classmethod
    def ok(cls, page_id: str, created: bool) -> "ReconcileResult":
        return cls(success=True, page_id=page_id, created=created)

    @classmethod
    def failure(cls, reason: str) -> "ReconcileResult":
        return cls(success=False, error_message=reason)

    def __repr__(self) -> str:
        if self.success:
            action = "created" if self.created else "updated"
            return f"ReconcileResult(success=True, page_id={self.page_id}, {action})"
        return f"ReconcileResult(success=False, error={self.error_message})"


@dataclass(frozen=True)
class FailureEntry:
    """
    A message that could not be parsed or reconciled, kept for manual review.

    Attributes:
        received_at: When the message was received
        sender: Sender address
        subject: Subject line
        normalized_body: Plain-text body
        reason: Why the message failed
    """
    received_at: Optional[datetime]
    sender: str
    subject: str
    normalized_body: str
    reason: str

    @classmethod
    def from_candidate(cls, candidate: CandidateRecord, reason: str) -> "FailureEntry":
        return cls(
            received_at=candidate.received_at,
            sender=candidate.sender,
            subject=candidate.subject,
            normalized_body=candidate.normalized_body,
            reason=reason,
        )


@dataclass
class PipelineRunResult:
    """
    Summary of one pipeline run.

    Attributes:
        messages_found: Number of message ids the mailbox search returned
        candidates: Number of messages that passed the subject filter
        upserted: Number of successful store upserts
        failures: Failure entries in the order they were recorded
        report_path: Path of the written failure report (None if nothing written)
    """
    messages_found: int = 0
    candidates: int = 0
    upserted: int = 0
    failures: List[FailureEntry] = field(default_factory=list)
    report_path: Optional[str] = None

    @property
    def failure_count(self) -> int:
        return len(self.failures)
