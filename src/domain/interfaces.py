"""
Narrow interfaces for the pipeline's external collaborators.

The pipeline depends only on these protocols, so tests can swap in
deterministic doubles for the mailbox, parser, store and failure sink.
"""

from datetime import datetime
from typing import Iterator, List, Optional, Protocol, Sequence

from .models import (
    FailureEntry,
    ParseOutcome,
    RawMessage,
    ReconcileResult,
    StructuredRecord,
)


class MailboxReader(Protocol):
    def search(self, since: datetime) -> List[str]:
        """Return ids of messages received on or after ``since``, in mailbox order."""
        ...

    def fetch(self, message_ids: Sequence[str]) -> Iterator[RawMessage]:
        """Yield raw messages for ``message_ids`` in the same order."""
        ...


class SemanticParser(Protocol):
    def parse(
        self,
        subject: str,
        body: str,
        sender: str,
        received_at: Optional[datetime],
    ) -> ParseOutcome:
        ...


class StoreReconciler(Protocol):
    def upsert(self, record: StructuredRecord) -> ReconcileResult:
        ...


class FailureSink(Protocol):
    def report(self, entries: Sequence[FailureEntry]) -> Optional[str]:
        ...
