"""
Job email sync pipeline - core business logic.

Moves mailbox messages through three concurrent stages and a sequential sink:

1. Fetch: stream raw messages from the mailbox reader
2. Filter+Extract: keep job-related subjects, extract body and sender
3. Parse: turn each candidate into a structured record (or a failure entry)
4. Reconcile (calling thread): upsert records into the tracking store in order

Stages are joined by bounded queues, so the slowest stage paces the run. Each
stage closes its output with an end-of-stream marker once its input is drained.
Every candidate that reaches the parse stage ends as exactly one upsert or one
failure entry; the failures are reported once, after all stages finish.
"""

import logging
import queue
import threading
from datetime import datetime
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from dateutil.relativedelta import relativedelta

from .errors import MailboxFetchError
from .interfaces import FailureSink, MailboxReader, SemanticParser, StoreReconciler
from .models import (
    CandidateRecord,
    FailureEntry,
    PipelineRunResult,
    RawMessage,
    StructuredRecord,
)
from services import email as email_service

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_MONTHS = 4
DEFAULT_QUEUE_SIZE = 1

# Closes a stage queue; compared by identity
_END_OF_STREAM = object()


def _drain(source: "queue.Queue") -> Iterator:
    """Yield items from a stage queue until its end-of-stream marker."""
    while True:
        item = source.get()
        if item is _END_OF_STREAM:
            return
        yield item


class JobEmailPipeline:
    """
    Syncs job-application emails from a mailbox into a tracking store.

    The mailbox, parser, store and failure sink are injected so the pipeline
    can run against deterministic doubles in tests. Per-message errors never
    propagate out of run(); they are reported as failure entries.
    """

    def __init__(
        self,
        mailbox: MailboxReader,
        parser: SemanticParser,
        store: StoreReconciler,
        reporter: FailureSink,
        lookback_months: int = DEFAULT_LOOKBACK_MONTHS,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        keywords: Optional[Iterable[str]] = None,
    ):
        self.mailbox = mailbox
        self.parser = parser
        self.store = store
        self.reporter = reporter
        self.lookback_months = lookback_months
        self.queue_size = max(1, queue_size)
        self.keywords = tuple(keywords) if keywords else email_service.DEFAULT_JOB_KEYWORDS

    def since(self, now: Optional[datetime] = None) -> datetime:
        """Start of the lookback window."""
        return (now or datetime.now()) - relativedelta(months=self.lookback_months)

    def run(self, now: Optional[datetime] = None) -> PipelineRunResult:
        """
        Run one sync over the lookback window.

        Args:
            now: Reference time for the lookback window (default: current time)

        Returns:
            PipelineRunResult with counts, failures and the report path

        Raises:
            MailboxFetchError: If the mailbox stream broke off mid-run. Records
                fetched before the break are still reconciled and reported.
        """
        since = self.since(now)
        message_ids = list(self.mailbox.search(since))
        logger.info(f"Found {len(message_ids)} messages since {since:%Y-%m-%d}.")

        result = PipelineRunResult(messages_found=len(message_ids))
        if not message_ids:
            return result

        raw_queue: "queue.Queue" = queue.Queue(maxsize=self.queue_size)
        candidate_queue: "queue.Queue" = queue.Queue(maxsize=self.queue_size)
        record_queue: "queue.Queue" = queue.Queue(maxsize=self.queue_size)

        # Each list has a single writer and is read only after the stages are joined
        fetch_errors: List[Exception] = []
        candidate_count: List[int] = [0]
        parse_failures: List[FailureEntry] = []
        reconcile_failures: List[FailureEntry] = []

        stages = [
            threading.Thread(
                target=self._fetch_stage,
                args=(message_ids, raw_queue, fetch_errors),
                name='fetch-stage',
                daemon=True,
            ),
            threading.Thread(
                target=self._extract_stage,
                args=(raw_queue, candidate_queue, candidate_count),
                name='extract-stage',
                daemon=True,
            ),
            threading.Thread(
                target=self._parse_stage,
                args=(candidate_queue, record_queue, parse_failures),
                name='parse-stage',
                daemon=True,
            ),
        ]
        for stage in stages:
            stage.start()

        result.upserted = self._reconcile(record_queue, reconcile_failures)

        for stage in stages:
            stage.join()

        result.candidates = candidate_count[0]
        result.failures = parse_failures + reconcile_failures
        result.report_path = self.reporter.report(result.failures)

        self._log_summary(result)

        if fetch_errors:
            raise MailboxFetchError(f"Mailbox fetch failed mid-run: {fetch_errors[0]}") from fetch_errors[0]
        return result

    def _fetch_stage(
        self,
        message_ids: Sequence[str],
        output: "queue.Queue",
        errors: List[Exception],
    ) -> None:
        try:
            for raw in self.mailbox.fetch(message_ids):
                output.put(raw)
        except Exception as e:
            logger.error(f"Mailbox fetch failed: {e}", exc_info=True)
            errors.append(e)
        finally:
            output.put(_END_OF_STREAM)

    def _extract_stage(
        self,
        source: "queue.Queue",
        output: "queue.Queue",
        count: List[int],
    ) -> None:
        try:
            for raw in _drain(source):
                # Keep consuming on errors so the fetch stage never blocks on a dead reader
                try:
                    candidate = self.to_candidate(raw)
                except Exception as e:
                    logger.error(f"Failed to extract message {raw.message_id}: {e}", exc_info=True)
                    continue
                if candidate is None:
                    continue
                count[0] += 1
                output.put(candidate)
        finally:
            output.put(_END_OF_STREAM)

    def _parse_stage(
        self,
        source: "queue.Queue",
        output: "queue.Queue",
        failures: List[FailureEntry],
    ) -> None:
        try:
            for candidate in _drain(source):
                # Keep consuming on errors so the extract stage never blocks on a dead reader
                try:
                    record, failure = self.parse_candidate(candidate)
                except Exception as e:
                    logger.error(f"Failed to parse {candidate.subject!r}: {e}", exc_info=True)
                    record, failure = None, FailureEntry.from_candidate(candidate, f"LLM error: {e}")
                if failure is not None:
                    failures.append(failure)
                    continue
                output.put((candidate, record))
        finally:
            output.put(_END_OF_STREAM)

    def _reconcile(self, source: "queue.Queue", failures: List[FailureEntry]) -> int:
        upserted = 0
        for candidate, record in _drain(source):
            try:
                failure = self.reconcile_record(candidate, record)
            except Exception as e:
                logger.error(f"Failed to reconcile {candidate.subject!r}: {e}", exc_info=True)
                failure = FailureEntry.from_candidate(candidate, f"Store error: {e}")
            if failure is None:
                upserted += 1
            else:
                failures.append(failure)
        return upserted

    def to_candidate(self, raw: RawMessage) -> Optional[CandidateRecord]:
        """
        Filter and normalize one raw message.

        Returns:
            CandidateRecord, or None if the message has no envelope or its
            subject is not job-related
        """
        if raw.envelope is None:
            logger.info(f"Skipping message {raw.message_id} without envelope")
            return None
        if not email_service.is_job_related(raw.subject, self.keywords):
            return None

        return CandidateRecord(
            subject=raw.subject,
            normalized_body=email_service.extract_body(raw),
            sender=email_service.extract_sender(raw),
            received_at=raw.received_at,
        )

    def parse_candidate(
        self, candidate: CandidateRecord
    ) -> Tuple[Optional[StructuredRecord], Optional[FailureEntry]]:
        """
        Parse one candidate. Never raises.

        Returns:
            (record, None) on success, (None, failure) otherwise
        """
        try:
            outcome = self.parser.parse(
                candidate.subject,
                candidate.normalized_body,
                candidate.sender,
                candidate.received_at,
            )
            if outcome.is_empty:
                logger.warning(f"Parser returned no company or position for {candidate.subject!r}")
                return None, FailureEntry.from_candidate(candidate, outcome.reason)
            return outcome.record, None
        except Exception as e:
            logger.error(f"Parser failed for {candidate.subject!r}: {e}", exc_info=True)
            return None, FailureEntry.from_candidate(candidate, f"LLM error: {e}")

    def reconcile_record(
        self, candidate: CandidateRecord, record: StructuredRecord
    ) -> Optional[FailureEntry]:
        """
        Upsert one record. Never raises.

        Returns:
            None on success, a FailureEntry if the store rejected it
        """
        try:
            reconciled = self.store.upsert(record)
            if not reconciled.success:
                return FailureEntry.from_candidate(candidate, f"Store error: {reconciled.error_message}")
            return None
        except Exception as e:
            logger.error(f"Store upsert raised for {record.company} / {record.position}: {e}", exc_info=True)
            return FailureEntry.from_candidate(candidate, f"Store error: {e}")

    def _log_summary(self, result: PipelineRunResult) -> None:
        logger.info("=" * 70)
        logger.info("Job email sync complete")
        logger.info(f"  Messages found: {result.messages_found}")
        logger.info(f"  Job emails: {result.candidates}")
        logger.info(f"  Upserted: {result.upserted}")
        logger.info(f"  Failures: {result.failure_count}")
        if result.report_path:
            logger.info(f"  Failure report: {result.report_path}")
        logger.info("=" * 70)
