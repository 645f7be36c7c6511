"""
Failure report writer.

Messages that could not be parsed or reconciled are written to a CSV file for
manual review. The file is overwritten on every run.
"""

import csv
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from domain.models import FailureEntry

logger = logging.getLogger(__name__)

DEFAULT_REPORT_PATH = os.environ.get('FAILURE_REPORT_PATH', 'unparsed/unparsed_emails.csv')

REPORT_COLUMNS = ['Date', 'Email', 'Subject', 'Body', 'Reason']
DATE_FORMAT = '%Y-%m-%d %H:%M'


def sanitize_field(value: Optional[str]) -> str:
    """
    Make a value safe for a double-quoted CSV field.

    Double quotes become single quotes and line breaks become spaces.
    """
    if not value:
        return ''
    return value.replace('"', "'").replace('\r\n', ' ').replace('\n', ' ').replace('\r', ' ')


def format_timestamp(value: Optional[datetime]) -> str:
    return value.strftime(DATE_FORMAT) if value else ''


def to_row(entry: FailureEntry) -> List[str]:
    """Convert a failure entry to CSV column values in REPORT_COLUMNS order."""
    return [
        format_timestamp(entry.received_at),
        sanitize_field(entry.sender),
        sanitize_field(entry.subject),
        sanitize_field(entry.normalized_body),
        sanitize_field(entry.reason),
    ]


class FailureReporter:
    """
    Writes failure entries to a CSV file.

    Args:
        path: Destination file (default: FAILURE_REPORT_PATH or unparsed/unparsed_emails.csv)
    """

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or DEFAULT_REPORT_PATH)

    def report(self, entries: Sequence[FailureEntry]) -> Optional[str]:
        """
        Write all entries, replacing any previous report.

        Args:
            entries: Failure entries from one run

        Returns:
            str: Path of the written report, or None if there was nothing to
            write or the file could not be created (logged, not raised)
        """
        if not entries:
            logger.info("All job emails parsed and written successfully.")
            return None

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w', encoding='utf-8', newline='') as f:
                writer = csv.writer(f, quoting=csv.QUOTE_ALL, lineterminator='\n')
                # Header row is left unquoted
                f.write(','.join(REPORT_COLUMNS) + '\n')
                for entry in entries:
                    writer.writerow(to_row(entry))
        except OSError as e:
            logger.error(f"Failed to write failure report {self.path}: {e}")
            return None

        logger.info(f"Wrote {len(entries)} failed job email(s) to {self.path}")
        return str(self.path)
