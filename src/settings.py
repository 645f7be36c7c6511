"""
Run configuration for the job email sync.

Service credentials are read by each integration's from_env(); this module only
holds the settings that shape a pipeline run.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from domain.errors import ConfigurationError
from domain.pipeline import DEFAULT_LOOKBACK_MONTHS, DEFAULT_QUEUE_SIZE
from services import email as email_service
from services.failures import DEFAULT_REPORT_PATH

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, '').strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got: {raw!r}")
    if value < 1:
        raise ConfigurationError(f"{name} must be at least 1, got: {value}")
    return value


def _log_level_env() -> str:
    level = os.environ.get('LOG_LEVEL', 'INFO').strip().upper() or 'INFO'
    if level not in LOG_LEVELS:
        raise ConfigurationError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got: {level!r}")
    return level


@dataclass
class Settings:
    """
    Attributes:
        lookback_months: How far back the mailbox search reaches
        queue_size: Capacity of each handoff queue between stages
        report_path: Where the failure CSV is written
        keywords: Subject keywords that mark a job email
        log_level: Root log level name
    """
    lookback_months: int = DEFAULT_LOOKBACK_MONTHS
    queue_size: int = DEFAULT_QUEUE_SIZE
    report_path: str = DEFAULT_REPORT_PATH
    keywords: Tuple[str, ...] = field(default_factory=lambda: email_service.DEFAULT_JOB_KEYWORDS)
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls, lookback_months: Optional[int] = None) -> "Settings":
        """
        Read LOOKBACK_MONTHS, PIPELINE_QUEUE_SIZE, FAILURE_REPORT_PATH,
        JOB_SUBJECT_KEYWORDS and LOG_LEVEL.

        Args:
            lookback_months: Overrides LOOKBACK_MONTHS when given

        Raises:
            ConfigurationError: If a numeric setting or LOG_LEVEL is invalid
        """
        if lookback_months is not None and lookback_months < 1:
            raise ConfigurationError(f"Lookback must be at least 1 month, got: {lookback_months}")
        return cls(
            lookback_months=lookback_months or _int_env('LOOKBACK_MONTHS', DEFAULT_LOOKBACK_MONTHS),
            queue_size=_int_env('PIPELINE_QUEUE_SIZE', DEFAULT_QUEUE_SIZE),
            report_path=os.environ.get('FAILURE_REPORT_PATH', DEFAULT_REPORT_PATH),
            keywords=email_service.load_job_keywords(),
            log_level=_log_level_env(),
        )
