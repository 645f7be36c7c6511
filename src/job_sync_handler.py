"""
Entry points for the job email sync.

Thin orchestration layer: loads settings, connects the mailbox, parser and
store, then runs JobEmailPipeline once.

- lambda_handler: scheduled AWS Lambda invocation (e.g. an EventBridge rule)
- main: command line, `python job_sync_handler.py` or the `job-email-sync` script

Setup errors (missing configuration, mailbox login, store access) abort the
run before any stage starts. Per-message errors end up in the failure report.
"""

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from domain.errors import ConfigurationError, MailboxFetchError, SetupError
from domain.models import PipelineRunResult
from domain.pipeline import JobEmailPipeline
from integrations.mailbox import ImapMailboxReader
from integrations.notion_store import NotionStore
from services.failures import FailureReporter
from settings import Settings

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

# Add console handler for local runs (AWS Lambda provides handlers automatically)
if not logger.handlers:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(logging.Formatter('%(levelname)s - %(message)s'))
    logger.addHandler(console_handler)


def _create_parser():
    # Imported here so a missing AGENT_RUNTIME_ARN surfaces as a setup error
    # of this run instead of an import error of this module
    from integrations.semantic_parser import AgentSemanticParser
    return AgentSemanticParser()


def run_sync(settings: Settings) -> PipelineRunResult:
    """
    Connect all external services and run the pipeline once.

    Raises:
        SetupError: If configuration or any connection fails (nothing has run)
        MailboxFetchError: If the mailbox stream broke off mid-run
    """
    logger.setLevel(settings.log_level)

    semantic_parser = _create_parser()
    mailbox = ImapMailboxReader.from_env()
    store = NotionStore.from_env()

    try:
        store.check_connection()
        with mailbox:
            pipeline = JobEmailPipeline(
                mailbox=mailbox,
                parser=semantic_parser,
                store=store,
                reporter=FailureReporter(settings.report_path),
                lookback_months=settings.lookback_months,
                queue_size=settings.queue_size,
                keywords=settings.keywords,
            )
            return pipeline.run()
    finally:
        store.close()


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Run one sync from a scheduled Lambda invocation.

    Args:
        event: Scheduler event; an optional "lookbackMonths" overrides LOOKBACK_MONTHS
        context: Lambda context

    Returns:
        Dict with run counts and the failure report path
    """
    logger.info("=" * 70)
    logger.info("Job Email Sync - Started")
    logger.info("=" * 70)

    lookback = (event or {}).get('lookbackMonths')
    lookback_months = None
    if lookback is not None:
        try:
            lookback_months = int(lookback)
        except (TypeError, ValueError):
            raise ConfigurationError(f"lookbackMonths must be an integer, got: {lookback!r}")
    settings = Settings.from_env(lookback_months=lookback_months)

    result = run_sync(settings)
    return {
        'messagesFound': result.messages_found,
        'jobEmails': result.candidates,
        'upserted': result.upserted,
        'failures': result.failure_count,
        'failureReport': result.report_path,
    }


def main(argv: Optional[List[str]] = None) -> int:
    """
    Command line entry point.

    Returns:
        int: 0 after a completed run, 1 if setup or the mailbox fetch failed
    """
    arg_parser = argparse.ArgumentParser(
        description="Sync job application emails from a mailbox into a Notion database."
    )
    arg_parser.add_argument(
        '--lookback-months', type=int, default=None,
        help="How many months of mail to scan (default: LOOKBACK_MONTHS or 4)",
    )
    arg_parser.add_argument(
        '--env-file', default='.env',
        help="Environment file to load before reading configuration (default: .env)",
    )
    args = arg_parser.parse_args(argv)

    if not load_dotenv(args.env_file):
        logger.warning(f"No variables loaded from {args.env_file}. Assuming environment variables are already set.")

    try:
        settings = Settings.from_env(lookback_months=args.lookback_months)
        run_sync(settings)
    except SetupError as e:
        logger.error(f"Setup failed: {e}")
        return 1
    except MailboxFetchError as e:
        logger.error(str(e))
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
