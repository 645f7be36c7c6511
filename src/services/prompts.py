"""
Prompt template management for the semantic parser.

Templates are resolved in this order:
1. In-memory cache (entries expire after PROMPT_CACHE_TTL seconds)
2. S3 override under PROMPT_BUCKET/PROMPT_KEY_PREFIX (optional, lets the
   extraction prompt be tuned without a redeploy)
3. The prompts/ directory shipped next to the source tree
"""

import logging
import os
import time
from pathlib import Path
from typing import Dict, Tuple

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = int(os.environ.get('PROMPT_CACHE_TTL', '300'))

PROMPT_BUCKET = os.environ.get('PROMPT_BUCKET')
PROMPT_KEY_PREFIX = os.environ.get('PROMPT_KEY_PREFIX', 'prompts/')

# src/services/prompts.py -> src/prompts/
PROMPTS_DIR = Path(__file__).parent.parent / 'prompts'

# {prompt_name: (template, loaded_at)}
_template_cache: Dict[str, Tuple[str, float]] = {}

s3_client = boto3.client('s3', config=Config(
    retries={'max_attempts': 1, 'mode': 'standard'},
    connect_timeout=10,
    read_timeout=30,
))


def _read_local_template(prompt_name: str) -> str:
    path = PROMPTS_DIR / prompt_name
    with open(path, 'r', encoding='utf-8') as f:
        template = f.read()
    logger.info(f"Loaded prompt {prompt_name} from {path} ({len(template)} chars)")
    return template


def _read_s3_template(prompt_name: str) -> str:
    key = f"{PROMPT_KEY_PREFIX}{prompt_name}"
    response = s3_client.get_object(Bucket=PROMPT_BUCKET, Key=key)
    template = response['Body'].read().decode('utf-8')
    logger.info(f"Loaded prompt {prompt_name} from s3://{PROMPT_BUCKET}/{key} ({len(template)} chars)")
    return template


def load_prompt(prompt_name: str, use_cache: bool = True) -> str:
    """
    Load a prompt template by file name.

    Args:
        prompt_name: Template file name (e.g., "job_email_parse.txt")
        use_cache: Return a cached copy if it is younger than CACHE_TTL_SECONDS

    Returns:
        str: Template text with {placeholders}

    Raises:
        ValueError: If the template exists neither in S3 nor on disk
    """
    now = time.time()

    if use_cache and prompt_name in _template_cache:
        template, loaded_at = _template_cache[prompt_name]
        if now - loaded_at < CACHE_TTL_SECONDS:
            return template
        logger.info(f"Cached prompt {prompt_name} expired, reloading")

    template = None

    if PROMPT_BUCKET:
        try:
            template = _read_s3_template(prompt_name)
        except ClientError as e:
            logger.info(
                f"No S3 override for prompt {prompt_name} "
                f"({e.response.get('Error', {}).get('Code', 'Unknown')}), using packaged copy"
            )

    if template is None:
        try:
            template = _read_local_template(prompt_name)
        except FileNotFoundError:
            logger.error(f"Prompt not found: {PROMPTS_DIR / prompt_name}")
            raise ValueError(f"Prompt '{prompt_name}' not found in S3 or local filesystem")

    _template_cache[prompt_name] = (template, now)
    return template


def format_prompt(template: str, **variables) -> str:
    """
    Substitute variables into a template.

    Values are inserted verbatim; str.format does not re-parse substituted
    text, so braces inside an email body stay as they are. Literal braces in
    the template itself must be doubled.

    Raises:
        ValueError: If the template references a variable that was not given
    """
    try:
        return template.format(**variables)
    except KeyError as e:
        missing = str(e).strip("'")
        logger.error(f"Missing variable in prompt template: {missing}")
        raise ValueError(f"Missing required variable in prompt: {missing}")


def clear_cache() -> None:
    """Drop all cached templates so the next load re-reads them."""
    _template_cache.clear()
