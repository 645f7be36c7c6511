"""
Semantic parser backed by a Bedrock AgentCore agent.

Turns a job email (subject, body, sender, date) into a StructuredRecord by
prompting the agent for a small JSON object.
"""

import json
import logging
import os
import re
from datetime import datetime
from typing import Any, Dict, Optional

from domain.models import ApplicationStatus, ParseOutcome, StructuredRecord
from integrations import agentcore_invocation
from services import prompts as prompt_service

logger = logging.getLogger(__name__)

PROMPT_NAME = 'job_email_parse.txt'
UNPARSEABLE_OUTPUT = "Unparseable LLM output"

MAX_BODY_CHARS = int(os.environ.get('PARSER_MAX_BODY_CHARS', '8000'))

_FENCE_RE = re.compile(r'^```(?:json)?\s*|\s*```$', re.IGNORECASE)


def parse_agent_output(text: str) -> Optional[Dict[str, Any]]:
    """
    Decode the agent's JSON answer.

    Tolerates markdown code fences and leading/trailing prose around a single
    JSON object.

    Returns:
        dict, or None if no JSON object could be decoded
    """
    if not text or not text.strip():
        return None

    cleaned = _FENCE_RE.sub('', text.strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        start, end = cleaned.find('{'), cleaned.rfind('}')
        if start == -1 or end <= start:
            return None
        try:
            data = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError:
            return None

    return data if isinstance(data, dict) else None


def _text(value: Any) -> str:
    if value is None:
        return ''
    return ' '.join(str(value).split())


class AgentSemanticParser:
    """
    Extracts company, position and status from job emails with an AI agent.

    Agent transport errors propagate to the caller; an answer that is empty or
    not JSON becomes an empty ParseOutcome.
    """

    def __init__(self, prompt_name: str = PROMPT_NAME, max_body_chars: int = MAX_BODY_CHARS):
        self.prompt_name = prompt_name
        self.max_body_chars = max_body_chars

    def build_prompt(
        self,
        subject: str,
        body: str,
        sender: str,
        received_at: Optional[datetime],
    ) -> str:
        template = prompt_service.load_prompt(self.prompt_name)
        return prompt_service.format_prompt(
            template,
            subject=subject or '',
            body=(body or '')[:self.max_body_chars],
            sender=sender or 'Unknown',
            received_at=received_at.isoformat() if received_at else 'Unknown',
        )

    def parse(
        self,
        subject: str,
        body: str,
        sender: str,
        received_at: Optional[datetime],
    ) -> ParseOutcome:
        """
        Parse one job email.

        Returns:
            ParseOutcome.parsed with the record, or ParseOutcome.empty when the
            agent could not identify a company or position

        Raises:
            Exceptions from agentcore_invocation.invoke_agent
        """
        prompt = self.build_prompt(subject, body, sender, received_at)
        output = agentcore_invocation.invoke_agent(prompt=prompt)

        data = parse_agent_output(output)
        if data is None:
            if not output.strip():
                return ParseOutcome.empty()
            logger.warning(f"Agent output is not a JSON object: {output[:200]!r}")
            return ParseOutcome.empty(UNPARSEABLE_OUTPUT)

        record = StructuredRecord(
            company=_text(data.get('company')),
            position=_text(data.get('position') or data.get('job_title')),
            status=ApplicationStatus.from_text(_text(data.get('status'))),
            source_date=received_at,
            source_email=sender or '',
        )
        logger.info(
            f"Parsed job: company={record.company!r}, position={record.position!r}, "
            f"status={record.status.value}"
        )

        if record.is_empty:
            return ParseOutcome.empty()
        return ParseOutcome.parsed(record)
