"""
Amazon Bedrock AgentCore runtime client.

Sends a single prompt to the configured agent runtime and returns the agent's
text output. Used by the semantic parser; every call opens a fresh session so
emails never share conversation context.

Usage:
    from integrations import agentcore_invocation

    text = agentcore_invocation.invoke_agent(prompt="Extract the company ...")
"""

import json
import logging
import os
import time
import uuid
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from domain.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Bedrock requires runtime session ids of at least this many characters
MIN_SESSION_ID_LENGTH = 33


class AgentNotFoundException(Exception):
    """Raised when the configured agent runtime does not exist."""
    pass


class ThrottlingException(Exception):
    """Raised when Bedrock throttles the request."""
    pass


class ValidationException(Exception):
    """Raised when invocation arguments are invalid."""
    pass


def _read_agent_runtime_arn() -> str:
    """
    Read AGENT_RUNTIME_ARN from the environment.

    Raises:
        ConfigurationError: If the ARN is missing or not a Bedrock ARN
    """
    arn = os.environ.get('AGENT_RUNTIME_ARN', '').strip()
    if not arn:
        raise ConfigurationError("AGENT_RUNTIME_ARN environment variable is required but not set")
    if not arn.startswith('arn:aws:bedrock'):
        raise ConfigurationError(
            f"AGENT_RUNTIME_ARN must start with 'arn:aws:bedrock', got: '{arn[:50]}'"
        )
    return arn


def _initialize_bedrock_client():
    """Create the AgentCore client with strict timeouts and no SDK retries."""
    region = os.environ.get('AWS_REGION', os.environ.get('AWS_DEFAULT_REGION', 'us-west-2'))
    client = boto3.client(
        'bedrock-agentcore',
        region_name=region,
        config=Config(
            retries={'max_attempts': 0, 'mode': 'standard'},
            connect_timeout=10,
            read_timeout=120,
        ),
    )
    logger.info(f"Bedrock AgentCore client initialized: region={region}, read_timeout=120s, no retries")
    return client


try:
    AGENT_RUNTIME_ARN = _read_agent_runtime_arn()
    bedrock_client = _initialize_bedrock_client()
except ConfigurationError as e:
    logger.error(f"Agent invocation module initialization failed: {e}")
    raise


def new_session_id() -> str:
    """Return a fresh runtime session id (always >= MIN_SESSION_ID_LENGTH chars)."""
    return f"job-sync-{uuid.uuid4()}"


def _extract_output(response_body) -> str:
    """
    Pull the agent's text out of a runtime response body.

    The runtime returns JSON such as {"response": "..."} or {"output": "..."};
    anything that is not JSON is returned as text.
    """
    if isinstance(response_body, bytes):
        response_body = response_body.decode('utf-8', errors='replace')

    try:
        data = json.loads(response_body)
    except json.JSONDecodeError:
        return response_body

    if isinstance(data, dict):
        for key in ('response', 'output', 'result'):
            value = data.get(key)
            if isinstance(value, str):
                return value
            if isinstance(value, dict):
                return json.dumps(value)
        return json.dumps(data)
    return response_body


def invoke_agent(prompt: str, session_id: Optional[str] = None) -> str:
    """
    Invoke the agent runtime with a prompt and wait for the full response.

    Args:
        prompt: Text to send (non-empty)
        session_id: Runtime session id; a new one is generated when None

    Returns:
        str: The agent's output text ("" if the runtime returned no body)

    Raises:
        ValidationException: If prompt or session_id is invalid
        AgentNotFoundException: If the agent runtime does not exist
        ThrottlingException: If the request was throttled
        ClientError: For any other AWS error
    """
    if not prompt or not isinstance(prompt, str):
        raise ValidationException(
            f"Prompt must be a non-empty string. Got: {type(prompt).__name__}"
        )
    if session_id is None:
        session_id = new_session_id()
    elif not isinstance(session_id, str) or len(session_id) < MIN_SESSION_ID_LENGTH:
        raise ValidationException(
            f"session_id must be a string of at least {MIN_SESSION_ID_LENGTH} characters"
        )

    started = time.time()
    logger.info(f"Invoking agent: prompt_length={len(prompt)}, session_id={session_id}")

    try:
        response = bedrock_client.invoke_agent_runtime(
            agentRuntimeArn=AGENT_RUNTIME_ARN,
            runtimeSessionId=session_id,
            payload=json.dumps({"prompt": prompt}),
            qualifier="DEFAULT",
        )
    except ClientError as e:
        error = e.response.get('Error', {})
        code = error.get('Code', 'Unknown')
        message = error.get('Message', str(e))

        if code == 'ResourceNotFoundException':
            logger.error(f"Agent not found: {AGENT_RUNTIME_ARN}: {message}")
            raise AgentNotFoundException(f"Agent not found: {AGENT_RUNTIME_ARN}. Error: {message}")
        if code == 'ThrottlingException':
            logger.error(f"Agent request throttled: {message}")
            raise ThrottlingException(f"Request throttled by Bedrock service: {message}")
        logger.error(f"Agent invocation failed: error_code={code}, error_message={message}")
        raise

    # read() can block until the runtime finishes; read_timeout bounds it
    body = response['response'].read()
    if not body:
        logger.warning("Agent returned empty response")
        return ""

    output = _extract_output(body)
    logger.info(
        f"Agent invocation succeeded: response_length={len(output)}, "
        f"execution_time={time.time() - started:.2f}s"
    )
    return output
