"""
Pytest configuration and fixtures for all tests.
"""

import os
import sys
from datetime import datetime

import pytest

# Add src to Python path before any imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

# Set up test environment variables before importing any modules
os.environ.setdefault('AGENT_RUNTIME_ARN', 'arn:aws:bedrock-agentcore:us-west-2:123456789012:runtime/test-agent-ABC123')
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-west-2')
os.environ.setdefault('LOG_LEVEL', 'INFO')


@pytest.fixture
def received_at():
    """A fixed message timestamp."""
    return datetime(2026, 9, 14, 9, 30)


@pytest.fixture
def multipart_email_bytes():
    """Raw multipart/alternative job email."""
    return b"""From: Acme Recruiting <no-reply@acme.example.com>
To: candidate@example.com
Subject: Thanks for applying to Acme
Date: Mon, 14 Sep 2026 09:30:00 +0000
MIME-Version: 1.0
Content-Type: multipart/alternative; boundary="boundary123"

--boundary123
Content-Type: text/plain; charset="UTF-8"

We received your application for Software Engineer.

--boundary123
Content-Type: text/html; charset="UTF-8"

<html><body><p>We received your application for <b>Software Engineer</b>.</p></body></html>

--boundary123--
"""
