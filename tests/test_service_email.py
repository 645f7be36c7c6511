"""
Tests for email service: subject filter, MIME parsing, body and sender extraction.
"""

import itertools
import pytest
import sys
import os
from datetime import datetime, timezone
from unittest.mock import patch

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

from domain.models import BodyPart, Envelope, RawMessage
from services import email


def make_raw(parts, sender="Acme <jobs@acme.com>", subject="Application received"):
    return RawMessage(
        message_id="42",
        envelope=Envelope(subject=subject, sender=sender, received_at=None),
        body_parts=[BodyPart(content_type=ct, text=text) for ct, text in parts],
    )


class TestIsJobRelated:
    """Test the subject keyword filter."""

    @pytest.mark.parametrize("subject", [
        "Thanks for applying to Acme",
        "THANK YOU FOR APPLYING",
        "Your application to Globex",
        "You applied for Data Engineer",
        "Follow-up on your interview",
        "Status update",
        "Acme Recruiting",
        "Thanks from the Initech team",
    ])
    def test_matching_subjects(self, subject):
        assert email.is_job_related(subject) is True

    @pytest.mark.parametrize("subject", [
        "Weekly newsletter",
        "Your order has shipped",
        "",
        None,
    ])
    def test_non_matching_subjects(self, subject):
        assert email.is_job_related(subject) is False

    def test_every_default_keyword_matches_on_its_own(self):
        for keyword in email.DEFAULT_JOB_KEYWORDS:
            assert email.is_job_related(f"xx {keyword.upper()} yy") is True

    def test_custom_keywords_replace_defaults(self):
        assert email.is_job_related("Interview invitation", keywords=["interview"]) is True
        assert email.is_job_related("Application received", keywords=["interview"]) is False


class TestLoadJobKeywords:
    """Test keyword configuration from the environment."""

    @patch.dict(os.environ, {'JOB_SUBJECT_KEYWORDS': ' Interview , Offer,,'})
    def test_from_env(self):
        assert email.load_job_keywords() == ("interview", "offer")

    @patch.dict(os.environ, {'JOB_SUBJECT_KEYWORDS': ' , '})
    def test_blank_env_falls_back_to_defaults(self):
        assert email.load_job_keywords() == email.DEFAULT_JOB_KEYWORDS

    def test_unset_env_uses_defaults(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop('JOB_SUBJECT_KEYWORDS', None)
            assert email.load_job_keywords() == email.DEFAULT_JOB_KEYWORDS


class TestExtractBody:
    """Test plain-text precedence and HTML fallback."""

    def test_plain_text_part(self):
        raw = make_raw([("text/plain", "Hello plain\n")])

        # Plain text is returned as-is, not trimmed
        assert email.extract_body(raw) == "Hello plain\n"

    def test_plain_text_wins_under_any_order(self):
        parts = [
            ("text/html", "<p>HTML version</p>"),
            ("text/plain", "Plain version"),
            ("image/png", ""),
            ("text/html", "<p>Another HTML</p>"),
        ]
        for permutation in itertools.permutations(parts):
            assert email.extract_body(make_raw(list(permutation))) == "Plain version"

    def test_first_plain_text_part_short_circuits(self):
        raw = make_raw([
            ("text/plain", "First"),
            ("text/plain", "Second"),
        ])

        assert email.extract_body(raw) == "First"

    def test_html_only(self):
        raw = make_raw([("text/html", "<b>Hello</b>&nbsp;World")])

        assert email.extract_body(raw) == "Hello World"

    def test_html_fallback_uses_last_html_part(self):
        raw = make_raw([
            ("text/html", "<p>first</p>"),
            ("text/html", "<p>second</p>"),
        ])

        assert email.extract_body(raw) == "second"

    def test_no_text_parts(self):
        raw = make_raw([
            ("application/pdf", ""),
            ("image/png", ""),
        ])

        assert email.extract_body(raw) == ""

    def test_no_parts(self):
        assert email.extract_body(make_raw([])) == ""

    def test_parts_without_media_type_are_skipped(self):
        raw = make_raw([
            ("", "no header"),
            ("text/html", "<i>fallback</i>"),
        ])

        assert email.extract_body(raw) == "fallback"


class TestStripHtmlTags:
    """Test HTML tag stripping."""

    def test_strips_tags_and_nbsp(self):
        assert email.strip_html_tags("  <div><b>Hello</b>&nbsp;World</div>\n") == "Hello World"

    def test_plain_string_unchanged(self):
        assert email.strip_html_tags("no markup") == "no markup"


class TestExtractSender:
    """Test sender extraction."""

    def test_display_name_and_address(self):
        assert email.extract_sender(make_raw([], sender="Acme Jobs <jobs@acme.com>")) == "jobs@acme.com"

    def test_bare_address(self):
        assert email.extract_sender(make_raw([], sender="hr@globex.io")) == "hr@globex.io"

    def test_first_address_wins(self):
        raw = make_raw([], sender="a@one.com, b@two.com")

        assert email.extract_sender(raw) == "a@one.com"

    def test_missing_sender(self):
        assert email.extract_sender(make_raw([], sender="")) == ""

    def test_no_envelope(self):
        assert email.extract_sender(RawMessage(message_id="1", envelope=None)) == ""

    def test_address_without_host(self):
        assert email.extract_sender(make_raw([], sender="undisclosed-recipients")) == ""


class TestParseRawMessage:
    """Test parsing RFC 822 bytes into RawMessage."""

    def test_multipart_message(self, multipart_email_bytes):
        raw = email.parse_raw_message("7", multipart_email_bytes)

        assert raw.message_id == "7"
        assert raw.subject == "Thanks for applying to Acme"
        assert raw.sender == "Acme Recruiting <no-reply@acme.example.com>"
        assert raw.received_at == datetime(2026, 9, 14, 9, 30, tzinfo=timezone.utc)
        assert [p.content_type for p in raw.body_parts] == ["text/plain", "text/html"]
        assert email.extract_body(raw).strip() == "We received your application for Software Engineer."
        assert email.extract_sender(raw) == "no-reply@acme.example.com"

    def test_encoded_subject_is_decoded(self):
        content = (
            b"From: hr@acme.com\r\n"
            b"Subject: =?utf-8?q?Application_re=C3=A7ue?=\r\n"
            b"Content-Type: text/plain; charset=utf-8\r\n"
            b"\r\n"
            b"Body\r\n"
        )

        raw = email.parse_raw_message("1", content)

        assert raw.subject == "Application reçue"

    def test_base64_part_is_decoded(self):
        content = (
            b"From: hr@acme.com\r\n"
            b"Subject: Update\r\n"
            b"Content-Type: text/plain; charset=utf-8\r\n"
            b"Content-Transfer-Encoding: base64\r\n"
            b"\r\n"
            b"SGVsbG8gZnJvbSBBY21l\r\n"
        )

        raw = email.parse_raw_message("1", content)

        assert email.extract_body(raw) == "Hello from Acme"

    def test_single_part_without_content_type_has_no_body(self):
        content = b"From: hr@acme.com\r\nSubject: Update\r\n\r\nBody without headers\r\n"

        raw = email.parse_raw_message("1", content)

        assert raw.body_parts[0].content_type == ""
        assert email.extract_body(raw) == ""

    def test_charset_parameter_is_honored(self):
        content = (
            b"From: hr@acme.com\r\n"
            b"Subject: Application\r\n"
            b"Content-Type: text/plain; charset=\"iso-8859-1\"\r\n"
            b"Content-Transfer-Encoding: 8bit\r\n"
            b"\r\n"
        ) + "Café".encode('iso-8859-1')

        raw = email.parse_raw_message("1", content)

        assert email.extract_body(raw) == "Café"

    def test_missing_charset_defaults_to_utf8(self):
        content = (
            b"From: hr@acme.com\r\n"
            b"Subject: Application\r\n"
            b"Content-Type: text/plain\r\n"
            b"Content-Transfer-Encoding: 8bit\r\n"
            b"\r\n"
        ) + "naïve".encode('utf-8')

        raw = email.parse_raw_message("1", content)

        assert email.extract_body(raw) == "naïve"

    def test_unknown_charset_falls_back_to_utf8(self):
        content = (
            b"From: hr@acme.com\r\n"
            b"Subject: Application\r\n"
            b"Content-Type: text/plain; charset=x-unknown\r\n"
            b"Content-Transfer-Encoding: 8bit\r\n"
            b"\r\n"
        ) + "naïve".encode('utf-8')

        raw = email.parse_raw_message("1", content)

        assert email.extract_body(raw) == "naïve"

    def test_quoted_parameter_with_semicolon(self):
        content = (
            b"From: hr@acme.com\r\n"
            b"Subject: Application\r\n"
            b"Content-Type: text/plain; name=\"offer;letter.txt\"; charset=\"iso-8859-1\"\r\n"
            b"Content-Transfer-Encoding: 8bit\r\n"
            b"\r\n"
        ) + "Résumé".encode('iso-8859-1')

        raw = email.parse_raw_message("1", content)

        assert raw.body_parts[0].content_type == "text/plain"
        assert email.extract_body(raw) == "Résumé"

    def test_media_type_is_lower_cased(self):
        content = b"From: hr@acme.com\r\nContent-Type: Text/Plain; charset=utf-8\r\n\r\nUpper"

        raw = email.parse_raw_message("1", content)

        assert raw.body_parts[0].content_type == "text/plain"
        assert email.extract_body(raw) == "Upper"

    def test_malformed_content_type_is_skipped(self):
        content = (
            b"From: hr@acme.com\r\n"
            b"Subject: Update\r\n"
            b"MIME-Version: 1.0\r\n"
            b"Content-Type: multipart/mixed; boundary=\"b1\"\r\n"
            b"\r\n"
            b"--b1\r\n"
            b"Content-Type: garbage\r\n"
            b"\r\n"
            b"bad header\r\n"
            b"--b1\r\n"
            b"Content-Type: text/html; charset=utf-8\r\n"
            b"\r\n"
            b"<i>fallback</i>\r\n"
            b"--b1--\r\n"
        )

        raw = email.parse_raw_message("1", content)

        assert [p.content_type for p in raw.body_parts] == ["", "text/html"]
        assert email.extract_body(raw) == "fallback"

    def test_missing_date(self):
        raw = email.parse_raw_message("1", b"From: hr@acme.com\r\nSubject: Update\r\n\r\nx\r\n")

        assert raw.envelope is not None
        assert raw.received_at is None

    def test_no_envelope_headers(self):
        raw = email.parse_raw_message("1", b"Content-Type: text/plain\r\n\r\nOrphan body\r\n")

        assert raw.envelope is None
        assert raw.subject == ""


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
