"""Tests for digest sectioning and HTML/text rendering"""

from __future__ import annotations

from datetime import datetime

import pytest

from inboxq.classification.models import Classification
from inboxq.digest.link_extractor import ExtractedLink
from inboxq.digest.renderer import (
    DigestRenderer,
    DigestSection,
    categorize,
    cleanup_url,
    format_digest_date,
    group_records,
)
from inboxq.digest.strategies import DigestItem
from inboxq.storage.models import ProcessedEmailRecord

NOW = datetime(2026, 10, 19, 17, 0)


def _record(email_id, subject="Hello", from_email="alice@example.com", labels=()):
    return ProcessedEmailRecord(
        id=email_id,
        subject=subject,
        from_email=from_email,
        labels_applied=list(labels),
        classification=Classification.FYI,
    )


@pytest.mark.parametrize(
    "record, section",
    [
        (_record("a", subject="The Weekly Newsletter"), "newsletters"),
        (_record("b", from_email="noreply@service.example"), "notifications"),
        (_record("c", subject="Your invoice for October"), "receipts"),
        (_record("d", labels=["receipt"]), "receipts"),
        (_record("e", subject="Policy changes"), "updates"),
        (_record("f", subject="Lunch?"), "other"),
    ],
)
def test_categorize(record, section):
    assert categorize(record) == section


def test_group_records_keeps_fixed_order_and_drops_empty():
    groups = group_records(
        [
            _record("x", subject="Lunch?"),
            _record("y", subject="Payment received"),
            _record("z", subject="Newsletter #12"),
        ]
    )

    assert list(groups) == ["newsletters", "receipts", "other"]
    assert [r.id for r in groups["receipts"]] == ["y"]


def test_format_digest_date():
    assert format_digest_date(NOW) == "Monday, October 19, 2026"


@pytest.mark.parametrize(
    "base, expected",
    [
        ("https://inboxq.example.com/", "https://inboxq.example.com/cleanup/tok"),
        ("https://inboxq.example.com", "https://inboxq.example.com/cleanup/tok"),
        (None, None),
        ("", None),
    ],
)
def test_cleanup_url(base, expected):
    assert cleanup_url(base, "tok") == expected


class TestDigestRenderer:
    @pytest.fixture
    def sections(self):
        return [
            DigestSection(
                key="newsletters",
                items=[
                    DigestItem(
                        email_id="m1",
                        sender="Dev Weekly",
                        subject="Issue #42",
                        summary="2 stories/links, including: A, B",
                        links=[
                            ExtractedLink(title="A story", url="https://a.example/1"),
                            ExtractedLink(title="B story", url="https://b.example/2"),
                        ],
                    )
                ],
            ),
            DigestSection(
                key="other",
                items=[
                    DigestItem(
                        email_id="m2",
                        sender="Mallory <script>",
                        subject="<b>Hi</b> & welcome",
                        summary="Says hi",
                    )
                ],
            ),
        ]

    @pytest.fixture
    def renderer(self):
        return DigestRenderer(
            message_link_template="https://mail.example.com/m/{email_id}",
            cleanup_base_url="https://inboxq.example.com",
        )

    def test_text_body(self, renderer, sections):
        text = renderer.render_text(sections, "tok123", NOW)

        assert text.startswith("# Your Email Digest\nMonday, October 19, 2026\n\n")
        assert text.index("## Newsletters (1)") < text.index("## Other (1)")
        assert "  Open: https://mail.example.com/m/m1" in text
        assert "    - A story: https://a.example/1" in text
        assert (
            "Done reading? Clean up these emails: https://inboxq.example.com/cleanup/tok123"
            in text
        )
        assert text.endswith("---\nGenerated by InboxQ")

    def test_html_body_escapes_message_text(self, renderer, sections):
        body = renderer.render_html(sections, "tok123", NOW)

        assert "&lt;b&gt;Hi&lt;/b&gt; &amp; welcome" in body
        assert "Mallory &lt;script&gt;" in body
        assert "<script>" not in body
        assert 'href="https://mail.example.com/m/m2"' in body
        assert 'href="https://inboxq.example.com/cleanup/tok123"' in body
        assert "Newsletters (1)" in body
        assert "Generated by InboxQ" in body

    def test_no_cleanup_link_without_base_url(self, sections):
        renderer = DigestRenderer("https://mail.example.com/m/{email_id}")

        assert "cleanup" not in renderer.render_text(sections, "tok", NOW).lower()
        assert "/cleanup/" not in renderer.render_html(sections, "tok", NOW)

    def test_section_title_falls_back_to_key(self):
        assert DigestSection(key="custom", items=[]).title == "custom"
