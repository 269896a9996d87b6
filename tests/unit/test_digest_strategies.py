"""Tests for per-format digest summaries and newsletter link extraction"""

from __future__ import annotations

import pytest

from inboxq.classification.models import Classification, ContentFormat
from inboxq.digest.link_extractor import (
    ExtractedLink,
    extract_links_with_context,
    extract_story_links,
    is_tracking_url,
    score_link,
)
from inboxq.digest.strategies import (
    STRATEGIES,
    apply_summary_strategy,
    extract_transaction_details,
)
from inboxq.storage.models import ProcessedEmailRecord

NEWSLETTER_HTML = """
<html><body>
  <table><tr><td>
    <p><a href="https://blog.example/how-to-build-a-compiler">How to build a compiler in a weekend</a>
       A practical walkthrough of parsing, type checking and code generation.</p>
    <p><a href="https://news.example/announce">New release announced for the editor</a>
       Version 2 ships with collaborative editing and a plugin API.</p>
    <p><a href="https://blog.example/how-to-build-a-compiler">Duplicate link text</a></p>
    <p><a href="https://x.example/more">more</a></p>
    <p><a href="mailto:editor@news.example">Email the editor</a></p>
    <p><a href="https://news.example/unsubscribe?u=1">Unsubscribe from this list</a></p>
    <p><a href="https://www.facebook.com/newsletter">Our Facebook page</a></p>
    <p><a href="https://news.example/a">ok</a></p>
    <p><a href="https://news.example/raw">https://news.example/raw</a></p>
  </td></tr></table>
  <div>Copyright 2026 <a href="https://news.example/legal">Copyright notice</a></div>
</body></html>
"""


def _record(content_format, **fields):
    fields.setdefault("classification", Classification.LOW_PRIORITY)
    return ProcessedEmailRecord(id="m1", content_format=content_format, **fields)


class StubClassifier:
    def __init__(self, summary="One-line article summary"):
        self.summary = summary
        self.calls = 0

    def summarize_article(self, subject, body_text):
        self.calls += 1
        return self.summary


class TestLinkExtraction:
    def test_filters_and_dedupes(self):
        links = extract_links_with_context(NEWSLETTER_HTML)

        assert [link.url for link in links] == [
            "https://blog.example/how-to-build-a-compiler",
            "https://news.example/announce",
            "https://x.example/more",
        ]

    def test_description_is_surrounding_text(self):
        first = extract_links_with_context(NEWSLETTER_HTML)[0]

        assert first.title == "How to build a compiler in a weekend"
        assert first.description.startswith("A practical walkthrough")

    def test_story_links_are_ranked(self):
        links = extract_story_links(NEWSLETTER_HTML, max_links=2)

        assert [link.url for link in links] == [
            "https://blog.example/how-to-build-a-compiler",
            "https://news.example/announce",
        ]

    def test_generic_titles_score_low(self):
        generic = ExtractedLink(title="more", url="https://x.example/more")
        story = ExtractedLink(
            title="Why small teams ship faster", url="https://blog.example/teams"
        )

        assert score_link(generic) < 0 < score_link(story)

    def test_tracking_urls(self):
        assert is_tracking_url("https://click.mailer.example/abc")
        assert is_tracking_url("https://us1.list-manage.com/track")
        assert not is_tracking_url("https://blog.example/post")

    def test_empty_html(self):
        assert extract_links_with_context("") == []


class TestTransactionDetails:
    def test_amount_reference_and_date(self):
        text = "Thanks! Order #AB-1234 total $1,249.99. Delivery scheduled: October 21, 2026."

        assert extract_transaction_details(text) == [
            "$1,249.99",
            "#AB-1234",
            "October 21, 2026",
        ]

    def test_nothing_found(self):
        assert extract_transaction_details("Thanks for reaching out") == []


class TestStrategies:
    def test_every_format_has_a_strategy(self):
        assert set(STRATEGIES) == set(ContentFormat)

    def test_standard_uses_stored_summary(self, mailstore):
        record = _record(ContentFormat.STANDARD, content_summary="Stored", reasoning="Why")

        item = apply_summary_strategy(record, mailstore, StubClassifier())

        assert item.summary == "Stored"

    def test_standard_falls_back_to_reasoning(self, mailstore):
        record = _record(ContentFormat.STANDARD, reasoning="Why")

        assert apply_summary_strategy(record, mailstore, StubClassifier()).summary == "Why"

    def test_link_collection(self, mailstore):
        email_id = mailstore.deliver(html_body=NEWSLETTER_HTML)
        record = _record(ContentFormat.LINK_COLLECTION, content_summary="Weekly links")
        record.id = email_id

        item = apply_summary_strategy(record, mailstore, StubClassifier())

        assert item.summary.startswith("3 stories/links, including: ")
        assert len(item.links) == 3

    def test_link_collection_without_links(self, mailstore):
        email_id = mailstore.deliver(text_body="Plain text only")
        record = _record(ContentFormat.LINK_COLLECTION)
        record.id = email_id

        item = apply_summary_strategy(record, mailstore, StubClassifier())

        assert item.summary == "Newsletter with links"
        assert item.links == []

    def test_article_asks_classifier_when_no_summary(self, mailstore):
        email_id = mailstore.deliver(text_body="word " * 50)
        record = _record(ContentFormat.ARTICLE)
        record.id = email_id
        classifier = StubClassifier()

        item = apply_summary_strategy(record, mailstore, classifier)

        assert item.summary == "One-line article summary"
        assert classifier.calls == 1

    def test_article_with_stored_summary_skips_classifier(self, mailstore):
        email_id = mailstore.deliver(text_body="word " * 50)
        record = _record(ContentFormat.ARTICLE, content_summary="Already known")
        record.id = email_id
        classifier = StubClassifier()

        item = apply_summary_strategy(record, mailstore, classifier)

        assert item.summary == "Already known"
        assert classifier.calls == 0

    def test_short_article_uses_reasoning(self, mailstore):
        email_id = mailstore.deliver(text_body="Too short")
        record = _record(ContentFormat.ARTICLE, reasoning="Essay")
        record.id = email_id

        assert apply_summary_strategy(record, mailstore, StubClassifier()).summary == "Essay"

    @pytest.mark.parametrize(
        "summary, expected",
        [("Short news", "Short news"), ("y" * 150, "y" * 100 + "...")],
    )
    def test_announcement_truncates(self, mailstore, summary, expected):
        record = _record(ContentFormat.ANNOUNCEMENT, content_summary=summary)

        assert apply_summary_strategy(record, mailstore, StubClassifier()).summary == expected

    def test_transactional_appends_details(self, mailstore):
        email_id = mailstore.deliver(text_body="Your order #ZX9 of $42.00 has shipped.")
        record = _record(ContentFormat.TRANSACTIONAL, content_summary="Order shipped")
        record.id = email_id

        item = apply_summary_strategy(record, mailstore, StubClassifier())

        assert item.summary == "Order shipped ($42.00 | #ZX9)"

    def test_failure_falls_back_to_reasoning(self, mailstore):
        record = _record(ContentFormat.ARTICLE, reasoning="Long read")

        item = apply_summary_strategy(record, mailstore, StubClassifier())

        assert item.summary == "Long read"
