"""
Per-format summarization for digest items.

STRATEGIES is a static table keyed by ContentFormat. Adding a format means
adding one enum member and one table entry. Strategies that need the full
message body declare it; apply_summary_strategy fetches the body for them
and falls back to the stored reasoning on any failure, so summarization
never blocks digest assembly.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field

from inboxq.classification.models import ContentFormat
from inboxq.config import (
    ANNOUNCEMENT_SUMMARY_MAX_CHARS,
    ARTICLE_MIN_BODY_CHARS,
    LINK_COLLECTION_MAX_LINKS,
)
from inboxq.digest.link_extractor import ExtractedLink, extract_story_links
from inboxq.mailstore.models import MailMessage
from inboxq.observability.logging import get_logger
from inboxq.observability.telemetry import counter
from inboxq.storage.models import ProcessedEmailRecord

logger = get_logger(__name__)

AMOUNT_PATTERN = re.compile(r"\$[\d,]+\.?\d*")
REFERENCE_PATTERN = re.compile(r"(?:order|confirmation|tracking)[#:\s]*([A-Z0-9-]+)", re.IGNORECASE)
DATE_PATTERN = re.compile(
    r"(?:date|on|scheduled)[:\s]*([\w\s,]+\d{1,2}(?:st|nd|rd|th)?[,\s]+\d{4})", re.IGNORECASE
)


@dataclass
class DigestItem:
    email_id: str
    sender: str
    subject: str
    summary: str
    content_format: ContentFormat = ContentFormat.STANDARD
    links: list[ExtractedLink] = field(default_factory=list)


@dataclass(frozen=True)
class SummaryStrategy:
    needs_body: bool
    summarize: Callable[[ProcessedEmailRecord, MailMessage | None, object], DigestItem]


def _item(record: ProcessedEmailRecord, summary: str, **extra) -> DigestItem:
    return DigestItem(
        email_id=record.id,
        sender=record.display_sender,
        subject=record.display_subject,
        summary=summary,
        content_format=record.content_format,
        **extra,
    )


def _stored_summary(record: ProcessedEmailRecord) -> str:
    return record.content_summary or record.reasoning or "No summary available"


def summarize_standard(record, body, classifier) -> DigestItem:
    return _item(record, _stored_summary(record))


def summarize_link_collection(record, body, classifier) -> DigestItem:
    links: list[ExtractedLink] = []
    html = body.body_html() if body else None
    if html:
        links = extract_story_links(html, LINK_COLLECTION_MAX_LINKS)

    if links:
        topics = ", ".join(link.title for link in links[:3])
        summary = f"{len(links)} stories/links, including: {topics}"
    else:
        summary = record.content_summary or record.reasoning or "Newsletter with links"
    return _item(record, summary, links=links)


def summarize_article(record, body, classifier) -> DigestItem:
    summary = record.content_summary
    if not summary and body is not None:
        text = body.body_text()
        if len(text) > ARTICLE_MIN_BODY_CHARS:
            summary = classifier.summarize_article(record.subject, text)
    return _item(record, summary or record.reasoning or "Article content")


def summarize_announcement(record, body, classifier) -> DigestItem:
    summary = record.content_summary or record.reasoning or "Announcement"
    if len(summary) > ANNOUNCEMENT_SUMMARY_MAX_CHARS:
        summary = summary[:ANNOUNCEMENT_SUMMARY_MAX_CHARS] + "..."
    return _item(record, summary)


def extract_transaction_details(text: str) -> list[str]:
    """Amount, order/confirmation/tracking reference and date, when present."""
    details: list[str] = []
    if match := AMOUNT_PATTERN.search(text):
        details.append(match.group(0))
    if match := REFERENCE_PATTERN.search(text):
        details.append(f"#{match.group(1)}")
    if match := DATE_PATTERN.search(text):
        details.append(match.group(1).strip())
    return details


def summarize_transactional(record, body, classifier) -> DigestItem:
    summary = record.content_summary or record.reasoning or "Transaction/confirmation"
    if body is not None:
        details = extract_transaction_details(body.body_text())
        if details:
            summary = f"{summary} ({' | '.join(details)})"
    return _item(record, summary)


STRATEGIES: dict[ContentFormat, SummaryStrategy] = {
    ContentFormat.STANDARD: SummaryStrategy(needs_body=False, summarize=summarize_standard),
    ContentFormat.LINK_COLLECTION: SummaryStrategy(
        needs_body=True, summarize=summarize_link_collection
    ),
    ContentFormat.ARTICLE: SummaryStrategy(needs_body=True, summarize=summarize_article),
    ContentFormat.ANNOUNCEMENT: SummaryStrategy(
        needs_body=False, summarize=summarize_announcement
    ),
    ContentFormat.TRANSACTIONAL: SummaryStrategy(
        needs_body=True, summarize=summarize_transactional
    ),
}


def apply_summary_strategy(record: ProcessedEmailRecord, mailstore, classifier) -> DigestItem:
    """
    Summarize one ledger record for the digest.

    Side Effects:
        - Fetches the message body for strategies that need it
        - May call the classifier (article summaries)
    """
    strategy = STRATEGIES[record.content_format]
    try:
        body = mailstore.fetch_message_body(record.id) if strategy.needs_body else None
        return strategy.summarize(record, body, classifier)
    except Exception as e:
        counter("digest.strategy_fallback")
        logger.warning(
            "Summary strategy %s failed for %s: %s", record.content_format.value, record.id, e
        )
        return _item(record, record.reasoning or "No summary available")
