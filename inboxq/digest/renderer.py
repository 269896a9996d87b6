"""
Digest renderer - rich HTML and plain-text bodies.

Both representations carry the same sections, a deep link to every source
message, and, when a cleanup base URL is configured, one cleanup link
carrying the digest's token. All message-derived text is HTML-escaped.
"""

from __future__ import annotations

import html
from dataclasses import dataclass
from datetime import datetime

from inboxq.config import DIGEST_FOOTER
from inboxq.digest.strategies import DigestItem
from inboxq.storage.models import ProcessedEmailRecord

SECTION_TITLES: dict[str, str] = {
    "newsletters": "Newsletters",
    "notifications": "Notifications",
    "receipts": "Receipts & Payments",
    "updates": "Updates",
    "other": "Other",
}


@dataclass
class DigestSection:
    key: str
    items: list[DigestItem]

    @property
    def title(self) -> str:
        return SECTION_TITLES.get(self.key, self.key)


def categorize(record: ProcessedEmailRecord) -> str:
    """Heuristic section for a record, from its labels, sender and subject."""
    labels = ",".join(record.labels_applied).lower()
    subject = (record.subject or "").lower()
    sender = record.from_email.lower()

    if "newsletter" in labels or "newsletter" in sender or "newsletter" in subject:
        return "newsletters"
    if (
        "notification" in labels
        or "noreply" in sender
        or "no-reply" in sender
        or "notification" in sender
    ):
        return "notifications"
    if (
        "receipt" in labels
        or "receipt" in subject
        or "invoice" in subject
        or "payment" in subject
    ):
        return "receipts"
    if "update" in labels or "update" in subject or "changes" in subject:
        return "updates"
    return "other"


def group_records(records: list[ProcessedEmailRecord]) -> dict[str, list[ProcessedEmailRecord]]:
    """Group in fixed section order; empty sections are dropped."""
    groups: dict[str, list[ProcessedEmailRecord]] = {key: [] for key in SECTION_TITLES}
    for record in records:
        groups[categorize(record)].append(record)
    return {key: items for key, items in groups.items() if items}


HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; color: #333;">
  <div style="text-align: center; margin-bottom: 24px;">
    <h1 style="font-size: 24px; margin: 0;">Your Email Digest</h1>
    <p style="color: #666; margin-top: 8px;">{date}</p>
  </div>
{sections}{cleanup}
  <div style="text-align: center; margin-top: 32px; padding-top: 16px; border-top: 1px solid #eee; color: #999; font-size: 12px;">
    {footer}
  </div>
</body>
</html>"""

SECTION_TEMPLATE = """  <div style="margin-bottom: 24px;">
    <h2 style="font-size: 18px; color: #333; margin-bottom: 12px; border-bottom: 1px solid #eee; padding-bottom: 8px;">{title} ({count})</h2>
    <ul style="list-style: none; padding: 0; margin: 0;">
{items}
    </ul>
  </div>
"""

ITEM_TEMPLATE = """      <li style="margin-bottom: 12px; padding: 12px; background: #f9f9f9; border-radius: 8px;">
        <div style="font-weight: 600;"><a href="{message_url}" style="color: #333; text-decoration: none;">{subject}</a></div>
        <div style="font-size: 13px; color: #666; margin-top: 4px;">From: {sender}</div>
        <div style="font-size: 14px; color: #444; margin-top: 8px;">{summary}</div>{links}
      </li>"""

CLEANUP_TEMPLATE = """
  <div style="text-align: center; margin-top: 24px;">
    <a href="{url}" style="display: inline-block; padding: 12px 24px; background: #0066cc; color: #fff; border-radius: 6px; text-decoration: none;">Done reading: clean up these emails</a>
  </div>
"""


def format_digest_date(now: datetime) -> str:
    return f"{now.strftime('%A')}, {now.strftime('%B')} {now.day}, {now.year}"


def cleanup_url(base_url: str | None, token: str) -> str | None:
    if not base_url:
        return None
    return f"{base_url.rstrip('/')}/cleanup/{token}"


class DigestRenderer:
    """Render sections to HTML and text."""

    def __init__(self, message_link_template: str, cleanup_base_url: str | None = None):
        self.message_link_template = message_link_template
        self.cleanup_base_url = cleanup_base_url

    def message_url(self, email_id: str) -> str:
        return self.message_link_template.format(email_id=email_id)

    def render_html(self, sections: list[DigestSection], token: str, now: datetime) -> str:
        section_html = "".join(
            SECTION_TEMPLATE.format(
                title=html.escape(section.title),
                count=len(section.items),
                items="\n".join(self._render_item_html(item) for item in section.items),
            )
            for section in sections
        )

        url = cleanup_url(self.cleanup_base_url, token)
        cleanup = CLEANUP_TEMPLATE.format(url=html.escape(url)) if url else ""

        return HTML_TEMPLATE.format(
            date=format_digest_date(now),
            sections=section_html,
            cleanup=cleanup,
            footer=html.escape(DIGEST_FOOTER),
        )

    def _render_item_html(self, item: DigestItem) -> str:
        links = ""
        if item.links:
            entries = "".join(
                f'\n          <li style="margin-bottom: 4px;"><a href="{html.escape(link.url)}"'
                f' style="color: #0066cc; text-decoration: none;">{html.escape(link.title)}</a></li>'
                for link in item.links
            )
            links = (
                '\n        <ul style="margin-top: 8px; padding-left: 16px; list-style: disc;">'
                f"{entries}\n        </ul>"
            )

        return ITEM_TEMPLATE.format(
            message_url=html.escape(self.message_url(item.email_id)),
            subject=html.escape(item.subject),
            sender=html.escape(item.sender),
            summary=html.escape(item.summary),
            links=links,
        )

    def render_text(self, sections: list[DigestSection], token: str, now: datetime) -> str:
        blocks = []
        for section in sections:
            entries = []
            for item in section.items:
                entry = (
                    f"* {item.subject}\n  From: {item.sender}\n  {item.summary}\n"
                    f"  Open: {self.message_url(item.email_id)}"
                )
                if item.links:
                    entry += "\n  Links:" + "".join(
                        f"\n    - {link.title}: {link.url}" for link in item.links
                    )
                entries.append(entry)
            blocks.append(f"## {section.title} ({len(section.items)})\n\n" + "\n\n".join(entries))

        text = f"# Your Email Digest\n{format_digest_date(now)}\n\n" + "\n\n---\n\n".join(blocks)

        url = cleanup_url(self.cleanup_base_url, token)
        if url:
            text += f"\n\n---\nDone reading? Clean up these emails: {url}"

        return text + f"\n\n---\n{DIGEST_FOOTER}"
