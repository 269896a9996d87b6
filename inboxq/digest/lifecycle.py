"""
DigestLifecycle - pending -> sent -> cleaned.

Exactly one digest is pending at a time; triage attaches every new ledger
row to it. generate() renders the pending digest's eligible records,
send() delivers it, marks it sent and rotates in a fresh pending digest.

The sent-mark and the rotation are separate writes. A crash between them
leaves no pending digest; the next get_pending_digest() creates one, and no
ledger row is lost because rows only ever attach to whatever is pending.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, Field

from inboxq.classification.models import Classification
from inboxq.digest.renderer import DigestRenderer, DigestSection, group_records
from inboxq.digest.strategies import apply_summary_strategy
from inboxq.observability.logging import get_logger
from inboxq.observability.telemetry import counter, log_event, time_block
from inboxq.storage.models import ActionTaken, DigestRecord, ProcessedEmailRecord
from inboxq.utils.email import is_same_address

logger = get_logger(__name__)

DIGEST_CLASSIFICATIONS = frozenset({Classification.LOW_PRIORITY, Classification.FYI})


@dataclass
class RenderedDigest:
    digest_id: int
    cleanup_token: str
    generated_at: datetime
    sections: list[DigestSection]
    total_emails: int
    html_body: str
    text_body: str


class DigestOutcome(BaseModel):
    """Result of generate_and_send_digest, returned by the cron route and CLI."""

    success: bool = True
    sent: bool = False
    digest_id: int | None = None
    email_count: int = 0
    sections: list[dict] = Field(default_factory=list)
    message: str | None = None


def digest_subject(now: datetime) -> str:
    return f"Email Digest - {now.strftime('%b')} {now.day}"


class DigestLifecycle:
    """Owns digest generation and delivery for one account."""

    def __init__(self, store, mailstore, classifier, renderer: DigestRenderer, user_email: str):
        self.store = store
        self.mailstore = mailstore
        self.classifier = classifier
        self.renderer = renderer
        self.user_email = user_email

    def get_pending_digest(self) -> DigestRecord:
        return self.store.get_pending_digest()

    def eligible_records(self, digest_id: int) -> list[ProcessedEmailRecord]:
        """Low-value records worth surfacing, excluding mail we sent ourselves."""
        return [
            record
            for record in self.store.get_records_by_digest(digest_id)
            if (
                record.classification in DIGEST_CLASSIFICATIONS
                or record.action_taken == ActionTaken.ARCHIVED
            )
            and not is_same_address(record.from_email, self.user_email)
        ]

    def generate(self, pending_digest_id: int, now: datetime | None = None) -> RenderedDigest | None:
        """
        Render the digest. Returns None when there is nothing to send; no
        state changes either way.
        """
        digest = self.store.get_digest(pending_digest_id)
        if digest is None:
            logger.warning("Digest %s not found", pending_digest_id)
            return None

        records = self.eligible_records(pending_digest_id)
        if not records:
            logger.info("No emails to include in digest %s", pending_digest_id)
            return None

        logger.info("Generating digest %s for %d emails", pending_digest_id, len(records))
        now = now or datetime.now()

        with time_block("digest.generate.latency"):
            sections = [
                DigestSection(
                    key=key,
                    items=[
                        apply_summary_strategy(record, self.mailstore, self.classifier)
                        for record in group
                    ],
                )
                for key, group in group_records(records).items()
            ]

        return RenderedDigest(
            digest_id=digest.id,
            cleanup_token=digest.cleanup_token,
            generated_at=now,
            sections=sections,
            total_emails=len(records),
            html_body=self.renderer.render_html(sections, digest.cleanup_token, now),
            text_body=self.renderer.render_text(sections, digest.cleanup_token, now),
        )

    def send(self, digest: RenderedDigest) -> DigestRecord:
        """
        Deliver, mark sent, rotate.

        Returns:
            The new pending digest

        Side Effects:
            - Creates and sends a draft to the account owner
            - Marks the digest sent with its count and text summary
            - Creates the next pending digest
        """
        draft_id = self.mailstore.create_draft(
            to=[self.user_email],
            subject=digest_subject(digest.generated_at),
            text_body=digest.text_body,
            html_body=digest.html_body,
        )
        self.mailstore.send(draft_id)

        self.store.mark_digest_sent(digest.digest_id, digest.total_emails, digest.text_body)
        next_pending = self.store.get_pending_digest()

        counter("digest.sent")
        log_event(
            "digest.sent",
            digest_id=digest.digest_id,
            email_count=digest.total_emails,
            next_pending=next_pending.id,
        )
        return next_pending

    def generate_and_send_digest(self) -> DigestOutcome:
        pending = self.get_pending_digest()
        rendered = self.generate(pending.id)

        if rendered is None:
            log_event("digest.nothing_to_send", digest_id=pending.id)
            return DigestOutcome(
                digest_id=pending.id, message="No emails to include in digest"
            )

        self.send(rendered)
        return DigestOutcome(
            sent=True,
            digest_id=rendered.digest_id,
            email_count=rendered.total_emails,
            sections=[
                {"title": section.title, "item_count": len(section.items)}
                for section in rendered.sections
            ],
        )
