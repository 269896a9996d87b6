"""
Storage models for the processed-email ledger, digests, corrections and
sender profiles.

Each model converts to and from a SQLite row via to_db_dict()/from_db_row().
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from inboxq.classification.models import Classification, ContentFormat


def utc_now() -> datetime:
    """Return current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def _parse_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_labels(value: str | None) -> list[str]:
    """JSON array; rows written before labels were JSON hold a comma-joined string."""
    if not value:
        return []
    if value.startswith("["):
        return [str(label) for label in json.loads(value)]
    return [label for label in value.split(",") if label]


class ActionTaken(str, Enum):
    """What triage did to the message besides labeling."""

    LABELED = "labeled"  # label-only mode, or passthrough
    ARCHIVED = "archived"  # triage mode, low-priority
    KEPT = "kept"  # triage mode, everything else


class DigestStatus(str, Enum):
    """Digest lifecycle. pending -> sent -> cleaned, never backwards."""

    PENDING = "pending"
    SENT = "sent"
    CLEANED = "cleaned"


class ProcessedEmailRecord(BaseModel):
    """
    One ledger row per message id.

    Re-processing overwrites in place; rows are never deleted.
    """

    model_config = ConfigDict(frozen=False)

    id: str = Field(..., description="Remote message id (primary key)")
    thread_id: str | None = Field(default=None)
    from_email: str = Field(default="unknown")
    from_name: str | None = Field(default=None)
    subject: str | None = Field(default=None)
    received_at: str | None = Field(default=None, description="Remote receivedAt, verbatim")
    processed_at: datetime = Field(default_factory=utc_now)
    classification: Classification
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reasoning: str = Field(default="")
    content_summary: str = Field(default="")
    labels_applied: list[str] = Field(default_factory=list)
    action_taken: ActionTaken = Field(default=ActionTaken.LABELED)
    content_format: ContentFormat = Field(default=ContentFormat.STANDARD)
    digest_id: int | None = Field(default=None, description="Owning digest")

    @property
    def display_sender(self) -> str:
        return self.from_name or self.from_email

    @property
    def display_subject(self) -> str:
        return self.subject or "(no subject)"

    def to_db_dict(self) -> dict[str, Any]:
        """Convert to dict for database storage."""
        return {
            "id": self.id,
            "thread_id": self.thread_id,
            "from_email": self.from_email,
            "from_name": self.from_name,
            "subject": self.subject,
            "received_at": self.received_at,
            "processed_at": self.processed_at.isoformat(),
            "classification": self.classification.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "content_summary": self.content_summary,
            "labels_applied": json.dumps(self.labels_applied),
            "action_taken": self.action_taken.value,
            "content_format": self.content_format.value,
            "digest_id": self.digest_id,
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> ProcessedEmailRecord:
        """Create record from database row."""
        return cls(
            id=row["id"],
            thread_id=row.get("thread_id"),
            from_email=row.get("from_email") or "unknown",
            from_name=row.get("from_name"),
            subject=row.get("subject"),
            received_at=row.get("received_at"),
            processed_at=_parse_dt(row.get("processed_at")) or utc_now(),
            classification=Classification(row["classification"]),
            confidence=row.get("confidence") if row.get("confidence") is not None else 0.5,
            reasoning=row.get("reasoning") or "",
            content_summary=row.get("content_summary") or "",
            labels_applied=_parse_labels(row.get("labels_applied")),
            action_taken=ActionTaken(row.get("action_taken") or "labeled"),
            content_format=ContentFormat.parse(row.get("content_format")),
            digest_id=row.get("digest_id"),
        )


class DigestRecord(BaseModel):
    """
    A batch of ledger entries rendered and sent together.

    Exactly one row is pending at any time; the cleanup token is minted at
    creation and never changes.
    """

    model_config = ConfigDict(frozen=False)

    id: int
    cleanup_token: str
    status: DigestStatus = Field(default=DigestStatus.PENDING)
    generated_at: datetime = Field(default_factory=utc_now)
    sent_at: datetime | None = None
    cleaned_at: datetime | None = None
    email_count: int = 0
    summary: str | None = None

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> DigestRecord:
        return cls(
            id=row["id"],
            cleanup_token=row["cleanup_token"],
            status=DigestStatus(row["status"]),
            generated_at=_parse_dt(row.get("generated_at")) or utc_now(),
            sent_at=_parse_dt(row.get("sent_at")),
            cleaned_at=_parse_dt(row.get("cleaned_at")),
            email_count=row.get("email_count") or 0,
            summary=row.get("summary"),
        )


class Correction(BaseModel):
    """Append-only learning record written by the correction sweep."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    email_id: str
    original_classification: str = Field(
        ..., description="Prior classification value, or 'unknown' without a ledger row"
    )
    corrected_classification: Classification
    reasoning: str = ""
    email_subject: str | None = None
    email_from: str | None = None
    email_preview: str | None = None
    created_at: datetime = Field(default_factory=utc_now)

    def to_db_dict(self) -> dict[str, Any]:
        return {
            "email_id": self.email_id,
            "original_classification": self.original_classification,
            "corrected_classification": self.corrected_classification.value,
            "reasoning": self.reasoning,
            "email_subject": self.email_subject,
            "email_from": self.email_from,
            "email_preview": self.email_preview,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> Correction:
        return cls(
            id=row.get("id"),
            email_id=row["email_id"],
            original_classification=row["original_classification"],
            corrected_classification=Classification(row["corrected_classification"]),
            reasoning=row.get("reasoning") or "",
            email_subject=row.get("email_subject"),
            email_from=row.get("email_from"),
            email_preview=row.get("email_preview"),
            created_at=_parse_dt(row.get("created_at")) or utc_now(),
        )


class RelationshipType(str, Enum):
    SERVICE = "service"
    BUSINESS = "business"
    PERSONAL = "personal"
    VIP = "vip"
    UNKNOWN = "unknown"


class SenderProfile(BaseModel):
    """What we know about a correspondent."""

    model_config = ConfigDict(frozen=False)

    email: str
    domain: str
    relationship_type: RelationshipType = RelationshipType.UNKNOWN
    formality: float = Field(default=0.5, ge=0.0, le=1.0)
    emails_received: int = 0
    emails_sent: int = 0
    last_interaction: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def to_db_dict(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "domain": self.domain,
            "relationship_type": self.relationship_type.value,
            "formality": self.formality,
            "emails_received": self.emails_received,
            "emails_sent": self.emails_sent,
            "last_interaction": _iso(self.last_interaction),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> SenderProfile:
        return cls(
            email=row["email"],
            domain=row["domain"],
            relationship_type=RelationshipType(row.get("relationship_type") or "unknown"),
            formality=row.get("formality") if row.get("formality") is not None else 0.5,
            emails_received=row.get("emails_received") or 0,
            emails_sent=row.get("emails_sent") or 0,
            last_interaction=_parse_dt(row.get("last_interaction")),
            created_at=_parse_dt(row.get("created_at")) or utc_now(),
            updated_at=_parse_dt(row.get("updated_at")) or utc_now(),
        )


class EmailStats(BaseModel):
    """Ledger summary for the stats command and health checks."""

    total: int = 0
    by_classification: dict[str, int] = Field(default_factory=dict)
    last_24h: int = 0
