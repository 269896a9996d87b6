"""
Store - durable local state on the shared SQLite database.

Owns the processed-email ledger, digest records, the correction log,
sender profiles and the key/value user config. Follows the database
patterns in inboxq/infrastructure/database.py: pooled connections, named
parameters, explicit transactions and lock retries on writes.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import timedelta
from typing import Any

from inboxq.classification.models import Classification
from inboxq.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock
from inboxq.observability.logging import get_logger
from inboxq.storage.models import (
    Correction,
    DigestRecord,
    DigestStatus,
    EmailStats,
    ProcessedEmailRecord,
    RelationshipType,
    SenderProfile,
    utc_now,
)

logger = get_logger(__name__)


class Store:
    """
    Persistence facade consumed by the triage, correction, digest and
    cleanup components.

    Stateless: every call opens (and returns) a pooled connection, so one
    instance can be shared by the triage timer, the digest timer and API
    handlers.
    """

    # ------------------------------------------------------------------
    # Processed-email ledger
    # ------------------------------------------------------------------

    def is_processed(self, email_id: str) -> bool:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM processed_emails WHERE id = ?", (email_id,)
            ).fetchone()
        return row is not None

    @retry_on_db_lock()
    def save_processed_record(self, record: ProcessedEmailRecord) -> None:
        """
        Insert or overwrite the ledger row for record.id (last write wins).

        Side Effects:
            - Writes one row to processed_emails
        """
        with db_transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO processed_emails (
                    id, thread_id, from_email, from_name, subject, received_at,
                    processed_at, classification, confidence, reasoning,
                    content_summary, labels_applied, action_taken, content_format,
                    digest_id
                ) VALUES (
                    :id, :thread_id, :from_email, :from_name, :subject, :received_at,
                    :processed_at, :classification, :confidence, :reasoning,
                    :content_summary, :labels_applied, :action_taken, :content_format,
                    :digest_id
                )
                """,
                record.to_db_dict(),
            )

    def get_record(self, email_id: str) -> ProcessedEmailRecord | None:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT * FROM processed_emails WHERE id = ?", (email_id,)
            ).fetchone()
        return ProcessedEmailRecord.from_db_row(dict(row)) if row else None

    @retry_on_db_lock()
    def update_classification(self, email_id: str, classification: Classification) -> bool:
        """
        Overwrite the classification of an existing ledger row.

        Returns:
            True if a row was updated

        Side Effects:
            - Updates classification and bumps processed_at
        """
        with db_transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE processed_emails
                SET classification = :classification, processed_at = :processed_at
                WHERE id = :id
                """,
                {
                    "id": email_id,
                    "classification": classification.value,
                    "processed_at": utc_now().isoformat(),
                },
            )
        return cursor.rowcount > 0

    def get_records_by_digest(self, digest_id: int) -> list[ProcessedEmailRecord]:
        with get_db_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM processed_emails WHERE digest_id = ? ORDER BY received_at DESC",
                (digest_id,),
            ).fetchall()
        return [ProcessedEmailRecord.from_db_row(dict(row)) for row in rows]

    def get_email_stats(self) -> EmailStats:
        since = (utc_now() - timedelta(hours=24)).isoformat()
        with get_db_connection() as conn:
            total = conn.execute("SELECT COUNT(*) FROM processed_emails").fetchone()[0]
            grouped = conn.execute(
                "SELECT classification, COUNT(*) AS count FROM processed_emails "
                "GROUP BY classification"
            ).fetchall()
            recent = conn.execute(
                "SELECT COUNT(*) FROM processed_emails WHERE processed_at >= ?", (since,)
            ).fetchone()[0]
        return EmailStats(
            total=total,
            by_classification={row["classification"]: row["count"] for row in grouped},
            last_24h=recent,
        )

    # ------------------------------------------------------------------
    # Digests
    # ------------------------------------------------------------------

    @retry_on_db_lock()
    def get_pending_digest(self) -> DigestRecord:
        """
        Return the pending digest, creating one if none exists.

        A unique partial index allows at most one pending row, so a racing
        creator fails on insert and re-reads the winner's row.

        Side Effects:
            - May insert one row into digests with a fresh cleanup token
        """
        existing = self._select_pending()
        if existing:
            return existing

        try:
            return self.create_pending_digest()
        except sqlite3.IntegrityError:
            winner = self._select_pending()
            if winner is None:
                raise
            return winner

    def _select_pending(self) -> DigestRecord | None:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT * FROM digests WHERE status = 'pending' ORDER BY id DESC LIMIT 1"
            ).fetchone()
        return DigestRecord.from_db_row(dict(row)) if row else None

    def create_pending_digest(self) -> DigestRecord:
        """
        Insert a new pending digest with a freshly minted cleanup token.

        Raises:
            sqlite3.IntegrityError: If a pending digest already exists
        """
        token = str(uuid.uuid4())
        now = utc_now()
        with db_transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO digests (cleanup_token, status, generated_at, email_count)
                VALUES (:token, 'pending', :generated_at, 0)
                """,
                {"token": token, "generated_at": now.isoformat()},
            )
            digest_id = cursor.lastrowid

        logger.info("Created pending digest %s", digest_id)
        return DigestRecord(
            id=digest_id,
            cleanup_token=token,
            status=DigestStatus.PENDING,
            generated_at=now,
        )

    @retry_on_db_lock()
    def mark_digest_sent(self, digest_id: int, email_count: int, summary: str) -> None:
        """
        Side Effects:
            - Sets status=sent, sent_at, email_count and summary
        """
        with db_transaction() as conn:
            conn.execute(
                """
                UPDATE digests
                SET status = 'sent', sent_at = :sent_at, email_count = :email_count,
                    summary = :summary
                WHERE id = :id AND status = 'pending'
                """,
                {
                    "id": digest_id,
                    "sent_at": utc_now().isoformat(),
                    "email_count": email_count,
                    "summary": summary,
                },
            )

    @retry_on_db_lock()
    def mark_digest_cleaned(self, digest_id: int) -> None:
        with db_transaction() as conn:
            conn.execute(
                "UPDATE digests SET status = 'cleaned', cleaned_at = :cleaned_at WHERE id = :id",
                {"id": digest_id, "cleaned_at": utc_now().isoformat()},
            )

    def get_digest(self, digest_id: int) -> DigestRecord | None:
        with get_db_connection() as conn:
            row = conn.execute("SELECT * FROM digests WHERE id = ?", (digest_id,)).fetchone()
        return DigestRecord.from_db_row(dict(row)) if row else None

    def get_digest_by_token(self, token: str) -> DigestRecord | None:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT * FROM digests WHERE cleanup_token = ?", (token,)
            ).fetchone()
        return DigestRecord.from_db_row(dict(row)) if row else None

    def get_last_digest(self) -> DigestRecord | None:
        """Most recently generated digest that has left the pending state."""
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT * FROM digests WHERE status != 'pending' "
                "ORDER BY generated_at DESC, id DESC LIMIT 1"
            ).fetchone()
        return DigestRecord.from_db_row(dict(row)) if row else None

    def count_digests(self, status: DigestStatus) -> int:
        with get_db_connection() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM digests WHERE status = ?", (status.value,)
            ).fetchone()[0]

    # ------------------------------------------------------------------
    # Corrections
    # ------------------------------------------------------------------

    @retry_on_db_lock()
    def save_correction(self, correction: Correction) -> int:
        """
        Append a correction row. Corrections are never updated or deleted.

        Returns:
            The new row id
        """
        with db_transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO corrections (
                    email_id, original_classification, corrected_classification,
                    reasoning, email_subject, email_from, email_preview, created_at
                ) VALUES (
                    :email_id, :original_classification, :corrected_classification,
                    :reasoning, :email_subject, :email_from, :email_preview, :created_at
                )
                """,
                correction.to_db_dict(),
            )
            return cursor.lastrowid

    def get_recent_corrections(self, limit: int = 10) -> list[Correction]:
        with get_db_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM corrections ORDER BY created_at DESC, id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [Correction.from_db_row(dict(row)) for row in rows]

    def get_corrections_for_email(self, email_id: str) -> list[Correction]:
        with get_db_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM corrections WHERE email_id = ? ORDER BY id", (email_id,)
            ).fetchall()
        return [Correction.from_db_row(dict(row)) for row in rows]

    # ------------------------------------------------------------------
    # Sender profiles
    # ------------------------------------------------------------------

    def get_sender_profile(self, email: str) -> SenderProfile | None:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT * FROM sender_profiles WHERE email = ?", (email.lower(),)
            ).fetchone()
        return SenderProfile.from_db_row(dict(row)) if row else None

    @retry_on_db_lock()
    def save_sender_profile(self, profile: SenderProfile) -> None:
        data = profile.to_db_dict()
        data["email"] = data["email"].lower()
        with db_transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO sender_profiles (
                    email, domain, relationship_type, formality, emails_received,
                    emails_sent, last_interaction, created_at, updated_at
                ) VALUES (
                    :email, :domain, :relationship_type, :formality, :emails_received,
                    :emails_sent, :last_interaction, :created_at, :updated_at
                )
                """,
                data,
            )

    @retry_on_db_lock()
    def increment_sender_received(self, email: str) -> None:
        now = utc_now().isoformat()
        with db_transaction() as conn:
            conn.execute(
                """
                UPDATE sender_profiles
                SET emails_received = emails_received + 1,
                    last_interaction = :now, updated_at = :now
                WHERE email = :email
                """,
                {"email": email.lower(), "now": now},
            )

    @retry_on_db_lock()
    def update_sender_relationship(self, email: str, relationship: RelationshipType) -> None:
        with db_transaction() as conn:
            conn.execute(
                """
                UPDATE sender_profiles
                SET relationship_type = :relationship, updated_at = :now
                WHERE email = :email
                """,
                {
                    "email": email.lower(),
                    "relationship": relationship.value,
                    "now": utc_now().isoformat(),
                },
            )

    # ------------------------------------------------------------------
    # User config (JSON values)
    # ------------------------------------------------------------------

    def get_config(self, key: str, default: Any = None) -> Any:
        with get_db_connection() as conn:
            row = conn.execute("SELECT value FROM user_config WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed config value for %s", key)
            return default

    @retry_on_db_lock()
    def set_config(self, key: str, value: Any) -> None:
        with db_transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO user_config (key, value, updated_at)
                VALUES (:key, :value, :updated_at)
                """,
                {"key": key, "value": json.dumps(value), "updated_at": utc_now().isoformat()},
            )
