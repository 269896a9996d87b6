"""
CleanupReconciler - one-click bulk cleanup behind a digest's cleanup link.

For every message the digest referenced, observe where it is now and strip
its classification labels:

    - gone from the store         -> deleted
    - back in the inbox           -> kept (the user pulled it back)
    - anywhere else               -> archived

The remote store discards a message whose folder membership becomes empty,
so a message that lives only in classification folders is added to the
archive folder before its labels are removed.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from inboxq.observability.logging import get_logger
from inboxq.observability.telemetry import counter, log_event
from inboxq.storage.models import DigestStatus, ProcessedEmailRecord

logger = get_logger(__name__)

INVALID_TOKEN_ERROR = "Invalid or expired token"
INBOX_NOT_FOUND_ERROR = "Inbox mailbox not found"


class CleanupOutcome(str, Enum):
    ARCHIVED = "archived"
    KEPT = "kept"
    DELETED = "deleted"


class CleanupResult(BaseModel):
    success: bool
    archived: int = 0
    kept: int = 0
    deleted: int = 0
    already_cleaned: bool = False
    error: str | None = None

    @classmethod
    def failure(cls, error: str) -> CleanupResult:
        return cls(success=False, error=error)


class CleanupReconciler:
    def __init__(self, store, mailstore, label_map):
        self.store = store
        self.mailstore = mailstore
        self.label_map = label_map

    def cleanup(self, token: str) -> CleanupResult:
        """
        Reconcile every message of the digest identified by token.

        Counts are only reported on success; every error result carries
        zero counts. Replaying a link for a cleaned digest is a no-op.

        Side Effects:
            - Strips classification folder membership from each message
            - May add orphan-risk messages to the archive folder
            - Marks the digest cleaned
        """
        try:
            return self._cleanup(token)
        except Exception as e:
            logger.error("Cleanup failed: %s", e)
            return CleanupResult.failure(f"Cleanup failed: {e}")

    def _cleanup(self, token: str) -> CleanupResult:
        digest = self.store.get_digest_by_token(token)
        if digest is None:
            logger.info("Cleanup requested with unknown token")
            return CleanupResult.failure(INVALID_TOKEN_ERROR)

        if digest.status == DigestStatus.CLEANED:
            logger.info("Digest %s already cleaned", digest.id)
            return CleanupResult(success=True, already_cleaned=True)

        records = self.store.get_records_by_digest(digest.id)
        if not records:
            self.store.mark_digest_cleaned(digest.id)
            return CleanupResult(success=True)

        inbox = self.mailstore.find_folder_by_role("inbox")
        if inbox is None:
            logger.error("Cleanup aborted for digest %s: inbox not found", digest.id)
            return CleanupResult.failure(INBOX_NOT_FOUND_ERROR)

        archive = self.mailstore.find_folder_by_role("archive")
        self.label_map.initialize()

        counts = {outcome: 0 for outcome in CleanupOutcome}
        for record in records:
            outcome = self._reconcile(record, inbox.id, archive.id if archive else None)
            counts[outcome] += 1
            counter(f"cleanup.{outcome.value}")

        self.store.mark_digest_cleaned(digest.id)

        result = CleanupResult(
            success=True,
            archived=counts[CleanupOutcome.ARCHIVED],
            kept=counts[CleanupOutcome.KEPT],
            deleted=counts[CleanupOutcome.DELETED],
        )
        log_event(
            "cleanup.complete",
            digest_id=digest.id,
            archived=result.archived,
            kept=result.kept,
            deleted=result.deleted,
        )
        return result

    def _reconcile(
        self, record: ProcessedEmailRecord, inbox_id: str, archive_id: str | None
    ) -> CleanupOutcome:
        try:
            found = self.mailstore.fetch_messages([record.id], ["id", "mailboxIds"])
            if not found:
                return CleanupOutcome.DELETED

            folder_ids = found[0].folder_ids
            in_inbox = inbox_id in folder_ids
            remaining = folder_ids - self.label_map.classification_folder_ids

            if not remaining and archive_id:
                self.mailstore.add_to_folder(record.id, archive_id)

            self.label_map.remove_all_classification_labels(record.id)
        except Exception as e:
            logger.warning("Cleanup of %s failed, counting as deleted: %s", record.id, e)
            return CleanupOutcome.DELETED

        return CleanupOutcome.KEPT if in_inbox else CleanupOutcome.ARCHIVED
