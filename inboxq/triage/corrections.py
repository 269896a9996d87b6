"""
CorrectionLoop - learn from user corrections filed in the mail client.

A user corrects a decision by moving a message into a child folder of
InboxQ-Correction whose name is the instruction, for example
"this is important, it's from my accountant". Each sweep parses the
instruction, records a Correction for future few-shot prompts, relabels the
message and removes the correction artifacts.

A correction that fails before its artifacts are removed stays visible and
is picked up again by the next sweep; every step is safe to repeat.
"""

from __future__ import annotations

from dataclasses import dataclass

from inboxq.config import CORRECTION_QUERY_LIMIT
from inboxq.mailstore.models import Mailbox, MailMessage
from inboxq.observability.logging import get_logger, truncate_subject
from inboxq.observability.telemetry import counter, log_event
from inboxq.storage.models import Correction

logger = get_logger(__name__)


@dataclass(frozen=True)
class PendingCorrection:
    email: MailMessage
    correction_folder: Mailbox
    original_classification: str

    @property
    def text(self) -> str:
        return self.correction_folder.name


class CorrectionLoop:
    """Sweep the correction folder tree and apply what it finds."""

    def __init__(self, mailstore, store, classifier, label_map):
        self.mailstore = mailstore
        self.store = store
        self.classifier = classifier
        self.label_map = label_map

    def scan_for_corrections(self) -> list[PendingCorrection]:
        """
        Collect messages in the correction root or any of its direct children.

        A message found only in the root (no child folder) has no instruction
        and is not a pending correction.
        """
        self.label_map.initialize()
        root_id = self.label_map.correction_folder_id

        mailboxes = self.mailstore.get_mailboxes()
        children = {m.id: m for m in mailboxes if m.parent_id == root_id}

        email_ids: list[str] = []
        for folder_id in [root_id, *children]:
            for email_id in self.mailstore.query_messages(
                {"inMailbox": folder_id}, limit=CORRECTION_QUERY_LIMIT
            ):
                if email_id not in email_ids:
                    email_ids.append(email_id)

        if not email_ids:
            return []

        logger.info("Found %d emails in correction folders", len(email_ids))

        pending: list[PendingCorrection] = []
        for email in self.mailstore.fetch_messages(email_ids):
            folder = next(
                (children[fid] for fid in sorted(email.folder_ids) if fid in children), None
            )
            if folder is None:
                continue

            record = self.store.get_record(email.id)
            original = record.classification.value if record else "unknown"
            pending.append(
                PendingCorrection(
                    email=email, correction_folder=folder, original_classification=original
                )
            )
        return pending

    def process_correction(self, pending: PendingCorrection) -> Correction:
        """
        Apply one correction.

        Side Effects:
            - Calls the classifier to parse the instruction
            - Appends a Correction row and updates the ledger classification
            - Relabels the message
            - Removes the message from the correction folders and tries to
              delete the instruction folder
        """
        email = pending.email
        parsed = self.classifier.parse_correction(pending.text)
        logger.info(
            "Correction for '%s': %s -> %s",
            truncate_subject(email.subject),
            pending.original_classification,
            parsed.classification.value,
        )

        correction = Correction(
            email_id=email.id,
            original_classification=pending.original_classification,
            corrected_classification=parsed.classification,
            reasoning=parsed.reasoning,
            email_subject=email.subject,
            email_from=email.from_email,
            email_preview=email.preview,
        )
        correction_id = self.store.save_correction(correction)
        self.store.update_classification(email.id, parsed.classification)
        self.label_map.apply_classification_label(email.id, parsed.classification)

        self._remove_artifacts(pending)
        return correction.model_copy(update={"id": correction_id})

    def _remove_artifacts(self, pending: PendingCorrection) -> None:
        email_id = pending.email.id
        root_id = self.label_map.correction_folder_id

        if root_id in pending.email.folder_ids:
            self.mailstore.remove_from_folder(email_id, root_id)
        self.mailstore.remove_from_folder(email_id, pending.correction_folder.id)

        try:
            self.mailstore.delete_folder(pending.correction_folder.id)
        except Exception as e:
            # Still holds other messages, or a transient failure; next sweep retries
            counter("corrections.folder_delete_failed")
            logger.info(
                "Could not delete correction folder '%s': %s", pending.correction_folder.name, e
            )

    def run_correction_sweep(self) -> int:
        """
        Process every pending correction.

        Returns:
            Number of corrections applied. Failed items are logged, counted
            and left in place for the next sweep.
        """
        applied = 0
        for pending in self.scan_for_corrections():
            try:
                self.process_correction(pending)
            except Exception as e:
                counter("corrections.failed")
                logger.error("Failed to apply correction for %s: %s", pending.email.id, e)
                continue
            applied += 1
            counter("corrections.applied")

        if applied:
            log_event("corrections.sweep_complete", applied=applied)
        return applied
