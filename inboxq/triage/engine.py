"""
TriageLoop - poll the inbox, classify new mail and file it.

One cycle:
    1. Run the correction sweep so fresh corrections inform this cycle
    2. Query up to 500 inbox ids, newest first
    3. Drop ids already in the ledger
    4. Keep at most 50
    5. Fetch them; set aside self-sent and already-labeled messages, which
       get a passthrough ledger row so they are not fetched again
    6. Classify, label and record the rest one at a time

A failure on one message is logged and skips that message only. It is
retried on a later cycle as long as no ledger row was written for it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from inboxq.classification.models import (
    Classification,
    ClassificationResult,
    ClassifierConfig,
    ContentFormat,
)
from inboxq.classification.rules import build_config_from_store
from inboxq.config import (
    INBOX_QUERY_LIMIT,
    MAX_SUGGESTED_LABELS,
    PASSTHROUGH_REASONING,
    TRIAGE_BATCH_SIZE,
)
from inboxq.infrastructure.errors import ConfigurationError, NotFoundError
from inboxq.mailstore.models import MailMessage
from inboxq.observability.logging import get_logger, truncate_subject
from inboxq.observability.telemetry import counter, log_event, time_block
from inboxq.storage.models import ActionTaken, ProcessedEmailRecord
from inboxq.utils.email import is_same_address

logger = get_logger(__name__)


@dataclass
class TriageResult:
    email_id: str
    classification: Classification
    confidence: float
    reasoning: str
    labels_applied: list[str] = field(default_factory=list)
    action_taken: ActionTaken = ActionTaken.LABELED

    def to_dict(self) -> dict:
        return {
            "email_id": self.email_id,
            "classification": self.classification.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "labels_applied": self.labels_applied,
            "action_taken": self.action_taken.value,
        }


class TriageLoop:
    """Sequential, poll-driven triage over the shared Store and Mailstore."""

    def __init__(
        self,
        mailstore,
        store,
        classifier,
        label_map,
        profiles,
        correction_loop,
        user_email: str,
        mode: str = "label-only",
    ):
        self.mailstore = mailstore
        self.store = store
        self.classifier = classifier
        self.label_map = label_map
        self.profiles = profiles
        self.correction_loop = correction_loop
        self.user_email = user_email
        self.mode = mode
        self.inbox_id: str | None = None
        self.archive_id: str | None = None

    def initialize(self) -> None:
        """
        Resolve folders. Must succeed before the first cycle.

        Raises:
            ConfigurationError: If the inbox or archive folder is missing
        """
        self.label_map.initialize()

        inbox = self.mailstore.find_folder_by_role("inbox")
        if inbox is None:
            raise ConfigurationError("Inbox mailbox not found")
        self.inbox_id = inbox.id

        archive = self.mailstore.find_folder_by_role("archive")
        if archive is None:
            raise ConfigurationError("Archive mailbox not found")
        self.archive_id = archive.id

        logger.info("Triage loop initialized (mode: %s)", self.mode)

    def run_triage_cycle(self) -> list[TriageResult]:
        """
        Run one full cycle.

        Returns:
            One TriageResult per classified message (passthroughs excluded)
        """
        if self.inbox_id is None:
            self.initialize()

        try:
            corrections = self.correction_loop.run_correction_sweep()
        except Exception as e:
            corrections = 0
            logger.error("Correction sweep failed: %s", e)
        if corrections:
            logger.info("Applied %d user corrections", corrections)

        with time_block("triage.cycle.latency"):
            results = self.process_new_emails()

        log_event(
            "triage.cycle_complete",
            processed=len(results),
            corrections=corrections,
            mode=self.mode,
        )
        return results

    def process_new_emails(self) -> list[TriageResult]:
        ids = self.mailstore.query_messages(
            {"inMailbox": self.inbox_id},
            limit=INBOX_QUERY_LIMIT,
            sort=[{"property": "receivedAt", "isAscending": False}],
        )
        unprocessed = [email_id for email_id in ids if not self.store.is_processed(email_id)]
        if not unprocessed:
            return []

        batch = unprocessed[:TRIAGE_BATCH_SIZE]
        logger.info(
            "Processing %d new emails (%d total unprocessed)", len(batch), len(unprocessed)
        )

        to_classify: list[MailMessage] = []
        for email in self.mailstore.fetch_messages(batch):
            if self._should_skip(email):
                self._record_passthrough(email)
            else:
                to_classify.append(email)

        if not to_classify:
            return []

        config = build_config_from_store(self.store)
        results: list[TriageResult] = []
        for email in to_classify:
            try:
                results.append(self.process_email(email, config))
            except Exception as e:
                counter("triage.item_failed")
                logger.error("Failed to process email %s: %s", email.id, e)

        logger.info("Processed %d emails", len(results))
        return results

    def _should_skip(self, email: MailMessage) -> bool:
        if is_same_address(email.from_email, self.user_email):
            return True
        return self.label_map.has_any_classification_mailbox(email.folder_ids)

    def _record_passthrough(self, email: MailMessage) -> None:
        try:
            self._save_record(
                email,
                ClassificationResult(
                    classification=Classification.FYI,
                    confidence=1.0,
                    reasoning=PASSTHROUGH_REASONING,
                ),
                labels=[],
                action=ActionTaken.LABELED,
            )
            counter("triage.passthrough")
        except Exception as e:
            logger.error("Failed to record passthrough for %s: %s", email.id, e)

    def process_email(self, email: MailMessage, config: ClassifierConfig) -> TriageResult:
        """
        Classify and file one message.

        Side Effects:
            - Reads and updates the sender profile
            - Calls the classifier
            - Moves the message into its classification folder and out of
              the inbox; adds keywords; archives low-priority mail in triage mode
            - Writes the ledger row tagged with the pending digest
        """
        profile = None
        if email.from_email:
            profile = self.profiles.get_profile(email.from_email)
            self.profiles.record_incoming_email(email.from_email)

        result = self.classifier.classify(email, profile, config)
        classification = result.classification

        labels = [classification.value]
        self.label_map.apply_classification_label(email.id, classification)
        self.mailstore.remove_from_folder(email.id, self.inbox_id)

        for label in result.suggested_labels[:MAX_SUGGESTED_LABELS]:
            self.label_map.apply_custom_label(email.id, label)
            labels.append(label)

        if classification == Classification.IMPORTANT:
            self.label_map.flag_as_important(email.id)

        action = ActionTaken.LABELED
        if self.mode == "triage":
            if classification == Classification.LOW_PRIORITY and self.archive_id:
                self.mailstore.archive(email.id)
                action = ActionTaken.ARCHIVED
            else:
                action = ActionTaken.KEPT

        self._save_record(email, result, labels=labels, action=action)
        counter("triage.classified")
        logger.info(
            "[%s] %s (%d%%)",
            classification.value,
            truncate_subject(email.subject),
            round(result.confidence * 100),
        )

        return TriageResult(
            email_id=email.id,
            classification=classification,
            confidence=result.confidence,
            reasoning=result.reasoning,
            labels_applied=labels,
            action_taken=action,
        )

    def _save_record(
        self,
        email: MailMessage,
        result: ClassificationResult,
        labels: list[str],
        action: ActionTaken,
    ) -> None:
        digest = self.store.get_pending_digest()
        self.store.save_processed_record(
            ProcessedEmailRecord(
                id=email.id,
                thread_id=email.thread_id,
                from_email=email.from_email or "unknown",
                from_name=email.from_name,
                subject=email.subject,
                received_at=email.received_at,
                classification=result.classification,
                confidence=result.confidence,
                reasoning=result.reasoning,
                content_summary=result.content_summary,
                labels_applied=labels,
                action_taken=action,
                content_format=result.content_format or ContentFormat.STANDARD,
                digest_id=digest.id,
            )
        )

    def triage_email(self, email_id: str) -> TriageResult:
        """Classify a single message on demand, regardless of the ledger."""
        emails = self.mailstore.fetch_messages([email_id])
        if not emails:
            raise NotFoundError(f"Email not found: {email_id}")
        return self.process_email(emails[0], build_config_from_store(self.store))
