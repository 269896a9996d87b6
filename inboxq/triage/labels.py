"""
LabelMap - classification folder topology and label mutual exclusivity.

Classifications are visible folders under a parent folder:

    InboxQ/
        Important
        Needs Reply
        FYI
        Low Priority
    InboxQ-Correction/      (top level; children are user corrections)

Every classification write goes through apply_classification_label, which
adds the target and then clears every other classification folder, so a
message is in at most one classification folder after any write.
"""

from __future__ import annotations

from inboxq.classification.models import Classification
from inboxq.config import CORRECTION_FOLDER_NAME, KEYWORD_PREFIX, PARENT_FOLDER_NAME
from inboxq.infrastructure.errors import MailstoreError, NotFoundError
from inboxq.mailstore.models import Mailbox, sanitize_keyword
from inboxq.observability.logging import get_logger
from inboxq.observability.telemetry import counter

logger = get_logger(__name__)

CLASSIFICATION_FOLDER_NAMES: dict[Classification, str] = {
    Classification.IMPORTANT: "Important",
    Classification.NEEDS_REPLY: "Needs Reply",
    Classification.FYI: "FYI",
    Classification.LOW_PRIORITY: "Low Priority",
}

FLAGGED_KEYWORD = "$flagged"
SEEN_KEYWORD = "$seen"


class LabelMap:
    """
    Owns the in-memory classification -> folder id cache.

    The cache is built lazily by initialize() and is stable for the
    process lifetime. Membership itself is never cached here; callers pass
    freshly fetched folder ids to the predicates.
    """

    def __init__(self, mailstore):
        self.mailstore = mailstore
        self.parent_folder_id: str | None = None
        self.correction_folder_id: str | None = None
        self._folder_ids: dict[Classification, str] = {}
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """
        Find or create the parent, one child per classification, and the
        correction root. Safe to call repeatedly, and from several processes
        at once: a create that loses to another client falls back to the
        folder that client made.

        Side Effects:
            - Creates any missing folders in the remote store
        """
        if self._initialized:
            return

        mailboxes = self.mailstore.get_mailboxes()

        parent = self._find_or_create(mailboxes, PARENT_FOLDER_NAME, parent_id=None)
        self.parent_folder_id = parent.id

        for classification, name in CLASSIFICATION_FOLDER_NAMES.items():
            folder = self._find_or_create(mailboxes, name, parent_id=parent.id)
            self._folder_ids[classification] = folder.id

        correction = self._find_or_create(mailboxes, CORRECTION_FOLDER_NAME, parent_id=None)
        self.correction_folder_id = correction.id

        self._initialized = True
        logger.info("Label folders initialized")

    def _find_or_create(
        self, mailboxes: list[Mailbox], name: str, parent_id: str | None
    ) -> Mailbox:
        """
        Raises:
            MailstoreError: If the create failed and the folder still does
                not exist after re-listing
        """
        folder = _find(mailboxes, name, parent_id)
        if folder is not None:
            return folder

        logger.info("Creating '%s' folder", name)
        try:
            return self.mailstore.create_folder(name, parent_id=parent_id)
        except MailstoreError as e:
            # Another process may have created it since our listing
            mailboxes[:] = self.mailstore.get_mailboxes()
            folder = _find(mailboxes, name, parent_id)
            if folder is None:
                raise
            counter("labels.create_raced")
            logger.info("Folder '%s' appeared concurrently (%s); using it", name, e)
            return folder

    def folder_id_for(self, classification: Classification) -> str:
        self.initialize()
        return self._folder_ids[classification]

    @property
    def classification_folder_ids(self) -> frozenset[str]:
        return frozenset(self._folder_ids.values())

    def apply_classification_label(self, email_id: str, classification: Classification) -> None:
        """
        Make classification the message's only classification folder.

        Order matters: the target is added first and only then are the other
        classification folders removed. Removing everything (target included)
        before adding reaches the same end state, but a message that lives
        only in classification folders would briefly have no folders at all,
        and the remote store discards such messages. Both steps are set
        operations; repeated calls converge.
        """
        target = self.folder_id_for(classification)
        self.mailstore.add_to_folder(email_id, target)
        self._remove_classification_folders(email_id, keep=target)

    def remove_all_classification_labels(self, email_id: str) -> None:
        """Best-effort removal from every classification folder. Never raises."""
        self.initialize()
        self._remove_classification_folders(email_id)

    def _remove_classification_folders(self, email_id: str, keep: str | None = None) -> None:
        for classification, folder_id in self._folder_ids.items():
            if folder_id == keep:
                continue
            try:
                self.mailstore.remove_from_folder(email_id, folder_id)
            except NotFoundError as e:
                # Not being a member is the common case here
                logger.debug("Remove %s from %s: %s", email_id, classification.value, e)
            except Exception as e:
                counter("labels.remove_failed")
                logger.warning(
                    "Remove %s from %s failed: %s", email_id, classification.value, e
                )

    def has_any_classification_mailbox(self, folder_ids: frozenset[str]) -> bool:
        return not self.classification_folder_ids.isdisjoint(folder_ids)

    def classification_for_folders(self, folder_ids: frozenset[str]) -> Classification | None:
        for classification, folder_id in self._folder_ids.items():
            if folder_id in folder_ids:
                return classification
        return None

    def apply_custom_label(self, email_id: str, label: str) -> None:
        self.mailstore.add_keyword(email_id, f"{KEYWORD_PREFIX}{sanitize_keyword(label)}")

    def flag_as_important(self, email_id: str) -> None:
        self.mailstore.add_keyword(email_id, FLAGGED_KEYWORD)

    def mark_as_read(self, email_id: str) -> None:
        self.mailstore.add_keyword(email_id, SEEN_KEYWORD)


def _find(mailboxes: list[Mailbox], name: str, parent_id: str | None) -> Mailbox | None:
    for mailbox in mailboxes:
        if mailbox.name == name and mailbox.parent_id == parent_id:
            return mailbox
    return None
