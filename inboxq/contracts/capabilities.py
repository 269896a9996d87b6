"""
Capability protocols

The engine depends on two remote collaborators through these interfaces:
a Mailstore (folders, messages, membership, draft/send) and a Classifier
(classification, correction parsing, article summaries). JMAPMailstore and
EmailClassifier are the production implementations; tests supply fakes.
"""

from __future__ import annotations

from typing import Any, Protocol

from inboxq.classification.models import (
    ClassificationResult,
    ClassifierConfig,
    ParsedCorrection,
)
from inboxq.mailstore.models import Mailbox, MailMessage
from inboxq.storage.models import SenderProfile


class Mailstore(Protocol):
    """Remote mailbox operations. Membership writes are idempotent set operations."""

    def get_mailboxes(self) -> list[Mailbox]: ...

    def find_folder_by_role(self, role: str) -> Mailbox | None: ...

    def find_folder_by_name(self, name: str) -> Mailbox | None: ...

    def create_folder(self, name: str, parent_id: str | None = None) -> Mailbox: ...

    def delete_folder(self, folder_id: str) -> None: ...

    def query_messages(
        self,
        filter: dict[str, Any],
        limit: int = 50,
        sort: list[dict[str, Any]] | None = None,
    ) -> list[str]: ...

    def fetch_messages(
        self,
        ids: list[str],
        properties: list[str] | None = None,
        fetch_bodies: bool = False,
    ) -> list[MailMessage]: ...

    def fetch_message_body(self, email_id: str) -> MailMessage: ...

    def add_to_folder(self, email_id: str, folder_id: str) -> None: ...

    def remove_from_folder(self, email_id: str, folder_id: str) -> None: ...

    def move_to_folder(self, email_id: str, folder_id: str) -> None: ...

    def archive(self, email_id: str) -> None: ...

    def add_keyword(self, email_id: str, keyword: str) -> None: ...

    def create_draft(
        self, to: list[str], subject: str, text_body: str, html_body: str | None = None
    ) -> str: ...

    def send(self, draft_id: str) -> str: ...


class Classifier(Protocol):
    """Text classification oracle."""

    def classify(
        self,
        email: MailMessage,
        sender_profile: SenderProfile | None,
        config: ClassifierConfig,
    ) -> ClassificationResult: ...

    def parse_correction(self, text: str) -> ParsedCorrection: ...

    def summarize_article(self, subject: str | None, body_text: str) -> str: ...
