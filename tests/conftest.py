"""
Pytest configuration for InboxQ tests

Provides an isolated SQLite database per test, in-memory fakes for the
Mailstore and Classifier capabilities, and a wired ServiceBundle.
"""

from __future__ import annotations

from typing import Any

import pytest

from inboxq.classification.models import (
    Classification,
    ClassificationResult,
    ContentFormat,
    ParsedCorrection,
)
from inboxq.infrastructure.database import init_database, reset_pool
from inboxq.infrastructure.errors import NotFoundError, TransientRemoteError
from inboxq.infrastructure.settings import AppSettings
from inboxq.mailstore.models import EmailAddress, Mailbox, MailMessage
from inboxq.observability.telemetry import reset_counters, reset_latencies
from inboxq.runtime.services import assemble_services
from inboxq.storage.store import Store

USER_EMAIL = "me@example.com"


class FakeMailstore:
    """
    In-memory Mailstore.

    Mirrors the remote store's behavior that matters to the engine:
    membership writes are idempotent set operations, a message whose
    membership becomes empty is discarded, and a folder that still holds
    messages cannot be deleted. Methods listed in fail_on raise instead.
    """

    def __init__(self, with_archive: bool = True, with_inbox: bool = True):
        self.mailboxes: dict[str, Mailbox] = {}
        self.messages: dict[str, dict[str, Any]] = {}
        self.fail_on: dict[str, Exception] = {}
        self.drafts: list[dict[str, Any]] = []
        self.sent: list[str] = []
        self.created_folders: list[str] = []
        self._next_id = 0

        if with_inbox:
            self.inbox_id = self._add_mailbox("Inbox", role="inbox").id
        if with_archive:
            self.archive_id = self._add_mailbox("Archive", role="archive").id
        self._add_mailbox("Drafts", role="drafts")

    # -- test helpers ---------------------------------------------------

    def _new_id(self, prefix: str) -> str:
        self._next_id += 1
        return f"{prefix}-{self._next_id}"

    def _add_mailbox(self, name: str, parent_id: str | None = None, role: str | None = None):
        mailbox = Mailbox(id=self._new_id("mb"), name=name, parent_id=parent_id, role=role)
        self.mailboxes[mailbox.id] = mailbox
        return mailbox

    def deliver(
        self,
        subject: str = "Hello",
        from_email: str = "alice@example.com",
        from_name: str | None = None,
        folders: set[str] | None = None,
        received_at: str = "2026-10-19T08:00:00Z",
        preview: str = "Preview text",
        text_body: str | None = None,
        html_body: str | None = None,
        has_attachment: bool = False,
        email_id: str | None = None,
        to: list[str] | None = None,
        cc: list[str] | None = None,
    ) -> str:
        email_id = email_id or self._new_id("msg")
        self.messages[email_id] = {
            "subject": subject,
            "from_email": from_email,
            "from_name": from_name,
            "folders": set(folders if folders is not None else {self.inbox_id}),
            "keywords": set(),
            "received_at": received_at,
            "preview": preview,
            "text_body": text_body,
            "html_body": html_body,
            "has_attachment": has_attachment,
            "to": list(to or []),
            "cc": list(cc or []),
        }
        return email_id

    def folders_of(self, email_id: str) -> set[str]:
        return set(self.messages[email_id]["folders"])

    def keywords_of(self, email_id: str) -> set[str]:
        return set(self.messages[email_id]["keywords"])

    def user_moves(self, email_id: str, folder_ids: set[str]) -> None:
        """Replace membership the way the user's own mail client would."""
        self.messages[email_id]["folders"] = set(folder_ids)

    def user_deletes(self, email_id: str) -> None:
        del self.messages[email_id]

    def _check(self, method: str) -> None:
        if method in self.fail_on:
            raise self.fail_on[method]

    def _message(self, email_id: str) -> dict[str, Any]:
        if email_id not in self.messages:
            raise NotFoundError(f"Email not found: {email_id}")
        return self.messages[email_id]

    def _to_model(self, email_id: str, with_body: bool = False) -> MailMessage:
        data = self.messages[email_id]
        body_values: dict[str, str] = {}
        text_parts: list[str] = []
        html_parts: list[str] = []
        if with_body:
            if data["text_body"] is not None:
                body_values["1"] = data["text_body"]
                text_parts.append("1")
            if data["html_body"] is not None:
                body_values["2"] = data["html_body"]
                html_parts.append("2")

        return MailMessage(
            id=email_id,
            thread_id=f"thread-{email_id}",
            folder_ids=frozenset(data["folders"]),
            keywords=frozenset(data["keywords"]),
            received_at=data["received_at"],
            sender=EmailAddress(email=data["from_email"], name=data["from_name"]),
            to=[EmailAddress(email=address) for address in data["to"]],
            cc=[EmailAddress(email=address) for address in data["cc"]],
            subject=data["subject"],
            has_attachment=data["has_attachment"],
            preview=data["preview"],
            body_values=body_values,
            text_part_ids=text_parts,
            html_part_ids=html_parts,
        )

    # -- Mailstore ------------------------------------------------------

    def get_mailboxes(self) -> list[Mailbox]:
        self._check("get_mailboxes")
        return list(self.mailboxes.values())

    def find_folder_by_role(self, role: str) -> Mailbox | None:
        return next((m for m in self.mailboxes.values() if m.role == role), None)

    def find_folder_by_name(self, name: str) -> Mailbox | None:
        return next(
            (m for m in self.mailboxes.values() if m.name.lower() == name.lower()), None
        )

    def create_folder(self, name: str, parent_id: str | None = None) -> Mailbox:
        self._check("create_folder")
        self.created_folders.append(name)
        return self._add_mailbox(name, parent_id=parent_id)

    def delete_folder(self, folder_id: str) -> None:
        self._check("delete_folder")
        if folder_id not in self.mailboxes:
            raise NotFoundError(f"Mailbox not found: {folder_id}")
        if any(folder_id in m["folders"] for m in self.messages.values()):
            raise TransientRemoteError(f"Mailbox {folder_id} is not empty")
        del self.mailboxes[folder_id]

    def query_messages(self, filter, limit=50, sort=None) -> list[str]:
        self._check("query_messages")
        folder_id = filter.get("inMailbox")
        ids = [
            email_id
            for email_id, data in self.messages.items()
            if folder_id is None or folder_id in data["folders"]
        ]
        ids.sort(key=lambda email_id: self.messages[email_id]["received_at"], reverse=True)
        return ids[:limit]

    def fetch_messages(self, ids, properties=None, fetch_bodies=False) -> list[MailMessage]:
        self._check("fetch_messages")
        return [
            self._to_model(email_id, with_body=fetch_bodies)
            for email_id in ids
            if email_id in self.messages
        ]

    def fetch_message_body(self, email_id: str) -> MailMessage:
        self._check("fetch_message_body")
        self._message(email_id)
        return self._to_model(email_id, with_body=True)

    def add_to_folder(self, email_id: str, folder_id: str) -> None:
        self._check("add_to_folder")
        self._message(email_id)["folders"].add(folder_id)

    def remove_from_folder(self, email_id: str, folder_id: str) -> None:
        self._check("remove_from_folder")
        data = self._message(email_id)
        data["folders"].discard(folder_id)
        if not data["folders"]:
            del self.messages[email_id]

    def move_to_folder(self, email_id: str, folder_id: str) -> None:
        self._check("move_to_folder")
        self._message(email_id)["folders"] = {folder_id}

    def archive(self, email_id: str) -> None:
        self._check("archive")
        data = self._message(email_id)
        data["folders"].add(self.archive_id)
        data["folders"].discard(getattr(self, "inbox_id", None))

    def add_keyword(self, email_id: str, keyword: str) -> None:
        self._check("add_keyword")
        self._message(email_id)["keywords"].add(keyword)

    def create_draft(self, to, subject, text_body, html_body=None) -> str:
        self._check("create_draft")
        draft_id = self._new_id("draft")
        self.drafts.append(
            {
                "id": draft_id,
                "to": list(to),
                "subject": subject,
                "text_body": text_body,
                "html_body": html_body,
            }
        )
        return draft_id

    def send(self, draft_id: str) -> str:
        self._check("send")
        self.sent.append(draft_id)
        return f"submission-{draft_id}"


class FakeClassifier:
    """Scripted Classifier: per-subject results, a default, and canned corrections."""

    def __init__(self):
        self.results: dict[str, ClassificationResult] = {}
        self.default = ClassificationResult(
            classification=Classification.FYI,
            confidence=0.8,
            reasoning="Informational",
            content_summary="A short summary",
        )
        self.corrections: dict[str, ParsedCorrection] = {}
        self.article_summary = "Article summary"
        self.fail_subjects: set[str] = set()
        self.classify_calls: list[tuple] = []
        self.correction_calls: list[str] = []

    def script(
        self,
        subject: str,
        classification: Classification,
        labels: list[str] | None = None,
        content_format: ContentFormat = ContentFormat.STANDARD,
        content_summary: str = "",
        reasoning: str = "Scripted",
    ) -> None:
        self.results[subject] = ClassificationResult(
            classification=classification,
            confidence=0.9,
            reasoning=reasoning,
            content_summary=content_summary,
            suggested_labels=labels or [],
            content_format=content_format,
        )

    def classify(self, email, sender_profile, config) -> ClassificationResult:
        self.classify_calls.append((email, sender_profile, config))
        if email.subject in self.fail_subjects:
            raise TransientRemoteError("classifier unavailable")
        return self.results.get(email.subject, self.default)

    def parse_correction(self, text: str) -> ParsedCorrection:
        self.correction_calls.append(text)
        if text in self.corrections:
            return self.corrections[text]
        if "important" in text.lower():
            return ParsedCorrection(classification=Classification.IMPORTANT, reasoning=text)
        return ParsedCorrection(classification=Classification.FYI, reasoning=text)

    def summarize_article(self, subject, body_text) -> str:
        return self.article_summary


@pytest.fixture(autouse=True)
def reset_telemetry():
    """Counters and latencies are process-global."""
    reset_counters()
    reset_latencies()
    yield
    reset_counters()
    reset_latencies()


@pytest.fixture
def store(tmp_path, monkeypatch):
    """Store backed by a fresh database under tmp_path."""
    monkeypatch.setenv("INBOXQ_DB_PATH", str(tmp_path / "test.db"))
    reset_pool()
    init_database()
    yield Store()
    reset_pool()


@pytest.fixture
def mailstore():
    return FakeMailstore()


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def settings():
    return AppSettings(
        jmap_token="test-token",
        user_email=USER_EMAIL,
        cleanup_base_url="https://inboxq.example.com/",
        message_link_template="https://mail.example.com/m/{email_id}",
    )


@pytest.fixture
def services(settings, store, mailstore, classifier):
    """Fully wired bundle around the fakes, with folders initialized."""
    bundle = assemble_services(settings, store, mailstore, classifier)
    bundle.triage.initialize()
    return bundle
