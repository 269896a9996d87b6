"""
Remote mailbox models.

Folder membership is an explicit frozenset of folder ids. JMAP's sparse
id->bool map is converted at the wire boundary: only entries whose value is
true become members, so "absent" and "false" cannot be confused downstream.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from inboxq.utils.html import html_to_text


class Mailbox(BaseModel):
    """A remote folder (JMAP Mailbox)."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    parent_id: str | None = None
    role: str | None = None

    @classmethod
    def from_jmap(cls, data: dict[str, Any]) -> Mailbox:
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            parent_id=data.get("parentId"),
            role=data.get("role"),
        )


class EmailAddress(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: str
    name: str | None = None


class MailMessage(BaseModel):
    """A remote message as fetched at one point in time."""

    model_config = ConfigDict(frozen=True)

    id: str
    thread_id: str | None = None
    folder_ids: frozenset[str] = Field(default_factory=frozenset)
    keywords: frozenset[str] = Field(default_factory=frozenset)
    received_at: str | None = None
    sent_at: str | None = None
    sender: EmailAddress | None = None
    to: list[EmailAddress] = Field(default_factory=list)
    cc: list[EmailAddress] = Field(default_factory=list)
    subject: str | None = None
    has_attachment: bool = False
    preview: str | None = None
    body_values: dict[str, str] = Field(default_factory=dict)
    text_part_ids: list[str] = Field(default_factory=list)
    html_part_ids: list[str] = Field(default_factory=list)

    @property
    def from_email(self) -> str | None:
        return self.sender.email if self.sender else None

    @property
    def from_name(self) -> str | None:
        return self.sender.name if self.sender else None

    @property
    def recipients(self) -> list[EmailAddress]:
        return [*self.to, *self.cc]

    def body_html(self) -> str | None:
        for part_id in self.html_part_ids:
            if part_id in self.body_values:
                return self.body_values[part_id]
        return None

    def body_text(self) -> str:
        """Plain text body, falling back to tag-stripped HTML, then the preview."""
        for part_id in self.text_part_ids:
            if part_id in self.body_values:
                return self.body_values[part_id]

        html = self.body_html()
        if html:
            return html_to_text(html)

        return self.preview or ""

    @classmethod
    def from_jmap(cls, data: dict[str, Any]) -> MailMessage:
        senders = data.get("from") or []
        sender = None
        if senders and senders[0].get("email"):
            sender = EmailAddress(email=senders[0]["email"], name=senders[0].get("name"))

        return cls(
            id=data["id"],
            thread_id=data.get("threadId"),
            folder_ids=frozenset(k for k, v in (data.get("mailboxIds") or {}).items() if v),
            keywords=frozenset(k for k, v in (data.get("keywords") or {}).items() if v),
            received_at=data.get("receivedAt"),
            sent_at=data.get("sentAt"),
            sender=sender,
            to=_addresses(data.get("to")),
            cc=_addresses(data.get("cc")),
            subject=data.get("subject"),
            has_attachment=bool(data.get("hasAttachment")),
            preview=data.get("preview"),
            body_values={
                part_id: value.get("value", "")
                for part_id, value in (data.get("bodyValues") or {}).items()
            },
            text_part_ids=[p["partId"] for p in data.get("textBody") or [] if p.get("partId")],
            html_part_ids=[p["partId"] for p in data.get("htmlBody") or [] if p.get("partId")],
        )


def _addresses(items: list[dict[str, Any]] | None) -> list[EmailAddress]:
    return [
        EmailAddress(email=item["email"], name=item.get("name"))
        for item in items or []
        if item.get("email")
    ]


class Identity(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str | None = None


_KEYWORD_UNSAFE = re.compile(r"[^a-z0-9]")


def sanitize_keyword(label: str) -> str:
    """Lowercase and replace every character outside [a-z0-9] with '_'."""
    return _KEYWORD_UNSAFE.sub("_", label.lower())
