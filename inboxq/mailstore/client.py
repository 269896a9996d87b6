"""
JMAP binding of the Mailstore capability.

Speaks JMAP (RFC 8620/8621) over HTTPS with a bearer token. Folder
membership is only ever changed with per-folder patch paths:
``mailboxIds/<id>: true`` adds, ``mailboxIds/<id>: null`` removes. The full
mailboxIds map is never replaced, so a concurrent edit by the user in their
own mail client is not overwritten.
"""

from __future__ import annotations

from typing import Any

import requests

from inboxq.config import JMAP_REQUEST_TIMEOUT_SECONDS
from inboxq.infrastructure.errors import ConfigurationError, NotFoundError, TransientRemoteError
from inboxq.mailstore.models import Identity, Mailbox, MailMessage
from inboxq.observability.logging import get_logger
from inboxq.observability.telemetry import counter, time_block

logger = get_logger(__name__)

JMAP_USING = [
    "urn:ietf:params:jmap:core",
    "urn:ietf:params:jmap:mail",
    "urn:ietf:params:jmap:submission",
]
MAIL_CAPABILITY = "urn:ietf:params:jmap:mail"

DEFAULT_EMAIL_PROPERTIES = [
    "id",
    "blobId",
    "threadId",
    "mailboxIds",
    "keywords",
    "size",
    "receivedAt",
    "from",
    "to",
    "cc",
    "subject",
    "sentAt",
    "hasAttachment",
    "preview",
]

BODY_PROPERTIES = [
    "id",
    "from",
    "to",
    "subject",
    "receivedAt",
    "preview",
    "bodyValues",
    "textBody",
    "htmlBody",
]


class JMAPMailstore:
    """
    Mailstore backed by a JMAP server (Fastmail by default).

    Call connect() once before any other method.
    """

    def __init__(
        self,
        session_url: str,
        token: str,
        http: requests.Session | None = None,
        timeout: float = JMAP_REQUEST_TIMEOUT_SECONDS,
    ):
        self.session_url = session_url
        self.timeout = timeout
        self.http = http or requests.Session()
        self.http.headers.update(
            {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        )
        self.api_url: str | None = None
        self.account_id: str | None = None
        self.username: str | None = None

    @property
    def connected(self) -> bool:
        return self.api_url is not None and self.account_id is not None

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """
        Fetch the JMAP session resource and select the primary mail account.

        Raises:
            TransientRemoteError: If the session request fails
            ConfigurationError: If the session has no mail account
        """
        session = self._http_json("GET", self.session_url)
        self.account_id = (session.get("primaryAccounts") or {}).get(MAIL_CAPABILITY)
        if not self.account_id:
            raise ConfigurationError("No mail account found in JMAP session")
        self.api_url = session["apiUrl"]
        self.username = session.get("username")
        logger.info("Connected to JMAP as %s (account %s)", self.username, self.account_id)

    def _http_json(self, method: str, url: str, payload: dict | None = None) -> dict[str, Any]:
        try:
            response = self.http.request(method, url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            counter("jmap.http_error")
            raise TransientRemoteError(f"JMAP request failed: {e}") from e
        except ValueError as e:
            raise TransientRemoteError(f"JMAP response was not JSON: {e}") from e

    def _call(self, method: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Issue one JMAP method call and return its response arguments."""
        if not self.connected:
            raise ConfigurationError("JMAP client not connected. Call connect() first.")

        request = {
            "using": JMAP_USING,
            "methodCalls": [[method, {"accountId": self.account_id, **arguments}, "0"]],
        }
        with time_block(f"jmap.{method}.latency"):
            body = self._http_json("POST", self.api_url, request)

        responses = body.get("methodResponses") or []
        if not responses:
            raise TransientRemoteError(f"{method} returned no method responses")

        name, result, _ = responses[0]
        if name == "error":
            counter("jmap.method_error")
            raise TransientRemoteError(f"{method} failed: {result}")
        return result

    def _update_email(self, email_id: str, patch: dict[str, Any]) -> None:
        result = self._call("Email/set", {"update": {email_id: patch}})
        failure = (result.get("notUpdated") or {}).get(email_id)
        if failure:
            if failure.get("type") == "notFound":
                raise NotFoundError(f"Email not found: {email_id}")
            raise TransientRemoteError(f"Failed to update email {email_id}: {failure}")

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def get_mailboxes(self) -> list[Mailbox]:
        result = self._call("Mailbox/get", {"ids": None})
        return [Mailbox.from_jmap(item) for item in result.get("list", [])]

    def find_folder_by_role(self, role: str) -> Mailbox | None:
        return next((m for m in self.get_mailboxes() if m.role == role), None)

    def find_folder_by_name(self, name: str) -> Mailbox | None:
        wanted = name.lower()
        return next((m for m in self.get_mailboxes() if m.name.lower() == wanted), None)

    def create_folder(self, name: str, parent_id: str | None = None) -> Mailbox:
        result = self._call(
            "Mailbox/set", {"create": {"new": {"name": name, "parentId": parent_id}}}
        )
        created = (result.get("created") or {}).get("new")
        if not created:
            raise TransientRemoteError(
                f"Failed to create mailbox {name!r}: {(result.get('notCreated') or {}).get('new')}"
            )
        return Mailbox(id=created["id"], name=name, parent_id=parent_id, role=None)

    def delete_folder(self, folder_id: str) -> None:
        """
        Destroy a folder. The server refuses when the folder still holds messages.

        Raises:
            TransientRemoteError: If the folder was not destroyed
        """
        result = self._call(
            "Mailbox/set", {"destroy": [folder_id], "onDestroyRemoveEmails": False}
        )
        failure = (result.get("notDestroyed") or {}).get(folder_id)
        if failure:
            raise TransientRemoteError(f"Failed to delete mailbox {folder_id}: {failure}")

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def query_messages(
        self,
        filter: dict[str, Any],
        limit: int = 50,
        sort: list[dict[str, Any]] | None = None,
    ) -> list[str]:
        result = self._call(
            "Email/query",
            {
                "filter": filter,
                "sort": sort or [{"property": "receivedAt", "isAscending": False}],
                "limit": limit,
                "position": 0,
            },
        )
        return list(result.get("ids", []))

    def fetch_messages(
        self,
        ids: list[str],
        properties: list[str] | None = None,
        fetch_bodies: bool = False,
    ) -> list[MailMessage]:
        """
        Fetch messages by id. Ids the server does not know are omitted.

        With fetch_bodies the text body values come back too; properties
        should then include bodyValues and textBody.
        """
        if not ids:
            return []
        arguments: dict[str, Any] = {
            "ids": ids,
            "properties": properties or DEFAULT_EMAIL_PROPERTIES,
        }
        if fetch_bodies:
            arguments["fetchTextBodyValues"] = True
        result = self._call("Email/get", arguments)
        return [MailMessage.from_jmap(item) for item in result.get("list", [])]

    def fetch_message_body(self, email_id: str) -> MailMessage:
        """
        Raises:
            NotFoundError: If the message no longer exists
        """
        result = self._call(
            "Email/get",
            {
                "ids": [email_id],
                "properties": BODY_PROPERTIES,
                "fetchTextBodyValues": True,
                "fetchHTMLBodyValues": True,
            },
        )
        items = result.get("list", [])
        if not items:
            raise NotFoundError(f"Email not found: {email_id}")
        return MailMessage.from_jmap(items[0])

    # ------------------------------------------------------------------
    # Membership and keywords
    # ------------------------------------------------------------------

    def add_to_folder(self, email_id: str, folder_id: str) -> None:
        self._update_email(email_id, {f"mailboxIds/{folder_id}": True})

    def remove_from_folder(self, email_id: str, folder_id: str) -> None:
        self._update_email(email_id, {f"mailboxIds/{folder_id}": None})

    def move_to_folder(self, email_id: str, folder_id: str) -> None:
        """
        Add to folder_id and remove from every other current folder in one patch.

        Raises:
            NotFoundError: If the message no longer exists
        """
        current = self.fetch_messages([email_id], ["id", "mailboxIds"])
        if not current:
            raise NotFoundError(f"Email not found: {email_id}")

        patch: dict[str, Any] = {f"mailboxIds/{folder_id}": True}
        for other in current[0].folder_ids - {folder_id}:
            patch[f"mailboxIds/{other}"] = None
        self._update_email(email_id, patch)

    def archive(self, email_id: str) -> None:
        """
        Add to the archive role folder and leave the inbox, in one patch.

        Other memberships (classification folders) are kept so the message
        stays labeled after archiving.
        """
        archive = self.find_folder_by_role("archive")
        if archive is None:
            raise NotFoundError("Archive mailbox not found")

        patch: dict[str, Any] = {f"mailboxIds/{archive.id}": True}
        inbox = self.find_folder_by_role("inbox")
        if inbox is not None:
            patch[f"mailboxIds/{inbox.id}"] = None
        self._update_email(email_id, patch)

    def add_keyword(self, email_id: str, keyword: str) -> None:
        self._update_email(email_id, {f"keywords/{keyword}": True})

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def create_draft(
        self, to: list[str], subject: str, text_body: str, html_body: str | None = None
    ) -> str:
        drafts = self.find_folder_by_role("drafts")
        if drafts is None:
            raise NotFoundError("Drafts mailbox not found")

        parts = [{"partId": "text", "type": "text/plain"}]
        values = {"text": {"value": text_body}}
        if html_body:
            parts.append({"partId": "html", "type": "text/html"})
            values["html"] = {"value": html_body}

        body_structure = (
            {"type": "multipart/alternative", "subParts": parts} if len(parts) > 1 else parts[0]
        )
        result = self._call(
            "Email/set",
            {
                "create": {
                    "draft": {
                        "mailboxIds": {drafts.id: True},
                        "keywords": {"$draft": True},
                        "to": [{"name": None, "email": address} for address in to],
                        "subject": subject,
                        "bodyStructure": body_structure,
                        "bodyValues": values,
                    }
                }
            },
        )
        created = (result.get("created") or {}).get("draft")
        if not created:
            raise TransientRemoteError(
                f"Failed to create draft: {(result.get('notCreated') or {}).get('draft')}"
            )
        return created["id"]

    def get_identities(self) -> list[Identity]:
        result = self._call("Identity/get", {})
        return [
            Identity(id=item["id"], email=item.get("email", ""), name=item.get("name"))
            for item in result.get("list", [])
        ]

    def send(self, draft_id: str) -> str:
        """
        Submit a draft with the first sending identity; the draft is destroyed on success.

        Returns:
            The submission id
        """
        identities = self.get_identities()
        if not identities:
            raise ConfigurationError("No sending identity found")

        result = self._call(
            "EmailSubmission/set",
            {
                "create": {"submission": {"identityId": identities[0].id, "emailId": draft_id}},
                "onSuccessDestroyEmail": ["#submission"],
            },
        )
        created = (result.get("created") or {}).get("submission")
        if not created:
            raise TransientRemoteError(
                f"EmailSubmission/set failed: {(result.get('notCreated') or {}).get('submission')}"
            )
        logger.info("Submitted draft %s as %s", draft_id, created.get("id"))
        return created.get("id", "unknown")
