"""Tests for the JMAP Mailstore binding, against a recorded HTTP session"""

from __future__ import annotations

import pytest
import requests

from inboxq.infrastructure.errors import (
    ConfigurationError,
    NotFoundError,
    TransientRemoteError,
)
from inboxq.mailstore.client import JMAP_USING, JMAPMailstore

SESSION_URL = "https://jmap.example.com/session"
API_URL = "https://jmap.example.com/api/"

SESSION = {
    "apiUrl": API_URL,
    "username": "me@example.com",
    "primaryAccounts": {"urn:ietf:params:jmap:mail": "acct-1"},
}

MAILBOXES = {
    "list": [
        {"id": "mb-inbox", "name": "Inbox", "role": "inbox"},
        {"id": "mb-archive", "name": "Archive", "role": "archive"},
        {"id": "mb-drafts", "name": "Drafts", "role": "drafts"},
        {"id": "mb-fyi", "name": "FYI", "parentId": "mb-root"},
    ]
}


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.exceptions.HTTPError(f"{self.status} error")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    """
    Stand-in for requests.Session.

    GETs return the session resource; POSTs are answered per JMAP method
    from `results`, and every method call is recorded.
    """

    def __init__(self):
        self.headers: dict[str, str] = {}
        self.results: dict[str, object] = {"Mailbox/get": MAILBOXES}
        self.session_payload: object = SESSION
        self.calls: list[tuple[str, dict]] = []
        self.error: Exception | None = None

    def request(self, method, url, json=None, timeout=None):
        if self.error:
            raise self.error
        if method == "GET":
            return FakeResponse(self.session_payload)

        assert json["using"] == JMAP_USING
        ((name, arguments, call_id),) = json["methodCalls"]
        self.calls.append((name, arguments))
        result = self.results.get(name, {})
        if isinstance(result, list):
            result = result.pop(0)
        if name == "error" or (isinstance(result, dict) and result.get("_error")):
            return FakeResponse({"methodResponses": [["error", {"type": "serverFail"}, call_id]]})
        return FakeResponse({"methodResponses": [[name, result, call_id]]})

    def calls_to(self, name):
        return [arguments for method, arguments in self.calls if method == name]


@pytest.fixture
def http():
    return FakeSession()


@pytest.fixture
def client(http):
    mailstore = JMAPMailstore(SESSION_URL, "tok", http=http)
    mailstore.connect()
    return mailstore


class TestConnect:
    def test_selects_primary_mail_account(self, client, http):
        assert client.connected
        assert client.account_id == "acct-1"
        assert client.api_url == API_URL
        assert http.headers["Authorization"] == "Bearer tok"

    def test_missing_mail_account(self, http):
        http.session_payload = {"apiUrl": API_URL, "primaryAccounts": {}}

        with pytest.raises(ConfigurationError):
            JMAPMailstore(SESSION_URL, "tok", http=http).connect()

    def test_http_failure_is_transient(self, http):
        http.error = requests.exceptions.ConnectionError("refused")

        with pytest.raises(TransientRemoteError):
            JMAPMailstore(SESSION_URL, "tok", http=http).connect()

    def test_non_json_is_transient(self, http):
        http.session_payload = ValueError("Expecting value")

        with pytest.raises(TransientRemoteError):
            JMAPMailstore(SESSION_URL, "tok", http=http).connect()

    def test_calls_require_connect(self, http):
        with pytest.raises(ConfigurationError):
            JMAPMailstore(SESSION_URL, "tok", http=http).get_mailboxes()


class TestFolders:
    def test_mailboxes(self, client, http):
        mailboxes = client.get_mailboxes()

        assert [m.id for m in mailboxes] == ["mb-inbox", "mb-archive", "mb-drafts", "mb-fyi"]
        assert mailboxes[3].parent_id == "mb-root"
        assert http.calls_to("Mailbox/get") == [{"accountId": "acct-1", "ids": None}]

    def test_find_by_role_and_name(self, client):
        assert client.find_folder_by_role("archive").id == "mb-archive"
        assert client.find_folder_by_name("fyi").id == "mb-fyi"
        assert client.find_folder_by_role("junk") is None

    def test_create_folder(self, client, http):
        http.results["Mailbox/set"] = {"created": {"new": {"id": "mb-new"}}}

        created = client.create_folder("Important", parent_id="mb-root")

        assert created.id == "mb-new"
        assert http.calls_to("Mailbox/set")[0]["create"] == {
            "new": {"name": "Important", "parentId": "mb-root"}
        }

    def test_create_folder_rejected(self, client, http):
        http.results["Mailbox/set"] = {"notCreated": {"new": {"type": "invalidProperties"}}}

        with pytest.raises(TransientRemoteError):
            client.create_folder("Important")

    def test_delete_non_empty_folder_fails(self, client, http):
        http.results["Mailbox/set"] = {"notDestroyed": {"mb-fyi": {"type": "mailboxHasEmail"}}}

        with pytest.raises(TransientRemoteError):
            client.delete_folder("mb-fyi")

        assert http.calls_to("Mailbox/set")[0]["onDestroyRemoveEmails"] is False


class TestMembershipPatches:
    def test_add_and_remove_are_per_folder(self, client, http):
        client.add_to_folder("e1", "mb-fyi")
        client.remove_from_folder("e1", "mb-inbox")

        updates = [call["update"] for call in http.calls_to("Email/set")]
        assert updates == [
            {"e1": {"mailboxIds/mb-fyi": True}},
            {"e1": {"mailboxIds/mb-inbox": None}},
        ]

    def test_archive_keeps_other_folders(self, client, http):
        client.archive("e1")

        (call,) = http.calls_to("Email/set")
        assert call["update"] == {
            "e1": {"mailboxIds/mb-archive": True, "mailboxIds/mb-inbox": None}
        }

    def test_move_removes_every_other_folder(self, client, http):
        http.results["Email/get"] = {
            "list": [{"id": "e1", "mailboxIds": {"mb-inbox": True, "mb-fyi": True, "x": False}}]
        }

        client.move_to_folder("e1", "mb-archive")

        (call,) = http.calls_to("Email/set")
        assert call["update"] == {
            "e1": {
                "mailboxIds/mb-archive": True,
                "mailboxIds/mb-inbox": None,
                "mailboxIds/mb-fyi": None,
            }
        }

    def test_move_missing_message(self, client, http):
        http.results["Email/get"] = {"list": []}

        with pytest.raises(NotFoundError):
            client.move_to_folder("gone", "mb-archive")

    def test_not_found_update(self, client, http):
        http.results["Email/set"] = {"notUpdated": {"e1": {"type": "notFound"}}}

        with pytest.raises(NotFoundError):
            client.add_to_folder("e1", "mb-fyi")

    def test_other_update_failure_is_transient(self, client, http):
        http.results["Email/set"] = {"notUpdated": {"e1": {"type": "forbidden"}}}

        with pytest.raises(TransientRemoteError):
            client.add_keyword("e1", "newsletter")

    def test_method_error_is_transient(self, client, http):
        http.results["Email/set"] = {"_error": True}

        with pytest.raises(TransientRemoteError):
            client.add_to_folder("e1", "mb-fyi")


class TestMessages:
    def test_query_defaults_to_newest_first(self, client, http):
        http.results["Email/query"] = {"ids": ["e2", "e1"]}

        ids = client.query_messages({"inMailbox": "mb-inbox"}, limit=10)

        assert ids == ["e2", "e1"]
        (call,) = http.calls_to("Email/query")
        assert call["sort"] == [{"property": "receivedAt", "isAscending": False}]
        assert call["limit"] == 10

    def test_fetch_messages_converts_membership(self, client, http):
        http.results["Email/get"] = {
            "list": [
                {
                    "id": "e1",
                    "mailboxIds": {"mb-inbox": True, "mb-old": False},
                    "keywords": {"$seen": True},
                    "from": [{"email": "alice@example.com", "name": "Alice"}],
                    "subject": "Hi",
                }
            ]
        }

        (message,) = client.fetch_messages(["e1"])

        assert message.folder_ids == frozenset({"mb-inbox"})
        assert message.keywords == frozenset({"$seen"})
        assert message.from_email == "alice@example.com"

    def test_fetch_nothing_skips_request(self, client, http):
        assert client.fetch_messages([]) == []
        assert http.calls_to("Email/get") == []

    def test_fetch_body(self, client, http):
        http.results["Email/get"] = {
            "list": [
                {
                    "id": "e1",
                    "bodyValues": {"1": {"value": "plain"}, "2": {"value": "<p>html</p>"}},
                    "textBody": [{"partId": "1"}],
                    "htmlBody": [{"partId": "2"}],
                }
            ]
        }

        message = client.fetch_message_body("e1")

        assert message.body_text() == "plain"
        assert message.body_html() == "<p>html</p>"
        assert http.calls_to("Email/get")[0]["fetchHTMLBodyValues"] is True

    def test_fetch_sent_mail_with_bodies(self, client, http):
        http.results["Email/get"] = {
            "list": [
                {
                    "id": "e1",
                    "to": [{"email": "pat@client.example", "name": "Pat"}],
                    "cc": [{"email": "me@example.com"}],
                    "bodyValues": {"1": {"value": "Dear Pat,"}},
                    "textBody": [{"partId": "1"}],
                }
            ]
        }

        (message,) = client.fetch_messages(["e1"], fetch_bodies=True)

        assert [r.email for r in message.recipients] == ["pat@client.example", "me@example.com"]
        assert message.body_text() == "Dear Pat,"
        (call,) = http.calls_to("Email/get")
        assert call["fetchTextBodyValues"] is True

    def test_fetch_body_missing(self, client, http):
        http.results["Email/get"] = {"list": []}

        with pytest.raises(NotFoundError):
            client.fetch_message_body("gone")


class TestSending:
    def test_create_draft_multipart(self, client, http):
        http.results["Email/set"] = {"created": {"draft": {"id": "d1"}}}

        draft_id = client.create_draft(["me@example.com"], "Digest", "text", "<p>html</p>")

        assert draft_id == "d1"
        draft = http.calls_to("Email/set")[0]["create"]["draft"]
        assert draft["mailboxIds"] == {"mb-drafts": True}
        assert draft["keywords"] == {"$draft": True}
        assert draft["bodyStructure"]["type"] == "multipart/alternative"
        assert set(draft["bodyValues"]) == {"text", "html"}

    def test_create_draft_text_only(self, client, http):
        http.results["Email/set"] = {"created": {"draft": {"id": "d1"}}}

        client.create_draft(["me@example.com"], "Digest", "text")

        draft = http.calls_to("Email/set")[0]["create"]["draft"]
        assert draft["bodyStructure"] == {"partId": "text", "type": "text/plain"}

    def test_send_uses_first_identity(self, client, http):
        http.results["Identity/get"] = {
            "list": [{"id": "id-1", "email": "me@example.com"}, {"id": "id-2", "email": "x@y"}]
        }
        http.results["EmailSubmission/set"] = {"created": {"submission": {"id": "sub-1"}}}

        assert client.send("d1") == "sub-1"
        (call,) = http.calls_to("EmailSubmission/set")
        assert call["create"]["submission"] == {"identityId": "id-1", "emailId": "d1"}
        assert call["onSuccessDestroyEmail"] == ["#submission"]

    def test_send_without_identity(self, client, http):
        http.results["Identity/get"] = {"list": []}

        with pytest.raises(ConfigurationError):
            client.send("d1")
