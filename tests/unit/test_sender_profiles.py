"""Tests for sender profile inference and bookkeeping"""

from __future__ import annotations

import pytest

from inboxq.infrastructure.errors import TransientRemoteError
from inboxq.sender.profiles import (
    SENT_MAIL_ANALYZED_KEY,
    ProfileManager,
    SentMailAnalysis,
    describe_formality,
    format_profile_for_classifier,
    infer_relationship_type,
)
from inboxq.storage.models import RelationshipType, SenderProfile


@pytest.mark.parametrize(
    "email, formality, received, sent, expected",
    [
        ("noreply@bank.example", 0.5, 0, 0, RelationshipType.SERVICE),
        ("billing@utility.example", 0.2, 10, 10, RelationshipType.SERVICE),
        ("sam@friends.example", 0.2, 4, 3, RelationshipType.PERSONAL),
        ("pat@client.example", 0.6, 10, 4, RelationshipType.BUSINESS),
        ("ads@promo.example", 0.5, 20, 1, RelationshipType.SERVICE),
        ("sam@friends.example", 0.5, 2, 0, RelationshipType.UNKNOWN),
    ],
)
def test_infer_relationship_type(email, formality, received, sent, expected):
    assert infer_relationship_type(email, formality, received, sent) == expected


@pytest.mark.parametrize(
    "formality, expected", [(0.9, "formal"), (0.5, "professional"), (0.1, "casual")]
)
def test_describe_formality(formality, expected):
    assert describe_formality(formality) == expected


def test_format_profile_for_classifier():
    profile = SenderProfile(
        email="pat@client.example",
        domain="client.example",
        relationship_type=RelationshipType.BUSINESS,
        formality=0.5,
        emails_received=7,
        emails_sent=3,
    )

    assert format_profile_for_classifier(profile) == (
        "Relationship: business | History: 7 received, 3 sent | "
        "Your tone with them: professional"
    )


class TestProfileManager:
    def test_record_creates_then_increments(self, store):
        profiles = ProfileManager(store)

        profiles.record_incoming_email("Pat <Pat@Client.example>")
        profiles.record_incoming_email("pat@client.example")

        profile = profiles.get_profile("pat@client.example")
        assert profile.emails_received == 2
        assert profile.domain == "client.example"
        assert profile.last_interaction is not None

    def test_get_or_create(self, store):
        profiles = ProfileManager(store)

        created = profiles.get_or_create_profile("support@vendor.example")
        again = profiles.get_or_create_profile("support@vendor.example")

        assert created.relationship_type == RelationshipType.SERVICE
        assert again.email == "support@vendor.example"
        assert again.emails_received == 0

    def test_blank_address_is_ignored(self, store):
        profiles = ProfileManager(store)

        profiles.record_incoming_email("")

        assert profiles.get_profile("") is None

    def test_relationship_is_reinferred_as_mail_arrives(self, store):
        profiles = ProfileManager(store)

        for _ in range(5):
            profiles.record_incoming_email("ads@promo.example")
        assert profiles.get_profile("ads@promo.example").relationship_type == (
            RelationshipType.UNKNOWN
        )

        profiles.record_incoming_email("ads@promo.example")

        profile = profiles.get_profile("ads@promo.example")
        assert profile.emails_received == 6
        assert profile.relationship_type == RelationshipType.SERVICE

    def test_reply_history_makes_a_business_contact(self, store):
        store.save_sender_profile(
            SenderProfile(
                email="pat@client.example",
                domain="client.example",
                formality=0.8,
                emails_received=5,
                emails_sent=3,
            )
        )

        ProfileManager(store).record_incoming_email("pat@client.example")

        profile = store.get_sender_profile("pat@client.example")
        assert profile.relationship_type == RelationshipType.BUSINESS

    def test_vip_is_never_reinferred(self, store):
        store.save_sender_profile(
            SenderProfile(
                email="boss@example.com",
                domain="example.com",
                relationship_type=RelationshipType.VIP,
                emails_received=10,
            )
        )

        ProfileManager(store).record_incoming_email("boss@example.com")

        profile = store.get_sender_profile("boss@example.com")
        assert profile.relationship_type == RelationshipType.VIP
        assert profile.emails_received == 11


FORMAL_BODY = "Dear Pat,\n\nPlease let me know if the contract works.\n\nKind regards,\nMe"
CASUAL_BODY = "Hey Sam!\n\nyeah sounds awesome!!\n\nCheers"


class TestSentMailAnalysis:
    @pytest.fixture
    def sent_id(self, mailstore):
        return mailstore._add_mailbox("Sent", role="sent").id

    @pytest.fixture
    def profiles(self, store, mailstore, settings):
        return ProfileManager(store, mailstore, user_email=settings.user_email)

    def test_builds_profiles_from_sent_mail(self, store, mailstore, sent_id, profiles):
        store.save_sender_profile(
            SenderProfile(email="pat@client.example", domain="client.example", emails_received=4)
        )
        mailstore.deliver(
            folders={sent_id},
            text_body=FORMAL_BODY,
            to=["pat@client.example"],
            cc=["me@example.com"],
        )
        mailstore.deliver(folders={sent_id}, text_body=FORMAL_BODY, to=["Pat@Client.example"])
        mailstore.deliver(folders={sent_id}, text_body=CASUAL_BODY, to=["sam@friends.example"])
        # Received mail is not part of the analysis
        mailstore.deliver(text_body=CASUAL_BODY, to=["other@example.com"])

        result = profiles.analyze_sent_mail()

        assert result == SentMailAnalysis(emails_analyzed=3, profiles_updated=2)

        pat = store.get_sender_profile("pat@client.example")
        assert pat.emails_sent == 2
        assert pat.emails_received == 4
        assert pat.formality == 1.0
        assert pat.relationship_type == RelationshipType.BUSINESS

        sam = store.get_sender_profile("sam@friends.example")
        assert sam.emails_sent == 1
        assert sam.formality == 0.0
        assert sam.relationship_type == RelationshipType.PERSONAL

        assert store.get_sender_profile("me@example.com") is None
        assert store.get_sender_profile("other@example.com") is None

    def test_runs_once(self, store, mailstore, sent_id, profiles):
        mailstore.deliver(folders={sent_id}, text_body=FORMAL_BODY, to=["pat@client.example"])

        first = profiles.ensure_sent_mail_analyzed()
        mailstore.deliver(folders={sent_id}, text_body=CASUAL_BODY, to=["sam@friends.example"])
        second = profiles.ensure_sent_mail_analyzed()

        assert first.profiles_updated == 1
        assert second is None
        assert store.get_config(SENT_MAIL_ANALYZED_KEY) is True
        assert store.get_sender_profile("sam@friends.example") is None

    def test_failure_is_retried_next_time(self, store, mailstore, sent_id, profiles):
        mailstore.fail_on["query_messages"] = TransientRemoteError("server down")

        with pytest.raises(TransientRemoteError):
            profiles.ensure_sent_mail_analyzed()

        assert store.get_config(SENT_MAIL_ANALYZED_KEY) is None

    def test_missing_sent_folder(self, store, profiles):
        assert profiles.ensure_sent_mail_analyzed() == SentMailAnalysis()
        assert store.get_config(SENT_MAIL_ANALYZED_KEY) is True
