"""
Sender profiles.

A profile accumulates what we know about a correspondent: how often they
write, how often we write back, and the relationship type that implies.
The triage loop reads a profile before recording each incoming message and
hands it to the classifier as context.

On the first daemon start, the user's sent folder seeds emails_sent and
formality for everyone they have written to.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass

from inboxq.config import SENT_MAIL_ANALYSIS_LIMIT
from inboxq.observability.logging import get_logger
from inboxq.observability.telemetry import log_event
from inboxq.sender.analyzer import (
    NEUTRAL_FORMALITY,
    MessageStyle,
    analyze_message,
    average_formality,
)
from inboxq.storage.models import RelationshipType, SenderProfile, utc_now
from inboxq.utils.email import extract_domain_only, extract_email_address, is_same_address

logger = get_logger(__name__)

SENT_MAIL_ANALYZED_KEY = "sent_mail_analyzed"
SENT_MAIL_PROPERTIES = [
    "id",
    "from",
    "to",
    "cc",
    "subject",
    "sentAt",
    "receivedAt",
    "preview",
    "bodyValues",
    "textBody",
]

SERVICE_SENDER_MARKERS = (
    "noreply",
    "no-reply",
    "notifications",
    "support",
    "help",
    "billing",
    "accounts",
    "newsletter",
    "marketing",
    "info",
    "updates",
)


def describe_formality(formality: float) -> str:
    if formality > 0.7:
        return "formal"
    if formality > 0.4:
        return "professional"
    return "casual"


def infer_relationship_type(
    email: str, formality: float, emails_received: int, emails_sent: int
) -> RelationshipType:
    """
    Infer the relationship from address shape and reply history.

    Automated-looking addresses are always service senders. Otherwise a
    high reply ratio means a real conversation (personal when casual,
    business when not), and a sender we almost never answer after several
    messages is treated as a service.
    """
    address = email.lower()
    if any(marker in address for marker in SERVICE_SENDER_MARKERS):
        return RelationshipType.SERVICE

    reply_ratio = emails_sent / max(emails_received, 1)

    if reply_ratio > 0.5 and formality < 0.4:
        return RelationshipType.PERSONAL
    if reply_ratio > 0.3 and formality >= 0.4:
        return RelationshipType.BUSINESS
    if reply_ratio < 0.1 and emails_received > 5:
        return RelationshipType.SERVICE
    return RelationshipType.UNKNOWN


def format_profile_for_classifier(profile: SenderProfile) -> str:
    return (
        f"Relationship: {profile.relationship_type.value} | "
        f"History: {profile.emails_received} received, {profile.emails_sent} sent | "
        f"Your tone with them: {describe_formality(profile.formality)}"
    )


@dataclass(frozen=True)
class SentMailAnalysis:
    emails_analyzed: int = 0
    profiles_updated: int = 0


class ProfileManager:
    """Read and maintain sender profiles in the Store."""

    def __init__(self, store, mailstore=None, user_email: str = ""):
        self.store = store
        self.mailstore = mailstore
        self.user_email = user_email

    def get_profile(self, email: str) -> SenderProfile | None:
        address = extract_email_address(email)
        if not address:
            return None
        return self.store.get_sender_profile(address)

    def get_or_create_profile(self, email: str) -> SenderProfile:
        address = extract_email_address(email)
        profile = self.store.get_sender_profile(address)
        if profile is not None:
            return profile

        profile = SenderProfile(
            email=address,
            domain=extract_domain_only(address),
            relationship_type=infer_relationship_type(address, NEUTRAL_FORMALITY, 0, 0),
        )
        self.store.save_sender_profile(profile)
        logger.debug("Created sender profile for %s", address)
        return profile

    def record_incoming_email(self, email: str) -> None:
        """
        Count one received message from this sender and re-infer the
        relationship from the updated history. VIP is never overwritten.

        Side Effects:
            - Creates the profile with emails_received=1, or increments it
        """
        address = extract_email_address(email)
        if not address:
            return

        profile = self.store.get_sender_profile(address)
        if profile is None:
            profile = SenderProfile(
                email=address,
                domain=extract_domain_only(address),
                relationship_type=infer_relationship_type(address, NEUTRAL_FORMALITY, 1, 0),
                emails_received=1,
                last_interaction=utc_now(),
            )
            self.store.save_sender_profile(profile)
            return

        self.store.increment_sender_received(address)
        if profile.relationship_type == RelationshipType.VIP:
            return

        relationship = infer_relationship_type(
            address, profile.formality, profile.emails_received + 1, profile.emails_sent
        )
        if relationship != profile.relationship_type:
            self.store.update_sender_relationship(address, relationship)
            logger.info(
                "Sender %s is now %s (was %s)",
                address,
                relationship.value,
                profile.relationship_type.value,
            )

    def analyze_sent_mail(self, limit: int = SENT_MAIL_ANALYSIS_LIMIT) -> SentMailAnalysis:
        """
        Build profiles from the user's sent mail.

        For every recipient (to and cc, the user excluded) of the newest
        `limit` sent messages: emails_sent becomes the number of those
        messages addressed to them and formality the average formality of
        those messages. The relationship is re-inferred against what has
        been received so far.

        Side Effects:
            - Queries the sent folder and fetches message bodies
            - Writes one sender profile per recipient
        """
        sent = self.mailstore.find_folder_by_role("sent")
        if sent is None:
            logger.warning("Sent folder not found, skipping sent-mail analysis")
            return SentMailAnalysis()

        ids = self.mailstore.query_messages(
            {"inMailbox": sent.id},
            limit=limit,
            sort=[{"property": "sentAt", "isAscending": False}],
        )
        messages = self.mailstore.fetch_messages(
            ids, properties=SENT_MAIL_PROPERTIES, fetch_bodies=True
        )

        styles_by_recipient: dict[str, list[MessageStyle]] = defaultdict(list)
        for message in messages:
            style = analyze_message(message.body_text())
            recipients = {extract_email_address(r.email) for r in message.recipients}
            for address in recipients:
                if address and not is_same_address(address, self.user_email):
                    styles_by_recipient[address].append(style)

        now = utc_now()
        for address, styles in styles_by_recipient.items():
            profile = self.get_or_create_profile(address)
            profile.emails_sent = len(styles)
            profile.formality = average_formality(styles)
            if profile.relationship_type != RelationshipType.VIP:
                profile.relationship_type = infer_relationship_type(
                    address, profile.formality, profile.emails_received, profile.emails_sent
                )
            profile.last_interaction = profile.last_interaction or now
            profile.updated_at = now
            self.store.save_sender_profile(profile)

        result = SentMailAnalysis(
            emails_analyzed=len(messages), profiles_updated=len(styles_by_recipient)
        )
        log_event(
            "profiles.sent_mail_analyzed",
            emails=result.emails_analyzed,
            profiles=result.profiles_updated,
        )
        return result

    def ensure_sent_mail_analyzed(
        self, limit: int = SENT_MAIL_ANALYSIS_LIMIT
    ) -> SentMailAnalysis | None:
        """
        Run analyze_sent_mail once per database. Returns None when it already ran.

        The flag is set only after a successful run, so a failed analysis is
        retried on the next start.
        """
        if self.store.get_config(SENT_MAIL_ANALYZED_KEY, False):
            return None
        result = self.analyze_sent_mail(limit)
        self.store.set_config(SENT_MAIL_ANALYZED_KEY, True)
        return result

    def format_profile_for_classifier(self, profile: SenderProfile) -> str:
        return format_profile_for_classifier(profile)
