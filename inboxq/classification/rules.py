"""
User-defined triage rules.

Free-text rules from user config are parsed into a small condition AST:

    FromCondition | DomainCondition | SubjectCondition
    | HasAttachmentCondition | AndCondition | OrCondition

Text that matches none of the recognized phrasings becomes an UnparsedRule
and is forwarded verbatim to the classifier prompt instead of being
evaluated locally.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from inboxq.classification.models import Classification, ClassifierConfig, CorrectionExample
from inboxq.config import RECENT_CORRECTIONS_LIMIT
from inboxq.mailstore.models import MailMessage
from inboxq.observability.logging import get_logger
from inboxq.storage.models import Correction
from inboxq.utils.email import extract_domain_only

logger = get_logger(__name__)


# ============================================================================
# Conditions
# ============================================================================


@dataclass(frozen=True)
class FromCondition:
    """Sender address contains pattern (case-insensitive)."""

    pattern: str

    def matches(self, email: MailMessage) -> bool:
        return self.pattern.lower() in (email.from_email or "").lower()


@dataclass(frozen=True)
class DomainCondition:
    """Sender domain equals domain exactly (case-insensitive)."""

    domain: str

    def matches(self, email: MailMessage) -> bool:
        return extract_domain_only(email.from_email or "") == self.domain.lower()


@dataclass(frozen=True)
class SubjectCondition:
    pattern: str

    def matches(self, email: MailMessage) -> bool:
        return self.pattern.lower() in (email.subject or "").lower()


@dataclass(frozen=True)
class HasAttachmentCondition:
    value: bool = True

    def matches(self, email: MailMessage) -> bool:
        return email.has_attachment == self.value


@dataclass(frozen=True)
class AndCondition:
    conditions: tuple[RuleCondition, ...]

    def matches(self, email: MailMessage) -> bool:
        return all(c.matches(email) for c in self.conditions)


@dataclass(frozen=True)
class OrCondition:
    conditions: tuple[RuleCondition, ...]

    def matches(self, email: MailMessage) -> bool:
        return any(c.matches(email) for c in self.conditions)


RuleCondition = (
    FromCondition
    | DomainCondition
    | SubjectCondition
    | HasAttachmentCondition
    | AndCondition
    | OrCondition
)


# ============================================================================
# Rules
# ============================================================================


class RuleActionType(str, Enum):
    CLASSIFY = "classify"
    LABEL = "label"
    SKIP = "skip"


@dataclass(frozen=True)
class RuleAction:
    type: RuleActionType
    classification: Classification | None = None
    label: str | None = None


@dataclass(frozen=True)
class Rule:
    id: str
    name: str
    condition: RuleCondition
    action: RuleAction
    priority: int


@dataclass(frozen=True)
class UnparsedRule:
    """Rule text the parser could not structure; the classifier interprets it."""

    text: str


@dataclass
class RuleSet:
    rules: list[Rule] = field(default_factory=list)
    unparsed: list[UnparsedRule] = field(default_factory=list)


@dataclass(frozen=True)
class RuleDecision:
    rule_name: str | None
    classification: Classification | None
    labels: list[str]


_CLASSES = "important|needs-reply|fyi|low-priority"
_FROM_RULE = re.compile(r"emails?\s+from\s+(\S+)\s+(?:are|is)\s+(important|low-priority|fyi)")
_SUBJECT_RULE = re.compile(rf"(\w+)\s+(?:are|is)\s+({_CLASSES})")
_ARCHIVE_RULE = re.compile(r"archive\s+emails?\s+from\s+(\S+)")


def parse_custom_rules(texts: list[str]) -> RuleSet:
    """
    Parse free-text rules.

    Recognized phrasings, in match order:
        "emails from X are <class>"   -> from X, priority 100
        "<word> are|is <class>"       -> subject contains word, priority 50
        "archive emails from X"       -> domain X is low-priority, priority 75

    Returns:
        RuleSet with parsed rules sorted by priority (highest first) and the
        rest as UnparsedRule entries in input order.
    """
    rule_set = RuleSet()

    for index, raw in enumerate(texts):
        text = raw.lower().strip()
        if not text:
            continue
        rule_id = f"custom-{index}"

        if match := _FROM_RULE.search(text):
            rule_set.rules.append(
                Rule(
                    id=rule_id,
                    name=text,
                    condition=FromCondition(match.group(1)),
                    action=RuleAction(
                        RuleActionType.CLASSIFY, classification=Classification(match.group(2))
                    ),
                    priority=100,
                )
            )
        elif match := _SUBJECT_RULE.search(text):
            rule_set.rules.append(
                Rule(
                    id=rule_id,
                    name=text,
                    condition=SubjectCondition(match.group(1)),
                    action=RuleAction(
                        RuleActionType.CLASSIFY, classification=Classification(match.group(2))
                    ),
                    priority=50,
                )
            )
        elif match := _ARCHIVE_RULE.search(text):
            rule_set.rules.append(
                Rule(
                    id=rule_id,
                    name=text,
                    condition=DomainCondition(match.group(1)),
                    action=RuleAction(
                        RuleActionType.CLASSIFY, classification=Classification.LOW_PRIORITY
                    ),
                    priority=75,
                )
            )
        else:
            logger.debug("Rule not parsed, forwarding to classifier: %r", raw)
            rule_set.unparsed.append(UnparsedRule(raw.strip()))

    rule_set.rules.sort(key=lambda r: r.priority, reverse=True)
    return rule_set


def apply_rules(email: MailMessage, rules: list[Rule]) -> RuleDecision | None:
    """
    Evaluate rules in order. The first matching classify action wins; label
    actions accumulate; a matching skip action means "no rule decision".

    Returns:
        RuleDecision, or None when no rule classified or labeled the email
    """
    labels: list[str] = []
    classification: Classification | None = None
    rule_name: str | None = None

    for rule in rules:
        if not rule.condition.matches(email):
            continue
        if rule.action.type == RuleActionType.SKIP:
            return None
        if rule.action.type == RuleActionType.CLASSIFY and classification is None:
            classification = rule.action.classification
            rule_name = rule.name
        elif rule.action.type == RuleActionType.LABEL and rule.action.label:
            labels.append(rule.action.label)

    if classification is None and not labels:
        return None
    return RuleDecision(rule_name=rule_name, classification=classification, labels=labels)


# ============================================================================
# Config assembly
# ============================================================================


def summarize_email_type(correction: Correction) -> str:
    """Short description of a corrected email, used as a few-shot example."""
    parts: list[str] = []

    if correction.email_subject:
        subject = correction.email_subject.lower()
        if "booking" in subject or "reservation" in subject:
            parts.append("booking/reservation")
        elif "receipt" in subject or "invoice" in subject:
            parts.append("receipt/invoice")
        elif "newsletter" in subject:
            parts.append("newsletter")
        elif "terms" in subject or "policy" in subject:
            parts.append("terms/policy update")
        elif "calendar" in subject or "event" in subject:
            parts.append("calendar notification")
        else:
            parts.append(correction.email_subject[:40])

    if correction.email_from:
        domain = extract_domain_only(correction.email_from)
        if domain:
            parts.append(f"from {domain}")

    return " ".join(parts) or "email"


def build_config_from_store(store) -> ClassifierConfig:
    """
    Assemble classifier config from user config keys and recent corrections.

    Reads vipSenders, autoArchiveDomains and customRules, plus the most
    recent corrections as few-shot examples.
    """
    corrections = store.get_recent_corrections(RECENT_CORRECTIONS_LIMIT)
    return ClassifierConfig(
        vip_senders=store.get_config("vipSenders", []),
        auto_archive_domains=store.get_config("autoArchiveDomains", []),
        custom_rules=store.get_config("customRules", []),
        corrections=[
            CorrectionExample(
                email_type=summarize_email_type(c),
                original=c.original_classification,
                corrected=c.corrected_classification.value,
                reasoning=c.reasoning,
            )
            for c in corrections
        ],
    )
