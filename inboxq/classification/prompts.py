"""
Prompt templates and line-oriented response parsers for the email classifier.

The model answers in "KEY: value" lines. Parsers are lenient: unknown keys
are ignored, and every field has a default, so a partially garbled reply
still yields a usable result.
"""

from __future__ import annotations

import re

from inboxq.classification.models import (
    Classification,
    ClassificationResult,
    ClassifierConfig,
    ContentFormat,
    ParsedCorrection,
)
from inboxq.classification.rules import UnparsedRule
from inboxq.config import ARTICLE_BODY_TRUNCATION
from inboxq.mailstore.models import MailMessage
from inboxq.utils.email import extract_domain_only

CLASSIFY_PROMPT_TEMPLATE = """You are an email triage assistant. Classify the following email into one of these categories:

CATEGORIES:
- "important": Urgent or time-sensitive emails that need immediate attention
- "needs-reply": Emails that require a response from the user, but aren't urgent
- "fyi": Informational emails worth reading but don't need action (personal updates, relevant announcements)
- "low-priority": Newsletters, marketing emails, automated notifications, digests, subscription content

GUIDELINES:
- Bills, invoices, payment due notices and bank or credit card statements are "important"
- Newsletters and subscription emails are "low-priority", never "fyi"
- Senders containing "newsletter", "marketing" or "digest" are low-priority
- Bulk emails sent to many recipients are low-priority

CONTENT FORMATS (for digest summarization):
- "standard": Normal email, default treatment
- "link_collection": Newsletter with multiple curated links to articles or stories
- "article": Long-form content, essay, or opinion piece
- "announcement": Broadcast message, not personal to the recipient
- "transactional": Receipt, confirmation, order status, shipping update

EMAIL METADATA:
- From: {from_name} <{from_email}>
- Subject: {subject}
- Received: {received_at}
- Has attachments: {has_attachment}
{flags}{sender_context}{rules_context}{corrections_context}
EMAIL PREVIEW:
{preview}

Respond in this exact format:
CLASSIFICATION: [one of: important, needs-reply, fyi, low-priority]
CONFIDENCE: [0.0 to 1.0]
REASONING: [Brief explanation of why this classification was chosen]
CONTENT_SUMMARY: [2-3 sentences about what the email is ABOUT: topics, key information, main argument. Do not describe the sender or email type.]
LABELS: [comma-separated suggested labels like "newsletter", "receipt", "meeting", "personal"]
CONTENT_FORMAT: [one of: standard, link_collection, article, announcement, transactional]"""

CORRECTION_PROMPT_TEMPLATE = """Parse this email classification correction into a structured format.

The user wrote: "{text}"

Extract:
1. The new classification (must be one of: important, needs-reply, fyi, low-priority)
2. The reasoning for the correction

Respond in this exact format:
CLASSIFICATION: [one of: important, needs-reply, fyi, low-priority]
REASONING: [the user's explanation, cleaned up into a reusable rule]"""

ARTICLE_PROMPT_TEMPLATE = """Summarize the main argument or key insight of this article in 1-2 sentences.
Focus on the substance, not the author or publication.

Subject: {subject}

{body}

Summary:"""

_INJECTION_PATTERN = re.compile(r"(?i)(ignore|disregard).*(instruction|prompt)")
_ROLE_MARKER = re.compile(r"(?i)\b(system|assistant)\s*:")


def _sanitize(text: str | None, max_length: int = 500) -> str:
    """Strip obvious prompt-injection markers and truncate."""
    if not text:
        return ""
    text = _INJECTION_PATTERN.sub("[REDACTED]", text)
    text = _ROLE_MARKER.sub("", text)
    return text[:max_length]


def build_classify_prompt(
    email: MailMessage,
    config: ClassifierConfig,
    sender_context: str | None = None,
    unparsed_rules: list[UnparsedRule] | None = None,
) -> str:
    """
    Build the classification prompt.

    Args:
        email: Message with envelope fields and preview
        config: VIP/auto-archive lists and learned corrections
        sender_context: Pre-formatted sender relationship line, if known
        unparsed_rules: Free-text rules the rule parser could not structure

    Returns:
        Prompt text
    """
    from_email = email.from_email or "unknown"
    from_name = email.from_name or from_email

    flags = ""
    if config.is_vip(from_email):
        flags += "- SENDER IS MARKED AS VIP\n"
    if config.is_auto_archive(extract_domain_only(from_email)):
        flags += "- SENDER DOMAIN IS MARKED FOR AUTO-ARCHIVE\n"

    sender_block = ""
    if sender_context:
        sender_block = f"\nSENDER RELATIONSHIP CONTEXT:\n- {sender_context}\n"

    rules_block = ""
    if unparsed_rules:
        lines = "\n".join(f"- {rule.text}" for rule in unparsed_rules)
        rules_block = f"\nUSER-DEFINED RULES:\n{lines}\n"

    corrections_block = ""
    if config.corrections:
        lines = "\n".join(
            f'- "{c.email_type}" should be {c.corrected}, not {c.original} (reason: {c.reasoning})'
            for c in config.corrections
        )
        corrections_block = (
            "\nLEARNED FROM USER CORRECTIONS (apply these patterns to similar emails):\n"
            f"{lines}\n"
        )

    return CLASSIFY_PROMPT_TEMPLATE.format(
        from_name=_sanitize(from_name, 100),
        from_email=_sanitize(from_email, 100),
        subject=_sanitize(email.subject, 200) or "(no subject)",
        received_at=email.received_at or "unknown",
        has_attachment="yes" if email.has_attachment else "no",
        flags=flags,
        sender_context=sender_block,
        rules_context=rules_block,
        corrections_context=corrections_block,
        preview=_sanitize(email.preview, 1000) or "(empty)",
    )


def _field(line: str, key: str) -> str | None:
    prefix = f"{key}:"
    if line.startswith(prefix):
        return line[len(prefix):].strip()
    return None


def parse_classification_response(text: str) -> ClassificationResult:
    """Parse a classify reply. Missing or invalid fields keep their defaults."""
    classification = Classification.FYI
    confidence = 0.5
    reasoning = ""
    content_summary = ""
    labels: list[str] = []
    content_format = ContentFormat.STANDARD

    for raw in text.strip().splitlines():
        line = raw.strip()
        if (value := _field(line, "CLASSIFICATION")) is not None:
            classification = Classification.parse(value, classification)
        elif (value := _field(line, "CONFIDENCE")) is not None:
            try:
                parsed = float(value)
            except ValueError:
                continue
            if 0.0 <= parsed <= 1.0:
                confidence = parsed
        elif (value := _field(line, "REASONING")) is not None:
            reasoning = value
        elif (value := _field(line, "CONTENT_SUMMARY")) is not None:
            content_summary = value
        elif (value := _field(line, "LABELS")) is not None:
            labels = [
                label.strip(" \"'").lower()
                for label in value.strip("[]").split(",")
                if label.strip(" \"'")
            ]
        elif (value := _field(line, "CONTENT_FORMAT")) is not None:
            content_format = ContentFormat.parse(value)

    return ClassificationResult(
        classification=classification,
        confidence=confidence,
        reasoning=reasoning,
        content_summary=content_summary,
        suggested_labels=labels,
        content_format=content_format,
    )


def build_correction_prompt(text: str) -> str:
    return CORRECTION_PROMPT_TEMPLATE.format(text=_sanitize(text, 300))


def parse_correction_response(response: str, original_text: str) -> ParsedCorrection:
    """Defaults: fyi, with the user's own words as reasoning."""
    classification = Classification.FYI
    reasoning = original_text

    for raw in response.splitlines():
        line = raw.strip()
        if (value := _field(line, "CLASSIFICATION")) is not None:
            classification = Classification.parse(value, classification)
        elif (value := _field(line, "REASONING")) is not None and value:
            reasoning = value

    return ParsedCorrection(classification=classification, reasoning=reasoning)


def build_article_prompt(subject: str | None, body_text: str) -> str:
    return ARTICLE_PROMPT_TEMPLATE.format(
        subject=_sanitize(subject, 200) or "(no subject)",
        body=body_text[:ARTICLE_BODY_TRUNCATION],
    )
