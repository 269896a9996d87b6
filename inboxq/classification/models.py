"""
Classification domain models.

Classification and ContentFormat are shared by triage, storage and digest
assembly; the remaining models are the classifier's inputs and outputs.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Classification(str, Enum):
    """Exactly one is active per email at any time."""

    IMPORTANT = "important"
    NEEDS_REPLY = "needs-reply"
    FYI = "fyi"
    LOW_PRIORITY = "low-priority"

    @classmethod
    def parse(cls, value: str, default: Classification | None = None) -> Classification | None:
        """Lenient lookup used when reading LLM output."""
        cleaned = value.strip().strip("[]\"'.").lower()
        for member in cls:
            if member.value == cleaned:
                return member
        return default


class ContentFormat(str, Enum):
    """Selects the digest summarization strategy. Has no effect on triage."""

    STANDARD = "standard"
    LINK_COLLECTION = "link_collection"
    ARTICLE = "article"
    ANNOUNCEMENT = "announcement"
    TRANSACTIONAL = "transactional"

    @classmethod
    def parse(cls, value: str | None) -> ContentFormat:
        if not value:
            return cls.STANDARD
        cleaned = value.strip().strip("[]\"'.").lower()
        for member in cls:
            if member.value == cleaned:
                return member
        return cls.STANDARD


class ClassificationResult(BaseModel):
    """Output of Classifier.classify."""

    model_config = ConfigDict(frozen=True)

    classification: Classification
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reasoning: str = ""
    content_summary: str = ""
    suggested_labels: list[str] = Field(default_factory=list)
    content_format: ContentFormat = ContentFormat.STANDARD


class ParsedCorrection(BaseModel):
    """Output of Classifier.parse_correction."""

    model_config = ConfigDict(frozen=True)

    classification: Classification
    reasoning: str


class CorrectionExample(BaseModel):
    """A past correction rendered as a few-shot line in the classify prompt."""

    email_type: str
    original: str
    corrected: str
    reasoning: str


class ClassifierConfig(BaseModel):
    """User preferences and learned corrections consulted on every classify call."""

    vip_senders: list[str] = Field(default_factory=list)
    auto_archive_domains: list[str] = Field(default_factory=list)
    custom_rules: list[str] = Field(default_factory=list)
    corrections: list[CorrectionExample] = Field(default_factory=list)

    def is_vip(self, email: str) -> bool:
        return any(v.lower() == email.lower() for v in self.vip_senders)

    def is_auto_archive(self, domain: str) -> bool:
        return any(d.lower() == domain.lower() for d in self.auto_archive_domains)
