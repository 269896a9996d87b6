"""
EmailClassifier - Gemini-backed implementation of the Classifier capability.

classify() evaluates structured custom rules locally first; only when no
rule decides the classification is the model consulted. Rules the parser
could not structure are forwarded to the prompt verbatim.
"""

from __future__ import annotations

from inboxq.classification.models import (
    ClassificationResult,
    ClassifierConfig,
    ParsedCorrection,
)
from inboxq.classification.prompts import (
    build_article_prompt,
    build_classify_prompt,
    build_correction_prompt,
    parse_classification_response,
    parse_correction_response,
)
from inboxq.classification.rules import apply_rules, parse_custom_rules
from inboxq.infrastructure.errors import ClassifierError
from inboxq.infrastructure.settings import GEMINI_MODEL
from inboxq.llm.retry import call_llm
from inboxq.mailstore.models import MailMessage
from inboxq.observability.logging import get_logger, truncate_subject
from inboxq.observability.telemetry import counter, log_event, time_block
from inboxq.sender.profiles import format_profile_for_classifier
from inboxq.storage.models import SenderProfile

logger = get_logger(__name__)


class EmailClassifier:
    """Classify messages, parse free-text corrections and summarize articles."""

    def __init__(self, llm=call_llm):
        # Injected for tests; production uses the shared retrying call.
        self._llm = llm

    def _complete(self, prompt: str, prefix: str, max_output_tokens: int | None = None) -> str:
        try:
            with time_block(f"llm.{prefix}"):
                return self._llm(prompt, counter_prefix=prefix, max_output_tokens=max_output_tokens)
        except Exception as e:
            counter(f"classifier.{prefix}.error")
            log_event(f"classifier.{prefix}.error", error=str(e)[:200], model=GEMINI_MODEL)
            raise ClassifierError(f"{prefix} call failed: {e}") from e

    def classify(
        self,
        email: MailMessage,
        sender_profile: SenderProfile | None,
        config: ClassifierConfig,
    ) -> ClassificationResult:
        """
        Classify one message.

        Args:
            email: Message envelope and preview
            sender_profile: Known profile for the sender, if any
            config: VIP/auto-archive lists, custom rules and learned corrections

        Returns:
            ClassificationResult

        Raises:
            ClassifierError: If the model call fails after retries

        Side Effects:
            - Calls Gemini unless a rule decides the classification
        """
        rule_set = parse_custom_rules(config.custom_rules)
        decision = apply_rules(email, rule_set.rules)

        if decision is not None and decision.classification is not None:
            counter("classifier.rule_match")
            logger.info(
                "Rule '%s' classified '%s' as %s",
                decision.rule_name,
                truncate_subject(email.subject),
                decision.classification.value,
            )
            return ClassificationResult(
                classification=decision.classification,
                confidence=1.0,
                reasoning=f"Matched rule: {decision.rule_name}",
                suggested_labels=decision.labels,
            )

        sender_context = (
            format_profile_for_classifier(sender_profile) if sender_profile else None
        )
        prompt = build_classify_prompt(
            email, config, sender_context=sender_context, unparsed_rules=rule_set.unparsed
        )
        result = parse_classification_response(self._complete(prompt, "classify"))

        if decision is not None and decision.labels:
            merged = list(dict.fromkeys(decision.labels + result.suggested_labels))
            result = result.model_copy(update={"suggested_labels": merged})

        counter("classifier.llm_classified")
        return result

    def parse_correction(self, text: str) -> ParsedCorrection:
        """Turn a correction folder name into a classification and reusable reasoning."""
        response = self._complete(build_correction_prompt(text), "correction", 200)
        return parse_correction_response(response, text)

    def summarize_article(self, subject: str | None, body_text: str) -> str:
        response = self._complete(build_article_prompt(subject, body_text), "article", 150)
        return response.strip()
