"""
The single Gemini call used by the classifier.

Classification, correction parsing and article summaries all go through
call_llm. Vertex AI's transient failures (deadline, unavailable, rate
limit, internal error) are retried with exponential backoff; every other
exception propagates on the first attempt and the caller decides how the
item fails.
"""

from __future__ import annotations

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from inboxq.config import LLM_MAX_RETRIES
from inboxq.infrastructure.settings import GEMINI_MAX_TOKENS, GEMINI_TEMPERATURE
from inboxq.llm.gemini import get_gemini_model
from inboxq.observability.logging import get_logger
from inboxq.observability.telemetry import counter

logger = get_logger(__name__)


class RetryableLLMError(Exception):
    """A Vertex AI failure worth another attempt; `kind` names it for counters."""

    def __init__(self, kind: str, cause: Exception):
        super().__init__(f"LLM {kind}: {cause}")
        self.kind = kind


def _transient_kinds() -> dict[type[Exception], str]:
    from google.api_core import exceptions as gexc

    return {
        gexc.DeadlineExceeded: "timeout",
        gexc.ServiceUnavailable: "service_unavailable",
        gexc.ResourceExhausted: "rate_limited",
        gexc.InternalServerError: "internal_error",
    }


def _log_retry(state: RetryCallState) -> None:
    error = state.outcome.exception() if state.outcome else None
    logger.warning("LLM attempt %d failed, retrying: %s", state.attempt_number, error)


@retry(
    stop=stop_after_attempt(LLM_MAX_RETRIES),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(RetryableLLMError),
    before_sleep=_log_retry,
    reraise=True,
)
def call_llm(prompt: str, counter_prefix: str = "llm", max_output_tokens: int | None = None) -> str:
    """
    Generate text for one prompt.

    Raises:
        RetryableLLMError: When the last attempt still failed transiently
        GeminiInitializationError: When Vertex AI is not configured
    """
    model = get_gemini_model()
    config = {
        "temperature": GEMINI_TEMPERATURE,
        "max_output_tokens": max_output_tokens or GEMINI_MAX_TOKENS,
    }

    try:
        response = model.generate_content(prompt, generation_config=config)
    except Exception as e:
        kind = next(
            (name for cls, name in _transient_kinds().items() if isinstance(e, cls)), None
        )
        if kind is None:
            counter(f"llm.{counter_prefix}.error")
            raise
        counter(f"llm.{counter_prefix}.{kind}")
        raise RetryableLLMError(kind, e) from e

    counter(f"llm.{counter_prefix}.success")
    return response.text
