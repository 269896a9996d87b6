"""
The process-wide Vertex AI Gemini model.

Built on first use so that importing the classifier (or running the tests)
never touches Google Cloud. Project, location and model name are read from
the environment at that moment, after any .env file has been loaded.
"""

from __future__ import annotations

import os
import threading

from inboxq.infrastructure.settings import GEMINI_LOCATION, GEMINI_MODEL
from inboxq.observability.logging import get_logger

logger = get_logger(__name__)

_model = None
_model_lock = threading.Lock()


class GeminiInitializationError(RuntimeError):
    """Vertex AI is not configured or the model could not be created."""


def _create_model():
    project = os.getenv("GOOGLE_CLOUD_PROJECT")
    if not project:
        raise GeminiInitializationError("GOOGLE_CLOUD_PROJECT not set")
    location = os.getenv("GEMINI_LOCATION", GEMINI_LOCATION)
    model_name = os.getenv("GEMINI_MODEL", GEMINI_MODEL)

    import vertexai
    from vertexai.generative_models import GenerativeModel

    try:
        vertexai.init(project=project, location=location)
        model = GenerativeModel(model_name)
    except Exception as e:
        raise GeminiInitializationError(f"Failed to initialize Gemini: {e}") from e

    logger.info("Gemini ready: %s in %s/%s", model_name, project, location)
    return model


def get_gemini_model():
    """
    The shared GenerativeModel, created once per process.

    Raises:
        GeminiInitializationError: If the project is unset or Vertex AI fails
    """
    global _model
    if _model is None:
        with _model_lock:
            if _model is None:
                _model = _create_model()
    return _model
