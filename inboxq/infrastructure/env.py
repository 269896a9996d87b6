"""
Environment access for InboxQ.

Values come from the process environment, optionally seeded from a .env
file. Variables already set in the environment win over the file, so a
deployment can override anything a checked-out .env says.

Usage:
    from inboxq.infrastructure.env import get_required_env

    token = get_required_env("JMAP_TOKEN")
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from inboxq.infrastructure.errors import ConfigurationError

_loaded = False


def ensure_env_loaded(env_path: Path | None = None) -> None:
    """
    Load a .env file once per process.

    Args:
        env_path: Explicit file. Defaults to the nearest .env above the
            working directory, then the one above the package.

    Side Effects:
        - Adds unset variables from the file to os.environ
    """
    global _loaded
    if _loaded:
        return

    candidate = env_path
    if candidate is None:
        found = find_dotenv(usecwd=True) or find_dotenv()
        candidate = Path(found) if found else None

    if candidate is not None and candidate.exists():
        load_dotenv(candidate, override=False)
    _loaded = True


def get_required_env(key: str) -> str:
    """
    Raises:
        ConfigurationError: If the variable is unset or empty
    """
    ensure_env_loaded()
    value = os.getenv(key, "").strip()
    if not value:
        raise ConfigurationError(f"Missing required environment variable: {key}")
    return value


def get_optional_env(key: str, default: str = "") -> str:
    ensure_env_loaded()
    return os.getenv(key, default)


def get_int_env(key: str, default: int) -> int:
    """
    Integer variable with a default.

    Raises:
        ConfigurationError: If the variable is set but not an integer
    """
    raw = get_optional_env(key).strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from e
