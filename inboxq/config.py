"""Centralized configuration for InboxQ.

Re-exports everything from inboxq.infrastructure.settings, then adds typed
constants for the database, triage engine, digest assembly and LLM calls.
Environment overrides use safe defaults so the engine starts without extra
env configuration beyond the JMAP credentials.
"""

from __future__ import annotations

import os

from inboxq.infrastructure.settings import *  # noqa: F401, F403

# --- App ---
APP_VERSION: str = "0.1.0"

# --- Database ---
DB_POOL_SIZE: int = int(os.getenv("INBOXQ_DB_POOL_SIZE", "3"))
DB_POOL_TIMEOUT: float = 5.0
DB_CONNECT_TIMEOUT: float = 10.0
DB_TEMP_CONN_MAX: int = 5
DB_RETRY_MAX: int = 5
DB_RETRY_BASE_DELAY: float = 0.1
DB_RETRY_MAX_DELAY: float = 2.0
DB_RETRY_JITTER: float = 0.25

# --- Folders ---
PARENT_FOLDER_NAME: str = "InboxQ"
CORRECTION_FOLDER_NAME: str = "InboxQ-Correction"
KEYWORD_PREFIX: str = "$inboxq_"

# --- Triage ---
INBOX_QUERY_LIMIT: int = 500
TRIAGE_BATCH_SIZE: int = 50
MAX_SUGGESTED_LABELS: int = 3
PASSTHROUGH_REASONING: str = "Already labeled"

# --- Corrections ---
CORRECTION_QUERY_LIMIT: int = 50
RECENT_CORRECTIONS_LIMIT: int = 10

# --- Sender profiles ---
SENT_MAIL_ANALYSIS_LIMIT: int = 200

# --- Digest ---
ANNOUNCEMENT_SUMMARY_MAX_CHARS: int = 100
LINK_COLLECTION_MAX_LINKS: int = 8
ARTICLE_MIN_BODY_CHARS: int = 100
ARTICLE_BODY_TRUNCATION: int = 2000
LINK_DESCRIPTION_MAX_CHARS: int = 200
DIGEST_FOOTER: str = "Generated by InboxQ"

# --- LLM ---
LLM_MAX_RETRIES: int = int(os.getenv("INBOXQ_LLM_MAX_RETRIES", "3"))

# --- HTTP (JMAP) ---
JMAP_REQUEST_TIMEOUT_SECONDS: float = float(os.getenv("INBOXQ_JMAP_TIMEOUT", "30"))
