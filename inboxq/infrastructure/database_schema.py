"""
Database schema initialization for InboxQ.

Contains the SQL schema and initialization logic, kept apart from database.py.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from inboxq.observability.logging import get_logger

logger = get_logger(__name__)

EXPECTED_TABLES = (
    "processed_emails",
    "digests",
    "corrections",
    "sender_profiles",
    "user_config",
)


def init_database(db_path: Path) -> None:
    """
    Initialize database with schema (idempotent)

    Safe to run multiple times - uses CREATE TABLE IF NOT EXISTS.

    Args:
        db_path: Path to the database file

    Side Effects:
    - Creates tables in inboxq.db if they don't exist
    - Creates indexes, including the one-pending-digest unique index
    - Creates the parent directory if needed
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS processed_emails (
                id TEXT PRIMARY KEY,
                thread_id TEXT,
                from_email TEXT NOT NULL,
                from_name TEXT,
                subject TEXT,
                received_at TEXT,
                processed_at TEXT NOT NULL,
                classification TEXT NOT NULL,
                confidence REAL DEFAULT 0.5,
                reasoning TEXT,
                content_summary TEXT,
                labels_applied TEXT,  -- JSON array
                action_taken TEXT NOT NULL,
                content_format TEXT DEFAULT 'standard',
                digest_id INTEGER REFERENCES digests(id)
            );

            CREATE TABLE IF NOT EXISTS digests (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                cleanup_token TEXT UNIQUE NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                generated_at TEXT NOT NULL,
                sent_at TEXT,
                cleaned_at TEXT,
                email_count INTEGER DEFAULT 0,
                summary TEXT
            );

            CREATE TABLE IF NOT EXISTS corrections (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                email_id TEXT NOT NULL,
                original_classification TEXT NOT NULL,
                corrected_classification TEXT NOT NULL,
                reasoning TEXT,
                email_subject TEXT,
                email_from TEXT,
                email_preview TEXT,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS sender_profiles (
                email TEXT PRIMARY KEY,
                domain TEXT NOT NULL,
                relationship_type TEXT DEFAULT 'unknown',
                formality REAL DEFAULT 0.5,
                emails_received INTEGER DEFAULT 0,
                emails_sent INTEGER DEFAULT 0,
                last_interaction TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS user_config (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_processed_digest ON processed_emails(digest_id);
            CREATE INDEX IF NOT EXISTS idx_processed_at ON processed_emails(processed_at);
            CREATE INDEX IF NOT EXISTS idx_processed_classification
                ON processed_emails(classification);
            CREATE INDEX IF NOT EXISTS idx_corrections_created ON corrections(created_at);
            CREATE UNIQUE INDEX IF NOT EXISTS idx_digests_single_pending
                ON digests(status) WHERE status = 'pending';
        """)
        conn.commit()
    finally:
        conn.close()

    logger.info("Database schema ready at %s", db_path)


def validate_schema(conn: sqlite3.Connection) -> bool:
    """
    Validate database has expected tables

    Raises:
        ValueError: If tables are missing
    """
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    present = {row[0] for row in rows}
    missing = [table for table in EXPECTED_TABLES if table not in present]
    if missing:
        raise ValueError(f"Database schema missing tables: {', '.join(missing)}")
    return True
