"""InboxQ - Mailbox triage, correction learning, and digest cleanup"""

from __future__ import annotations

__version__ = "0.1.0"
