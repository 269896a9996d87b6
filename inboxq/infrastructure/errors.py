"""
Error taxonomy shared by the triage, correction, digest and cleanup paths.

Item-level failures (TransientRemoteError, NotFoundError, ClassifierError) are
caught where a single message is processed. ConfigurationError aborts the
operation that is initializing and is never swallowed.
"""

from __future__ import annotations


class InboxQError(Exception):
    """Base exception for InboxQ errors."""

    pass


class ConfigurationError(InboxQError):
    """A required setting or well-known folder is missing."""

    pass


class MailstoreError(InboxQError):
    """Base exception for remote mailbox failures."""

    pass


class TransientRemoteError(MailstoreError):
    """Network or API failure on a single remote call."""

    pass


class NotFoundError(MailstoreError):
    """A referenced folder or message does not exist remotely."""

    pass


class ClassifierError(InboxQError):
    """The classifier could not produce a result."""

    pass
