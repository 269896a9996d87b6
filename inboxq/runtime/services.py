"""
Explicit service wiring.

build_services() constructs every collaborator once and returns them in a
frozen ServiceBundle. The daemon holds its bundle for the process lifetime;
the API keeps one on app.state. Nothing here is cached at module level.
"""

from __future__ import annotations

from dataclasses import dataclass

from inboxq.classification.classifier import EmailClassifier
from inboxq.cleanup.reconciler import CleanupReconciler
from inboxq.contracts.capabilities import Classifier, Mailstore
from inboxq.digest.lifecycle import DigestLifecycle
from inboxq.digest.renderer import DigestRenderer
from inboxq.infrastructure.database import init_database
from inboxq.infrastructure.settings import AppSettings
from inboxq.mailstore.client import JMAPMailstore
from inboxq.observability.logging import get_logger
from inboxq.sender.profiles import ProfileManager
from inboxq.storage.store import Store
from inboxq.triage.corrections import CorrectionLoop
from inboxq.triage.engine import TriageLoop
from inboxq.triage.labels import LabelMap

logger = get_logger(__name__)


@dataclass(frozen=True)
class ServiceBundle:
    settings: AppSettings
    store: Store
    mailstore: Mailstore
    classifier: Classifier
    profiles: ProfileManager
    label_map: LabelMap
    corrections: CorrectionLoop
    triage: TriageLoop
    digests: DigestLifecycle
    cleanup: CleanupReconciler


def assemble_services(
    settings: AppSettings, store: Store, mailstore: Mailstore, classifier: Classifier
) -> ServiceBundle:
    """Wire the engine around already-constructed collaborators."""
    profiles = ProfileManager(store, mailstore, user_email=settings.user_email)
    label_map = LabelMap(mailstore)
    corrections = CorrectionLoop(mailstore, store, classifier, label_map)
    triage = TriageLoop(
        mailstore,
        store,
        classifier,
        label_map,
        profiles,
        corrections,
        user_email=settings.user_email,
        mode=settings.mode,
    )
    renderer = DigestRenderer(
        message_link_template=settings.message_link_template,
        cleanup_base_url=settings.cleanup_base_url,
    )
    digests = DigestLifecycle(store, mailstore, classifier, renderer, settings.user_email)
    cleanup = CleanupReconciler(store, mailstore, label_map)

    return ServiceBundle(
        settings=settings,
        store=store,
        mailstore=mailstore,
        classifier=classifier,
        profiles=profiles,
        label_map=label_map,
        corrections=corrections,
        triage=triage,
        digests=digests,
        cleanup=cleanup,
    )


def build_services(settings: AppSettings | None = None) -> ServiceBundle:
    """
    Build the production bundle.

    Side Effects:
        - Creates the SQLite schema if missing
        - Connects to the JMAP session
        - Initializes the classification folders and triage folder lookups

    Raises:
        ConfigurationError: On missing settings or required folders
    """
    settings = settings or AppSettings.from_env()
    init_database()

    mailstore = JMAPMailstore(settings.jmap_session_url, settings.jmap_token)
    mailstore.connect()

    services = assemble_services(settings, Store(), mailstore, EmailClassifier())
    services.triage.initialize()
    logger.info("Services built (mode: %s, user: %s)", settings.mode, settings.user_email)
    return services
