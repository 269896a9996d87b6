"""
inboxq-daemon - long-running triage process and one-shot commands.

    inboxq-daemon run               seed sender profiles on first start, then poll and
                                    send scheduled digests until interrupted
    inboxq-daemon triage-once       one triage cycle (includes the correction sweep)
    inboxq-daemon triage-email <id> classify and file one message on demand
    inboxq-daemon digest-once       generate and send the pending digest
    inboxq-daemon cleanup <token>   run the cleanup for a digest token
    inboxq-daemon stats             ledger, digest (with the last one sent) and
                                    telemetry counts
"""

from __future__ import annotations

import argparse
import json
import sys
import threading

from inboxq.infrastructure.env import ensure_env_loaded
from inboxq.infrastructure.errors import ConfigurationError, MailstoreError, NotFoundError
from inboxq.observability.logging import get_logger
from inboxq.observability.telemetry import log_event, telemetry_snapshot
from inboxq.runtime.scheduler import DigestSchedule, PeriodicTimer, serialized
from inboxq.runtime.services import ServiceBundle, build_services
from inboxq.storage.models import DigestStatus

logger = get_logger(__name__)


def run_forever(services: ServiceBundle, stop: threading.Event | None = None) -> None:
    """
    Start both timers and block until stop is set or the process is interrupted.

    Triage and digest ticks share one lock, so a digest never renders while
    a triage cycle is moving messages, and the other way round.
    """
    stop = stop or threading.Event()
    settings = services.settings
    tick_lock = threading.Lock()

    triage_timer = PeriodicTimer(
        settings.poll_interval_seconds,
        serialized(tick_lock, services.triage.run_triage_cycle),
        name="triage",
    )
    digest_schedule = DigestSchedule(
        settings.digest_times, serialized(tick_lock, services.digests.generate_and_send_digest)
    )

    triage_timer.start()
    digest_schedule.start()
    log_event(
        "daemon.started",
        mode=settings.mode,
        poll_interval=settings.poll_interval_seconds,
        digest_times=settings.digest_times,
    )

    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    finally:
        triage_timer.cancel()
        digest_schedule.cancel()


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def cmd_run(services: ServiceBundle, args: argparse.Namespace) -> int:
    try:
        analysis = services.profiles.ensure_sent_mail_analyzed()
    except MailstoreError as e:
        logger.error("Sent-mail analysis failed, retrying on next start: %s", e)
    else:
        if analysis is not None:
            logger.info(
                "Seeded %d sender profiles from %d sent emails",
                analysis.profiles_updated,
                analysis.emails_analyzed,
            )
    run_forever(services)
    return 0


def cmd_triage_once(services: ServiceBundle, args: argparse.Namespace) -> int:
    results = services.triage.run_triage_cycle()
    _print_json({"processed": len(results), "results": [r.to_dict() for r in results]})
    return 0


def cmd_triage_email(services: ServiceBundle, args: argparse.Namespace) -> int:
    try:
        result = services.triage.triage_email(args.email_id)
    except NotFoundError as e:
        _print_json({"error": str(e)})
        return 1
    _print_json(result.to_dict())
    return 0


def cmd_digest_once(services: ServiceBundle, args: argparse.Namespace) -> int:
    outcome = services.digests.generate_and_send_digest()
    _print_json(outcome.model_dump())
    return 0 if outcome.success else 1


def cmd_cleanup(services: ServiceBundle, args: argparse.Namespace) -> int:
    result = services.cleanup.cleanup(args.token)
    _print_json(result.model_dump())
    return 0 if result.success else 1


def cmd_stats(services: ServiceBundle, args: argparse.Namespace) -> int:
    stats = services.store.get_email_stats()
    payload = stats.model_dump()
    payload["digests"] = {
        status.value: services.store.count_digests(status) for status in DigestStatus
    }
    last = services.store.get_last_digest()
    payload["last_digest"] = (
        {
            "id": last.id,
            "status": last.status.value,
            "sent_at": last.sent_at,
            "email_count": last.email_count,
        }
        if last
        else None
    )
    payload["telemetry"] = telemetry_snapshot()
    _print_json(payload)
    return 0


COMMANDS = {
    "run": cmd_run,
    "triage-once": cmd_triage_once,
    "triage-email": cmd_triage_email,
    "digest-once": cmd_digest_once,
    "cleanup": cmd_cleanup,
    "stats": cmd_stats,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="inboxq-daemon", description="Mailbox triage, corrections and digests"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("run", help="Poll and send scheduled digests until interrupted")
    subparsers.add_parser("triage-once", help="Run one triage cycle")
    triage_email = subparsers.add_parser(
        "triage-email", help="Classify and file one message, even if already processed"
    )
    triage_email.add_argument("email_id", help="Remote message id")
    subparsers.add_parser("digest-once", help="Generate and send the pending digest")
    cleanup = subparsers.add_parser("cleanup", help="Run cleanup for a digest token")
    cleanup.add_argument("token", help="Cleanup token from a sent digest")
    subparsers.add_parser("stats", help="Show ledger and digest counts")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    ensure_env_loaded()

    try:
        services = build_services()
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return 2

    return COMMANDS[args.command](services, args)


if __name__ == "__main__":
    sys.exit(main())
