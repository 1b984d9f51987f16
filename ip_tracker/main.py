"""CLI entry point for the IP portfolio tracker."""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path

from .alerts import filter_alerts
from .config import load_config, validate_config
from .db import Database
from .errors import IPTrackerError
from .models import ALERT_PRIORITIES
from .notifier import EmailNotifier
from .reporter import export_alerts_csv, format_alerts_table, print_summary
from .scheduler import MonitoringScheduler
from .service import build_tracker, run_check, run_due, send_alert_digest


def setup_logging(level: str = "INFO", log_file: str | None = None):
    """Configure logging."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


def cmd_alerts(args):
    """List current deadline and monitoring alerts, optionally emailing a digest."""
    config = load_config(args.config)
    setup_logging(config.logging.level, config.logging.file)

    tracker = build_tracker(config)
    try:
        alerts = filter_alerts(tracker.store.aggregated_alerts(), priority=args.priority, source=args.source)
        print(format_alerts_table(alerts))
        print(f"\nTotal: {len(alerts)} alerts")

        for skipped in tracker.store.skipped:
            print(f"Skipped {skipped.source_type} {skipped.source_id}: {skipped.reason}")

        if args.email:
            if send_alert_digest(tracker):
                print("Alert digest sent.")
            else:
                print("Alert digest not sent.")
    finally:
        tracker.close()


def cmd_check(args):
    """Run a monitoring check for one item."""
    config = load_config(args.config)
    setup_logging(config.logging.level, config.logging.file)
    logger = logging.getLogger("ip_tracker")

    tracker = build_tracker(config)
    try:
        outcome = run_check(tracker, args.item_id)
    except IPTrackerError as e:
        logger.error(str(e))
        sys.exit(1)
    finally:
        tracker.close()

    if outcome.success:
        print(f"Check complete: {len(outcome.results)} results, {len(outcome.alerts_raised)} new alerts")
        for draft in outcome.alerts_raised:
            print(f"  [{draft.priority}] {draft.title}")
    else:
        print(f"Check failed: {outcome.error}")
        sys.exit(1)


def cmd_check_due(args):
    """Run every monitoring check that is due."""
    config = load_config(args.config)
    setup_logging(config.logging.level, config.logging.file)
    logger = logging.getLogger("ip_tracker")

    tracker = build_tracker(config)
    try:
        result = run_due(tracker)
    finally:
        tracker.close()

    print(
        f"{result.checked} checked, {result.failed} failed, "
        f"{result.skipped} skipped, {result.alerts_raised} new alerts"
    )
    for err in result.errors:
        logger.warning(f"Check error: {err}")


def cmd_report(args):
    """Generate a report of current alerts."""
    config = load_config(args.config)
    setup_logging(config.logging.level)

    tracker = build_tracker(config)
    try:
        alerts = tracker.store.aggregated_alerts()

        if args.format == "csv":
            if args.output:
                export_alerts_csv(alerts, args.output)
                print(f"CSV exported to {args.output}")
            else:
                print(export_alerts_csv(alerts))
        elif args.format == "summary":
            print_summary(tracker.store.list_assets(), alerts)
        else:
            print(format_alerts_table(alerts))
    finally:
        tracker.close()


def cmd_test_email(args):
    """Send a test email to verify configuration."""
    config = load_config(args.config)
    setup_logging(config.logging.level)

    errors = validate_config(config)
    email_errors = [e for e in errors if "SMTP" in e or "email" in e.lower() or "recipient" in e.lower()]
    if email_errors:
        for err in email_errors:
            print(f"Error: {err}")
        sys.exit(1)

    notifier = EmailNotifier(config.email)
    success = notifier.send_test_email()

    if success:
        print(f"Test email sent to: {', '.join(config.email.recipients)}")
    else:
        print("Failed to send test email. Check your SMTP settings.")
        sys.exit(1)


def cmd_init_db(args):
    """Initialize the database."""
    config = load_config(args.config)
    setup_logging(config.logging.level)

    db = Database(config.database_path)
    db.init_db()
    db.close()
    print(f"Database initialized at {config.database_path}")


def cmd_scheduler(args):
    """Run the monitoring scheduler in the foreground until interrupted."""
    config = load_config(args.config)
    setup_logging(config.logging.level, config.logging.file)
    logger = logging.getLogger("ip_tracker")

    errors = [e for e in validate_config(config) if e.startswith("monitoring.")]
    if errors:
        for err in errors:
            logger.error(f"Config error: {err}")
        sys.exit(1)

    tracker = build_tracker(config)
    scheduler = MonitoringScheduler(
        tracker.lifecycle,
        tracker.store,
        poll_seconds=args.poll_seconds or config.monitoring.scheduler_poll_seconds,
    )
    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    scheduler.start()
    try:
        while not stop.wait(timeout=scheduler.poll_seconds):
            tracker.save()
    finally:
        scheduler.shutdown()
        tracker.save()
        tracker.close()


def main():
    parser = argparse.ArgumentParser(
        prog="ip-tracker",
        description="Track IP asset expiries, matter deadlines and brand monitoring alerts.",
    )
    parser.add_argument(
        "--config", default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # alerts
    alerts_parser = subparsers.add_parser("alerts", help="List current alerts")
    alerts_parser.add_argument(
        "--priority", choices=["all", *ALERT_PRIORITIES], default="all",
        help="Filter by priority (default: all)",
    )
    alerts_parser.add_argument(
        "--source", choices=["all", "system", "monitoring"], default="all",
        help="Filter by source (default: all)",
    )
    alerts_parser.add_argument(
        "--email", action="store_true",
        help="Also email an alert digest",
    )
    alerts_parser.set_defaults(func=cmd_alerts)

    # check
    check_parser = subparsers.add_parser("check", help="Run a monitoring check")
    check_parser.add_argument("item_id", help="Monitoring item id")
    check_parser.set_defaults(func=cmd_check)

    # check-due
    due_parser = subparsers.add_parser("check-due", help="Run all due monitoring checks")
    due_parser.set_defaults(func=cmd_check_due)

    # report
    report_parser = subparsers.add_parser("report", help="Generate a report")
    report_parser.add_argument(
        "--format", choices=["table", "csv", "summary"], default="table",
        help="Output format (default: table)",
    )
    report_parser.add_argument(
        "--output", "-o", help="Output file path (for CSV)",
    )
    report_parser.set_defaults(func=cmd_report)

    # test-email
    test_parser = subparsers.add_parser("test-email", help="Send a test email")
    test_parser.set_defaults(func=cmd_test_email)

    # init-db
    init_parser = subparsers.add_parser("init-db", help="Initialize the database")
    init_parser.set_defaults(func=cmd_init_db)

    # scheduler
    scheduler_parser = subparsers.add_parser("scheduler", help="Run due checks on a schedule")
    scheduler_parser.add_argument(
        "--poll-seconds", type=int,
        help="Seconds between sweeps (default: from config)",
    )
    scheduler_parser.set_defaults(func=cmd_scheduler)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
