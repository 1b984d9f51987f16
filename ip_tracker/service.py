"""Service layer: reusable business logic for both CLI and web API."""

import logging
import time
from dataclasses import dataclass

from .alerts import count_by_priority
from .api.uspto_client import TrademarkSearchClient
from .checkers import MonitoringChecker, build_default_checker
from .config import Config
from .db import Database, load_session, save_session
from .models import AlertSettings, CheckOutcome, MonitoringAlert, MonitoringItem
from .monitoring import MonitoringLifecycle
from .notifier import EmailNotifier
from .scheduler import SweepResult, run_due_checks
from .seed import seed_store
from .store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class Tracker:
    """Everything one tenant session needs, wired from configuration."""
    config: Config
    db: Database
    store: SessionStore
    lifecycle: MonitoringLifecycle
    notifier: EmailNotifier

    def save(self):
        save_session(self.db, self.store)

    def close(self):
        self.lifecycle.shutdown()
        self.db.close()


def default_settings(config: Config) -> AlertSettings:
    return AlertSettings(
        alert_days=tuple(config.alerts.default_alert_days),
        email_notifications=config.alerts.email_notifications,
        auto_renewal=config.alerts.auto_renewal,
    )


def build_tracker(
    config: Config,
    db: Database | None = None,
    checker: MonitoringChecker | None = None,
    notifier: EmailNotifier | None = None,
) -> Tracker:
    """Open the database, restore (or seed) the session and wire the services.

    Args:
        config: Application configuration.
        db: Database to use instead of the configured path.
        checker: Checker to use instead of the USPTO-backed default.
        notifier: Notifier to use instead of SMTP from configuration.
    """
    if db is None:
        db = Database(config.database_path)
    db.init_db()

    store = SessionStore(
        settings=default_settings(config),
        org_id=config.organization_id,
        settings_repository=db,
        close_expiry_gap=config.alerts.close_expiry_gap,
    )
    found = load_session(db, store)
    if not found and config.seed_demo_data:
        seed_store(store)

    if checker is None:
        client = TrademarkSearchClient(
            api_key=config.trademark_api.api_key,
            rate_limit=config.trademark_api.rate_limit_per_minute,
            timeout=config.trademark_api.timeout_seconds,
            max_retries=config.trademark_api.max_retries,
            search_url=config.trademark_api.search_url,
            status_url=config.trademark_api.status_url,
        )
        checker = build_default_checker(
            client,
            similarity_threshold=config.monitoring.similarity_threshold,
            lookback_days=config.monitoring.lookback_days,
        )

    notifier = notifier or EmailNotifier(config.email)

    def notify(item: MonitoringItem, alerts: list[MonitoringAlert]):
        if store.settings.email_notifications:
            notifier.send_monitoring_alerts(item.name, alerts)

    lifecycle = MonitoringLifecycle(
        store,
        checker,
        timeout_seconds=config.monitoring.check_timeout_seconds,
        max_workers=config.monitoring.max_workers,
        check_on_create=config.monitoring.check_on_create,
        on_alerts=notify,
    )
    return Tracker(config=config, db=db, store=store, lifecycle=lifecycle, notifier=notifier)


def run_check(tracker: Tracker, item_id: str, progress_callback=None) -> CheckOutcome:
    """Run one monitoring check and persist the session afterwards."""
    start_time = time.time()
    if progress_callback:
        progress_callback("Running monitoring check...")

    outcome = tracker.lifecycle.run_check(item_id)
    tracker.save()

    if progress_callback:
        if outcome.success:
            progress_callback(
                f"Check complete: {len(outcome.results)} results, "
                f"{len(outcome.alerts_raised)} alerts in {time.time() - start_time:.1f}s"
            )
        else:
            progress_callback(f"Check failed: {outcome.error}")
    return outcome


def run_due(tracker: Tracker, progress_callback=None) -> SweepResult:
    """Check every due monitoring item and persist the session."""
    result = run_due_checks(tracker.lifecycle, tracker.store, progress_callback=progress_callback)
    tracker.save()
    return result


def send_alert_digest(tracker: Tracker) -> bool:
    """Email the current alerts, unless the session turned notifications off.

    Returns:
        True if a digest was sent.
    """
    store = tracker.store
    if not store.settings.email_notifications:
        logger.info("Email notifications are turned off in alert settings; digest not sent")
        return False

    derived = store.alerts
    monitoring = store.list_monitoring_alerts()
    if not derived and not monitoring:
        logger.info("No alerts to send")
        return False

    return tracker.notifier.send_alert_digest(derived, monitoring)


def get_dashboard_stats(store: SessionStore) -> dict:
    """Get statistics for the dashboard.

    Returns:
        Dict with keys: assets, clients, tasks, matters, monitoring,
        alerts_by_priority, total_alerts, skipped_entities.
    """
    aggregated = store.aggregated_alerts()
    return {
        "assets": store.asset_stats(),
        "clients": store.client_stats(),
        "tasks": store.task_stats(),
        "matters": store.matter_stats(),
        "monitoring": store.monitoring_stats(),
        "alerts_by_priority": count_by_priority(aggregated),
        "total_alerts": len(aggregated),
        "skipped_entities": len(store.skipped),
    }
