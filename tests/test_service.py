"""Tests for the service layer."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from ip_tracker.checkers import MonitoringChecker
from ip_tracker.config import AlertConfig, Config, LoggingConfig
from ip_tracker.db import Database
from ip_tracker.models import AlertDraft, CheckOutcome, MonitoringItem
from ip_tracker.service import (
    build_tracker,
    get_dashboard_stats,
    run_check,
    run_due,
    send_alert_digest,
)


class OneAlertChecker(MonitoringChecker):
    def check(self, item, now=None):
        now = now or datetime.now()
        return CheckOutcome(
            success=True,
            results=[{"serialNumber": "97123456"}],
            alerts_raised=[AlertDraft(type="new_application", priority="high", title="New Trademark Application")],
            checked_at=now,
            next_check_at=now + timedelta(days=1),
        )


def make_config(**overrides) -> Config:
    """Create a test config."""
    config = Config(
        database_path=":memory:",
        logging=LoggingConfig(level="DEBUG", file=""),
    )
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


@pytest.fixture
def db():
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture
def notifier():
    notifier = MagicMock()
    notifier.send_alert_digest.return_value = True
    return notifier


@pytest.fixture
def tracker(db, notifier):
    tracker = build_tracker(make_config(), db=db, checker=OneAlertChecker(), notifier=notifier)
    yield tracker
    tracker.lifecycle.shutdown()


def test_build_tracker_seeds_empty_session(tracker):
    store = tracker.store

    assert [c.id for c in store.list_clients()] == ["client-1", "client-2"]
    assert [a.id for a in store.list_assets()] == ["asset-1", "asset-2"]
    assert store.get_monitoring_item("monitoring-1").alert_count == 2
    assert len(store.list_monitoring_alerts()) == 2
    assert sorted(a.id for a in store.alerts) == ["asset-1-60", "asset-1-90", "asset-2-overdue"]


def test_build_tracker_without_seed(db, notifier):
    tracker = build_tracker(make_config(seed_demo_data=False), db=db, checker=OneAlertChecker(), notifier=notifier)
    try:
        assert tracker.store.list_assets() == []
        assert tracker.store.alerts == []
    finally:
        tracker.lifecycle.shutdown()


def test_build_tracker_uses_configured_alert_days(db, notifier):
    config = make_config(alerts=AlertConfig(default_alert_days=[90, 30]))
    tracker = build_tracker(config, db=db, checker=OneAlertChecker(), notifier=notifier)
    try:
        assert tracker.store.settings.alert_days == (30, 90)
        assert sorted(a.id for a in tracker.store.alerts) == ["asset-1-90", "asset-2-overdue"]
    finally:
        tracker.lifecycle.shutdown()


def test_saved_session_is_restored_not_reseeded(tracker, db, notifier):
    tracker.store.delete_asset("asset-2")
    tracker.store.update_settings({"alert_days": [60]})
    tracker.save()

    restored = build_tracker(make_config(), db=db, checker=OneAlertChecker(), notifier=notifier)
    try:
        assert [a.id for a in restored.store.list_assets()] == ["asset-1"]
        assert restored.store.settings.alert_days == (60,)
        assert [a.id for a in restored.store.alerts] == ["asset-1-60"]
    finally:
        restored.lifecycle.shutdown()


def test_run_check_persists_and_reports_progress(tracker, db):
    messages = []

    outcome = run_check(tracker, "monitoring-1", progress_callback=messages.append)

    assert outcome.success is True
    assert tracker.store.get_monitoring_item("monitoring-1").alert_count == 3
    stored = db.get("monitoring_items", "default")
    assert stored["items"][0]["alert_count"] == 3
    assert messages[0] == "Running monitoring check..."
    assert messages[-1].startswith("Check complete: 1 results, 1 alerts")


def test_new_monitoring_alerts_are_emailed(tracker, notifier):
    run_check(tracker, "monitoring-1")

    notifier.send_monitoring_alerts.assert_called_once()
    item_name, alerts = notifier.send_monitoring_alerts.call_args.args
    assert item_name == "Innovatr Brand Protection"
    assert len(alerts) == 1


def test_monitoring_email_respects_settings(tracker, notifier):
    tracker.store.update_settings({"email_notifications": False})

    run_check(tracker, "monitoring-1")

    notifier.send_monitoring_alerts.assert_not_called()


def test_run_due_checks_only_due_items(tracker):
    tracker.lifecycle.add_item(MonitoringItem(id="mon-new", name="New Watch", type="domain", keywords=["Innovatr"]))

    result = run_due(tracker)

    assert result.checked == 1
    assert tracker.store.get_monitoring_item("mon-new").alert_count == 1
    assert tracker.store.get_monitoring_item("monitoring-1").alert_count == 2


def test_send_alert_digest(tracker, notifier):
    assert send_alert_digest(tracker) is True

    derived, monitoring = notifier.send_alert_digest.call_args.args
    assert len(derived) == 3
    assert len(monitoring) == 2


def test_send_alert_digest_respects_settings(tracker, notifier):
    tracker.store.update_settings({"email_notifications": False})

    assert send_alert_digest(tracker) is False
    notifier.send_alert_digest.assert_not_called()


def test_send_alert_digest_nothing_to_send(db, notifier):
    tracker = build_tracker(make_config(seed_demo_data=False), db=db, checker=OneAlertChecker(), notifier=notifier)
    try:
        assert send_alert_digest(tracker) is False
        notifier.send_alert_digest.assert_not_called()
    finally:
        tracker.lifecycle.shutdown()


def test_get_dashboard_stats(tracker):
    stats = get_dashboard_stats(tracker.store)

    assert stats["assets"] == {"total": 2, "active": 1, "expired": 1, "critical_alerts": 1}
    assert stats["clients"]["assets_per_client"] == 1.0
    assert stats["monitoring"]["trademark"] == 1
    assert stats["monitoring"]["total_alerts"] == 2
    assert stats["total_alerts"] == 5
    assert stats["alerts_by_priority"] == {"critical": 1, "high": 1, "medium": 3, "low": 0}
    assert stats["skipped_entities"] == 0
