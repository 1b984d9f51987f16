"""Tests for the monitoring check lifecycle."""

import logging
import threading
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from ip_tracker.checkers import MonitoringChecker
from ip_tracker.errors import CheckInProgressError, MonitoringPausedError, NotFoundError
from ip_tracker.models import AlertDraft, CheckOutcome, MonitoringItem
from ip_tracker.monitoring import MonitoringLifecycle
from ip_tracker.store import SessionStore

NOW = datetime(2026, 3, 1, 9, 30)


class FakeChecker(MonitoringChecker):
    """Returns queued outcomes in order; queued exceptions are raised."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def check(self, item, now=None):
        self.calls.append(item)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class BlockingChecker(MonitoringChecker):
    """Blocks until released, recording the stored status seen mid-check."""

    def __init__(self, store, outcome):
        self.store = store
        self.outcome = outcome
        self.started = threading.Event()
        self.release = threading.Event()
        self.status_during_check = None

    def check(self, item, now=None):
        found = self.store.find_monitoring_item(item.id)
        self.status_during_check = found.status if found else None
        self.started.set()
        self.release.wait(timeout=5)
        return self.outcome


def success(n_alerts: int, n_results: int | None = None) -> CheckOutcome:
    n_results = n_alerts if n_results is None else n_results
    return CheckOutcome(
        success=True,
        results=[{"serialNumber": str(i)} for i in range(n_results)],
        alerts_raised=[
            AlertDraft(type="similar_mark", priority="medium", title=f"Similar mark {i}")
            for i in range(n_alerts)
        ],
        checked_at=NOW,
        next_check_at=NOW + timedelta(days=1),
    )


def make_store_with_item(**kwargs) -> SessionStore:
    store = SessionStore(clock=lambda: NOW)
    defaults = {"id": "mon-1", "name": "Innovatr Brand Protection", "type": "trademark", "keywords": ["Innovatr"]}
    defaults.update(kwargs)
    store.add_monitoring_item(MonitoringItem(**defaults))
    return store


@pytest.fixture
def lifecycles():
    created = []

    def factory(store, checker, **kwargs):
        lifecycle = MonitoringLifecycle(store, checker, **kwargs)
        created.append(lifecycle)
        return lifecycle

    yield factory
    for lifecycle in created:
        lifecycle.shutdown()


def run_in_thread(fn, *args):
    result = {}

    def target():
        try:
            result["value"] = fn(*args)
        except Exception as e:
            result["error"] = e

    thread = threading.Thread(target=target)
    thread.start()
    return thread, result


def test_successful_check_updates_item_and_raises_alerts(lifecycles):
    store = make_store_with_item()
    lifecycle = lifecycles(store, FakeChecker(success(2)))

    outcome = lifecycle.run_check("mon-1")

    assert outcome.success is True
    item = store.get_monitoring_item("mon-1")
    assert item.status == "active"
    assert item.last_checked == NOW
    assert item.next_check == NOW + timedelta(days=1)
    assert item.alert_count == 2
    assert len(item.last_results) == 2
    assert item.last_error is None

    alerts = store.list_monitoring_alerts("mon-1")
    assert len(alerts) == 2
    assert all(a.monitoring_item_name == "Innovatr Brand Protection" for a in alerts)
    assert len({a.id for a in alerts}) == 2


def test_alert_count_accumulates_across_checks(lifecycles):
    store = make_store_with_item()
    lifecycle = lifecycles(store, FakeChecker(success(2), success(0)))

    lifecycle.run_check("mon-1")
    lifecycle.run_check("mon-1")

    item = store.get_monitoring_item("mon-1")
    assert item.alert_count == 2
    assert item.last_results == []


def test_alert_count_is_not_recomputed_from_alert_list(lifecycles):
    store = make_store_with_item()
    lifecycle = lifecycles(store, FakeChecker(success(2), success(1)))

    lifecycle.run_check("mon-1")
    for alert in store.list_monitoring_alerts("mon-1"):
        store.dismiss_monitoring_alert(alert.id)
    lifecycle.run_check("mon-1")

    assert store.get_monitoring_item("mon-1").alert_count == 3
    assert len(store.list_monitoring_alerts("mon-1")) == 1


def test_failed_outcome_sets_error_and_keeps_schedule(lifecycles):
    last_checked = NOW - timedelta(days=1)
    store = make_store_with_item(last_checked=last_checked, next_check=NOW)
    lifecycle = lifecycles(store, FakeChecker(CheckOutcome.failure("USPTO unavailable")))

    outcome = lifecycle.run_check("mon-1")

    assert outcome.success is False
    item = store.get_monitoring_item("mon-1")
    assert item.status == "error"
    assert item.last_error == "USPTO unavailable"
    assert item.last_checked == last_checked
    assert item.next_check == NOW
    assert store.list_monitoring_alerts() == []


def test_checker_exception_becomes_error(lifecycles):
    store = make_store_with_item()
    lifecycle = lifecycles(store, FakeChecker(RuntimeError("connection reset")))

    outcome = lifecycle.run_check("mon-1")

    assert outcome.success is False
    assert store.get_monitoring_item("mon-1").status == "error"
    assert "connection reset" in store.get_monitoring_item("mon-1").last_error


def test_error_item_recovers_on_next_success(lifecycles):
    store = make_store_with_item()
    lifecycle = lifecycles(store, FakeChecker(CheckOutcome.failure("down"), success(1)))

    lifecycle.run_check("mon-1")
    lifecycle.run_check("mon-1")

    item = store.get_monitoring_item("mon-1")
    assert item.status == "active"
    assert item.last_error is None
    assert item.alert_count == 1


def test_timeout_sets_error(lifecycles):
    store = make_store_with_item()
    checker = BlockingChecker(store, success(1))
    lifecycle = lifecycles(store, checker, timeout_seconds=0.1)

    try:
        outcome = lifecycle.run_check("mon-1")
    finally:
        checker.release.set()

    assert outcome.success is False
    assert "timed out" in outcome.error
    item = store.get_monitoring_item("mon-1")
    assert item.status == "error"
    assert item.alert_count == 0
    assert not lifecycle.is_in_flight("mon-1")


def test_timeout_warns_when_worker_stays_busy(lifecycles, caplog):
    store = make_store_with_item()
    checker = BlockingChecker(store, success(1))
    lifecycle = lifecycles(store, checker, timeout_seconds=0.5)

    try:
        with caplog.at_level(logging.WARNING, logger="ip_tracker.monitoring"):
            lifecycle.run_check("mon-1")
    finally:
        checker.release.set()

    assert "still running and occupies a check worker" in caplog.text


def test_paused_item_is_not_checked(lifecycles):
    store = make_store_with_item(status="paused")
    checker = FakeChecker(success(1))
    lifecycle = lifecycles(store, checker)

    with pytest.raises(MonitoringPausedError):
        lifecycle.run_check("mon-1")

    assert checker.calls == []
    assert store.get_monitoring_item("mon-1").status == "paused"


def test_unknown_item_raises_not_found(lifecycles):
    store = SessionStore(clock=lambda: NOW)
    lifecycle = lifecycles(store, FakeChecker())
    with pytest.raises(NotFoundError):
        lifecycle.run_check("missing")


def test_status_is_checking_while_in_flight_and_concurrent_check_rejected(lifecycles):
    store = make_store_with_item()
    checker = BlockingChecker(store, success(2))
    lifecycle = lifecycles(store, checker)

    thread, result = run_in_thread(lifecycle.run_check, "mon-1")
    try:
        assert checker.started.wait(timeout=5)
        assert lifecycle.is_in_flight("mon-1")
        with pytest.raises(CheckInProgressError):
            lifecycle.run_check("mon-1")
    finally:
        checker.release.set()
        thread.join(timeout=5)

    assert checker.status_during_check == "checking"
    assert result["value"].success is True
    assert store.get_monitoring_item("mon-1").alert_count == 2
    assert not lifecycle.is_in_flight("mon-1")


def test_checker_receives_a_snapshot(lifecycles):
    store = make_store_with_item()
    checker = FakeChecker(success(0))
    lifecycle = lifecycles(store, checker)

    lifecycle.run_check("mon-1")

    seen = checker.calls[0]
    assert seen is not store.get_monitoring_item("mon-1")
    assert seen.keywords == ["Innovatr"]


def test_alert_keeps_item_name_after_rename(lifecycles):
    store = make_store_with_item()
    lifecycle = lifecycles(store, FakeChecker(success(1)))

    lifecycle.run_check("mon-1")
    store.update_monitoring_item("mon-1", {"name": "Renamed Watch"})

    alert = store.list_monitoring_alerts("mon-1")[0]
    assert alert.monitoring_item_name == "Innovatr Brand Protection"
    assert alert.monitoring_item_id == "mon-1"


def test_result_discarded_when_item_deleted_mid_check(lifecycles):
    store = make_store_with_item()
    checker = BlockingChecker(store, success(3))
    lifecycle = lifecycles(store, checker)

    thread, result = run_in_thread(lifecycle.run_check, "mon-1")
    try:
        assert checker.started.wait(timeout=5)
        store.delete_monitoring_item("mon-1")
    finally:
        checker.release.set()
        thread.join(timeout=5)

    assert result["value"].success is True
    assert store.find_monitoring_item("mon-1") is None
    assert store.list_monitoring_alerts() == []


def test_pause_during_check_is_kept(lifecycles):
    store = make_store_with_item()
    checker = BlockingChecker(store, success(1))
    lifecycle = lifecycles(store, checker)

    thread, _ = run_in_thread(lifecycle.run_check, "mon-1")
    try:
        assert checker.started.wait(timeout=5)
        store.update_monitoring_item("mon-1", {"status": "paused"})
    finally:
        checker.release.set()
        thread.join(timeout=5)

    item = store.get_monitoring_item("mon-1")
    assert item.status == "paused"
    assert item.alert_count == 1


def test_on_alerts_called_with_new_alerts(lifecycles):
    store = make_store_with_item()
    listener = MagicMock()
    lifecycle = lifecycles(store, FakeChecker(success(2), success(0)), on_alerts=listener)

    lifecycle.run_check("mon-1")
    lifecycle.run_check("mon-1")

    listener.assert_called_once()
    item, alerts = listener.call_args.args
    assert item.id == "mon-1"
    assert len(alerts) == 2


def test_on_alerts_skipped_when_item_notifications_off(lifecycles):
    store = make_store_with_item(notifications=False)
    listener = MagicMock()
    lifecycle = lifecycles(store, FakeChecker(success(2)), on_alerts=listener)

    lifecycle.run_check("mon-1")

    listener.assert_not_called()


def test_listener_failure_does_not_fail_check(lifecycles):
    store = make_store_with_item()
    listener = MagicMock(side_effect=RuntimeError("smtp down"))
    lifecycle = lifecycles(store, FakeChecker(success(1)), on_alerts=listener)

    outcome = lifecycle.run_check("mon-1")

    assert outcome.success is True
    assert store.get_monitoring_item("mon-1").alert_count == 1


def test_wants_initial_check(lifecycles):
    store = SessionStore(clock=lambda: NOW)
    lifecycle = lifecycles(store, FakeChecker())

    trademark = lifecycle.add_item(MonitoringItem(name="Brand", type="trademark", keywords=["Innovatr"]))
    domain = lifecycle.add_item(MonitoringItem(name="Domains", type="domain", keywords=["Innovatr"]))
    empty = lifecycle.add_item(MonitoringItem(name="Empty", type="trademark", keywords=[" "]))

    assert lifecycle.wants_initial_check(trademark) is True
    assert lifecycle.wants_initial_check(domain) is False
    assert lifecycle.wants_initial_check(empty) is False
    assert len(store.list_monitoring_items()) == 3

    lifecycle.check_on_create = False
    assert lifecycle.wants_initial_check(trademark) is False


def test_add_item_resets_check_state(lifecycles):
    store = SessionStore(clock=lambda: NOW)
    lifecycle = lifecycles(store, FakeChecker())

    item = lifecycle.add_item(MonitoringItem(
        id="mon-new", name="Brand", type="trademark", keywords=["Innovatr"],
        status="checking", alert_count=99, last_checked=NOW, next_check=NOW + timedelta(days=9),
        last_results=[{"serialNumber": "1"}], last_error="old",
    ))

    stored = store.get_monitoring_item("mon-new")
    assert stored is item
    assert item.status == "active"
    assert item.alert_count == 0
    assert item.last_checked is None
    assert item.next_check is None
    assert item.last_results == []
    assert item.last_error is None


def test_add_item_keeps_paused_status(lifecycles):
    store = SessionStore(clock=lambda: NOW)
    lifecycle = lifecycles(store, FakeChecker())

    item = lifecycle.add_item(MonitoringItem(name="Brand", type="domain", keywords=["Innovatr"], status="paused"))

    assert item.status == "paused"
