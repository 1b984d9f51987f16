"""Monitoring check lifecycle: run a watch's check and record what it found.

A check moves an item from ``active`` or ``error`` to ``checking`` and, once
the checker settles, to ``active`` (success) or ``error`` (failure, exception
or timeout). Paused items are never checked. Only one check per item may be
in flight at a time.
"""

import copy
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import replace
from typing import Callable

from .checkers import MonitoringChecker, next_check_at
from .errors import CheckInProgressError, MonitoringPausedError
from .models import CheckOutcome, MonitoringAlert, MonitoringItem
from .store import SessionStore

logger = logging.getLogger(__name__)

AlertListener = Callable[[MonitoringItem, list[MonitoringAlert]], None]


class MonitoringLifecycle:
    """Runs monitoring checks against a session store.

    Checkers run on a bounded worker pool so a hung external lookup cannot
    block the caller for longer than ``timeout_seconds``.
    """

    def __init__(
        self,
        store: SessionStore,
        checker: MonitoringChecker,
        timeout_seconds: float = 60,
        max_workers: int = 4,
        check_on_create: bool = True,
        on_alerts: AlertListener | None = None,
    ):
        self.store = store
        self.checker = checker
        self.timeout_seconds = timeout_seconds
        self.check_on_create = check_on_create
        self.on_alerts = on_alerts
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="monitoring-check")
        self._in_flight: set[str] = set()
        self._in_flight_lock = threading.Lock()

    def is_in_flight(self, item_id: str) -> bool:
        with self._in_flight_lock:
            return item_id in self._in_flight

    def add_item(self, item: MonitoringItem) -> MonitoringItem:
        """Store a new watch with fresh check state.

        Check counters and results are owned by the lifecycle, so whatever the
        caller supplied for them is reset. Only ``paused`` survives as an
        initial status.
        """
        item = replace(
            item,
            status="paused" if item.status == "paused" else "active",
            alert_count=0,
            last_checked=None,
            next_check=None,
            last_results=[],
            last_error=None,
        )
        self.store.add_monitoring_item(item)
        logger.info(f"Added {item.type} monitoring '{item.name}' ({item.id})")
        return item

    def wants_initial_check(self, item: MonitoringItem) -> bool:
        """Whether a freshly added watch should be checked straight away."""
        return self.check_on_create and item.type == "trademark" and bool(item.keywords)

    def run_check(self, item_id: str) -> CheckOutcome:
        """Run one check for a monitoring item and record its outcome.

        Raises:
            NotFoundError: No item with this id.
            MonitoringPausedError: The item is paused.
            CheckInProgressError: A check for this item is already running.
        """
        with self.store.transaction():
            item = self.store.get_monitoring_item(item_id)
            if item.status == "paused":
                raise MonitoringPausedError(item_id)
            with self._in_flight_lock:
                if item_id in self._in_flight:
                    raise CheckInProgressError(item_id)
                self._in_flight.add(item_id)
            snapshot = copy.deepcopy(item)
            self.store.save_monitoring_item(replace(item, status="checking"))

        try:
            outcome = self._execute(snapshot)
            return self._settle(item_id, outcome)
        finally:
            with self._in_flight_lock:
                self._in_flight.discard(item_id)

    def _execute(self, item: MonitoringItem) -> CheckOutcome:
        future = self._executor.submit(self.checker.check, item, self.store.now())
        try:
            return future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            logger.error(f"Check for '{item.name}' timed out after {self.timeout_seconds}s")
            if not future.cancel():
                # A running thread cannot be interrupted; it holds its worker until it returns
                logger.warning(
                    f"Check for '{item.name}' is still running and occupies a check worker; "
                    f"checkers must bound their own network timeouts"
                )
            return CheckOutcome.failure(f"Check timed out after {self.timeout_seconds} seconds")
        except Exception as e:
            logger.exception(f"Check for '{item.name}' raised an error")
            return CheckOutcome.failure(str(e) or e.__class__.__name__)

    def _settle(self, item_id: str, outcome: CheckOutcome) -> CheckOutcome:
        new_alerts = []
        with self.store.transaction():
            current = self.store.find_monitoring_item(item_id)
            if current is None:
                logger.info(f"Monitoring item {item_id} was deleted during its check; discarding result")
                return outcome

            now = self.store.now()
            # A pause requested mid-check wins over the check result
            paused = current.status == "paused"

            if outcome.success:
                checked_at = outcome.checked_at or now
                new_alerts = [MonitoringAlert.from_draft(d, current, now) for d in outcome.alerts_raised]
                updated = replace(
                    current,
                    status="paused" if paused else "active",
                    last_checked=checked_at,
                    next_check=outcome.next_check_at or next_check_at(current.frequency, checked_at),
                    alert_count=current.alert_count + len(new_alerts),
                    last_results=list(outcome.results),
                    last_error=None,
                )
                self.store.add_monitoring_alerts(new_alerts)
                logger.info(
                    f"Check for '{current.name}' complete: {len(outcome.results)} result(s), "
                    f"{len(new_alerts)} new alert(s)"
                )
            else:
                updated = replace(
                    current,
                    status="paused" if paused else "error",
                    last_error=outcome.error,
                )
                logger.warning(f"Check for '{current.name}' failed: {outcome.error}")

            self.store.save_monitoring_item(updated)

        if new_alerts and updated.notifications and self.on_alerts is not None:
            try:
                self.on_alerts(updated, new_alerts)
            except Exception as e:
                logger.error(f"Alert notification for '{updated.name}' failed: {e}")

        return outcome

    def shutdown(self, wait: bool = False):
        self._executor.shutdown(wait=wait, cancel_futures=True)
