"""Background scheduler that runs monitoring checks when they fall due.

Uses APScheduler. A single interval job sweeps the store every
``poll_seconds`` and checks each watch whose ``next_check`` has passed, so
each item is effectively checked at its own hourly/daily/weekly/monthly
frequency.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler

from .errors import CheckInProgressError, IPTrackerError
from .models import MonitoringItem
from .monitoring import MonitoringLifecycle
from .store import SessionStore

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "monitoring_sweep"


@dataclass
class SweepResult:
    """Result of one pass over the due monitoring items."""
    checked: int = 0
    failed: int = 0
    skipped: int = 0
    alerts_raised: int = 0
    errors: list[str] = field(default_factory=list)


def is_due(item: MonitoringItem, now: datetime) -> bool:
    if item.status not in ("active", "error"):
        return False
    return item.next_check is None or item.next_check <= now


def due_items(store: SessionStore) -> list[MonitoringItem]:
    now = store.now()
    return [item for item in store.list_monitoring_items() if is_due(item, now)]


def run_due_checks(lifecycle: MonitoringLifecycle, store: SessionStore, progress_callback=None) -> SweepResult:
    """Check every due item. One item's failure never stops the sweep."""
    result = SweepResult()
    items = due_items(store)
    if progress_callback:
        progress_callback(f"{len(items)} monitoring item(s) due")

    for item in items:
        if lifecycle.is_in_flight(item.id):
            result.skipped += 1
            continue
        try:
            outcome = lifecycle.run_check(item.id)
        except CheckInProgressError:
            result.skipped += 1
            continue
        except IPTrackerError as e:
            # Deleted or paused since the sweep started
            logger.info(f"Skipping monitoring item {item.id}: {e}")
            result.skipped += 1
            continue

        if outcome.success:
            result.checked += 1
            # A result for an item deleted mid-check was discarded
            if store.find_monitoring_item(item.id) is not None:
                result.alerts_raised += len(outcome.alerts_raised)
        else:
            result.failed += 1
            result.errors.append(f"{item.name}: {outcome.error}")

        if progress_callback:
            progress_callback(f"Checked '{item.name}'")

    if items:
        logger.info(
            f"Monitoring sweep: {result.checked} checked, {result.failed} failed, "
            f"{result.skipped} skipped, {result.alerts_raised} new alerts"
        )
    return result


class MonitoringScheduler:
    """Owns the APScheduler job that sweeps for due monitoring checks."""

    def __init__(
        self,
        lifecycle: MonitoringLifecycle,
        store: SessionStore,
        poll_seconds: int = 60,
        scheduler=None,
    ):
        self.lifecycle = lifecycle
        self.store = store
        self.poll_seconds = poll_seconds
        self.scheduler = scheduler or BackgroundScheduler()
        self.last_sweep: datetime | None = None
        self.last_result: SweepResult | None = None

    def sweep(self) -> SweepResult:
        self.last_sweep = self.store.now()
        try:
            self.last_result = run_due_checks(self.lifecycle, self.store)
        except Exception as e:
            logger.error(f"Monitoring sweep failed: {e}")
            self.last_result = SweepResult(errors=[str(e)])
        return self.last_result

    def start(self):
        self.scheduler.add_job(
            self.sweep,
            "interval",
            seconds=self.poll_seconds,
            id=SWEEP_JOB_ID,
            name="Monitoring Sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(f"Monitoring scheduler started (every {self.poll_seconds}s)")

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Monitoring scheduler stopped")

    def get_status(self) -> dict:
        return {
            "running": bool(self.scheduler.running),
            "poll_seconds": self.poll_seconds,
            "last_sweep": self.last_sweep.isoformat() if self.last_sweep else None,
            "last_result": (
                {
                    "checked": self.last_result.checked,
                    "failed": self.last_result.failed,
                    "skipped": self.last_result.skipped,
                    "alerts_raised": self.last_result.alerts_raised,
                }
                if self.last_result else None
            ),
        }
