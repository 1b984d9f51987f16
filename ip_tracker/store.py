"""In-memory session store for one tenant's IP portfolio.

The store owns every entity collection, the alert settings and the derived
alert list. Any change to assets, matters or settings recomputes the derived
alerts in full. All mutations go through a single re-entrant lock so that
web request threads, background checks and the scheduler see a consistent
state.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Callable, Protocol

from .alerts import AggregatedAlert, aggregate_alerts, days_between, derive_alerts_report
from .errors import ConflictError, NotFoundError, ValidationError
from .models import (
    AlertSettings,
    Asset,
    CalendarEvent,
    Client,
    DerivedAlert,
    Matter,
    MonitoringAlert,
    MonitoringItem,
    SkippedEntity,
    Task,
    parse_date,
)

logger = logging.getLogger(__name__)

SETTINGS_COLLECTION = "settings"

# Fields callers may never overwrite through update()
_PROTECTED_FIELDS = {"id", "created_at"}
_MONITORING_MANAGED_FIELDS = {"alert_count", "last_checked", "next_check", "last_results", "last_error"}


class SettingsRepository(Protocol):
    """Key-value persistence for settings, scoped by organization."""

    def get(self, collection: str, org_id: str) -> dict | None: ...

    def upsert(self, collection: str, org_id: str, value: dict) -> None: ...


class SessionStore:
    def __init__(
        self,
        settings: AlertSettings | None = None,
        org_id: str = "default",
        settings_repository: SettingsRepository | None = None,
        close_expiry_gap: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.org_id = org_id
        self.close_expiry_gap = close_expiry_gap
        self._clock = clock
        self._repository = settings_repository
        self._lock = threading.RLock()
        self._default_settings = settings or AlertSettings()
        self._settings = self._default_settings

        self._clients: dict[str, Client] = {}
        self._assets: dict[str, Asset] = {}
        self._matters: dict[str, Matter] = {}
        self._tasks: dict[str, Task] = {}
        self._events: dict[str, CalendarEvent] = {}
        self._monitoring_items: dict[str, MonitoringItem] = {}
        self._monitoring_alerts: dict[str, MonitoringAlert] = {}

        self._alerts: list[DerivedAlert] = []
        self._skipped: list[SkippedEntity] = []

    def now(self) -> datetime:
        return self._clock()

    @contextmanager
    def transaction(self):
        """Hold the store lock across several reads and writes."""
        with self._lock:
            yield self

    # --- Settings ---

    @property
    def settings(self) -> AlertSettings:
        return self._settings

    def update_settings(self, patch: dict) -> AlertSettings:
        """Merge ``patch`` into the settings, persist them and recompute alerts."""
        with self._lock:
            merged = self._settings.merged(patch)
            # Persist first so a failed write leaves settings and alerts unchanged
            if self._repository is not None:
                self._repository.upsert(SETTINGS_COLLECTION, self.org_id, merged.to_dict())
            self._settings = merged
            self.recompute_alerts()
            logger.info(f"Settings updated for {self.org_id}: alert_days={list(self._settings.alert_days)}")
            return self._settings

    def load_settings(self) -> AlertSettings:
        """Replace the settings with the persisted copy, if there is one."""
        with self._lock:
            if self._repository is not None:
                stored = self._repository.get(SETTINGS_COLLECTION, self.org_id)
                if stored:
                    self._settings = AlertSettings.from_dict(stored)
            self.recompute_alerts()
            return self._settings

    def reset_settings(self):
        """Restore default settings for a new session (e.g. after logout)."""
        with self._lock:
            self._settings = self._default_settings
            self.recompute_alerts()

    # --- Derived alerts ---

    @property
    def alerts(self) -> list[DerivedAlert]:
        with self._lock:
            return list(self._alerts)

    @property
    def skipped(self) -> list[SkippedEntity]:
        with self._lock:
            return list(self._skipped)

    def recompute_alerts(self) -> list[DerivedAlert]:
        with self._lock:
            report = derive_alerts_report(
                list(self._assets.values()),
                list(self._matters.values()),
                self._settings,
                self.now(),
                close_expiry_gap=self.close_expiry_gap,
            )
            self._alerts = report.alerts
            self._skipped = report.skipped
            return list(self._alerts)

    def dismiss_alert(self, alert_id: str) -> bool:
        """Dismiss an alert by id.

        A derived alert disappears until the next recompute brings it back; a
        monitoring alert is deleted for good. Returns False if nothing matched.
        """
        with self._lock:
            before = len(self._alerts)
            self._alerts = [a for a in self._alerts if a.id != alert_id]
            removed_monitoring = self._monitoring_alerts.pop(alert_id, None)
            return len(self._alerts) != before or removed_monitoring is not None

    def aggregated_alerts(self) -> list[AggregatedAlert]:
        """Derived alerts followed by monitoring alerts, in one common shape."""
        with self._lock:
            return aggregate_alerts(self._alerts, list(self._monitoring_alerts.values()))

    # --- Generic helpers ---

    def _get(self, collection: dict, kind: str, entity_id: str):
        entity = collection.get(entity_id)
        if entity is None:
            raise NotFoundError(kind, entity_id)
        return entity

    def _apply(self, entity, changes: dict, protected: set[str] = _PROTECTED_FIELDS):
        clean = {k: v for k, v in changes.items() if k not in protected}
        # Round-trip through from_dict so ISO strings are parsed and validated
        merged = {**entity.to_dict(), **clean}
        updated = type(entity).from_dict(merged)
        for key in protected:
            if hasattr(entity, key):
                object.__setattr__(updated, key, getattr(entity, key))
        return updated

    # --- Clients ---

    def list_clients(self) -> list[Client]:
        with self._lock:
            return list(self._clients.values())

    def get_client(self, client_id: str) -> Client:
        with self._lock:
            return self._get(self._clients, "Client", client_id)

    def add_client(self, client: Client) -> Client:
        with self._lock:
            self._clients[client.id] = client
            return client

    def update_client(self, client_id: str, changes: dict) -> Client:
        with self._lock:
            client = self._apply(self._get(self._clients, "Client", client_id), changes)
            self._clients[client_id] = client
            return client

    def delete_client(self, client_id: str):
        """Delete a client that no longer owns any assets or matters."""
        with self._lock:
            self._get(self._clients, "Client", client_id)
            blocking = (
                sum(1 for a in self._assets.values() if a.client_id == client_id)
                + sum(1 for m in self._matters.values() if m.client_id == client_id)
            )
            if blocking:
                raise ConflictError(
                    "client",
                    blocking,
                    "Cannot delete client with existing IP assets or matters. "
                    "Please reassign or delete them first.",
                )
            del self._clients[client_id]

    # --- Assets ---

    def list_assets(self) -> list[Asset]:
        with self._lock:
            return list(self._assets.values())

    def get_asset(self, asset_id: str) -> Asset:
        with self._lock:
            return self._get(self._assets, "Asset", asset_id)

    def add_asset(self, asset: Asset) -> Asset:
        with self._lock:
            self._assets[asset.id] = asset
            self.recompute_alerts()
            return asset

    def update_asset(self, asset_id: str, changes: dict) -> Asset:
        with self._lock:
            asset = self._apply(self._get(self._assets, "Asset", asset_id), changes)
            self._assets[asset_id] = asset
            self.recompute_alerts()
            return asset

    def delete_asset(self, asset_id: str):
        with self._lock:
            self._get(self._assets, "Asset", asset_id)
            del self._assets[asset_id]
            self.recompute_alerts()

    # --- Matters ---

    def list_matters(self) -> list[Matter]:
        with self._lock:
            return list(self._matters.values())

    def get_matter(self, matter_id: str) -> Matter:
        with self._lock:
            return self._get(self._matters, "Matter", matter_id)

    def add_matter(self, matter: Matter) -> Matter:
        with self._lock:
            self._matters[matter.id] = matter
            self.recompute_alerts()
            return matter

    def update_matter(self, matter_id: str, changes: dict) -> Matter:
        with self._lock:
            matter = self._apply(self._get(self._matters, "Matter", matter_id), changes)
            matter = replace(matter, last_updated=self.now())
            self._matters[matter_id] = matter
            self.recompute_alerts()
            return matter

    def delete_matter(self, matter_id: str):
        with self._lock:
            self._get(self._matters, "Matter", matter_id)
            del self._matters[matter_id]
            self.recompute_alerts()

    # --- Tasks ---

    def list_tasks(self, client_id: str | None = None, matter_id: str | None = None,
                   asset_id: str | None = None) -> list[Task]:
        with self._lock:
            tasks = list(self._tasks.values())
        if client_id:
            tasks = [t for t in tasks if t.client_id == client_id]
        if matter_id:
            tasks = [t for t in tasks if t.matter_id == matter_id]
        if asset_id:
            tasks = [t for t in tasks if t.asset_id == asset_id]
        return tasks

    def get_task(self, task_id: str) -> Task:
        with self._lock:
            return self._get(self._tasks, "Task", task_id)

    def add_task(self, task: Task) -> Task:
        with self._lock:
            self._tasks[task.id] = task
            return task

    def update_task(self, task_id: str, changes: dict) -> Task:
        with self._lock:
            task = self._apply(self._get(self._tasks, "Task", task_id), changes)
            self._tasks[task_id] = task
            return task

    def complete_task(self, task_id: str) -> Task:
        with self._lock:
            task = replace(self._get(self._tasks, "Task", task_id), completed=True, completed_at=self.now())
            self._tasks[task_id] = task
            return task

    def reopen_task(self, task_id: str) -> Task:
        with self._lock:
            task = replace(self._get(self._tasks, "Task", task_id), completed=False, completed_at=None)
            self._tasks[task_id] = task
            return task

    def delete_task(self, task_id: str):
        with self._lock:
            self._get(self._tasks, "Task", task_id)
            del self._tasks[task_id]

    # --- Calendar ---

    def list_calendar_events(self) -> list[CalendarEvent]:
        with self._lock:
            return list(self._events.values())

    def add_calendar_event(self, event: CalendarEvent) -> CalendarEvent:
        with self._lock:
            self._events[event.id] = event
            return event

    def update_calendar_event(self, event_id: str, changes: dict) -> CalendarEvent:
        with self._lock:
            event = self._apply(self._get(self._events, "Calendar event", event_id), changes)
            self._events[event_id] = event
            return event

    def delete_calendar_event(self, event_id: str):
        with self._lock:
            self._get(self._events, "Calendar event", event_id)
            del self._events[event_id]

    def all_calendar_events(self) -> list[CalendarEvent]:
        """Custom events plus open task due dates, matter deadlines and asset expiries."""
        with self._lock:
            events = list(self._events.values())
            tasks = list(self._tasks.values())
            matters = list(self._matters.values())
            assets = list(self._assets.values())
            now = self.now()

        for task in tasks:
            if task.due_date and not task.completed:
                events.append(CalendarEvent(
                    id=f"task-{task.id}",
                    title=task.title,
                    event_date=task.due_date,
                    type="task",
                    priority=task.priority,
                    description=task.description,
                    client_id=task.client_id,
                    source_id=task.id,
                    created_at=task.created_at,
                ))

        for matter in matters:
            if matter.next_deadline:
                events.append(CalendarEvent(
                    id=f"matter-{matter.id}",
                    title=f"{matter.title} Deadline",
                    event_date=matter.next_deadline,
                    type="matter",
                    priority=matter.priority,
                    description=matter.description,
                    client_id=matter.client_id,
                    source_id=matter.id,
                    created_at=matter.created_at,
                ))

        for asset in assets:
            try:
                expiry = parse_date(asset.expiry_date)
            except ValidationError:
                continue
            if expiry is None:
                continue
            days = days_between(expiry, now)
            # 30 days past to one year ahead
            if -30 <= days <= 365:
                events.append(CalendarEvent(
                    id=f"asset-{asset.id}",
                    title=f"{asset.name} Expires",
                    event_date=expiry,
                    type="asset-expiry",
                    priority="high" if days <= 30 else "medium" if days <= 90 else "low",
                    description=f"{asset.type} registration expires",
                    client_id=asset.client_id,
                    source_id=asset.id,
                    created_at=asset.created_at,
                ))

        return events

    # --- Monitoring items ---

    def list_monitoring_items(self) -> list[MonitoringItem]:
        with self._lock:
            return list(self._monitoring_items.values())

    def get_monitoring_item(self, item_id: str) -> MonitoringItem:
        with self._lock:
            return self._get(self._monitoring_items, "Monitoring item", item_id)

    def find_monitoring_item(self, item_id: str) -> MonitoringItem | None:
        with self._lock:
            return self._monitoring_items.get(item_id)

    def add_monitoring_item(self, item: MonitoringItem) -> MonitoringItem:
        with self._lock:
            self._monitoring_items[item.id] = item
            return item

    def update_monitoring_item(self, item_id: str, changes: dict) -> MonitoringItem:
        """User edit of a watch. Check counters and results cannot be edited."""
        with self._lock:
            current = self._get(self._monitoring_items, "Monitoring item", item_id)
            if "status" in changes and changes["status"] == "checking":
                raise ValidationError("Status 'checking' is set by running a check")
            item = self._apply(current, changes, _PROTECTED_FIELDS | _MONITORING_MANAGED_FIELDS)
            item.last_updated = self.now()
            self._monitoring_items[item_id] = item
            return item

    def save_monitoring_item(self, item: MonitoringItem):
        """Store an item exactly as given (used by the check lifecycle)."""
        with self._lock:
            self._monitoring_items[item.id] = item

    def delete_monitoring_item(self, item_id: str) -> int:
        """Delete an item and every alert it raised. Returns the alerts removed."""
        with self._lock:
            self._get(self._monitoring_items, "Monitoring item", item_id)
            del self._monitoring_items[item_id]
            related = [a.id for a in self._monitoring_alerts.values() if a.monitoring_item_id == item_id]
            for alert_id in related:
                del self._monitoring_alerts[alert_id]
            logger.info(f"Deleted monitoring item {item_id} and {len(related)} alert(s)")
            return len(related)

    # --- Monitoring alerts ---

    def list_monitoring_alerts(self, item_id: str | None = None) -> list[MonitoringAlert]:
        with self._lock:
            alerts = list(self._monitoring_alerts.values())
        if item_id is not None:
            alerts = [a for a in alerts if a.monitoring_item_id == item_id]
        return alerts

    def add_monitoring_alerts(self, alerts: list[MonitoringAlert]):
        with self._lock:
            for alert in alerts:
                self._monitoring_alerts[alert.id] = alert

    def dismiss_monitoring_alert(self, alert_id: str):
        with self._lock:
            self._get(self._monitoring_alerts, "Monitoring alert", alert_id)
            del self._monitoring_alerts[alert_id]

    # --- Statistics ---

    def asset_stats(self) -> dict:
        with self._lock:
            assets = list(self._assets.values())
            alerts = list(self._alerts)
            today = self.now().date()
        active = 0
        for asset in assets:
            try:
                expiry = parse_date(asset.expiry_date)
            except ValidationError:
                expiry = None
            if expiry is None or expiry > today:
                active += 1
        return {
            "total": len(assets),
            "active": active,
            "expired": len(assets) - active,
            "critical_alerts": sum(1 for a in alerts if a.priority == "critical"),
        }

    def client_stats(self) -> dict:
        with self._lock:
            clients = list(self._clients.values())
            asset_count = len(self._assets)
        total = len(clients)
        return {
            "total_clients": total,
            "active_clients": sum(1 for c in clients if c.status == "active"),
            "assets_per_client": round(asset_count / total, 1) if total else 0,
        }

    def task_stats(self) -> dict:
        with self._lock:
            tasks = list(self._tasks.values())
            today = self.now().date()
        completed = sum(1 for t in tasks if t.completed)
        return {
            "total": len(tasks),
            "completed": completed,
            "pending": len(tasks) - completed,
            "overdue": sum(1 for t in tasks if not t.completed and t.due_date and t.due_date < today),
        }

    def matter_stats(self) -> dict:
        with self._lock:
            matters = list(self._matters.values())
            now = self.now()
        urgent = 0
        overdue = 0
        for matter in matters:
            if not matter.next_deadline:
                continue
            days = days_between(matter.next_deadline, now)
            if 0 <= days <= 7:
                urgent += 1
            if days < 0 and matter.status == "active":
                overdue += 1
        return {
            "total": len(matters),
            "active": sum(1 for m in matters if m.status == "active"),
            "urgent": urgent,
            "overdue": overdue,
        }

    def monitoring_stats(self) -> dict:
        with self._lock:
            items = list(self._monitoring_items.values())
            alert_count = len(self._monitoring_alerts)
        stats = {t: sum(1 for i in items if i.type == t) for t in ("trademark", "domain", "marketplace", "social")}
        stats.update({
            "total": len(items),
            "total_alerts": alert_count,
            "active_monitoring": sum(1 for i in items if i.status == "active"),
        })
        return stats

    # --- Snapshots ---

    COLLECTIONS = {
        "clients": ("_clients", Client),
        "assets": ("_assets", Asset),
        "matters": ("_matters", Matter),
        "tasks": ("_tasks", Task),
        "calendar_events": ("_events", CalendarEvent),
        "monitoring_items": ("_monitoring_items", MonitoringItem),
        "monitoring_alerts": ("_monitoring_alerts", MonitoringAlert),
    }

    def snapshot(self) -> dict[str, list[dict]]:
        """All entity collections as JSON-safe dicts. Derived alerts are excluded."""
        with self._lock:
            return {
                name: [e.to_dict() for e in getattr(self, attr).values()]
                for name, (attr, _) in self.COLLECTIONS.items()
            }

    def restore(self, snapshot: dict[str, list[dict]]):
        """Load entity collections from a snapshot and recompute alerts."""
        with self._lock:
            for name, (attr, cls) in self.COLLECTIONS.items():
                if name not in snapshot:
                    continue
                records = {}
                for raw in snapshot[name]:
                    entity = cls.from_dict(raw)
                    if isinstance(entity, MonitoringItem) and entity.status == "checking":
                        # Saved while a check was running; that check is gone now
                        entity.status = "error"
                        entity.last_error = "Check interrupted before it finished"
                    records[entity.id] = entity
                setattr(self, attr, records)
            self.recompute_alerts()

