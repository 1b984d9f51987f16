"""Deadline and expiry alert derivation, plus merging with monitoring alerts."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable

from .errors import ValidationError
from .models import (
    ALERT_PRIORITIES,
    AlertSettings,
    Asset,
    DerivedAlert,
    Matter,
    MonitoringAlert,
    SkippedEntity,
    parse_date,
)

logger = logging.getLogger(__name__)

MATTER_DEADLINE_WINDOW_DAYS = 30

PRIORITY_RANK = {p: i for i, p in enumerate(ALERT_PRIORITIES)}


@dataclass
class AlertDerivation:
    """Alerts derived in one pass, plus the entities that had to be skipped."""
    alerts: list[DerivedAlert] = field(default_factory=list)
    skipped: list[SkippedEntity] = field(default_factory=list)


def days_between(target: date, now: datetime | date) -> int:
    """Whole calendar days from ``now`` to ``target`` (negative when past)."""
    today = now.date() if isinstance(now, datetime) else now
    return (target - today).days


def expiry_priority(days_remaining: int) -> str:
    if days_remaining <= 30:
        return "high"
    elif days_remaining <= 60:
        return "medium"
    return "low"


def matter_deadline_priority(days_remaining: int) -> str:
    if days_remaining <= 7:
        return "critical"
    elif days_remaining <= 14:
        return "high"
    return "medium"


def derive_alerts(
    assets: Iterable[Asset],
    matters: Iterable[Matter],
    settings: AlertSettings,
    now: datetime,
    close_expiry_gap: bool = False,
) -> list[DerivedAlert]:
    """Compute the full set of deadline and expiry alerts.

    Pure function: the same inputs and ``now`` always give the same list.
    Asset alerts come first, then matter alerts, each in input order.

    Args:
        assets: Assets to check for expiry.
        matters: Matters to check for upcoming or missed deadlines.
        settings: Alert thresholds (``alert_days``).
        now: Reference time; only its calendar date matters.
        close_expiry_gap: Treat an asset expiring today as overdue. When
            False an asset expiring today raises no alert at all.
    """
    return derive_alerts_report(assets, matters, settings, now, close_expiry_gap).alerts


def derive_alerts_report(
    assets: Iterable[Asset],
    matters: Iterable[Matter],
    settings: AlertSettings,
    now: datetime,
    close_expiry_gap: bool = False,
) -> AlertDerivation:
    """Same as derive_alerts, but also reports entities with unusable dates."""
    result = AlertDerivation()

    for asset in assets:
        try:
            expiry = parse_date(asset.expiry_date)
        except ValidationError as e:
            _skip(result, "asset", asset.id, str(e))
            continue
        if expiry is None:
            continue
        result.alerts.extend(
            _asset_alerts(asset, days_between(expiry, now), settings, now, close_expiry_gap)
        )

    for matter in matters:
        try:
            deadline = parse_date(matter.next_deadline)
        except ValidationError as e:
            _skip(result, "matter", matter.id, str(e))
            continue
        if deadline is None:
            continue
        result.alerts.extend(_matter_alerts(matter, days_between(deadline, now), now))

    return result


def _skip(result: AlertDerivation, source_type: str, source_id: str, reason: str):
    logger.warning(f"Skipping {source_type} {source_id} during alert derivation: {reason}")
    result.skipped.append(SkippedEntity(source_type=source_type, source_id=source_id, reason=reason))


def _asset_alerts(
    asset: Asset,
    days: int,
    settings: AlertSettings,
    now: datetime,
    close_expiry_gap: bool,
) -> list[DerivedAlert]:
    alerts = []

    # One alert per matching threshold, not only the tightest one
    for alert_day in settings.alert_days:
        if 0 < days <= alert_day:
            alerts.append(DerivedAlert(
                id=f"{asset.id}-{alert_day}",
                source_type="asset",
                source_id=asset.id,
                source_name=asset.name,
                type="expiry",
                message=f"{asset.name} expires in {days} days",
                days_remaining=days,
                priority=expiry_priority(days),
                created_at=now,
                threshold=alert_day,
            ))

    if days < 0 or (days == 0 and close_expiry_gap):
        if days == 0:
            message = f"{asset.name} expires today"
        else:
            message = f"{asset.name} expired {abs(days)} days ago"
        alerts.append(DerivedAlert(
            id=f"{asset.id}-overdue",
            source_type="asset",
            source_id=asset.id,
            source_name=asset.name,
            type="overdue",
            message=message,
            days_remaining=days,
            priority="critical",
            created_at=now,
        ))

    return alerts


def _matter_alerts(matter: Matter, days: int, now: datetime) -> list[DerivedAlert]:
    if 0 <= days <= MATTER_DEADLINE_WINDOW_DAYS:
        return [DerivedAlert(
            id=f"matter-{matter.id}-deadline",
            source_type="matter",
            source_id=matter.id,
            source_name=matter.title,
            type="matter-deadline",
            message=f'Matter "{matter.title}" deadline in {days} days',
            days_remaining=days,
            priority=matter_deadline_priority(days),
            created_at=now,
        )]
    if days < 0:
        return [DerivedAlert(
            id=f"matter-{matter.id}-overdue",
            source_type="matter",
            source_id=matter.id,
            source_name=matter.title,
            type="matter-overdue",
            message=f'Matter "{matter.title}" deadline overdue by {abs(days)} days',
            days_remaining=days,
            priority="critical",
            created_at=now,
        )]
    return []


# --- Aggregation for display ---


@dataclass(frozen=True)
class AggregatedAlert:
    """A system or monitoring alert in one common shape for listing."""
    source: str  # system | monitoring
    id: str
    type: str
    priority: str
    title: str
    message: str
    created_at: datetime
    days_remaining: int | None = None
    monitoring_item_id: str | None = None
    monitoring_item_name: str | None = None

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "id": self.id,
            "type": self.type,
            "priority": self.priority,
            "title": self.title,
            "message": self.message,
            "created_at": self.created_at.isoformat(),
            "days_remaining": self.days_remaining,
            "monitoring_item_id": self.monitoring_item_id,
            "monitoring_item_name": self.monitoring_item_name,
        }


def aggregate_alerts(
    derived: Iterable[DerivedAlert],
    monitoring: Iterable[MonitoringAlert],
) -> list[AggregatedAlert]:
    """Merge derived alerts and monitoring alerts, system alerts first."""
    merged = [
        AggregatedAlert(
            source="system",
            id=a.id,
            type=a.type,
            priority=a.priority,
            title=a.source_name,
            message=a.message,
            created_at=a.created_at,
            days_remaining=a.days_remaining,
        )
        for a in derived
    ]
    merged.extend(
        AggregatedAlert(
            source="monitoring",
            id=a.id,
            type=a.type,
            priority=a.priority,
            title=a.title,
            message=a.description,
            created_at=a.created_at,
            monitoring_item_id=a.monitoring_item_id,
            monitoring_item_name=a.monitoring_item_name,
        )
        for a in monitoring
    )
    return merged


def filter_alerts(
    alerts: Iterable[AggregatedAlert],
    priority: str = "all",
    source: str = "all",
) -> list[AggregatedAlert]:
    """Filter by priority and by source ('system' or 'monitoring')."""
    return [
        a for a in alerts
        if (priority == "all" or a.priority == priority)
        and (source == "all" or a.source == source)
    ]


def count_by_priority(alerts: Iterable[AggregatedAlert]) -> dict[str, int]:
    counts = {p: 0 for p in ALERT_PRIORITIES}
    for alert in alerts:
        if alert.priority in counts:
            counts[alert.priority] += 1
    return counts


def sort_by_urgency(alerts: Iterable[AggregatedAlert]) -> list[AggregatedAlert]:
    """Most urgent first: by priority, then fewest days remaining."""
    return sorted(
        alerts,
        key=lambda a: (
            PRIORITY_RANK.get(a.priority, len(PRIORITY_RANK)),
            a.days_remaining if a.days_remaining is not None else 0,
        ),
    )
