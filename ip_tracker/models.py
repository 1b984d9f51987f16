"""Data models for the IP portfolio tracker."""

import uuid
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from typing import Any, ClassVar

from dateutil.parser import isoparse

from .errors import ValidationError

ASSET_TYPES = ("patent", "trademark", "copyright", "trade-secret")
MATTER_PRIORITIES = ("low", "medium", "high")
ALERT_PRIORITIES = ("critical", "high", "medium", "low")
MONITORING_TYPES = ("trademark", "domain", "marketplace", "social")
MONITORING_FREQUENCIES = ("hourly", "daily", "weekly", "monthly")
MONITORING_STATUSES = ("active", "checking", "paused", "error")

DEFAULT_ALERT_DAYS = (30, 60, 90)


def new_id() -> str:
    return uuid.uuid4().hex[:12]


def parse_date(value: Any) -> date | None:
    """Parse an ISO date (or timestamp) into a date. Empty values give None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return isoparse(str(value)).date()
    except (ValueError, OverflowError) as e:
        raise ValidationError(f"Invalid date: {value!r}") from e


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO timestamp into a naive local datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = isoparse(str(value))
        except (ValueError, OverflowError) as e:
            raise ValidationError(f"Invalid timestamp: {value!r}") from e
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _to_json(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_to_json(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_json(v) for k, v in value.items()}
    return value


class Record:
    """Dict conversion shared by all entity dataclasses.

    Subclasses list the fields holding calendar dates and timestamps so that
    ``from_dict`` can parse ISO strings coming from JSON payloads or storage.
    """

    date_fields: ClassVar[tuple[str, ...]] = ()
    datetime_fields: ClassVar[tuple[str, ...]] = ("created_at",)

    def to_dict(self) -> dict:
        return {f.name: _to_json(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict):
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            if key not in known:
                continue
            if key in cls.date_fields:
                value = parse_date(value)
            elif key in cls.datetime_fields:
                value = parse_datetime(value)
            kwargs[key] = value
        try:
            return cls(**kwargs)
        except TypeError as e:
            raise ValidationError(f"Invalid {cls.__name__} data: {e}") from e


def _check_choice(name: str, value: str, choices: tuple[str, ...]):
    if value not in choices:
        raise ValidationError(f"Invalid {name} '{value}'. Must be one of: {list(choices)}")


@dataclass
class Client(Record):
    name: str
    id: str = field(default_factory=new_id)
    type: str = "company"  # company | individual
    company: str = ""
    email: str = ""
    phone: str = ""
    status: str = "active"
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class Asset(Record):
    name: str
    type: str  # patent | trademark | copyright | trade-secret
    client_id: str = ""
    id: str = field(default_factory=new_id)
    description: str = ""
    registration_number: str = ""
    registration_date: date | None = None
    expiry_date: date | None = None
    jurisdiction: str | None = None
    status: str = "active"
    created_at: datetime = field(default_factory=datetime.now)

    date_fields: ClassVar[tuple[str, ...]] = ("registration_date", "expiry_date")

    def __post_init__(self):
        _check_choice("asset type", self.type, ASSET_TYPES)


@dataclass
class Matter(Record):
    title: str
    client_id: str = ""
    id: str = field(default_factory=new_id)
    type: str = ""
    status: str = "active"
    priority: str = "medium"  # low | medium | high
    asset_id: str | None = None
    next_deadline: date | None = None
    description: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    last_updated: datetime = field(default_factory=datetime.now)

    date_fields: ClassVar[tuple[str, ...]] = ("next_deadline",)
    datetime_fields: ClassVar[tuple[str, ...]] = ("created_at", "last_updated")

    def __post_init__(self):
        _check_choice("matter priority", self.priority, MATTER_PRIORITIES)


@dataclass
class Task(Record):
    title: str
    id: str = field(default_factory=new_id)
    description: str = ""
    priority: str = "medium"
    due_date: date | None = None
    client_id: str | None = None
    matter_id: str | None = None
    asset_id: str | None = None
    completed: bool = False
    completed_at: datetime | None = None
    created_at: datetime = field(default_factory=datetime.now)

    date_fields: ClassVar[tuple[str, ...]] = ("due_date",)
    datetime_fields: ClassVar[tuple[str, ...]] = ("created_at", "completed_at")


@dataclass
class CalendarEvent(Record):
    title: str
    event_date: date
    id: str = field(default_factory=new_id)
    type: str = "custom"  # custom | task | matter | asset-expiry
    priority: str = "medium"
    description: str = ""
    client_id: str | None = None
    source_id: str | None = None
    all_day: bool = True
    created_at: datetime = field(default_factory=datetime.now)

    date_fields: ClassVar[tuple[str, ...]] = ("event_date",)


@dataclass(frozen=True)
class AlertSettings(Record):
    """Alert thresholds and notification toggles for one tenant session.

    ``alert_days`` is always kept as an ascending tuple of distinct positive
    day offsets, whatever order the caller supplied.
    """

    alert_days: tuple[int, ...] = DEFAULT_ALERT_DAYS
    email_notifications: bool = True
    auto_renewal: bool = False

    datetime_fields: ClassVar[tuple[str, ...]] = ()

    def __post_init__(self):
        days = []
        for d in self.alert_days:
            if isinstance(d, bool) or not isinstance(d, int) or d <= 0:
                raise ValidationError(f"Alert days must be positive integers, got {d!r}")
            days.append(d)
        object.__setattr__(self, "alert_days", tuple(sorted(set(days))))

    def merged(self, patch: dict) -> "AlertSettings":
        """Return new settings with the known keys of ``patch`` applied."""
        values = {
            "alert_days": self.alert_days,
            "email_notifications": self.email_notifications,
            "auto_renewal": self.auto_renewal,
        }
        for key, value in patch.items():
            if key in values:
                values[key] = value
        if not isinstance(values["alert_days"], (list, tuple)):
            raise ValidationError("alert_days must be a list of integers")
        return AlertSettings(
            alert_days=tuple(values["alert_days"]),
            email_notifications=bool(values["email_notifications"]),
            auto_renewal=bool(values["auto_renewal"]),
        )


@dataclass(frozen=True)
class DerivedAlert(Record):
    """A deadline or expiry alert computed from assets and matters."""
    id: str
    source_type: str       # asset | matter
    source_id: str
    source_name: str
    type: str              # expiry | overdue | matter-deadline | matter-overdue
    message: str
    days_remaining: int
    priority: str          # critical | high | medium | low
    created_at: datetime
    threshold: int | None = None


@dataclass(frozen=True)
class SkippedEntity:
    source_type: str
    source_id: str
    reason: str


@dataclass
class MonitoringItem(Record):
    name: str
    type: str  # trademark | domain | marketplace | social
    keywords: list[str] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    frequency: str = "daily"  # hourly | daily | weekly | monthly
    status: str = "active"    # active | checking | paused | error
    client_id: str | None = None
    notifications: bool = True
    last_checked: datetime | None = None
    next_check: datetime | None = None
    alert_count: int = 0
    last_results: list[dict] = field(default_factory=list)
    last_error: str | None = None
    # Trademark
    classes: list[str] = field(default_factory=list)
    include_variations: bool = True
    # Domain
    extensions: list[str] = field(default_factory=lambda: [".com", ".net", ".org"])
    include_typos: bool = True
    # Marketplace
    platforms: list[str] = field(default_factory=lambda: ["amazon", "ebay"])
    categories: list[str] = field(default_factory=list)
    # Social
    social_platforms: list[str] = field(default_factory=lambda: ["instagram", "twitter", "facebook"])
    include_hashtags: bool = True
    created_at: datetime = field(default_factory=datetime.now)
    last_updated: datetime | None = None

    datetime_fields: ClassVar[tuple[str, ...]] = (
        "created_at", "last_checked", "next_check", "last_updated",
    )

    def __post_init__(self):
        _check_choice("monitoring type", self.type, MONITORING_TYPES)
        _check_choice("frequency", self.frequency, MONITORING_FREQUENCIES)
        _check_choice("monitoring status", self.status, MONITORING_STATUSES)
        if not isinstance(self.keywords, (list, tuple)) or not all(isinstance(k, str) for k in self.keywords):
            raise ValidationError("keywords must be a list of strings")
        self.keywords = [k.strip() for k in self.keywords if k.strip()]


@dataclass
class AlertDraft:
    """A finding a checker considers worth raising as a monitoring alert."""
    type: str
    priority: str
    title: str
    description: str = ""
    keyword: str | None = None
    platform: str | None = None
    data: dict = field(default_factory=dict)
    action_required: bool = True
    suggested_action: str = ""
    detected_at: datetime | None = None


@dataclass
class MonitoringAlert(Record):
    type: str
    priority: str
    title: str
    monitoring_item_id: str
    monitoring_item_name: str
    id: str = field(default_factory=new_id)
    description: str = ""
    keyword: str | None = None
    platform: str | None = None
    detected_at: datetime = field(default_factory=datetime.now)
    data: dict = field(default_factory=dict)
    action_required: bool = True
    suggested_action: str = ""
    created_at: datetime = field(default_factory=datetime.now)

    datetime_fields: ClassVar[tuple[str, ...]] = ("created_at", "detected_at")

    @classmethod
    def from_draft(cls, draft: AlertDraft, item: MonitoringItem, now: datetime) -> "MonitoringAlert":
        """Create an alert, copying the item name as it is right now."""
        return cls(
            type=draft.type,
            priority=draft.priority,
            title=draft.title,
            description=draft.description,
            keyword=draft.keyword,
            platform=draft.platform,
            monitoring_item_id=item.id,
            monitoring_item_name=item.name,
            detected_at=draft.detected_at or now,
            data=dict(draft.data),
            action_required=draft.action_required,
            suggested_action=draft.suggested_action,
            created_at=now,
        )


@dataclass
class CheckOutcome:
    """Result of one external monitoring check."""
    success: bool
    results: list[dict] = field(default_factory=list)
    alerts_raised: list[AlertDraft] = field(default_factory=list)
    next_check_at: datetime | None = None
    checked_at: datetime | None = None
    error: str | None = None

    @classmethod
    def failure(cls, error: str) -> "CheckOutcome":
        return cls(success=False, error=error)
