"""Exception types raised by the IP tracker services."""


class IPTrackerError(Exception):
    """Base class for all IP tracker errors."""


class ValidationError(IPTrackerError, ValueError):
    """Input data could not be parsed or violates a field constraint."""


class NotFoundError(IPTrackerError, KeyError):
    """A referenced entity does not exist in the session store."""

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} {entity_id} not found")

    def __str__(self) -> str:
        return f"{self.kind} {self.entity_id} not found"


class ConflictError(IPTrackerError):
    """Deleting an entity is blocked by records that still reference it."""

    def __init__(self, kind: str, blocking_count: int, message: str = ""):
        self.kind = kind
        self.blocking_count = blocking_count
        super().__init__(
            message or f"Cannot delete {kind}: {blocking_count} dependent record(s) exist"
        )


class CheckInProgressError(IPTrackerError):
    """A monitoring check is already running for this item."""

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"A check is already running for monitoring item {item_id}")


class MonitoringPausedError(IPTrackerError):
    """Checks are not run for paused monitoring items."""

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Monitoring item {item_id} is paused")
