"""Console and CSV reports for alerts and assets."""

import csv
import io
import logging
from datetime import date

from .alerts import AggregatedAlert, count_by_priority, sort_by_urgency
from .models import ALERT_PRIORITIES, Asset

logger = logging.getLogger(__name__)


def _truncate(text: str, width: int) -> str:
    return text[:width - 3] + "..." if len(text) > width else text


def format_alerts_table(alerts: list[AggregatedAlert]) -> str:
    """Format alerts as a console-friendly table, most urgent first.

    Args:
        alerts: Aggregated system and monitoring alerts.

    Returns:
        Formatted string table.
    """
    if not alerts:
        return "No active alerts."

    priority_w = 9
    source_w = 11
    type_w = 20
    title_w = 30
    days_w = 6

    header = (
        f"{'Priority':<{priority_w}} "
        f"{'Source':<{source_w}} "
        f"{'Type':<{type_w}} "
        f"{'Title':<{title_w}} "
        f"{'Days':>{days_w}} "
        f"{'Message'}"
    )
    separator = "-" * len(header)

    rows = [header, separator]
    for a in sort_by_urgency(alerts):
        days = "" if a.days_remaining is None else str(a.days_remaining)
        rows.append(
            f"{a.priority:<{priority_w}} "
            f"{a.source:<{source_w}} "
            f"{_truncate(a.type, type_w):<{type_w}} "
            f"{_truncate(a.title, title_w):<{title_w}} "
            f"{days:>{days_w}} "
            f"{a.message}"
        )

    return "\n".join(rows)


def export_alerts_csv(alerts: list[AggregatedAlert], file_path: str | None = None) -> str:
    """Export alerts to CSV format.

    Args:
        alerts: Alerts to export.
        file_path: Optional file path to write to. If None, returns CSV as string.

    Returns:
        CSV string if no file_path, otherwise the file path written to.
    """
    fieldnames = [
        "id",
        "source",
        "type",
        "priority",
        "title",
        "message",
        "days_remaining",
        "monitoring_item_name",
        "created_at",
    ]

    output = io.StringIO() if file_path is None else open(file_path, "w", newline="")

    try:
        writer = csv.DictWriter(output, fieldnames=fieldnames)
        writer.writeheader()

        for a in alerts:
            writer.writerow({
                "id": a.id,
                "source": a.source,
                "type": a.type,
                "priority": a.priority,
                "title": a.title,
                "message": a.message,
                "days_remaining": "" if a.days_remaining is None else a.days_remaining,
                "monitoring_item_name": a.monitoring_item_name or "",
                "created_at": a.created_at.isoformat(),
            })

        if file_path is None:
            return output.getvalue()
        else:
            logger.info(f"CSV exported to {file_path}")
            return file_path
    finally:
        if file_path is not None:
            output.close()


def print_summary(assets: list[Asset], alerts: list[AggregatedAlert], today: date | None = None):
    """Print a summary of the portfolio and its alerts to stdout."""
    today = today or date.today()
    print(f"\n=== IP Tracker Summary ({today.isoformat()}) ===\n")

    if not assets:
        print("No IP assets tracked.")
    else:
        print(f"Total IP assets: {len(assets)}")
        by_type = {}
        for asset in assets:
            by_type[asset.type] = by_type.get(asset.type, 0) + 1
        print("By type:")
        for asset_type, count in sorted(by_type.items()):
            print(f"  {asset_type}: {count}")
    print()

    counts = count_by_priority(alerts)
    print(f"Active alerts: {len(alerts)}")
    for priority in ALERT_PRIORITIES:
        if counts[priority]:
            print(f"  {priority}: {counts[priority]}")
    print()

    upcoming = [a for a in alerts if a.source == "system" and a.days_remaining is not None]
    if upcoming:
        upcoming.sort(key=lambda a: a.days_remaining)
        print("Nearest deadlines:")
        for a in upcoming[:10]:
            print(f"  [{a.priority}] {a.message}")
        print()
