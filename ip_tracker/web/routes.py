"""Flask routes for the IP tracker JSON API."""

import logging

from flask import Blueprint, current_app, jsonify, request

from ..alerts import count_by_priority, filter_alerts
from ..errors import CheckInProgressError, MonitoringPausedError, ValidationError
from ..models import ALERT_PRIORITIES, Asset, CalendarEvent, Client, Matter, MonitoringItem, Task
from ..service import get_dashboard_stats, run_check

logger = logging.getLogger(__name__)

bp = Blueprint("api", __name__, url_prefix="/api")


def _get_tracker():
    return current_app.config["TRACKER"]


def _get_store():
    return current_app.config["TRACKER"].store


def _get_job_manager():
    return current_app.config["JOB_MANAGER"]


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


@bp.after_request
def persist_changes(response):
    """Save the session after every successful write."""
    if request.method in ("POST", "PUT", "DELETE") and response.status_code < 400:
        try:
            _get_tracker().save()
        except Exception as e:
            logger.error(f"Failed to save session: {e}")
    return response


# --- Clients ---


@bp.route("/clients", methods=["GET"])
def list_clients():
    return jsonify([c.to_dict() for c in _get_store().list_clients()])


@bp.route("/clients", methods=["POST"])
def create_client():
    client = _get_store().add_client(Client.from_dict(_json_body()))
    return jsonify(client.to_dict()), 201


@bp.route("/clients/<client_id>", methods=["GET"])
def get_client(client_id):
    return jsonify(_get_store().get_client(client_id).to_dict())


@bp.route("/clients/<client_id>", methods=["PUT"])
def update_client(client_id):
    return jsonify(_get_store().update_client(client_id, _json_body()).to_dict())


@bp.route("/clients/<client_id>", methods=["DELETE"])
def delete_client(client_id):
    _get_store().delete_client(client_id)
    return jsonify({"success": True, "id": client_id})


# --- Assets ---


@bp.route("/assets", methods=["GET"])
def list_assets():
    assets = _get_store().list_assets()
    client_id = request.args.get("client_id")
    if client_id:
        assets = [a for a in assets if a.client_id == client_id]
    return jsonify([a.to_dict() for a in assets])


@bp.route("/assets", methods=["POST"])
def create_asset():
    asset = _get_store().add_asset(Asset.from_dict(_json_body()))
    return jsonify(asset.to_dict()), 201


@bp.route("/assets/<asset_id>", methods=["GET"])
def get_asset(asset_id):
    return jsonify(_get_store().get_asset(asset_id).to_dict())


@bp.route("/assets/<asset_id>", methods=["PUT"])
def update_asset(asset_id):
    return jsonify(_get_store().update_asset(asset_id, _json_body()).to_dict())


@bp.route("/assets/<asset_id>", methods=["DELETE"])
def delete_asset(asset_id):
    _get_store().delete_asset(asset_id)
    return jsonify({"success": True, "id": asset_id})


# --- Matters ---


@bp.route("/matters", methods=["GET"])
def list_matters():
    return jsonify([m.to_dict() for m in _get_store().list_matters()])


@bp.route("/matters", methods=["POST"])
def create_matter():
    matter = _get_store().add_matter(Matter.from_dict(_json_body()))
    return jsonify(matter.to_dict()), 201


@bp.route("/matters/<matter_id>", methods=["GET"])
def get_matter(matter_id):
    return jsonify(_get_store().get_matter(matter_id).to_dict())


@bp.route("/matters/<matter_id>", methods=["PUT"])
def update_matter(matter_id):
    return jsonify(_get_store().update_matter(matter_id, _json_body()).to_dict())


@bp.route("/matters/<matter_id>", methods=["DELETE"])
def delete_matter(matter_id):
    _get_store().delete_matter(matter_id)
    return jsonify({"success": True, "id": matter_id})


# --- Tasks ---


@bp.route("/tasks", methods=["GET"])
def list_tasks():
    tasks = _get_store().list_tasks(
        client_id=request.args.get("client_id"),
        matter_id=request.args.get("matter_id"),
        asset_id=request.args.get("asset_id"),
    )
    return jsonify([t.to_dict() for t in tasks])


@bp.route("/tasks", methods=["POST"])
def create_task():
    task = _get_store().add_task(Task.from_dict(_json_body()))
    return jsonify(task.to_dict()), 201


@bp.route("/tasks/<task_id>", methods=["PUT"])
def update_task(task_id):
    return jsonify(_get_store().update_task(task_id, _json_body()).to_dict())


@bp.route("/tasks/<task_id>", methods=["DELETE"])
def delete_task(task_id):
    _get_store().delete_task(task_id)
    return jsonify({"success": True, "id": task_id})


@bp.route("/tasks/<task_id>/complete", methods=["POST"])
def complete_task(task_id):
    return jsonify(_get_store().complete_task(task_id).to_dict())


@bp.route("/tasks/<task_id>/reopen", methods=["POST"])
def reopen_task(task_id):
    return jsonify(_get_store().reopen_task(task_id).to_dict())


# --- Calendar ---


@bp.route("/calendar", methods=["GET"])
def list_calendar():
    events = sorted(_get_store().all_calendar_events(), key=lambda e: e.event_date)
    return jsonify([e.to_dict() for e in events])


@bp.route("/calendar", methods=["POST"])
def create_calendar_event():
    event = _get_store().add_calendar_event(CalendarEvent.from_dict(_json_body()))
    return jsonify(event.to_dict()), 201


@bp.route("/calendar/<event_id>", methods=["PUT"])
def update_calendar_event(event_id):
    return jsonify(_get_store().update_calendar_event(event_id, _json_body()).to_dict())


@bp.route("/calendar/<event_id>", methods=["DELETE"])
def delete_calendar_event(event_id):
    _get_store().delete_calendar_event(event_id)
    return jsonify({"success": True, "id": event_id})


# --- Alerts ---


@bp.route("/alerts", methods=["GET"])
def list_alerts():
    priority = request.args.get("priority", "all")
    source = request.args.get("source", "all")
    if priority not in ("all", *ALERT_PRIORITIES):
        raise ValidationError(f"Invalid priority. Must be one of: {['all', *ALERT_PRIORITIES]}")
    if source not in ("all", "system", "monitoring"):
        raise ValidationError("Invalid source. Must be one of: ['all', 'system', 'monitoring']")

    aggregated = _get_store().aggregated_alerts()
    alerts = filter_alerts(aggregated, priority=priority, source=source)
    return jsonify({
        "alerts": [a.to_dict() for a in alerts],
        "counts": count_by_priority(aggregated),
        "total": len(aggregated),
    })


@bp.route("/alerts/<alert_id>/dismiss", methods=["POST"])
def dismiss_alert(alert_id):
    if not _get_store().dismiss_alert(alert_id):
        return jsonify({"error": f"Alert {alert_id} not found"}), 404
    return jsonify({"success": True, "id": alert_id})


# --- Settings ---


@bp.route("/settings", methods=["GET"])
def get_settings():
    return jsonify(_get_store().settings.to_dict())


@bp.route("/settings", methods=["PUT"])
def update_settings():
    settings = _get_store().update_settings(_json_body())
    return jsonify(settings.to_dict())


# --- Brand monitoring ---


@bp.route("/monitoring", methods=["GET"])
def list_monitoring():
    return jsonify([i.to_dict() for i in _get_store().list_monitoring_items()])


@bp.route("/monitoring", methods=["POST"])
def create_monitoring():
    tracker = _get_tracker()
    item = tracker.lifecycle.add_item(MonitoringItem.from_dict(_json_body()))

    response = {"item": item.to_dict()}
    if tracker.lifecycle.wants_initial_check(item):
        response["job_id"] = _get_job_manager().start_job(
            f"check:{item.id}", _run_check_job, tracker, item.id,
        )
    return jsonify(response), 201


@bp.route("/monitoring/<item_id>", methods=["GET"])
def get_monitoring(item_id):
    store = _get_store()
    item = store.get_monitoring_item(item_id)
    return jsonify({
        "item": item.to_dict(),
        "alerts": [a.to_dict() for a in store.list_monitoring_alerts(item_id)],
    })


@bp.route("/monitoring/<item_id>", methods=["PUT"])
def update_monitoring(item_id):
    return jsonify(_get_store().update_monitoring_item(item_id, _json_body()).to_dict())


@bp.route("/monitoring/<item_id>", methods=["DELETE"])
def delete_monitoring(item_id):
    removed = _get_store().delete_monitoring_item(item_id)
    return jsonify({"success": True, "id": item_id, "alerts_removed": removed})


@bp.route("/monitoring/<item_id>/check", methods=["POST"])
def check_monitoring(item_id):
    """Start a background check for one monitoring item."""
    tracker = _get_tracker()
    jm = _get_job_manager()

    item = tracker.store.get_monitoring_item(item_id)
    if item.status == "paused":
        raise MonitoringPausedError(item_id)
    if tracker.lifecycle.is_in_flight(item_id) or jm.has_running_job(f"check:{item_id}"):
        raise CheckInProgressError(item_id)

    job_id = jm.start_job(f"check:{item_id}", _run_check_job, tracker, item_id)
    return jsonify({"job_id": job_id})


@bp.route("/jobs/<job_id>", methods=["GET"])
def job_status(job_id):
    """Get background job status for polling."""
    job = _get_job_manager().get_job(job_id)
    if not job:
        return jsonify({"error": "Job not found"}), 404
    return jsonify(job.to_dict())


# --- Dashboard ---


@bp.route("/stats", methods=["GET"])
def stats():
    return jsonify(get_dashboard_stats(_get_store()))


# --- Job wrapper functions ---


def _run_check_job(tracker, item_id, progress_callback=None):
    """Wrapper for run_check that returns a serializable result."""
    outcome = run_check(tracker, item_id, progress_callback=progress_callback)
    if not outcome.success:
        raise RuntimeError(outcome.error or "Check failed")
    return {
        "results": len(outcome.results),
        "alerts_raised": len(outcome.alerts_raised),
        "next_check": outcome.next_check_at.isoformat() if outcome.next_check_at else None,
    }
