"""Flask application factory."""

import logging
import os

from flask import Flask, jsonify

from ..config import load_config
from ..errors import (
    CheckInProgressError,
    ConflictError,
    MonitoringPausedError,
    NotFoundError,
    ValidationError,
)
from ..scheduler import MonitoringScheduler
from ..service import Tracker, build_tracker
from .jobs import JobManager

logger = logging.getLogger(__name__)


def create_app(config_path: str | None = None, tracker: Tracker | None = None) -> Flask:
    """Create and configure the Flask application.

    Args:
        config_path: Path to config.yaml.
                     Defaults to CONFIG_PATH env var or 'config.yaml'.
        tracker: Pre-built tracker to serve instead of one built from config.
    """
    app = Flask(__name__)

    if tracker is None:
        if config_path is None:
            config_path = os.environ.get("CONFIG_PATH", "config.yaml")
        tracker = build_tracker(load_config(config_path))

    app.config["TRACKER"] = tracker
    app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "ip-tracker-dev-key")
    app.config["JOB_MANAGER"] = JobManager()

    if tracker.config.monitoring.scheduler_enabled:
        scheduler = MonitoringScheduler(
            tracker.lifecycle,
            tracker.store,
            poll_seconds=tracker.config.monitoring.scheduler_poll_seconds,
        )
        scheduler.start()
        app.config["SCHEDULER"] = scheduler

    from .routes import bp
    app.register_blueprint(bp)

    register_error_handlers(app)

    return app


def register_error_handlers(app: Flask):
    """Map service exceptions to JSON error responses."""

    @app.errorhandler(ValidationError)
    def handle_validation(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(ConflictError)
    def handle_conflict(e):
        return jsonify({"error": str(e), "kind": e.kind, "blocking_count": e.blocking_count}), 409

    @app.errorhandler(CheckInProgressError)
    def handle_in_progress(e):
        return jsonify({"error": str(e)}), 409

    @app.errorhandler(MonitoringPausedError)
    def handle_paused(e):
        return jsonify({"error": str(e)}), 409
