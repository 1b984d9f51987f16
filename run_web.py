"""Entry point for the IP Tracker web API."""

import os

from ip_tracker.main import setup_logging
from ip_tracker.web.app import create_app

setup_logging(os.environ.get("LOG_LEVEL", "INFO"))
app = create_app(config_path=os.environ.get("CONFIG_PATH", "config.yaml"))

if __name__ == "__main__":
    config = app.config["TRACKER"].config
    port = int(os.environ.get("PORT", config.web.port))
    host = os.environ.get("HOST", config.web.host)
    debug = os.environ.get("FLASK_DEBUG", "0") == "1"

    print(f"Starting IP Tracker API at http://{host}:{port}")
    app.run(host=host, port=port, debug=debug, use_reloader=False)
