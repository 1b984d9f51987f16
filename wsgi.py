"""WSGI entry point for production deployment (gunicorn/uWSGI).

The session store lives in process memory, so run a single worker process
and scale with threads instead.
"""

from run_web import app  # noqa: F401

# Usage: gunicorn wsgi:app -b 0.0.0.0:8080 -w 1 --threads 8
