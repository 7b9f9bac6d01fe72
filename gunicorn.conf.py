"""Gunicorn configuration for the review portal.

Settings come from the environment so the same file serves local runs and
containers. Secrets are read by ``reviewportal.config.settings`` from the
environment or ``/run/secrets`` when each worker builds the app.
"""
import os

bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8000")
workers = int(os.environ.get("GUNICORN_WORKERS", "2"))
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "30"))
accesslog = "-"
wsgi_app = "reviewportal.flask_app:create_app()"


def post_fork(server, worker):
    """Called just after a worker has been forked."""
    demo_mode = os.environ.get("DEMO_MODE", "false").lower() == "true"
    if demo_mode:
        worker.log.warning("DEMO_MODE=true: generated secrets and in-memory mail are in use")

    from pathlib import Path
    secrets_dir = Path("/run/secrets")
    if secrets_dir.is_dir():
        secret_files = list(secrets_dir.glob("*"))
        if secret_files:
            worker.log.info(f"Found {len(secret_files)} secrets in /run/secrets")
            return
    worker.log.info("No /run/secrets mount; secrets come from the environment")
