"""Gunicorn configuration for production deployment.

Reads the same environment variables as core/config.py.

The scheduler and the per-entity locks live in each worker process, so run
one worker unless SCHEDULER_ENABLED=false on all but one instance.

Usage:
    gunicorn main:app -c gunicorn.conf.py
"""
import os

host = os.getenv("HOST", "0.0.0.0")
port = os.getenv("PORT", "3020")
log_level = os.getenv("LOG_LEVEL", "INFO").lower()
debug = os.getenv("DEBUG", "false").lower() == "true"

bind = f"{host}:{port}"

workers = max(1, int(os.getenv("WORKERS", "1")))
worker_class = "uvicorn.workers.UvicornWorker"

timeout = int(os.getenv("GUNICORN_TIMEOUT", "120"))
graceful_timeout = int(os.getenv("GUNICORN_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNICORN_KEEPALIVE", "5"))

accesslog = "-" if not debug else None
errorlog = "-"
loglevel = log_level

proc_name = "statuswatch"

# Scheduler must not start before fork
preload_app = False
