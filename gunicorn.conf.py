"""
Gunicorn configuration for the habit log API.

    gunicorn -c gunicorn.conf.py habitlog.main:app

Env vars that override defaults:
  PORT     — TCP port to bind
  WORKERS  — number of worker processes (default: 1)
"""
import os

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

# Live log subscriptions ride an in-process change feed, so every client
# that should see another's writes must hit the same worker.
workers = int(os.environ.get("WORKERS", "1"))

worker_class = "uvicorn.workers.UvicornWorker"

# Websocket clients stay connected; only idle HTTP keep-alives are cut.
keepalive = 5
timeout = 120

loglevel = os.environ.get("LOG_LEVEL", "info").lower()
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)sB %(D)sµs'

graceful_timeout = 30
