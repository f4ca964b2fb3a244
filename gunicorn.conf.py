"""
Gunicorn configuration for the Marathon Ledger API.

Env vars that override defaults:
  PORT     — TCP port to bind
  WORKERS  — number of worker processes (default: 2)
"""
import os

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

# Rotation batches fan out on a thread pool inside each worker; keep the
# process count low so the DB pool is not oversubscribed.
workers = int(os.environ.get("WORKERS", "2"))

worker_class = "uvicorn.workers.UvicornWorker"

keepalive = 5

# A full rotation batch must finish inside one request.
timeout = 300

# stdout only; structlog renders the application events.
loglevel = "info"
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)sB %(D)sµs'

graceful_timeout = 30
