# ==============================================================================
# Gunicorn Configuration for LearnHub
# ==============================================================================
# Run with: gunicorn -c deploy/gunicorn.conf.py learnhub_site.wsgi:application

import multiprocessing
import os

# Server socket - Use PORT from environment (Railway/Heroku) or default to 8000
port = os.environ.get("PORT", "8000")
bind = f"0.0.0.0:{port}"
backlog = 2048

# Worker processes
# Formula: (2 x CPU cores) + 1
workers = int(os.environ.get("WEB_CONCURRENCY", multiprocessing.cpu_count() * 2 + 1))
worker_class = "sync"
keepalive = 5
max_requests = 1000
max_requests_jitter = 50

# Certificate issuance makes up to five document backend calls,
# each bounded by CERTIFICATE_EXTERNAL_TIMEOUT (60s default).
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "330"))
graceful_timeout = 30

proc_name = "learnhub"

# Logging - Use stdout/stderr for cloud platforms
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("GUNICORN_LOG_LEVEL", "info")
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(L)s'

# Security
limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190

# Server mechanics
daemon = False  # Let container manage the process
pidfile = None
tmp_upload_dir = None

raw_env = [
    "DJANGO_SETTINGS_MODULE=learnhub_site.settings",
]


def worker_abort(worker):
    """Called when a worker times out; in-flight webhooks are redelivered by the gateway."""
    worker.log.warning(f"Worker {worker.pid} aborted after {timeout}s")
