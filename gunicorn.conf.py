"""
Gunicorn configuration for the model library API.

The sweeps do not run here; they are separate processes started by the scheduler
(python -m apps.billing.scripts.run_retention_sweep, ...).
"""
import multiprocessing
import os
from pathlib import Path

from framework.config import settings

LOG_DIR = Path(settings.LOG_DIR)
LOG_DIR.mkdir(parents=True, exist_ok=True)

bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8000")
backlog = 2048

workers = int(os.getenv("GUNICORN_WORKERS", min(multiprocessing.cpu_count() * 2 + 1, 8)))
worker_class = "uvicorn.workers.UvicornWorker"
max_requests = 1000
max_requests_jitter = 50
# Uploads are buffered and pushed to object storage within the request
timeout = int(os.getenv("GUNICORN_TIMEOUT", 300))
keepalive = 5
graceful_timeout = 30

proc_name = (settings.GUNICORN_PROC_NAME or settings.APP_NAME.lower().replace(" ", "-"))[:32]

accesslog = str(LOG_DIR / "gunicorn_access.log")
errorlog = str(LOG_DIR / "gunicorn_error.log")
loglevel = "info"
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

daemon = False
pidfile = str(LOG_DIR / "gunicorn.pid")
umask = 0o007

preload_app = True
worker_tmp_dir = "/dev/shm"

limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190


def when_ready(server):
    server.log.info("%s is ready. Listening on %s", settings.APP_NAME, server.address)


def post_fork(server, worker):
    server.log.info("Worker spawned (pid: %s)", worker.pid)


def on_exit(server):
    server.log.info("%s is shutting down.", settings.APP_NAME)
