"""
Gunicorn configuration file for Bank Ledger production deployment.

Each Uvicorn worker builds its own Open Banking client at startup, so the
provider token cache is per worker. Bind address, worker count and log
level come from the environment (HOST, PORT, WEB_CONCURRENCY, LOG_LEVEL).
"""
import os

# Server socket
bind = f"{os.getenv('HOST', '0.0.0.0')}:{os.getenv('PORT', '8000')}"
backlog = 2048

# Worker processes
# SQLite serialises writers, so keep this small unless DATABASE_URL points elsewhere
workers = int(os.getenv("WEB_CONCURRENCY", "2"))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000

# Syncs call the bank provider; allow for its timeout plus the merge
timeout = int(os.getenv("GUNICORN_TIMEOUT", "60"))
graceful_timeout = 30
keepalive = 2

# Logging to stdout/stderr (captured by systemd journald)
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

proc_name = "bank_ledger"

# systemd manages the process
daemon = False
pidfile = None

# The startup hook creates tables; run it per worker, not in the master
preload_app = False

max_requests = int(os.getenv("GUNICORN_MAX_REQUESTS", "0"))
max_requests_jitter = 0
