"""
Paydesk - Gunicorn WSGI Server Configuration

Requests block on the database, Stripe and SendGrid, so workers are threaded
and the request timeout covers the slowest provider round trips.
"""

import multiprocessing
import os
import logging

IS_PRODUCTION = os.getenv("PRODUCTION") == "true"

logging.basicConfig(
    level=logging.INFO if IS_PRODUCTION else logging.DEBUG,
    format='[%(asctime)s] %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

wsgi_app = "paydesk.wsgi:application"

PORT = int(os.getenv("PORT", 5000))
bind = [f"0.0.0.0:{PORT}"]

workers = int(os.getenv("WEB_CONCURRENCY", min((multiprocessing.cpu_count() * 2) + 1, 9)))
worker_class = "gthread"
threads = int(os.getenv("GUNICORN_THREADS", 4))

max_requests = int(os.getenv("GUNICORN_MAX_REQUESTS", 1000))
max_requests_jitter = int(os.getenv("GUNICORN_MAX_REQUESTS_JITTER", 100))

# Stripe calls use a 30 second timeout and may retry with an idempotency key.
timeout = int(os.getenv("GUNICORN_TIMEOUT", 120))
graceful_timeout = int(os.getenv("GUNICORN_GRACEFUL_TIMEOUT", 10))
keepalive = 5

# Webhook bodies are small; reject oversized request lines early.
limit_request_line = 8190
limit_request_fields = 100

forwarded_allow_ips = os.getenv("FORWARDED_ALLOW_IPS", "*")
if IS_PRODUCTION:
    secure_scheme_headers = {
        "X-FORWARDED-PROTO": "https",
    }

accesslog = "-"
errorlog = "-"
loglevel = "info" if IS_PRODUCTION else "debug"
access_log_format = (
    '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s '
    '"%(f)s" "%(a)s" response_time=%(D)s_us request_id=%({x-request-id}o)s'
)
proc_name = "paydesk"


def when_ready(server):
    logger.info(f"Gunicorn ready at {server.address} with {workers} workers")


def post_fork(server, worker):
    """Open the database connection before the first request reaches the worker."""
    try:
        import django
        django.setup()
        from django.db import connection
        connection.ensure_connection()
        logger.info(f"Worker {worker.pid}: database connection ready")
    except Exception as e:
        logger.warning(f"Worker {worker.pid}: failed to pre-warm database connection: {e}")
