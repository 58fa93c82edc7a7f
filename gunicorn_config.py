"""
Gunicorn configuration for production deployment
"""
import os

wsgi_app = 'app:app'

# Server socket
bind = f"0.0.0.0:{os.environ.get('PORT', '5000')}"

# Worker processes
# Default to 1 worker; the in-memory rate limit counters are per process.
# Set GUNICORN_WORKERS and RATELIMIT_STORAGE_URI=redis://... to run more.
workers = int(os.environ.get('GUNICORN_WORKERS', 1))
threads = int(os.environ.get('GUNICORN_THREADS', 1))
worker_class = 'gthread' if threads > 1 else 'sync'
max_requests = 1000
max_requests_jitter = 50
timeout = 120  # Lesson generation can take over a minute
graceful_timeout = 30
keepalive = 2

proc_name = 'avidato'

# Logging
accesslog = '-'
errorlog = '-'
loglevel = os.environ.get('LOG_LEVEL', 'info').lower()
access_log_format = '%(h)s "%(r)s" %(s)s %(b)s %(D)sus "%({x-forwarded-for}i)s"'

# Request limits
limit_request_line = 4096
limit_request_fields = 100
limit_request_field_size = 8190

def when_ready(server):
    server.log.info(f"Avidato ready on {bind} with {workers} worker(s), {threads} thread(s) each")
    if workers > 1 and os.environ.get('RATELIMIT_STORAGE_URI', 'memory://').startswith('memory://'):
        server.log.warning("Multiple workers with memory:// rate limit storage: limits apply per worker")

def post_fork(server, worker):
    server.log.info(f"Worker spawned (pid: {worker.pid})")

def worker_abort(worker):
    worker.log.warning(f"Worker {worker.pid} aborted, likely a request exceeding the {timeout}s timeout")
