# Entry point: gunicorn -c gunicorn.conf.py "subtrack:create_app()"
import os

# Bind & workers
bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8000")
# Signup wizard sessions live in process memory, so a second worker only
# works behind a load balancer with sticky sessions
workers = int(os.getenv("GUNICORN_WORKERS", "1"))
threads = int(os.getenv("GUNICORN_THREADS", "4"))
timeout = 60
graceful_timeout = 30
keepalive = 5

# Logs to stdout/stderr (collected by Docker)
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()

forwarded_allow_ips = "*"
proxy_protocol = False


def on_starting(server):
    if server.cfg.workers > 1:
        server.log.warning(
            "Running %s workers: signup sessions are per process and need sticky routing",
            server.cfg.workers,
        )
