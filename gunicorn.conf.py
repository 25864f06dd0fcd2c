import multiprocessing
import os

# gunicorn 'ticketgate:create_app()'
workers = int(os.environ.get('WEB_CONCURRENCY', (multiprocessing.cpu_count() * 2) + 1))
threads = int(os.environ.get('GUNICORN_THREADS', 2))
worker_class = "gthread"
preload_app = True
bind = os.environ.get('BIND', ":8000")
# Heroku/Render style proxy headers
forwarded_allow_ips = "*"
# Door scanners retry on 503; keep request timeout short
timeout = 30
keepalive = 75
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get('LOG_LEVEL', 'info').lower()
