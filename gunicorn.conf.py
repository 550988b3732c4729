# gunicorn.conf.py
import os

wsgi_app = "ziwei_api.main:create_app()"
bind = f"0.0.0.0:{os.getenv('PORT','5000')}"
# The chart cache is per process: fewer workers with more threads keeps the hit rate up.
workers = int(os.getenv("WEB_CONCURRENCY", "2"))
threads = int(os.getenv("GUNICORN_THREADS", "8"))
worker_class = "gthread"
timeout = 60
graceful_timeout = 30
keepalive = 2
accesslog = "-"   # stdout
errorlog = "-"    # stderr
loglevel = os.getenv("LOGLEVEL", "info")

access_log_format = (
    '%(h)s - "%(r)s" %(s)s %(b)s "%(a)s" '
    'cache:%({X-Cache}o)s rt:%(L)s'
)
