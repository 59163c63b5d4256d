"""
Gunicorn configuration for the migration API.
"""
import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"

# Worker configuration
workers = int(os.getenv('GUNICORN_WORKERS', '2'))
worker_class = 'sync'
timeout = int(os.getenv('GUNICORN_TIMEOUT', '1800'))
keepalive = 5

# Logging
accesslog = '-'  # stdout
errorlog = '-'   # stderr
loglevel = os.getenv('LOG_LEVEL', 'info')
capture_output = True

proc_name = 'store-migrator'

preload_app = True
graceful_timeout = 30


def on_starting(server):
    print("[Gunicorn] Starting store migrator...")


def on_exit(server):
    print("[Gunicorn] Store migrator shutting down...")
