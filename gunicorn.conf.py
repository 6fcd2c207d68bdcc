"""
Gunicorn configuration for the AetherVault share API
"""
import multiprocessing
import os

# Server socket
bind = os.getenv("AETHERVAULT_BIND", "127.0.0.1:8000")
backlog = 2048

# Worker processes
workers = int(os.getenv("AETHERVAULT_WORKERS", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
timeout = 60
keepalive = 5

# Logging; the app configures its own handlers
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("AETHERVAULT_LOG_LEVEL", "info").lower()
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = "aethervault-share"

# Server mechanics
daemon = False
capture_output = True
enable_stdio_inheritance = True

# Preload application for better performance
preload_app = True

# Graceful timeout
graceful_timeout = 30

wsgi_app = "aethervault.main:app"
