"""Gunicorn production configuration."""
import multiprocessing

wsgi_app = "expenseflow.main:app"
pythonpath = "backend"
bind = "0.0.0.0:8000"
workers = multiprocessing.cpu_count() + 1
worker_class = "uvicorn.workers.UvicornWorker"
timeout = 60
keepalive = 5
max_requests = 2000
max_requests_jitter = 200
# Each worker builds its own engines and rate-limit storage
preload_app = False
accesslog = "-"
errorlog = "-"
loglevel = "info"
