"""WSGI entry point.

The real-time stream holds a worker per connected client; run it under a
threaded server (e.g. ``gunicorn --worker-class gthread --threads 32``).
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
