"""
Celery app initialization for the telemarketing project.

Imported from telemarketing/__init__.py so the app is loaded whenever Django is.
"""

import os
from celery import Celery

# Set default Django settings
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'telemarketing.settings')

app = Celery('telemarketing')

# Load configuration from Django settings with CELERY namespace
app.config_from_object('django.conf:settings', namespace='CELERY')

# Auto-discover tasks from all registered Django apps
app.autodiscover_tasks()
