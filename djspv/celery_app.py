"""
Celery configuration for the distributions service.

Notification delivery and the periodic retry sweep run as Celery tasks;
beat schedules live in the database (django-celery-beat).
"""
import os
from celery import Celery

# Set the default Django settings module
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('djspv')

# Load configuration from Django settings with CELERY namespace
app.config_from_object('django.conf:settings', namespace='CELERY')

# Looks for tasks.py in every installed app
app.autodiscover_tasks()
