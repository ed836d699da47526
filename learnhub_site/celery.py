# learnhub_site/celery.py
"""
Celery configuration for background maintenance work (access expiry sweeps).

Payment webhooks and certificate issuance run synchronously inside their
request; nothing on those paths is queued.
"""

import os
from celery import Celery
from celery.schedules import crontab

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'learnhub_site.settings')

app = Celery('learnhub_site')

# Load configuration from Django settings with 'CELERY' namespace
app.config_from_object('django.conf:settings', namespace='CELERY')

# Auto-discover tasks from all registered Django apps
app.autodiscover_tasks()

app.conf.beat_schedule = {
    'expire-lapsed-enrollments': {
        'task': 'enrollments.tasks.expire_lapsed_enrollments',
        'schedule': crontab(hour=0, minute=30),
    },
}
