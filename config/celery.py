# config/celery.py

from celery import Celery
from celery.schedules import crontab
import os

# Set the default Django settings module
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('config')

# Load task modules from all registered Django apps
app.config_from_object('django.conf:settings', namespace='CELERY')

# Auto-discover tasks in all installed apps
app.autodiscover_tasks()

# Celery Beat Schedule - Periodic Tasks
app.conf.beat_schedule = {

    # Automatic bills for parties seated longer than the dining window
    'send-due-bills': {
        'task': 'reservation.tasks.send_due_bills',
        'schedule': 30.0,
        'options': {
            'expires': 25,
        }
    },

    # Called waiters that never showed up give their table to the next one
    'expire-called-waitlist-entries': {
        'task': 'reservation.tasks.expire_called_waitlist_entries',
        'schedule': 60.0,
        'options': {
            'expires': 55,
        }
    },

    'mark-no-shows': {
        'task': 'reservation.tasks.mark_no_shows',
        'schedule': 60.0,
        'options': {
            'expires': 55,
        }
    },

    'send-reservation-reminders': {
        'task': 'reservation.tasks.send_reservation_reminders',
        'schedule': crontab(minute='*/30'),
    },

    'ensure-opening-hours': {
        'task': 'reservation.tasks.ensure_opening_hours',
        'schedule': crontab(hour=0, minute=5),
    },
}


# Use file-based scheduler instead of database scheduler
app.conf.beat_scheduler = 'celery.beat:PersistentScheduler'
app.conf.beat_schedule_filename = os.environ.get(
    'CELERY_BEAT_SCHEDULE_FILENAME', 'celerybeat-schedule'
)
