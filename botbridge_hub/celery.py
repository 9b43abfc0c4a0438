import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'botbridge_hub.settings')

app = Celery('botbridge_hub')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
