# ntg_desk/celery.py
import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "ntg_desk.settings")

app = Celery("ntg_desk")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
