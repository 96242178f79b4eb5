# desk_core/apps.py

from django.apps import AppConfig


class DeskCoreConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "desk_core"
    verbose_name = "Service desk"

    def ready(self):
        from . import signals  # noqa
