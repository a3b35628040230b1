from django.apps import AppConfig


class CollectConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "collect"

    def ready(self):
        # Register department-closure maintenance handlers.
        from . import signals  # noqa: F401
