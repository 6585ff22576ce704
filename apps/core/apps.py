from django.apps import AppConfig


class CoreConfig(AppConfig):
    """Operator roles, error envelope, metrics and health checks."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.core'
    verbose_name = 'Core'
