from rest_framework.routers import DefaultRouter


class SafeDefaultRouter(DefaultRouter):
    """
    DefaultRouter without format suffixes.

    Each app builds its own router; with suffixes on, the second one fails
    registering the 'drf_format_suffix' converter again.
    """
    include_format_suffixes = False
