"""
Per-user rate limits for admin endpoints that spend LLM budget or touch
many rows at once.

Rates are read from REST_FRAMEWORK['DEFAULT_THROTTLE_RATES'] by scope;
a throttle whose scope is missing there uses its own ``default_rate``.
"""

from django.core.exceptions import ImproperlyConfigured
from rest_framework.throttling import UserRateThrottle


class FallbackRateThrottle(UserRateThrottle):
    default_rate = '60/minute'

    def get_rate(self):
        try:
            return super().get_rate()
        except ImproperlyConfigured:
            return self.default_rate


class DiscoveryRunThrottle(FallbackRateThrottle):
    """run-now on a discovery job."""
    scope = 'discovery_run'
    default_rate = '10/minute'


class BulkActionThrottle(FallbackRateThrottle):
    """Bulk job creation and bulk approve/reject."""
    scope = 'bulk'
    default_rate = '20/minute'


class StateChangeThrottle(FallbackRateThrottle):
    scope = 'state_change'
    default_rate = '60/minute'
