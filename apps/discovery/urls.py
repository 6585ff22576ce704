"""
Discovery admin API URLs, mounted at /api/admin/.

Paths have no trailing slash to match the admin UI.
"""

from django.urls import include, path

from config.routers import SafeDefaultRouter

from .views import (
    ChatHistoryView,
    DiscoveryJobViewSet,
    DiscoveryPreviewView,
    DiscoveryRunViewSet,
    SchedulerConfigView,
    StagedVendorViewSet,
)

app_name = 'discovery'

router = SafeDefaultRouter(trailing_slash=False)
router.include_root_view = False
router.register(r'discovery-jobs', DiscoveryJobViewSet, basename='discovery-job')
router.register(r'discovery-runs', DiscoveryRunViewSet, basename='discovery-run')
router.register(r'staged-vendors', StagedVendorViewSet, basename='staged-vendor')

urlpatterns = [
    path('scheduler-config', SchedulerConfigView.as_view(), name='scheduler-config'),
    path('discovery-chat-history', ChatHistoryView.as_view(), name='discovery-chat-history'),
    path('discover-preview', DiscoveryPreviewView.as_view(), name='discover-preview'),
    path('', include(router.urls)),
]
