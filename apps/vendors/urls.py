"""
URL routing for the vendor directory API.
"""

from django.urls import path, include

from config.routers import SafeDefaultRouter

from .views import VendorViewSet

app_name = 'vendors'

router = SafeDefaultRouter()
router.register(r'vendors', VendorViewSet, basename='vendor')

urlpatterns = [
    path('', include(router.urls)),
]
