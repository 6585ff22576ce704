from django.contrib import admin
from django.urls import include, path

from apps.core.urls import auth_urlpatterns

admin.site.site_header = "Vendor Discovery"
admin.site.index_title = "Discovery jobs, runs and staged vendors"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/auth/', include((auth_urlpatterns, 'auth'))),
    path('api/admin/', include('apps.discovery.urls')),
    path('api/', include('apps.vendors.urls')),
    # /health/, /livez/, /readyz/, /metrics/
    path('', include('apps.core.urls')),
]
