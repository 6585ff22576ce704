from django.urls import path

from . import views
from .metrics import metrics_view

app_name = 'core'

urlpatterns = [
    path('health/', views.HealthCheckView.as_view(), name='health'),
    path('health/<str:check_name>/', views.HealthCheckView.as_view(), name='health-check'),
    path('livez/', views.LivenessView.as_view(), name='liveness'),
    path('readyz/', views.ReadinessView.as_view(), name='readiness'),
    path('metrics/', metrics_view, name='metrics'),
]

# Mounted under /api/auth/
auth_urlpatterns = [
    path('login/', views.LoginView.as_view(), name='login'),
    path('refresh/', views.RefreshView.as_view(), name='refresh'),
    path('me/', views.CurrentUserView.as_view(), name='me'),
    path('logout/', views.LogoutView.as_view(), name='logout'),
]
