"""
Health check and authentication endpoints.

/health/ and friends are plain Django views so they answer even when the
DRF auth stack is misconfigured. Auth views are thin simplejwt subclasses.
"""

from django.http import JsonResponse
from django.views import View

from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from apps.core.exceptions import ValidationError
from apps.core.health import HealthStatus, health_checker
from apps.core.serializers import OperatorTokenObtainPairSerializer, UserSerializer


def _check_status(healthy):
    return 200 if healthy else 503


class HealthCheckView(View):
    """All registered checks, or one of them by name."""

    def get(self, request, check_name=None):
        if check_name is None:
            report = health_checker.check_all()
            return JsonResponse(report, status=_check_status(report['status'] != HealthStatus.UNHEALTHY.value))

        result = health_checker.check(check_name)
        body = {
            'status': result.status.value,
            'message': result.message,
            'details': result.details,
            'duration_ms': result.duration_ms,
        }
        return JsonResponse(body, status=_check_status(result.status == HealthStatus.HEALTHY))


class LivenessView(View):

    def get(self, request):
        return JsonResponse({'status': 'alive'})


class ReadinessView(View):
    """Ready once the database answers."""

    def get(self, request):
        result = health_checker.check('database')
        if result.status == HealthStatus.HEALTHY:
            return JsonResponse({'status': 'ready'})
        return JsonResponse({'status': 'not_ready', 'reason': result.message}, status=503)


# =============================================================================
# Auth
# =============================================================================

class LoginView(TokenObtainPairView):
    """POST {username, password} -> {access, refresh, user}."""
    serializer_class = OperatorTokenObtainPairSerializer
    permission_classes = [AllowAny]


class RefreshView(TokenRefreshView):
    permission_classes = [AllowAny]


class CurrentUserView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(UserSerializer(request.user).data)


class LogoutView(APIView):
    """Blacklists the posted refresh token."""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        token = request.data.get('refresh')
        if not token:
            raise ValidationError("Refresh token required", field='refresh')

        try:
            RefreshToken(token).blacklist()
        except TokenError as e:
            raise ValidationError(str(e), field='refresh')

        return Response({'message': 'Successfully logged out'})
