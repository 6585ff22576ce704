"""
Tests for the shared API plumbing.

Tests cover:
- Error envelope for service exceptions and DRF errors
- Role resolution and permissions
- Health, liveness and readiness endpoints
- JWT login, current user and logout
"""

from unittest.mock import MagicMock, patch

import pytest
from django.contrib.auth import get_user_model
from rest_framework.exceptions import NotAuthenticated, Throttled

from apps.core.exceptions import (
    ConflictError,
    DiscoveryServiceError,
    ErrorCode,
    NotFoundError,
    api_exception_handler,
)
from apps.core.health import HealthCheckResult, HealthChecker, HealthStatus
from apps.core.permissions import IsAdmin, IsViewer, get_user_role, has_role


def handler_context(request_id='req-1'):
    request = MagicMock()
    request.request_id = request_id
    return {'request': request}


# ============================================================================
# Error envelope
# ============================================================================

class TestExceptionHandler:

    def test_service_exception_envelope(self):
        response = api_exception_handler(ConflictError("Run is completed"), handler_context())

        assert response.status_code == 409
        assert response.data == {
            'error': {'code': 'CONFLICT', 'message': 'Run is completed'},
            'request_id': 'req-1',
        }

    def test_field_and_details_included(self):
        exc = DiscoveryServiceError("Vendor discovery returned an unparseable response",
                                    details={'response_preview': 'nope'})

        response = api_exception_handler(exc, handler_context())

        assert response.status_code == 502
        assert response.data['error']['code'] == ErrorCode.DISCOVERY_ERROR.value
        assert response.data['error']['details'] == {'response_preview': 'nope'}

    def test_not_found(self):
        response = api_exception_handler(NotFoundError("Discovery run x not found"), handler_context())

        assert response.status_code == 404
        assert response.data['error']['code'] == 'NOT_FOUND'

    def test_drf_authentication_error(self):
        response = api_exception_handler(NotAuthenticated(), handler_context())

        assert response.data['error']['code'] == 'AUTHENTICATION_REQUIRED'

    def test_throttled_keeps_retry_after(self):
        response = api_exception_handler(Throttled(wait=30), handler_context())

        assert response.status_code == 429
        assert response.data['error']['code'] == 'RATE_LIMITED'
        assert response['Retry-After'] == '30'

    def test_unhandled_exception_is_internal_error(self):
        response = api_exception_handler(RuntimeError('boom'), handler_context())

        assert response.status_code == 500
        assert response.data['error']['message'] == 'An unexpected error occurred'


# ============================================================================
# Roles and permissions
# ============================================================================

@pytest.mark.django_db
class TestPermissions:

    def test_new_user_is_viewer(self):
        user = get_user_model().objects.create_user(username='new-user', password='x')

        assert get_user_role(user) == 'viewer'
        assert has_role(user, 'viewer')
        assert not has_role(user, 'admin')

    def test_superuser_is_admin(self):
        user = get_user_model().objects.create_superuser(username='root', password='x', email='root@example.com')

        assert get_user_role(user) == 'admin'

    def test_permission_classes(self, operator_admin, operator_viewer):
        def request_for(user):
            request = MagicMock()
            request.user = user
            return request

        assert IsAdmin().has_permission(request_for(operator_admin), None)
        assert not IsAdmin().has_permission(request_for(operator_viewer), None)
        assert IsViewer().has_permission(request_for(operator_viewer), None)


# ============================================================================
# Health
# ============================================================================

class TestHealthChecker:

    def test_overall_status_folds_results(self):
        checker = HealthChecker()
        checker.register('ok', lambda: HealthCheckResult(name='ok', status=HealthStatus.HEALTHY))
        checker.register('slow', lambda: HealthCheckResult(name='slow', status=HealthStatus.DEGRADED))

        assert checker.check_all()['status'] == 'degraded'

    def test_raising_check_is_unhealthy(self):
        checker = HealthChecker()

        def broken():
            raise ConnectionError('redis down')

        checker.register('cache', broken)

        result = checker.check('cache')
        assert result.status == HealthStatus.UNHEALTHY
        assert 'redis down' in result.message

    def test_unknown_check(self):
        assert HealthChecker().check('nope').status == HealthStatus.UNHEALTHY


@pytest.mark.django_db
class TestHealthEndpoints:

    def test_health(self, client):
        response = client.get('/health/')

        assert response.status_code == 200
        assert set(response.json()['checks']) == {'database', 'cache', 'discovery_runs'}

    def test_single_check(self, client):
        assert client.get('/health/database/').json()['status'] == 'healthy'

    def test_liveness_and_readiness(self, client):
        assert client.get('/livez/').json() == {'status': 'alive'}
        assert client.get('/readyz/').json() == {'status': 'ready'}

    def test_readiness_fails_without_database(self, client):
        failing = HealthCheckResult(name='database', status=HealthStatus.UNHEALTHY, message='db down')

        with patch('apps.core.views.health_checker.check', return_value=failing):
            response = client.get('/readyz/')

        assert response.status_code == 503
        assert response.json()['reason'] == 'db down'


# ============================================================================
# Auth
# ============================================================================

@pytest.mark.django_db
class TestAuth:

    def test_login_returns_tokens_and_role(self, api_client, operator_admin):
        response = api_client.post(
            '/api/auth/login/',
            {'username': 'ops-admin', 'password': 'test-pass-123'},
            format='json',
        )

        assert response.status_code == 200
        data = response.json()
        assert data['access'] and data['refresh']
        assert data['user']['role'] == 'admin'

    def test_bearer_token_reaches_admin_api(self, api_client, operator_admin):
        tokens = api_client.post(
            '/api/auth/login/',
            {'username': 'ops-admin', 'password': 'test-pass-123'},
            format='json',
        ).json()

        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
        response = api_client.get('/api/admin/discovery-jobs')

        assert response.status_code == 200

    def test_me(self, viewer_api):
        data = viewer_api.get('/api/auth/me/').json()

        assert data['username'] == 'ops-viewer'
        assert data['role'] == 'viewer'

    def test_logout_requires_refresh(self, admin_api):
        response = admin_api.post('/api/auth/logout/', {}, format='json')

        assert response.status_code == 400
        assert response.json()['error']['field'] == 'refresh'
