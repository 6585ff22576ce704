"""
Shared pytest fixtures: operator users and authenticated API clients.
"""

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from apps.core.models import OperatorProfile


def _make_user(username, role):
    user = get_user_model().objects.create_user(username=username, password='test-pass-123')
    OperatorProfile.objects.filter(user=user).update(role=role)
    return user


@pytest.fixture
def operator_admin(db):
    """User with the admin role."""
    return _make_user('ops-admin', 'admin')


@pytest.fixture
def operator_viewer(db):
    """User with the default viewer role."""
    return _make_user('ops-viewer', 'viewer')


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def admin_api(operator_admin):
    client = APIClient()
    client.force_authenticate(user=operator_admin)
    return client


@pytest.fixture
def viewer_api(operator_viewer):
    client = APIClient()
    client.force_authenticate(user=operator_viewer)
    return client
