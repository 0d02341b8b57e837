import re

import pytest
from rest_framework.test import APIClient

from api.schema import is_visible
from api.views import get_allowed_features
from conftest import client_for

pytestmark = pytest.mark.django_db


def documented_paths(client):
    response = client.get("/swagger.json")
    assert response.status_code == 200
    body = response.json()
    base = body.get("basePath", "").rstrip("/")
    # {pk} / {id} placeholders are normalised to {}
    return {re.sub(r"\{\w+\}", "{}", base + path) for path in body["paths"]}


def test_anonymous_schema_lists_login_and_register_only():
    paths = documented_paths(APIClient())

    assert paths == {"/api/auth/login/", "/api/auth/register/"}


def test_regular_user_does_not_see_admin_endpoints(user):
    paths = documented_paths(client_for(user))

    assert "/api/files/upload/" in paths
    assert "/api/charts/{}/" in paths
    assert "/api/users/{}/" in paths
    assert "/api/users/{}/analytics/" in paths
    assert "/api/users/" not in paths
    assert "/api/users/{}/role/" not in paths
    assert not any(path.startswith("/api/analytics/") for path in paths)


def test_admin_sees_everything(admin_user):
    paths = documented_paths(client_for(admin_user))

    assert {
        "/api/users/",
        "/api/users/{}/role/",
        "/api/analytics/overview/",
        "/api/analytics/health/",
    } <= paths


def test_suspended_account_only_sees_account_endpoints(make_user):
    suspended = make_user("x@example.com", status="suspended")
    features = get_allowed_features(suspended)

    assert features == []
    assert is_visible("/api/auth/me/", features)
    assert not is_visible("/api/files/upload/", features)
