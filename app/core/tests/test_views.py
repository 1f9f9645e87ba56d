"""
Tests for the health check endpoint.
"""

import pytest
from django.db import DatabaseError
from django.urls import reverse


@pytest.mark.django_db
class TestHealthCheck:
    def test_healthy(self, client):
        response = client.get(reverse("health_check"))

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "connected", "cache": "connected"}

    def test_database_down(self, client, mocker):
        mocker.patch("core.views.connection.cursor", side_effect=DatabaseError("down"))

        response = client.get(reverse("health_check"))

        assert response.status_code == 503
        assert response.json()["database"] == "disconnected"

    def test_cache_down_is_degraded(self, client, mocker):
        mocker.patch("core.views.cache.set", side_effect=ConnectionError("redis down"))

        response = client.get(reverse("health_check"))

        assert response.status_code == 200
        assert response.json()["cache"] == "disconnected"
