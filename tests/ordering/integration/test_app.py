"""Smoke tests for the assembled application."""

import pytest
from fastapi.testclient import TestClient


@pytest.fixture()
def app_client():
    from app import app

    return TestClient(app)


class TestApplication:
    def test_health(self, app_client):
        response = app_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert set(data["domains"]) == {"ordering", "catalogue"}

    def test_cart_route_is_mounted(self, app_client, auth_headers):
        response = app_client.get("/cart", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["items"] == []

    def test_validation_errors_map_to_bad_request(self, app_client, auth_headers):
        response = app_client.post("/cart/checkout", headers=auth_headers)
        assert response.status_code == 400

    def test_webhook_route_is_mounted(self, app_client):
        response = app_client.post("/webhooks/payment-gateway", content=b"{}")
        assert response.status_code == 400
