"""Integration tests for Order and webhook API endpoints via TestClient."""

import asyncio
import json

import pytest
from ordering.order.order import Order, OrderStatus
from protean import current_domain


def _create_order(client, headers, items=None, **extra):
    """Helper: POST /orders and return the response."""
    return client.post(
        "/orders",
        json={
            "items": items or [{"productId": "P1", "quantity": 2}, {"productId": "P2", "quantity": 1}],
            **extra,
        },
        headers=headers,
    )


def _signed_webhook(client, gateway, payload):
    body = json.dumps(payload).encode()
    return client.post(
        "/webhooks/payment-gateway",
        content=body,
        headers={"Content-Type": "application/json", "X-Razorpay-Signature": gateway.sign(body)},
    )


def _captured(payment_id, remote_order_id, amount=25000):
    return {
        "event": "payment.captured",
        "payload": {
            "payment": {
                "entity": {
                    "id": payment_id,
                    "order_id": remote_order_id,
                    "amount": amount,
                    "currency": "INR",
                    "method": "upi",
                }
            }
        },
    }


class TestCreateOrder:
    def test_create_order(self, client, auth_headers):
        response = _create_order(client, auth_headers)

        assert response.status_code == 201
        data = response.json()
        order = current_domain.repository_for(Order).get(data["orderId"])
        assert order.status == OrderStatus.PENDING.value
        assert order.total_amount == 250.0
        assert data["remotePaymentReference"] == order.remote_order_id

    def test_matching_client_total_is_accepted(self, client, auth_headers):
        assert _create_order(client, auth_headers, totalAmount=250.0).status_code == 201

    def test_mismatched_client_total_is_bad_request(self, client, auth_headers):
        assert _create_order(client, auth_headers, totalAmount=10.0).status_code == 400

    def test_unknown_product_is_not_found(self, client, auth_headers):
        response = _create_order(client, auth_headers, items=[{"productId": "P9", "quantity": 1}])
        assert response.status_code == 404

    def test_insufficient_stock_conflicts(self, client, auth_headers, products):
        products.set_stock("P1", 1)
        assert _create_order(client, auth_headers).status_code == 409

    def test_order_for_another_user_is_unauthorized(self, client, auth_headers):
        assert _create_order(client, auth_headers, userId="user-002").status_code == 401

    def test_requires_token(self, client):
        assert _create_order(client, {}).status_code == 401

    def test_idempotency_key_survives_gateway_outage(self, client, auth_headers, gateway):
        headers = {**auth_headers, "Idempotency-Key": "abc"}
        gateway.configure(available=False)

        failed = _create_order(client, headers)

        assert failed.status_code == 502
        pending_id = failed.json()["order_id"]

        gateway.configure(available=True)
        retried = _create_order(client, headers)

        assert retried.status_code == 201
        assert retried.json()["orderId"] == pending_id
        assert len(gateway.intents) == 1

    def test_repeated_request_returns_same_order(self, client, auth_headers):
        first = _create_order(client, auth_headers).json()
        second = _create_order(client, auth_headers).json()

        assert second["orderId"] == first["orderId"]


class TestReadOrder:
    def test_owner_reads_order(self, client, auth_headers):
        order_id = _create_order(client, auth_headers).json()["orderId"]

        response = client.get(f"/orders/{order_id}", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == order_id
        assert data["userId"] == "user-001"
        assert data["status"] == "pending"
        assert data["totalAmount"] == 250.0
        assert {i["productId"]: i["price"] for i in data["items"]} == {"P1": 100.0, "P2": 50.0}
        assert data["payment"] is None

    def test_other_user_cannot_read_order(self, client, auth_headers, other_user_headers):
        order_id = _create_order(client, auth_headers).json()["orderId"]
        assert client.get(f"/orders/{order_id}", headers=other_user_headers).status_code == 404

    def test_unknown_order_is_not_found(self, client, auth_headers):
        assert client.get("/orders/does-not-exist", headers=auth_headers).status_code == 404


class TestConfirmPayment:
    def test_confirm_captured_payment(self, client, auth_headers, gateway):
        created = _create_order(client, auth_headers).json()
        gateway.register_payment("pay_001", 250.0, remote_order_id=created["remotePaymentReference"])

        response = client.patch(
            f"/orders/{created['orderId']}/confirm", json={"paymentId": "pay_001"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json() == {"orderId": created["orderId"], "status": "processing"}
        payment = client.get(f"/orders/{created['orderId']}", headers=auth_headers).json()["payment"]
        assert payment["paymentId"] == "pay_001"
        assert payment["status"] == "completed"

    def test_uncaptured_payment_is_bad_request(self, client, auth_headers, gateway):
        order_id = _create_order(client, auth_headers).json()["orderId"]
        gateway.register_payment("pay_001", 250.0, status="authorized")

        response = client.patch(f"/orders/{order_id}/confirm", json={"paymentId": "pay_001"}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "Payment not captured"

    def test_amount_mismatch_conflicts(self, client, auth_headers, gateway):
        order_id = _create_order(client, auth_headers).json()["orderId"]
        gateway.register_payment("pay_001", 1.0)

        response = client.patch(f"/orders/{order_id}/confirm", json={"paymentId": "pay_001"}, headers=auth_headers)
        assert response.status_code == 409

    def test_unknown_order_is_not_found(self, client, auth_headers):
        response = client.patch("/orders/missing/confirm", json={"paymentId": "pay_001"}, headers=auth_headers)
        assert response.status_code == 404

    def test_repeated_confirm_reports_current_status(self, client, auth_headers, gateway):
        order_id = _create_order(client, auth_headers).json()["orderId"]
        gateway.register_payment("pay_001", 250.0)
        client.patch(f"/orders/{order_id}/confirm", json={"paymentId": "pay_001"}, headers=auth_headers)

        response = client.patch(f"/orders/{order_id}/confirm", json={"paymentId": "pay_001"}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "processing"


class TestFulfilment:
    def _paid_order(self, client, headers, gateway):
        order_id = _create_order(client, headers).json()["orderId"]
        gateway.register_payment("pay_001", 250.0)
        client.patch(f"/orders/{order_id}/confirm", json={"paymentId": "pay_001"}, headers=headers)
        return order_id

    def test_ship_then_deliver(self, client, auth_headers, gateway):
        order_id = self._paid_order(client, auth_headers, gateway)

        shipped = client.put(f"/orders/{order_id}/ship", headers=auth_headers)
        delivered = client.put(f"/orders/{order_id}/deliver", headers=auth_headers)

        assert shipped.json()["status"] == "shipped"
        assert delivered.json()["status"] == "delivered"

    def test_cannot_ship_pending_order(self, client, auth_headers):
        order_id = _create_order(client, auth_headers).json()["orderId"]
        assert client.put(f"/orders/{order_id}/ship", headers=auth_headers).status_code == 409

    def test_cancel_pending_order(self, client, auth_headers):
        order_id = _create_order(client, auth_headers).json()["orderId"]

        response = client.put(f"/orders/{order_id}/cancel", json={"reason": "Ordered twice"}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    def test_other_user_cannot_cancel(self, client, auth_headers, other_user_headers):
        order_id = _create_order(client, auth_headers).json()["orderId"]
        response = client.put(f"/orders/{order_id}/cancel", json={"reason": "x"}, headers=other_user_headers)
        assert response.status_code == 404

    def test_fulfilment_requires_token(self, client, auth_headers):
        order_id = _create_order(client, auth_headers).json()["orderId"]
        assert client.put(f"/orders/{order_id}/ship").status_code == 401


class TestPaymentWebhook:
    def test_captured_webhook_settles_order(self, client, auth_headers, gateway):
        created = _create_order(client, auth_headers).json()

        response = _signed_webhook(client, gateway, _captured("pay_001", created["remotePaymentReference"]))

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        order = current_domain.repository_for(Order).get(created["orderId"])
        assert order.status == OrderStatus.PROCESSING.value

    def test_duplicate_webhook_is_acknowledged(self, client, auth_headers, gateway):
        created = _create_order(client, auth_headers).json()
        payload = _captured("pay_001", created["remotePaymentReference"])

        assert _signed_webhook(client, gateway, payload).status_code == 200
        assert _signed_webhook(client, gateway, payload).status_code == 200

    def test_bad_signature_is_rejected(self, client, auth_headers):
        created = _create_order(client, auth_headers).json()
        body = json.dumps(_captured("pay_001", created["remotePaymentReference"])).encode()

        response = client.post(
            "/webhooks/payment-gateway",
            content=body,
            headers={"Content-Type": "application/json", "X-Razorpay-Signature": "forged"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid webhook signature"}
        order = current_domain.repository_for(Order).get(created["orderId"])
        assert order.status == OrderStatus.PENDING.value

    def test_unhandled_event_is_acknowledged(self, client, gateway):
        response = _signed_webhook(client, gateway, {"event": "order.paid", "payload": {}})
        assert response.status_code == 200

    def test_unknown_order_is_acknowledged(self, client, gateway):
        response = _signed_webhook(client, gateway, _captured("pay_001", "order_unknown"))
        assert response.status_code == 200

    def test_signed_malformed_body_is_acknowledged(self, client, gateway):
        body = b"{not json"
        response = client.post(
            "/webhooks/payment-gateway",
            content=body,
            headers={"Content-Type": "application/json", "X-Razorpay-Signature": gateway.sign(body)},
        )
        assert response.status_code == 200

    def test_capture_after_failure_is_acknowledged_and_kept(self, client, auth_headers, gateway):
        created = _create_order(client, auth_headers).json()
        remote_order_id = created["remotePaymentReference"]
        gateway.register_payment("pay_001", 250.0, status="failed", remote_order_id=remote_order_id)
        failed = _captured("pay_001", remote_order_id)
        failed["event"] = "payment.failed"
        _signed_webhook(client, gateway, failed)

        response = _signed_webhook(client, gateway, _captured("pay_002", remote_order_id))

        assert response.status_code == 200
        order = current_domain.repository_for(Order).get(created["orderId"])
        assert order.status == OrderStatus.FAILED.value
        assert order.late_capture_payment_id == "pay_002"


def _loop_running():
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


class TestGatewayCallsLeaveEventLoop:
    @pytest.fixture()
    def loop_seen(self, monkeypatch, gateway):
        seen = []
        for name in ("create_remote_intent", "fetch_payment", "verify_signature"):
            original = getattr(gateway, name)

            def record(*args, _original=original, **kwargs):
                seen.append(_loop_running())
                return _original(*args, **kwargs)

            monkeypatch.setattr(gateway, name, record)
        return seen

    def test_order_placement_runs_in_worker_thread(self, client, auth_headers, loop_seen):
        assert _create_order(client, auth_headers).status_code == 201
        assert loop_seen and not any(loop_seen)

    def test_confirm_and_webhook_run_in_worker_thread(self, client, auth_headers, gateway, loop_seen):
        created = _create_order(client, auth_headers).json()
        gateway.register_payment("pay_001", 250.0, remote_order_id=created["remotePaymentReference"])

        _signed_webhook(client, gateway, _captured("pay_001", created["remotePaymentReference"]))
        response = client.patch(
            f"/orders/{created['orderId']}/confirm", json={"paymentId": "pay_001"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert loop_seen and not any(loop_seen)
