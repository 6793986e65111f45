"""Tests for the payment gateway adapters and factory."""

import json
from unittest.mock import Mock

import pytest
import requests
from payments.gateway import get_gateway, reset_gateway
from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.port import from_minor_units, hmac_signature, to_minor_units
from payments.gateway.razorpay_adapter import RazorpayGateway
from shared.config import get_settings
from shared.errors import GatewayUnavailableError, NotFoundError
from tenacity import wait_none


def _response(status_code, payload=None):
    resp = Mock()
    resp.status_code = status_code
    resp.ok = status_code < 400
    resp.json.return_value = payload or {}
    resp.text = json.dumps(payload or {})
    return resp


@pytest.fixture()
def no_backoff(monkeypatch):
    monkeypatch.setattr(RazorpayGateway._request.retry, "wait", wait_none())


def _razorpay(session):
    return RazorpayGateway(
        key_id="rzp_test_key",
        key_secret="rzp_test_secret",
        webhook_secret="whsec",
        base_url="https://razorpay.test/v1/",
        timeout=2.0,
        session=session,
    )


class TestMinorUnits:
    def test_rupees_to_paise(self):
        assert to_minor_units(250.0) == 25000
        assert to_minor_units(19.99) == 1999

    def test_paise_to_rupees(self):
        assert from_minor_units(25000) == 250.0
        assert from_minor_units(1999) == 19.99


class TestFakeGateway:
    def test_intent_is_deduplicated_by_receipt(self):
        fake = FakeGateway()
        first = fake.create_remote_intent(250.0, "INR", "order_1", {"order_id": "1"})
        second = fake.create_remote_intent(250.0, "INR", "order_1", {"order_id": "1"})

        assert first == second
        assert first.startswith("order_fake_")
        assert len(fake.intents) == 1

    def test_different_receipts_get_different_intents(self):
        fake = FakeGateway()
        assert fake.create_remote_intent(1.0, "INR", "order_1", {}) != fake.create_remote_intent(
            1.0, "INR", "order_2", {}
        )

    def test_unavailable_gateway_times_out(self):
        fake = FakeGateway()
        fake.configure(available=False)

        with pytest.raises(GatewayUnavailableError):
            fake.create_remote_intent(250.0, "INR", "order_1", {})
        with pytest.raises(GatewayUnavailableError):
            fake.fetch_payment("pay_001")
        assert fake.intents == {}

    def test_fetch_registered_payment(self):
        fake = FakeGateway()
        fake.register_payment("pay_001", 250.0, remote_order_id="order_fake_1")

        payment = fake.fetch_payment("pay_001")
        assert payment.is_captured
        assert payment.amount == 250.0
        assert payment.remote_order_id == "order_fake_1"

    def test_fetch_unknown_payment_is_not_found(self):
        with pytest.raises(NotFoundError):
            FakeGateway().fetch_payment("pay_404")

    def test_signature_verification(self):
        fake = FakeGateway(webhook_secret="s3cret")
        body = b'{"event":"payment.captured"}'

        assert fake.verify_signature(body, fake.sign(body))
        assert fake.verify_signature(body, hmac_signature("s3cret", body))
        assert not fake.verify_signature(body + b" ", fake.sign(body))
        assert not fake.verify_signature(body, hmac_signature("other", body))
        assert not fake.verify_signature(body, "")


class TestRazorpayIntent:
    def test_creates_order_in_paise(self):
        session = Mock()
        session.request.side_effect = [
            _response(200, {"items": []}),
            _response(200, {"id": "order_rzp_1"}),
        ]

        remote_id = _razorpay(session).create_remote_intent(250.0, "INR", "order_42", {"order_id": "42"})

        assert remote_id == "order_rzp_1"
        lookup, create = session.request.call_args_list
        assert lookup.args == ("GET", "https://razorpay.test/v1/orders")
        assert lookup.kwargs["params"] == {"receipt": "order_42"}
        assert create.args == ("POST", "https://razorpay.test/v1/orders")
        assert create.kwargs["json"] == {
            "amount": 25000,
            "currency": "INR",
            "receipt": "order_42",
            "notes": {"order_id": "42"},
        }
        assert create.kwargs["timeout"] == 2.0

    def test_existing_intent_for_receipt_is_reused(self):
        session = Mock()
        session.request.return_value = _response(200, {"items": [{"id": "order_rzp_existing"}]})

        remote_id = _razorpay(session).create_remote_intent(250.0, "INR", "order_42", {})

        assert remote_id == "order_rzp_existing"
        assert session.request.call_count == 1

    def test_uses_basic_auth(self):
        session = Mock()
        _razorpay(session)
        assert session.auth == ("rzp_test_key", "rzp_test_secret")

    def test_rejected_order_is_unavailable(self):
        session = Mock()
        session.request.side_effect = [
            _response(200, {"items": []}),
            _response(400, {"error": {"description": "bad amount"}}),
        ]

        with pytest.raises(GatewayUnavailableError):
            _razorpay(session).create_remote_intent(250.0, "INR", "order_42", {})

    def test_server_errors_are_retried(self, no_backoff):
        session = Mock()
        session.request.side_effect = [
            _response(503),
            _response(200, {"items": []}),
            _response(200, {"id": "order_rzp_1"}),
        ]

        assert _razorpay(session).create_remote_intent(250.0, "INR", "order_42", {}) == "order_rzp_1"
        assert session.request.call_count == 3

    def test_persistent_timeouts_are_unavailable(self, no_backoff):
        session = Mock()
        session.request.side_effect = requests.Timeout("read timed out")

        with pytest.raises(GatewayUnavailableError):
            _razorpay(session).create_remote_intent(250.0, "INR", "order_42", {})
        assert session.request.call_count == 3


class TestRazorpayPayment:
    def test_fetch_payment_converts_from_paise(self):
        session = Mock()
        session.request.return_value = _response(
            200,
            {
                "id": "pay_001",
                "status": "captured",
                "amount": 25000,
                "currency": "INR",
                "method": "card",
                "order_id": "order_rzp_1",
            },
        )

        payment = _razorpay(session).fetch_payment("pay_001")

        assert payment.is_captured
        assert payment.amount == 250.0
        assert payment.method == "card"
        assert payment.remote_order_id == "order_rzp_1"
        assert session.request.call_args.args == ("GET", "https://razorpay.test/v1/payments/pay_001")

    def test_unknown_payment_is_not_found(self):
        session = Mock()
        session.request.return_value = _response(404, {"error": {"code": "BAD_REQUEST_ERROR"}})

        with pytest.raises(NotFoundError):
            _razorpay(session).fetch_payment("pay_404")

    def test_connection_failure_is_unavailable(self, no_backoff):
        session = Mock()
        session.request.side_effect = requests.ConnectionError("refused")

        with pytest.raises(GatewayUnavailableError):
            _razorpay(session).fetch_payment("pay_001")


class TestGatewayFactory:
    @pytest.fixture(autouse=True)
    def _fresh_settings(self):
        reset_gateway()
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    def test_defaults_to_fake_gateway(self, monkeypatch):
        monkeypatch.delenv("PAYMENT_GATEWAY", raising=False)
        assert isinstance(get_gateway(), FakeGateway)

    def test_razorpay_from_settings(self, monkeypatch):
        monkeypatch.setenv("PAYMENT_GATEWAY", "razorpay")
        monkeypatch.setenv("RAZORPAY_KEY_ID", "rzp_live_key")
        monkeypatch.setenv("RAZORPAY_WEBHOOK_SECRET", "whsec_live")

        gateway = get_gateway()

        assert isinstance(gateway, RazorpayGateway)
        assert gateway.webhook_secret == "whsec_live"
        assert gateway.session.auth[0] == "rzp_live_key"
