"""
Tests for the KOMOJU gateway client.
"""
import json
import httpx
import pytest
from decimal import Decimal
from unittest.mock import patch

from seminar_api.config import settings
from seminar_api.services.gateways import get_gateway, GatewayError, SessionRequest
from seminar_api.services.gateways.komoju import KomojuGateway, compute_signature

RealAsyncClient = httpx.AsyncClient


def mock_http(handler):
    transport = httpx.MockTransport(handler)
    return patch(
        "seminar_api.services.gateways.komoju.httpx.AsyncClient",
        lambda **kwargs: RealAsyncClient(transport=transport, **kwargs)
    )


def session_request(**overrides) -> SessionRequest:
    data = {
        "external_order_num": "ORD250101ABC123",
        "amount": Decimal("15000"),
        "currency": "JPY",
        "payment_methods": ["KONBINI"],
        "customer_email": "buyer@example.com",
        "metadata": {"order_id": "abc"},
    }
    data.update(overrides)
    return SessionRequest(**data)


class TestCreateSession:
    """Tests for KomojuGateway.create_session"""

    @pytest.mark.asyncio
    async def test_create_session(self):
        seen = []

        def handler(request: httpx.Request):
            seen.append(request)
            return httpx.Response(200, json={
                "id": "sess_abc",
                "session_url": "https://komoju.com/sessions/sess_abc",
            })

        with mock_http(handler):
            session = await KomojuGateway().create_session(session_request())

        assert session.session_id == "sess_abc"
        assert session.payment_url == "https://komoju.com/sessions/sess_abc"
        assert session.external_order_num == "ORD250101ABC123"

        [request] = seen
        assert request.url.path.endswith("/sessions")
        assert request.headers["Authorization"].startswith("Basic ")
        body = json.loads(request.content)
        assert body["amount"] == 15000
        assert body["payment_methods"] == ["konbini"]
        assert body["external_order_num"] == "ORD250101ABC123"
        assert body["email"] == "buyer@example.com"
        assert body["return_url"] == settings.komoju_return_url

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        with mock_http(lambda request: httpx.Response(422, json={"error": "bad_request"})):
            with pytest.raises(GatewayError):
                await KomojuGateway().create_session(session_request())

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with mock_http(handler):
            with pytest.raises(GatewayError, match="timed out"):
                await KomojuGateway().create_session(session_request())

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with mock_http(handler):
            with pytest.raises(GatewayError):
                await KomojuGateway().create_session(session_request())

    @pytest.mark.asyncio
    async def test_missing_session_url(self):
        with mock_http(lambda request: httpx.Response(200, json={"id": "sess_abc"})):
            with pytest.raises(GatewayError):
                await KomojuGateway().create_session(session_request())

    @pytest.mark.asyncio
    async def test_non_json_response(self):
        with mock_http(lambda request: httpx.Response(200, text="<html>maintenance</html>")):
            with pytest.raises(GatewayError):
                await KomojuGateway().create_session(session_request())

    @pytest.mark.asyncio
    async def test_secret_key_required(self, monkeypatch):
        monkeypatch.setattr(settings, "komoju_secret_key", None)

        with pytest.raises(GatewayError):
            await KomojuGateway().create_session(session_request())


class TestVerifySignature:
    """Tests for KomojuGateway.verify_signature"""

    def test_valid_signature(self):
        body = b'{"id": "evt_1"}'
        signature = compute_signature(settings.komoju_webhook_secret, body)

        assert KomojuGateway().verify_signature(body, signature) is True

    def test_wrong_secret(self):
        body = b'{"id": "evt_1"}'

        assert KomojuGateway().verify_signature(body, compute_signature("other", body)) is False

    def test_missing_signature(self):
        assert KomojuGateway().verify_signature(b"{}", None) is False

    def test_non_ascii_signature(self):
        assert KomojuGateway().verify_signature(b"{}", "caf\u00e9") is False

    def test_no_secret_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "komoju_webhook_secret", None)
        body = b'{"id": "evt_1"}'

        assert KomojuGateway().verify_signature(body, compute_signature("anything", body)) is False


class TestGetGateway:

    def test_default_gateway(self):
        assert get_gateway().name == "komoju"

    def test_unknown_gateway(self):
        with pytest.raises(ValueError):
            get_gateway("paypal")
