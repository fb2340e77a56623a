"""Unit tests for the payment callback endpoints with the gateway mocked out."""

from typing import Generator
from unittest.mock import Mock

import pytest
from httpx import ASGITransport, AsyncClient

from stay_booking.dependencies import get_payment_gateway_factory
from stay_booking.main import app
from stay_booking.payments.gateway import SERVER_ACK, CallbackOutcome
from stay_booking.routes.payments import render_result_page


@pytest.fixture
def gateway() -> Generator[Mock, None, None]:
    mock_gateway = Mock()
    mock_gateway.handle_server_callback.return_value = SERVER_ACK
    app.dependency_overrides[get_payment_gateway_factory] = lambda: (lambda: mock_gateway)
    yield mock_gateway
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_return_passes_form_fields_and_acknowledges(gateway: Mock) -> None:
    """Test that the server callback hands the posted form to the gateway."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.post(
            "/api/payment/return",
            data={"MerchantTradeNo": "BK12345678", "RtnCode": "1"},
        )

    assert response.status_code == 200
    assert response.text == "1|OK"
    assert response.headers["content-type"].startswith("text/plain")
    gateway.handle_server_callback.assert_called_once_with(
        {"MerchantTradeNo": "BK12345678", "RtnCode": "1"}
    )


@pytest.mark.asyncio
async def test_return_acknowledges_when_gateway_cannot_be_built() -> None:
    """Test that a failing credentials read still answers 1|OK."""

    def broken_factory() -> None:
        raise RuntimeError("settings table unavailable")

    app.dependency_overrides[get_payment_gateway_factory] = lambda: broken_factory
    try:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.post("/api/payment/return", data={"MerchantTradeNo": "BK1"})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.text == "1|OK"


@pytest.mark.asyncio
async def test_result_page_survives_gateway_crash(gateway: Mock) -> None:
    """Test that the browser result page renders even if processing raises."""
    gateway.handle_browser_result.side_effect = RuntimeError("database gone")

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.get("/api/payment/result", params={"MerchantTradeNo": "BK12345678"})

    assert response.status_code == 200
    assert "Payment failed" in response.text
    assert "could not be processed" in response.text


@pytest.mark.asyncio
async def test_admin_routes_reject_missing_auth() -> None:
    """Test that admin routes return 401 when Authorization header is missing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.post("/api/admin/bookings/BK12345678/cancel")

    assert response.status_code == 401
    assert response.json() == {"detail": "Unauthorized"}


@pytest.mark.unit
def test_result_page_escapes_gateway_message() -> None:
    page = render_result_page(CallbackOutcome("failed", message="<script>x</script>"))

    assert "<script>" not in page
    assert "&lt;script&gt;" in page


@pytest.mark.unit
def test_result_page_shows_booking_summary() -> None:
    outcome = CallbackOutcome(
        "paid",
        booking_id="BK12345678",
        booking={"booking_id": "BK12345678", "final_amount": 12500},
    )

    page = render_result_page(outcome)

    assert "Payment successful" in page
    assert "BK12345678" in page
    assert "NT$ 12,500" in page
