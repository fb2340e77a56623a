"""
HTTP client fixtures.

The app's dependency providers are overridden so routes share the test
database, clock and recording transport with the ``services`` fixture.
"""

from __future__ import annotations

import base64
from typing import Any, Generator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from stay_booking.dependencies import get_clock, get_db_engine, get_notifier
from stay_booking.main import app
from stay_booking.notifications.transports import Notifier


@pytest.fixture
def client(services: Any) -> Generator[TestClient, None, None]:
    """Create FastAPI test client wired to the test services."""
    app.dependency_overrides[get_db_engine] = lambda: services.engine
    app.dependency_overrides[get_clock] = lambda: services.clock
    app.dependency_overrides[get_notifier] = lambda: Notifier(
        [services.transport], default_from="inn@example.com"
    )
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> Generator[dict[str, str], None, None]:
    """Basic auth headers for a configured admin account."""
    token = base64.b64encode(b"admin:s3cret").decode()
    with patch("stay_booking.config.ADMIN_USERNAME", "admin"), patch(
        "stay_booking.config.ADMIN_PASSWORD", "s3cret"
    ):
        yield {"Authorization": f"Basic {token}"}
