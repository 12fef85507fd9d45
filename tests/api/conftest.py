"""
Fixtures for HTTP-level tests.
"""
import asyncio

import pytest
from fastapi.testclient import TestClient

from tollgate import create_app
from tollgate.db.models import Credential


@pytest.fixture
def app_factory(settings_factory, clock, password):
    """Build an app with its schema created and alice@example.com seeded."""
    def factory(default_budgets=False, **overrides):
        overrides.setdefault("RATE_LIMIT_ENABLED", True)
        if not default_budgets:
            overrides.setdefault("RATE_LIMIT_AUTH_BURST_SIZE", 10)
        app = create_app(settings_factory(**overrides), clock=clock)
        services = app.services

        async def seed():
            await services.database.create_tables()
            async with services.database.get_session() as session:
                session.add(Credential(email="alice@example.com", password_hash=services.hasher.hash(password)))
                session.add(Credential(email="bob@example.com", password_hash=services.hasher.hash(password)))

        asyncio.run(seed())
        return app
    return factory


@pytest.fixture
def client(app_factory):
    with TestClient(app_factory()) as test_client:
        yield test_client


@pytest.fixture
def login(client, password):
    def do_login(email="alice@example.com", **headers):
        response = client.post("/auth/login", json={"email": email, "password": password}, headers=headers)
        assert response.status_code == 200, response.text
        return response.json()
    return do_login