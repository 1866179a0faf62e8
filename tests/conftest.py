"""Pytest configuration and fixtures."""

import json
from typing import Any, Dict, List

import httpx
import pytest
from fastapi.testclient import TestClient

from outreach_engine.config import get_testing_config
from outreach_engine.core.credential_store import SqlCredentialStore, SqlVerificationLog
from outreach_engine.core.crypto import SecretCipher
from outreach_engine.providers.whatsapp import WhatsAppClient
from outreach_engine.storage.database import (
    create_database_engine, create_session_factory, create_tables, drop_tables
)

TEST_KEY = "deterministic-test-key"


class RecordingProvider:
    """Fake WhatsApp Cloud API that records requests and replies with a canned response."""

    def __init__(self, status_code: int = 200, body: Any = None, error: Exception = None):
        self.status_code = status_code
        self.body = {"messages": [{"id": "wamid.TEST"}]} if body is None else body
        self.error = error
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json=self.body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def sent_payloads(self) -> List[Dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_database_engine("sqlite:///:memory:")
    create_tables(engine)
    yield engine
    drop_tables(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def cipher():
    return SecretCipher(TEST_KEY)


@pytest.fixture
def credential_store(session_factory):
    return SqlCredentialStore(session_factory)


@pytest.fixture
def verification_log(session_factory):
    return SqlVerificationLog(session_factory)


@pytest.fixture
def provider():
    """Fake provider answering 200 by default; tweak attributes per test."""
    return RecordingProvider()


@pytest.fixture
def whatsapp_client(provider):
    return WhatsAppClient(transport=provider.transport)


@pytest.fixture
def app_config():
    return get_testing_config()


@pytest.fixture
def client(app_config, provider):
    """FastAPI test client wired to an in-memory database and the fake provider."""
    from outreach_engine.factory import create_app

    app = create_app(app_config, transport=provider.transport)
    with TestClient(app) as test_client:
        yield test_client
