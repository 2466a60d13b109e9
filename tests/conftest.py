"""
Shared test configuration and fixtures.
"""

import os
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

# Configure in-memory storage before importing the app
with patch.dict(
    os.environ,
    {
        "OAUTH_STORAGE_BACKEND": "memory",
    },
):
    from grantflow.main import app

from grantflow.core.domain import AuthorizationRequest, Client, TokenRequest
from grantflow.core.grant import AuthorizationCodeGrant
from grantflow.infrastructure.client_authenticator import SecretClientAuthenticator
from grantflow.infrastructure.memory_stores import (
    InMemoryClientRegistry,
    InMemoryCodeStore,
    InMemoryContextStore,
)
from grantflow.infrastructure.tokens import OpaqueTokenIssuer
from grantflow.oauth.dependencies import get_grant


REDIRECT_URI = "https://app/cb"


@pytest.fixture
def registered_client():
    """Client c1, registered for the code response type and one redirect URI."""
    return Client(
        client_id="c1",
        client_secret="s1",
        client_name="Test App",
        redirect_uris=[REDIRECT_URI],
    )


@pytest.fixture
def client_registry(registered_client):
    """Registry holding the registered test client."""
    return InMemoryClientRegistry([registered_client])


@pytest.fixture
def code_store():
    """Fresh in-memory code store."""
    return InMemoryCodeStore(ttl_seconds=600)


@pytest.fixture
def context_store():
    """Fresh in-memory context store."""
    return InMemoryContextStore(ttl_seconds=600)


@pytest.fixture
def token_issuer():
    """Opaque token issuer with a one hour access token lifetime."""
    return OpaqueTokenIssuer(access_token_expires_in=3600)


@pytest.fixture
def grant(client_registry, code_store, context_store, token_issuer):
    """Grant engine wired with in-memory collaborators."""
    return AuthorizationCodeGrant(
        client_registry=client_registry,
        client_authenticator=SecretClientAuthenticator(),
        code_store=code_store,
        token_issuer=token_issuer,
        context_store=context_store,
    )


@pytest.fixture
def authorization_request():
    """Valid authorization request for client c1."""
    return AuthorizationRequest(
        client_id="c1",
        response_type="code",
        redirect_uri=REDIRECT_URI,
        scope="read",
        state="xyz",
    )


@pytest.fixture
def make_token_request():
    """Factory for token requests for client c1."""

    def _make(code: str, **overrides) -> TokenRequest:
        fields = {
            "client_id": "c1",
            "client_secret": "s1",
            "redirect_uri": REDIRECT_URI,
            "code": code,
        }
        fields.update(overrides)
        return TokenRequest(**fields)

    return _make


@pytest.fixture
def http_client(grant):
    """Test client whose endpoints use the in-memory grant fixture."""
    app.dependency_overrides[get_grant] = lambda: grant

    client = TestClient(app)
    yield client

    app.dependency_overrides.pop(get_grant, None)
