"""
FastAPI dependencies for the OAuth endpoints.

Builds the grant engine once, wiring it with the adapters selected by
configuration. This is the only place that knows about concrete stores.
"""

import logging
from typing import Annotated

from fastapi import Depends

from grantflow.core.domain import GrantRequest, GrantResponse
from grantflow.core.grant import AuthorizationCodeGrant, OAuth2Grant
from grantflow.infrastructure.client_authenticator import SecretClientAuthenticator
from grantflow.infrastructure.memory_stores import (
    InMemoryClientRegistry,
    InMemoryCodeStore,
    InMemoryContextStore,
)
from grantflow.infrastructure.tokens import OpaqueTokenIssuer
from grantflow.oauth.config import GrantFlowConfig, get_grant_config


logger = logging.getLogger(__name__)


def create_grant(config: GrantFlowConfig | None = None) -> AuthorizationCodeGrant:
    """
    Create the authorization code grant engine.

    Uses Firestore stores when OAUTH_STORAGE_BACKEND=firestore, in-memory
    stores otherwise. Clients from OAUTH_CLIENTS are registered on creation.

    Args:
        config: Grant configuration (uses default if not provided)

    Returns:
        Wired AuthorizationCodeGrant
    """
    if config is None:
        config = get_grant_config()
    config.validate()

    clients = config.load_clients()

    if config.using_firestore:
        from grantflow.infrastructure.firestore import get_firestore_client
        from grantflow.infrastructure.firestore_stores import (
            FirestoreClientRegistry,
            FirestoreCodeStore,
            FirestoreContextStore,
            SecretCipher,
        )

        db = get_firestore_client()
        registry = FirestoreClientRegistry(db, SecretCipher(config.encryption_key))
        for client in clients:
            registry.register(client)
        code_store = FirestoreCodeStore(
            db,
            ttl_seconds=config.authorization_code_ttl,
            code_length=config.token_length,
        )
        context_store = FirestoreContextStore(db, ttl_seconds=config.context_ttl)
        logger.info("Using Firestore grant stores")
    else:
        registry = InMemoryClientRegistry(clients)
        code_store = InMemoryCodeStore(
            ttl_seconds=config.authorization_code_ttl,
            code_length=config.token_length,
        )
        context_store = InMemoryContextStore(ttl_seconds=config.context_ttl)
        logger.info("Using in-memory grant stores")

    return AuthorizationCodeGrant(
        client_registry=registry,
        client_authenticator=SecretClientAuthenticator(),
        code_store=code_store,
        token_issuer=OpaqueTokenIssuer(
            access_token_expires_in=config.access_token_expires_in,
            token_length=config.token_length,
        ),
        context_store=context_store,
    )


# Singleton instance for dependency injection
_grant: AuthorizationCodeGrant | None = None


def get_grant() -> AuthorizationCodeGrant:
    """
    Get the grant engine singleton.

    Creates and wires the engine on first access.
    """
    global _grant
    if _grant is None:
        _grant = create_grant()
    return _grant


def set_grant(grant: AuthorizationCodeGrant) -> None:
    """
    Set the grant engine instance.

    Use this to inject an engine wired with test doubles.
    """
    global _grant
    _grant = grant


def reset_grant() -> None:
    """
    Reset the grant engine singleton.

    Useful for testing to ensure clean state between tests.
    """
    global _grant
    _grant = None


# Type alias for cleaner dependency injection
Grant = Annotated[OAuth2Grant[GrantRequest, GrantResponse], Depends(get_grant)]
