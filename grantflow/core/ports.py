"""
Port definitions (interfaces) for the grant engine.

Ports define the contracts between the grant engine and the stores it
orchestrates. Infrastructure adapters implement these ports; the engine
depends on these interfaces, never on concrete stores.
"""

from typing import Protocol

from grantflow.core.domain import (
    Client,
    Context,
    IssuedToken,
    ValidatedAuthorizationRequest,
    ValidatedTokenRequest,
)


class ClientRegistry(Protocol):
    """Port for resolving registered clients."""

    def retrieve_client(self, client_id: str) -> Client | None:
        """
        Look up a client by identifier.

        Args:
            client_id: Client identifier from the request

        Returns:
            Client if registered, None otherwise
        """
        ...


class ClientAuthenticator(Protocol):
    """Port for verifying client credentials at the token endpoint."""

    def authenticate(self, client: Client, client_secret: str, redirect_uri: str) -> bool:
        """
        Verify the secret and redirect URI against the registered client.

        Must not have side effects.

        Returns:
            True if the credentials match, False otherwise
        """
        ...


class CodeStore(Protocol):
    """
    Port for issuing and consuming authorization codes.

    Implementations must linearize concurrent consumptions of the same
    code so that at most one of them succeeds.
    """

    def issue(self, request: ValidatedAuthorizationRequest) -> str:
        """
        Issue a fresh, unguessable code bound to the request.

        Args:
            request: The validated authorization request

        Returns:
            The authorization code
        """
        ...

    def consume(self, code: str) -> bool:
        """
        Invalidate a code exactly once.

        Args:
            code: The authorization code

        Returns:
            True on the first successful consumption; False if the code is
            unknown, expired, or already consumed
        """
        ...


class ContextStore(Protocol):
    """
    Port for persisting grant contexts between the two phases.

    A saved context must be visible to a subsequent retrieval.
    """

    def save(
        self, request: ValidatedAuthorizationRequest, property: tuple[str, str]
    ) -> Context:
        """
        Save a context for the authorization request.

        Args:
            request: The validated authorization request
            property: (name, value) association entry keying the context

        Returns:
            The saved Context
        """
        ...

    def retrieve(self, request: ValidatedTokenRequest) -> Context | None:
        """
        Retrieve the context a token request refers to.

        Returns:
            The Context, or None if absent, expired, or bound elsewhere
        """
        ...


class TokenIssuer(Protocol):
    """Port for minting tokens."""

    def generate_access_token(self) -> IssuedToken:
        """Mint a fresh access token with its lifetime."""
        ...

    def generate_refresh_token(self) -> IssuedToken:
        """Mint a fresh refresh token."""
        ...
