"""
Authorization code grant engine.

Orchestrates the client registry, client authenticator, code store,
context store and token issuer into the two protocol steps. The engine is
synchronous and holds no state of its own; every collaborator is injected
through the constructor.

The order of validation and collaborator calls in each handler is part of
the contract: callers branch on which error is raised first.
"""

import logging
from typing import Protocol, TypeVar, assert_never

from grantflow.core.domain import (
    AUTHORIZATION_CODE_PROPERTY,
    AuthorizationRequest,
    AuthorizationResponse,
    GrantRequest,
    GrantResponse,
    TokenRequest,
    TokenResponse,
    TokenType,
)
from grantflow.core.exceptions import (
    ClientAuthenticationFailedError,
    ClientNotRegisteredError,
    ContextNotSetupError,
    InvalidAuthorizationCodeError,
    InvalidCodeVerifierError,
)
from grantflow.core.pkce import verify_code_verifier
from grantflow.core.ports import (
    ClientAuthenticator,
    ClientRegistry,
    CodeStore,
    ContextStore,
    TokenIssuer,
)

logger = logging.getLogger(__name__)

RequestT = TypeVar("RequestT", contravariant=True)
ResponseT = TypeVar("ResponseT", covariant=True)


class OAuth2Grant(Protocol[RequestT, ResponseT]):
    """A grant: one protocol sequence for obtaining tokens."""

    def flow(self, request: RequestT) -> ResponseT:
        """Service one message of the grant."""
        ...


class AuthorizationCodeGrant:
    """
    Grant engine for the Authorization Code grant.

    Safe to share between threads: each call to flow() is independent.
    Single-use of codes is enforced by the code store, not here.
    """

    def __init__(
        self,
        client_registry: ClientRegistry,
        client_authenticator: ClientAuthenticator,
        code_store: CodeStore,
        token_issuer: TokenIssuer,
        context_store: ContextStore,
    ):
        """
        Initialize the grant engine.

        Args:
            client_registry: Resolves client ids to registered clients
            client_authenticator: Verifies client credentials
            code_store: Issues and consumes authorization codes
            token_issuer: Mints access and refresh tokens
            context_store: Persists state between the two phases
        """
        self.client_registry = client_registry
        self.client_authenticator = client_authenticator
        self.code_store = code_store
        self.token_issuer = token_issuer
        self.context_store = context_store

    def flow(self, request: GrantRequest) -> GrantResponse:
        """
        Service a grant message.

        Dispatches on the request variant only.

        Args:
            request: AuthorizationRequest or TokenRequest

        Returns:
            AuthorizationResponse for an AuthorizationRequest,
            TokenResponse for a TokenRequest

        Raises:
            GrantFlowError: One of the typed grant errors
        """
        if isinstance(request, AuthorizationRequest):
            return self._handle_authorization_request(request)
        elif isinstance(request, TokenRequest):
            return self._handle_token_request(request)
        else:
            assert_never(request)

    def _handle_authorization_request(
        self, request: AuthorizationRequest
    ) -> AuthorizationResponse:
        """
        Validate an authorization request and issue a bound code.

        Raises:
            InvalidRequestError: Malformed or missing fields
            ClientNotRegisteredError: Unknown client id
            UnauthorizedResponseTypeError: Response type not allowed for client
            InvalidRedirectUriError: Redirect URI not registered or not resolvable
        """
        validated = request.validate()

        client = self.client_registry.retrieve_client(validated.client_id)
        if client is None:
            raise ClientNotRegisteredError(validated.client_id)

        client.validate_response_type(validated.response_type)
        redirect_uri = client.validate_and_resolve_redirect_uri(validated.redirect_uri)

        code = self.code_store.issue(validated)

        context = self.context_store.save(
            validated, property=(AUTHORIZATION_CODE_PROPERTY, code)
        )

        logger.info(
            f"Issued authorization code for client {validated.client_id}",
            extra={"client_id": validated.client_id, "scope": validated.scope},
        )

        return AuthorizationResponse(
            context=context,
            redirect_uri=redirect_uri,
            code=code,
            state=validated.state,
        )

    def _handle_token_request(self, request: TokenRequest) -> TokenResponse:
        """
        Validate a token request, consume its code and issue tokens.

        Raises:
            InvalidRequestError: Malformed or missing fields
            ContextNotSetupError: No context for the code
            ClientNotRegisteredError: Unknown client id
            ClientAuthenticationFailedError: Secret or redirect URI mismatch
            InvalidCodeVerifierError: PKCE verifier missing or wrong
            InvalidAuthorizationCodeError: Code already consumed, expired or unknown
        """
        validated = request.validate()

        # Resolved before consumption: the response is built from it
        context = self.context_store.retrieve(validated)
        if context is None:
            raise ContextNotSetupError()

        client = self.client_registry.retrieve_client(validated.client_id)
        if client is None:
            raise ClientNotRegisteredError(validated.client_id)

        authenticated = self.client_authenticator.authenticate(
            client,
            client_secret=validated.client_secret,
            redirect_uri=validated.redirect_uri,
        )
        if not authenticated:
            logger.warning(
                f"Client authentication failed for {validated.client_id}",
                extra={"client_id": validated.client_id},
            )
            raise ClientAuthenticationFailedError(validated.client_id)

        if context.code_challenge is not None and not verify_code_verifier(
            validated.code_verifier,
            context.code_challenge,
            context.code_challenge_method,
        ):
            raise InvalidCodeVerifierError()

        if not self.code_store.consume(validated.code):
            logger.warning(
                f"Rejected authorization code for client {validated.client_id}",
                extra={"client_id": validated.client_id},
            )
            raise InvalidAuthorizationCodeError()

        access_token = self.token_issuer.generate_access_token()
        refresh_token = self.token_issuer.generate_refresh_token()

        logger.info(
            f"Issued tokens for client {validated.client_id}",
            extra={"client_id": validated.client_id, "scope": context.scope},
        )

        return TokenResponse(
            context=context,
            access_token=access_token.token,
            token_type=TokenType.BEARER,
            expires_in=access_token.expires_in,
            refresh_token=refresh_token.token,
            scope=context.scope,
        )
