"""
Core domain models for the authorization code grant.

These models represent the protocol messages and the records the stores
keep between the two grant phases. They are independent of any storage
backend or HTTP binding.

Requests arrive in a raw form where every field is optional. Calling
``validate()`` performs structural validation and returns a refined model
whose required fields are guaranteed to be present.
"""

import re
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Annotated, Literal
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from pydantic import BaseModel, ConfigDict, Field

from grantflow.core.exceptions import (
    InvalidRedirectUriError,
    InvalidRequestError,
    UnauthorizedResponseTypeError,
    UnsupportedGrantTypeError,
)

# Name of the context property that associates a context with its code
AUTHORIZATION_CODE_PROPERTY = "code"

AUTHORIZATION_CODE_GRANT_TYPE = "authorization_code"

# RFC 7636 section 4.1: 43-128 characters from the unreserved set
_PKCE_VALUE_PATTERN = re.compile(r"[A-Za-z0-9\-._~]{43,128}")


class TokenType(str, Enum):
    """Access token types issued by this server."""

    BEARER = "Bearer"


class CodeStatus(str, Enum):
    """Lifecycle of an authorization code."""

    ISSUED = "issued"
    CONSUMED = "consumed"
    EXPIRED = "expired"


class CodeChallengeMethod(str, Enum):
    """PKCE transformation applied to the code verifier."""

    PLAIN = "plain"
    S256 = "S256"


def _require(value: str | None, name: str) -> str:
    """Return the value or raise InvalidRequestError if it is missing or blank."""
    if value is None or not value.strip():
        raise InvalidRequestError(f"Missing required parameter: {name}")
    return value


def _check_redirect_uri(redirect_uri: str) -> None:
    """Reject redirect URIs that are relative or carry a fragment."""
    parsed = urlparse(redirect_uri)
    if not parsed.scheme or not (parsed.netloc or parsed.path):
        raise InvalidRequestError("redirect_uri must be an absolute URI")
    if "#" in redirect_uri:
        raise InvalidRequestError("redirect_uri must not include a fragment")


# =============================================================================
# Client
# =============================================================================


class Client(BaseModel):
    """
    Registered OAuth2 client.

    Owned by the client registry. Read-only from the grant engine's point
    of view.
    """

    client_id: str = Field(description="Client identifier")
    client_secret: str = Field(description="Shared secret used at the token endpoint")
    client_name: str | None = Field(default=None, description="Display name")
    redirect_uris: list[str] = Field(
        min_length=1, description="Registered redirect URIs (exact match)"
    )
    response_types: list[str] = Field(
        default_factory=lambda: ["code"],
        description="Response types the client may request",
    )

    model_config = ConfigDict(frozen=True)

    def validate_response_type(self, response_type: str) -> None:
        """
        Confirm the client may use the requested response type.

        Raises:
            UnauthorizedResponseTypeError: If the type is not registered
        """
        if response_type not in self.response_types:
            raise UnauthorizedResponseTypeError(self.client_id, response_type)

    def validate_and_resolve_redirect_uri(self, redirect_uri: str | None) -> str:
        """
        Resolve the redirect URI to use for the authorization response.

        A supplied URI must exactly match a registered one. When none is
        supplied, the single registered URI is used; clients with several
        registered URIs must always send one.

        Args:
            redirect_uri: URI from the authorization request, if any

        Returns:
            The redirect URI for the response

        Raises:
            InvalidRedirectUriError: If the URI cannot be validated or resolved
        """
        if redirect_uri is None:
            if len(self.redirect_uris) == 1:
                return self.redirect_uris[0]
            raise InvalidRedirectUriError(self.client_id, None)

        if redirect_uri not in self.redirect_uris:
            raise InvalidRedirectUriError(self.client_id, redirect_uri)
        return redirect_uri


# =============================================================================
# Requests
# =============================================================================


class ValidatedAuthorizationRequest(BaseModel):
    """Authorization request that passed structural validation."""

    client_id: str
    response_type: str
    redirect_uri: str | None = None
    scope: str | None = None
    state: str | None = None
    code_challenge: str | None = None
    code_challenge_method: CodeChallengeMethod | None = None

    model_config = ConfigDict(frozen=True)


class AuthorizationRequest(BaseModel):
    """First grant message: the client asks for an authorization code."""

    kind: Literal["authorization"] = "authorization"
    client_id: str | None = None
    response_type: str | None = None
    redirect_uri: str | None = None
    scope: str | None = None
    state: str | None = None
    code_challenge: str | None = None
    code_challenge_method: str | None = None

    model_config = ConfigDict(frozen=True)

    def validate(self) -> ValidatedAuthorizationRequest:
        """
        Check required fields and value formats.

        Returns:
            The refined request with client_id and response_type guaranteed

        Raises:
            InvalidRequestError: If a field is missing or malformed
        """
        client_id = _require(self.client_id, "client_id")
        response_type = _require(self.response_type, "response_type")

        if self.redirect_uri is not None:
            _check_redirect_uri(self.redirect_uri)

        method: CodeChallengeMethod | None = None
        if self.code_challenge is None:
            if self.code_challenge_method is not None:
                raise InvalidRequestError(
                    "code_challenge_method requires code_challenge"
                )
        else:
            if not _PKCE_VALUE_PATTERN.fullmatch(self.code_challenge):
                raise InvalidRequestError("code_challenge is malformed")
            try:
                method = CodeChallengeMethod(
                    self.code_challenge_method or CodeChallengeMethod.PLAIN.value
                )
            except ValueError:
                raise InvalidRequestError(
                    f"Unsupported code_challenge_method: {self.code_challenge_method}"
                )

        return ValidatedAuthorizationRequest(
            client_id=client_id,
            response_type=response_type,
            redirect_uri=self.redirect_uri,
            scope=self.scope,
            state=self.state,
            code_challenge=self.code_challenge,
            code_challenge_method=method,
        )


class ValidatedTokenRequest(BaseModel):
    """Token request that passed structural validation."""

    client_id: str
    client_secret: str
    redirect_uri: str
    code: str
    code_verifier: str | None = None

    model_config = ConfigDict(frozen=True)


class TokenRequest(BaseModel):
    """Second grant message: the client exchanges its code for tokens."""

    kind: Literal["token"] = "token"
    grant_type: str | None = AUTHORIZATION_CODE_GRANT_TYPE
    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str | None = None
    code: str | None = None
    code_verifier: str | None = None

    model_config = ConfigDict(frozen=True)

    def validate(self) -> ValidatedTokenRequest:
        """
        Check required fields and value formats.

        Returns:
            The refined request with credentials, redirect URI and code guaranteed

        Raises:
            UnsupportedGrantTypeError: If grant_type is not authorization_code
            InvalidRequestError: If a field is missing or malformed
        """
        grant_type = _require(self.grant_type, "grant_type")
        if grant_type != AUTHORIZATION_CODE_GRANT_TYPE:
            raise UnsupportedGrantTypeError(f"Unsupported grant_type: {grant_type}")

        client_id = _require(self.client_id, "client_id")
        client_secret = _require(self.client_secret, "client_secret")
        redirect_uri = _require(self.redirect_uri, "redirect_uri")
        code = _require(self.code, "code")

        if self.code_verifier is not None and not _PKCE_VALUE_PATTERN.fullmatch(
            self.code_verifier
        ):
            raise InvalidRequestError("code_verifier is malformed")

        return ValidatedTokenRequest(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            code=code,
            code_verifier=self.code_verifier,
        )


GrantRequest = Annotated[
    AuthorizationRequest | TokenRequest, Field(discriminator="kind")
]


# =============================================================================
# Stored records
# =============================================================================


class IssuedCode(BaseModel):
    """Authorization code record kept by a code store."""

    code: str
    client_id: str
    redirect_uri: str | None = None
    scope: str | None = None
    status: CodeStatus = CodeStatus.ISSUED
    issued_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the code lifetime has elapsed."""
        return (now or datetime.now(UTC)) >= self.expires_at


class Context(BaseModel):
    """
    Server-side record linking an authorization code to the request state.

    Created once per authorization request and read back during the token
    request. The scope recorded here is the one returned with the tokens.
    """

    key: str = Field(description="Lookup key, the authorization code")
    client_id: str
    redirect_uri: str | None = Field(
        default=None, description="Redirect URI as sent in the authorization request"
    )
    scope: str | None = None
    state: str | None = None
    code_challenge: str | None = None
    code_challenge_method: CodeChallengeMethod | None = None
    properties: dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    expires_at: datetime | None = None

    @classmethod
    def from_request(
        cls,
        request: ValidatedAuthorizationRequest,
        property: tuple[str, str],
        ttl_seconds: int | None = None,
    ) -> "Context":
        """
        Build a context for a validated authorization request.

        Args:
            request: The validated authorization request
            property: (name, value) association entry, e.g. ("code", <code>)
            ttl_seconds: Context lifetime; None keeps it until removed

        Returns:
            New Context keyed by the property value
        """
        name, value = property
        now = datetime.now(UTC)
        expires_at = (
            now + timedelta(seconds=ttl_seconds) if ttl_seconds is not None else None
        )
        return cls(
            key=value,
            client_id=request.client_id,
            redirect_uri=request.redirect_uri,
            scope=request.scope,
            state=request.state,
            code_challenge=request.code_challenge,
            code_challenge_method=request.code_challenge_method,
            properties={name: value},
            created_at=now,
            expires_at=expires_at,
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the context lifetime has elapsed."""
        if self.expires_at is None:
            return False
        return (now or datetime.now(UTC)) >= self.expires_at

    def matches(self, request: ValidatedTokenRequest) -> bool:
        """
        Check that a token request is bound to this context.

        The client must be the one the code was issued to. If the
        authorization request carried a redirect URI, the token request
        must repeat it exactly.
        """
        if request.client_id != self.client_id:
            return False
        if self.redirect_uri is not None and request.redirect_uri != self.redirect_uri:
            return False
        return True


class IssuedToken(BaseModel):
    """Token minted by a token issuer."""

    token: str
    expires_in: int | None = Field(
        default=None, description="Lifetime in seconds, None if it does not expire"
    )

    model_config = ConfigDict(frozen=True)


# =============================================================================
# Responses
# =============================================================================


class AuthorizationResponse(BaseModel):
    """Result of a successful authorization request."""

    kind: Literal["authorization"] = Field(default="authorization", exclude=True)
    context: Context = Field(exclude=True)
    redirect_uri: str
    code: str
    state: str | None = None

    def to_redirect_url(self) -> str:
        """
        Render the redirect URI with code and state in its query string.

        Existing query parameters of the registered URI are preserved.
        """
        parsed = urlparse(self.redirect_uri)
        query = parse_qsl(parsed.query, keep_blank_values=True)
        query.append(("code", self.code))
        if self.state is not None:
            query.append(("state", self.state))
        return urlunparse(parsed._replace(query=urlencode(query)))


class TokenResponse(BaseModel):
    """Result of a successful token request."""

    kind: Literal["token"] = Field(default="token", exclude=True)
    context: Context = Field(exclude=True)
    access_token: str
    token_type: TokenType = TokenType.BEARER
    expires_in: int | None = None
    refresh_token: str
    scope: str | None = None

    def to_wire(self) -> dict:
        """Serialize to the JSON body of a token endpoint response."""
        return self.model_dump(mode="json", exclude_none=True)


GrantResponse = Annotated[
    AuthorizationResponse | TokenResponse, Field(discriminator="kind")
]
