"""
Domain exceptions for the authorization code grant.

Each kind maps to exactly one protocol error code. Callers branch on the
exception class, so kinds are never wrapped or merged. The centralized
exception handler in grantflow/main.py renders them on the wire.
"""


class GrantFlowError(Exception):
    """Base exception for grant flow failures."""

    error_code = "invalid_request"
    status_code = 400


class InvalidRequestError(GrantFlowError):
    """
    Raised when a request is missing required fields or has malformed values.

    Detected before any collaborator is called.
    """

    error_code = "invalid_request"


class UnsupportedGrantTypeError(InvalidRequestError):
    """Raised when a token request names a grant type other than authorization_code."""

    error_code = "unsupported_grant_type"


class ClientNotRegisteredError(GrantFlowError):
    """Raised when the client id does not resolve to a registered client."""

    error_code = "unauthorized_client"

    def __init__(self, client_id: str):
        self.client_id = client_id
        super().__init__(f"Client '{client_id}' is not registered")


class UnauthorizedResponseTypeError(GrantFlowError):
    """Raised when the client may not use the requested response type."""

    error_code = "unsupported_response_type"

    def __init__(self, client_id: str, response_type: str):
        self.client_id = client_id
        self.response_type = response_type
        super().__init__(
            f"Client '{client_id}' is not authorized for response type '{response_type}'"
        )


class InvalidRedirectUriError(GrantFlowError):
    """Raised when the redirect URI is not registered or cannot be resolved."""

    error_code = "invalid_request"

    def __init__(self, client_id: str, redirect_uri: str | None):
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        if redirect_uri is None:
            message = f"Client '{client_id}' has no default redirect URI"
        else:
            message = f"Redirect URI is not registered for client '{client_id}'"
        super().__init__(message)


class ContextNotSetupError(GrantFlowError):
    """
    Raised when a token request does not resolve to a saved context.

    The code was never issued, the context expired, or the context belongs
    to a different client. Hard failure, never retried.
    """

    error_code = "invalid_grant"

    def __init__(self):
        super().__init__("No authorization context found for the supplied code")


class ClientAuthenticationFailedError(GrantFlowError):
    """Raised when the client secret or redirect URI does not match the client."""

    error_code = "invalid_client"
    status_code = 401

    def __init__(self, client_id: str):
        self.client_id = client_id
        super().__init__(f"Client authentication failed for '{client_id}'")


class InvalidCodeVerifierError(GrantFlowError):
    """Raised when the PKCE code verifier is missing or does not match."""

    error_code = "invalid_grant"

    def __init__(self):
        super().__init__("PKCE code verifier is missing or invalid")


class InvalidAuthorizationCodeError(GrantFlowError):
    """
    Raised when the code store refuses to consume the authorization code.

    The code is unknown, expired, or was already consumed.
    """

    error_code = "invalid_grant"

    def __init__(self):
        super().__init__("Authorization code is invalid, expired, or already used")
