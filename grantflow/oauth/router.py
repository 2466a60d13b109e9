"""
OAuth2 authorization code endpoints.

Thin HTTP binding over the grant engine:
- GET /oauth/authorize - Authorization request, redirects with a code
- POST /oauth/token - Token request, exchanges the code for tokens

Grant errors are raised as-is and rendered by the exception handler in
grantflow/main.py.
"""

import logging
from typing import Annotated
from urllib.parse import unquote_plus

from fastapi import APIRouter, Depends, Form, status
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from grantflow.core.domain import AuthorizationRequest, TokenRequest
from grantflow.core.exceptions import InvalidRequestError
from grantflow.oauth.dependencies import Grant


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/oauth", tags=["oauth"])

basic_auth = HTTPBasic(auto_error=False)

# RFC 6749 section 5.1
NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}


@router.get("/authorize")
def authorize(
    grant: Grant,
    response_type: str | None = None,
    client_id: str | None = None,
    redirect_uri: str | None = None,
    scope: str | None = None,
    state: str | None = None,
    code_challenge: str | None = None,
    code_challenge_method: str | None = None,
):
    """
    Authorization endpoint.

    The resource owner is assumed to be authenticated and to have approved
    the request before reaching this endpoint.

    Returns:
        Redirect to the client's redirect URI with code and state
    """
    request = AuthorizationRequest(
        client_id=client_id,
        response_type=response_type,
        redirect_uri=redirect_uri,
        scope=scope,
        state=state,
        code_challenge=code_challenge,
        code_challenge_method=code_challenge_method,
    )

    response = grant.flow(request)

    return RedirectResponse(
        url=response.to_redirect_url(),
        status_code=status.HTTP_302_FOUND,
    )


def _resolve_client_credentials(
    credentials: HTTPBasicCredentials | None,
    client_id: str | None,
    client_secret: str | None,
) -> tuple[str | None, str | None]:
    """
    Pick client credentials from HTTP Basic or the request body.

    Basic credentials are form-urlencoded (RFC 6749 section 2.3.1). A body
    client_id that disagrees with the Basic username is rejected.
    """
    if credentials is None:
        return client_id, client_secret

    basic_id = unquote_plus(credentials.username)
    basic_secret = unquote_plus(credentials.password)
    if client_id is not None and client_id != basic_id:
        raise InvalidRequestError("client_id does not match the Authorization header")
    if client_secret is not None:
        raise InvalidRequestError("Client credentials sent in more than one way")
    return basic_id, basic_secret


@router.post("/token")
def token(
    grant: Grant,
    credentials: Annotated[HTTPBasicCredentials | None, Depends(basic_auth)],
    grant_type: Annotated[str | None, Form()] = None,
    code: Annotated[str | None, Form()] = None,
    redirect_uri: Annotated[str | None, Form()] = None,
    client_id: Annotated[str | None, Form()] = None,
    client_secret: Annotated[str | None, Form()] = None,
    code_verifier: Annotated[str | None, Form()] = None,
):
    """
    Token endpoint.

    Accepts client credentials in the form body (client_secret_post) or via
    HTTP Basic (client_secret_basic).

    Returns:
        JSON token response, never cached
    """
    client_id, client_secret = _resolve_client_credentials(
        credentials, client_id, client_secret
    )

    request = TokenRequest(
        grant_type=grant_type,
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=redirect_uri,
        code=code,
        code_verifier=code_verifier,
    )

    response = grant.flow(request)

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=response.to_wire(),
        headers=NO_STORE_HEADERS,
    )
