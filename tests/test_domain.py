"""
Tests for domain models: request validation, client capabilities and
response rendering.
"""

from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs, urlparse

import pytest
from pydantic import TypeAdapter, ValidationError

from grantflow.core.domain import (
    AuthorizationRequest,
    AuthorizationResponse,
    Client,
    CodeChallengeMethod,
    Context,
    GrantRequest,
    TokenRequest,
    TokenResponse,
    ValidatedAuthorizationRequest,
    ValidatedTokenRequest,
)
from grantflow.core.exceptions import (
    InvalidRedirectUriError,
    InvalidRequestError,
    UnauthorizedResponseTypeError,
    UnsupportedGrantTypeError,
)

VERIFIER = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"


class TestAuthorizationRequestValidation:
    """Tests for AuthorizationRequest.validate()."""

    def test_valid_request(self):
        validated = AuthorizationRequest(
            client_id="c1", response_type="code", scope="read", state="s"
        ).validate()

        assert isinstance(validated, ValidatedAuthorizationRequest)
        assert validated.client_id == "c1"
        assert validated.redirect_uri is None
        assert validated.code_challenge_method is None

    @pytest.mark.parametrize("missing", ["client_id", "response_type"])
    def test_missing_required_field(self, missing):
        fields = {"client_id": "c1", "response_type": "code"}
        fields.pop(missing)

        with pytest.raises(InvalidRequestError, match=missing):
            AuthorizationRequest(**fields).validate()

    def test_blank_client_id_is_missing(self):
        with pytest.raises(InvalidRequestError, match="client_id"):
            AuthorizationRequest(client_id="  ", response_type="code").validate()

    @pytest.mark.parametrize("uri", ["/relative/cb", "https://app/cb#frag"])
    def test_malformed_redirect_uri(self, uri):
        with pytest.raises(InvalidRequestError):
            AuthorizationRequest(
                client_id="c1", response_type="code", redirect_uri=uri
            ).validate()

    def test_challenge_method_defaults_to_plain(self):
        validated = AuthorizationRequest(
            client_id="c1", response_type="code", code_challenge=VERIFIER
        ).validate()

        assert validated.code_challenge_method == CodeChallengeMethod.PLAIN

    def test_method_without_challenge(self):
        with pytest.raises(InvalidRequestError, match="code_challenge"):
            AuthorizationRequest(
                client_id="c1", response_type="code", code_challenge_method="S256"
            ).validate()

    def test_unsupported_challenge_method(self):
        with pytest.raises(InvalidRequestError, match="code_challenge_method"):
            AuthorizationRequest(
                client_id="c1",
                response_type="code",
                code_challenge=VERIFIER,
                code_challenge_method="S512",
            ).validate()

    def test_short_challenge_rejected(self):
        with pytest.raises(InvalidRequestError, match="malformed"):
            AuthorizationRequest(
                client_id="c1", response_type="code", code_challenge="short"
            ).validate()

    def test_challenge_with_trailing_newline(self):
        with pytest.raises(InvalidRequestError, match="malformed"):
            AuthorizationRequest(
                client_id="c1", response_type="code", code_challenge=VERIFIER + "\n"
            ).validate()


class TestTokenRequestValidation:
    """Tests for TokenRequest.validate()."""

    @pytest.fixture
    def fields(self):
        return {
            "client_id": "c1",
            "client_secret": "s1",
            "redirect_uri": "https://app/cb",
            "code": "abc",
        }

    def test_valid_request(self, fields):
        validated = TokenRequest(**fields).validate()

        assert isinstance(validated, ValidatedTokenRequest)
        assert validated.code == "abc"
        assert validated.code_verifier is None

    def test_grant_type_defaults_to_authorization_code(self, fields):
        assert TokenRequest(**fields).grant_type == "authorization_code"

    def test_missing_grant_type(self, fields):
        with pytest.raises(InvalidRequestError, match="grant_type") as exc_info:
            TokenRequest(grant_type=None, **fields).validate()

        assert not isinstance(exc_info.value, UnsupportedGrantTypeError)

    def test_unsupported_grant_type(self, fields):
        with pytest.raises(UnsupportedGrantTypeError):
            TokenRequest(grant_type="password", **fields).validate()

    @pytest.mark.parametrize("missing", ["client_id", "client_secret", "redirect_uri", "code"])
    def test_missing_required_field(self, fields, missing):
        fields.pop(missing)

        with pytest.raises(InvalidRequestError, match=missing):
            TokenRequest(**fields).validate()

    def test_malformed_code_verifier(self, fields):
        with pytest.raises(InvalidRequestError, match="code_verifier"):
            TokenRequest(code_verifier="has spaces", **fields).validate()

    def test_code_verifier_with_trailing_newline(self, fields):
        with pytest.raises(InvalidRequestError, match="code_verifier"):
            TokenRequest(code_verifier=VERIFIER + "\n", **fields).validate()


class TestGrantRequestUnion:
    """The request union is discriminated by kind."""

    def test_dispatch_by_kind(self):
        adapter = TypeAdapter(GrantRequest)

        auth = adapter.validate_python({"kind": "authorization", "client_id": "c1"})
        token = adapter.validate_python({"kind": "token", "code": "abc"})

        assert isinstance(auth, AuthorizationRequest)
        assert isinstance(token, TokenRequest)

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            TypeAdapter(GrantRequest).validate_python({"kind": "device"})


class TestClient:
    """Tests for client capability checks."""

    @pytest.fixture
    def client(self):
        return Client(
            client_id="c1",
            client_secret="s1",
            redirect_uris=["https://app/cb", "https://app/other"],
        )

    def test_requires_redirect_uri(self):
        with pytest.raises(ValidationError):
            Client(client_id="c1", client_secret="s1", redirect_uris=[])

    def test_code_response_type_allowed_by_default(self, client):
        client.validate_response_type("code")

    def test_unregistered_response_type(self, client):
        with pytest.raises(UnauthorizedResponseTypeError) as exc_info:
            client.validate_response_type("token")

        assert exc_info.value.client_id == "c1"

    def test_exact_redirect_uri_match(self, client):
        assert client.validate_and_resolve_redirect_uri("https://app/other") == "https://app/other"

    def test_redirect_uri_prefix_is_not_a_match(self, client):
        with pytest.raises(InvalidRedirectUriError):
            client.validate_and_resolve_redirect_uri("https://app/cb/extra")

    def test_missing_uri_with_several_registered(self, client):
        with pytest.raises(InvalidRedirectUriError):
            client.validate_and_resolve_redirect_uri(None)

    def test_missing_uri_with_one_registered(self):
        client = Client(client_id="c1", client_secret="s1", redirect_uris=["https://app/cb"])

        assert client.validate_and_resolve_redirect_uri(None) == "https://app/cb"


class TestContext:
    """Tests for Context construction and binding."""

    @pytest.fixture
    def validated(self):
        return ValidatedAuthorizationRequest(
            client_id="c1",
            response_type="code",
            redirect_uri="https://app/cb",
            scope="read",
            state="xyz",
        )

    def test_from_request(self, validated):
        context = Context.from_request(validated, ("code", "abc"), ttl_seconds=60)

        assert context.key == "abc"
        assert context.properties == {"code": "abc"}
        assert context.scope == "read"
        assert context.expires_at - context.created_at == timedelta(seconds=60)
        assert not context.is_expired()

    def test_no_ttl_never_expires(self, validated):
        context = Context.from_request(validated, ("code", "abc"), ttl_seconds=None)

        assert context.expires_at is None
        assert not context.is_expired(datetime.now(UTC) + timedelta(days=365))

    def test_zero_ttl_expires_immediately(self, validated):
        context = Context.from_request(validated, ("code", "abc"), ttl_seconds=0)

        assert context.is_expired()

    def _token_request(self, **overrides):
        fields = {
            "client_id": "c1",
            "client_secret": "s1",
            "redirect_uri": "https://app/cb",
            "code": "abc",
        }
        fields.update(overrides)
        return ValidatedTokenRequest(**fields)

    def test_matches_same_client_and_uri(self, validated):
        context = Context.from_request(validated, ("code", "abc"))

        assert context.matches(self._token_request())

    def test_other_client_does_not_match(self, validated):
        context = Context.from_request(validated, ("code", "abc"))

        assert not context.matches(self._token_request(client_id="c2"))

    def test_other_redirect_uri_does_not_match(self, validated):
        context = Context.from_request(validated, ("code", "abc"))

        assert not context.matches(self._token_request(redirect_uri="https://app/other"))

    def test_default_redirect_uri_accepts_any_registered(self, validated):
        context = Context.from_request(
            validated.model_copy(update={"redirect_uri": None}), ("code", "abc")
        )

        assert context.matches(self._token_request(redirect_uri="https://app/other"))


class TestResponses:
    """Tests for response rendering."""

    @pytest.fixture
    def context(self):
        return Context(key="abc", client_id="c1", scope="read")

    def test_redirect_url_carries_code_and_state(self, context):
        response = AuthorizationResponse(
            context=context, redirect_uri="https://app/cb", code="abc", state="a b&c"
        )

        query = parse_qs(urlparse(response.to_redirect_url()).query)

        assert query == {"code": ["abc"], "state": ["a b&c"]}

    def test_redirect_url_keeps_existing_query(self, context):
        response = AuthorizationResponse(
            context=context, redirect_uri="https://app/cb?tenant=t1", code="abc"
        )

        url = urlparse(response.to_redirect_url())
        query = parse_qs(url.query)

        assert url.path == "/cb"
        assert query == {"tenant": ["t1"], "code": ["abc"]}

    def test_token_wire_format(self, context):
        response = TokenResponse(
            context=context,
            access_token="at",
            expires_in=3600,
            refresh_token="rt",
            scope="read",
        )

        assert response.to_wire() == {
            "access_token": "at",
            "token_type": "Bearer",
            "expires_in": 3600,
            "refresh_token": "rt",
            "scope": "read",
        }
