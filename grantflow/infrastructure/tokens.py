"""
Opaque token issuer.

Access and refresh tokens are random strings from authlib's generator.
Persistence of issued tokens, if needed, belongs to a resource server
integration and is not done here.
"""

from authlib.common.security import generate_token

from grantflow.core.domain import IssuedToken


class OpaqueTokenIssuer:
    """Mints random bearer tokens with a fixed access token lifetime."""

    def __init__(self, access_token_expires_in: int = 3600, token_length: int = 48):
        """
        Initialize the issuer.

        Args:
            access_token_expires_in: Access token lifetime in seconds
            token_length: Number of characters per generated token
        """
        self.access_token_expires_in = access_token_expires_in
        self.token_length = token_length

    def generate_access_token(self) -> IssuedToken:
        return IssuedToken(
            token=generate_token(self.token_length),
            expires_in=self.access_token_expires_in,
        )

    def generate_refresh_token(self) -> IssuedToken:
        return IssuedToken(token=generate_token(self.token_length))
