"""
Client authentication for the token endpoint.
"""

import hmac

from grantflow.core.domain import Client


class SecretClientAuthenticator:
    """
    Authenticates clients by shared secret and registered redirect URI.

    Stateless. The secret comparison runs in constant time.
    """

    def authenticate(self, client: Client, client_secret: str, redirect_uri: str) -> bool:
        secret_ok = hmac.compare_digest(
            client.client_secret.encode(), client_secret.encode()
        )
        return secret_ok and redirect_uri in client.redirect_uris
