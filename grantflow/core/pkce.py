"""
PKCE (RFC 7636) verification for the token phase.
"""

import hmac

from authlib.oauth2.rfc7636 import create_s256_code_challenge

from grantflow.core.domain import CodeChallengeMethod


def verify_code_verifier(
    code_verifier: str | None,
    code_challenge: str,
    method: CodeChallengeMethod | None,
) -> bool:
    """
    Check a code verifier against the challenge stored at authorization time.

    Args:
        code_verifier: Verifier sent with the token request
        code_challenge: Challenge sent with the authorization request
        method: Transformation recorded with the challenge (plain if None)

    Returns:
        True if the verifier transforms to the challenge
    """
    if not code_verifier:
        return False

    if method == CodeChallengeMethod.S256:
        computed = create_s256_code_challenge(code_verifier)
    else:
        computed = code_verifier

    return hmac.compare_digest(computed, code_challenge)
