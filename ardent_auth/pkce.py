"""
PKCE (RFC 7636) helpers for sign-in against the Frontier auth server.
S256 only; state generation.
"""
import hashlib
import secrets
from base64 import urlsafe_b64encode
from urllib.parse import urlencode

CHALLENGE_METHOD = "S256"


def generate_state() -> str:
    """Opaque value identifying one sign-in attempt; returned in callback."""
    return secrets.token_urlsafe(32)


def generate_code_verifier() -> str:
    # 32 bytes -> 43 chars base64url without padding (RFC 7636 recommendation)
    return secrets.token_urlsafe(32)


def code_challenge(code_verifier: str) -> str:
    """base64url(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce() -> tuple[str, str]:
    """Returns (code_verifier, code_challenge)."""
    code_verifier = generate_code_verifier()
    return code_verifier, code_challenge(code_verifier)


def build_authorize_url(
    *,
    auth_url: str,
    client_id: str,
    redirect_uri: str,
    scope: str,
    audience: str,
    state: str,
    code_challenge: str,
) -> str:
    params = {
        "audience": audience,
        "scope": scope,
        "response_type": "code",
        "client_id": client_id,
        "code_challenge": code_challenge,
        "code_challenge_method": CHALLENGE_METHOD,
        "state": state,
        "redirect_uri": redirect_uri,
    }
    return f"{auth_url}/auth?{urlencode(params)}"
