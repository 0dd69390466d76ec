"""
PKCE (RFC 7636) helpers and the Google authorization URL for login initiation.
S256 only.
"""
import hashlib
import secrets
from base64 import urlsafe_b64encode
from urllib.parse import quote, urlencode


def generate_verifier() -> str:
    """Fresh code_verifier: 32 random bytes -> 43 base64url chars (256 bits entropy)."""
    return secrets.token_urlsafe(32)


def derive_challenge(verifier: str) -> str:
    """S256 code_challenge: base64url(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce() -> tuple[str, str]:
    """Returns (code_verifier, code_challenge)."""
    code_verifier = generate_verifier()
    return code_verifier, derive_challenge(code_verifier)


def build_authorize_url(
    *,
    authorize_endpoint: str,
    client_id: str,
    redirect_uri: str,
    scopes: list[str] | tuple[str, ...],
    state: str,
    code_challenge: str,
    include_granted_scopes: bool = True,
) -> str:
    """
    Build the provider authorization URL. Requests offline access and forces consent
    so a refresh token is issued on repeat logins too.
    """
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": " ".join(scopes),
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    if include_granted_scopes:
        params["include_granted_scopes"] = "true"
    params["access_type"] = "offline"
    params["prompt"] = "consent"
    params["state"] = state
    # quote (not quote_plus): spaces in scope must be %20
    return f"{authorize_endpoint}?{urlencode(params, quote_via=quote, safe='')}"
