"""Security utilities for the OIDC login flow and the session cookie."""

import base64
import hashlib
import hmac
import secrets
from urllib.parse import urlparse

from authlib.oauth2.rfc7636 import create_s256_code_challenge

from src.identity_sync.runtime.context import get_config

_DEV_SECRET = "dev-session-secret"


def generate_secure_token(length: int = 32) -> str:
    """URL-safe random token carrying ``length`` bytes of entropy, unpadded."""
    return secrets.token_urlsafe(length)


def generate_nonce() -> str:
    return generate_secure_token()


def generate_state() -> str:
    return generate_secure_token()


def generate_pkce_pair() -> tuple[str, str]:
    """A fresh PKCE ``(code_verifier, S256 code_challenge)`` pair."""
    verifier = generate_secure_token()
    return verifier, create_s256_code_challenge(verifier)


def _session_secret() -> bytes:
    secret = get_config().session.secret
    return (secret or _DEV_SECRET).encode("utf-8")


def sign_session_id(session_id: str) -> str:
    """Return ``<session_id>.<hmac>`` for use as the session cookie value."""
    digest = hmac.new(_session_secret(), session_id.encode(), hashlib.sha256).digest()
    signature = base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
    return f"{session_id}.{signature}"


def unsign_session_id(cookie_value: str | None) -> str | None:
    """Verify a signed session cookie value.

    Returns:
        The session id, or None when the value is missing or the signature
        does not match.
    """
    if not cookie_value or "." not in cookie_value:
        return None

    session_id, _, signature = cookie_value.rpartition(".")
    if not session_id:
        return None

    expected = sign_session_id(session_id).rpartition(".")[2]
    if not hmac.compare_digest(expected, signature):
        return None
    return session_id


def _is_local_path(target: str) -> bool:
    # "//host" and "/\host" are scheme-relative in browsers
    return (
        target.startswith("/")
        and not target.startswith("//")
        and "\\" not in target
        and all(ord(char) >= 32 for char in target)
    )


def sanitize_return_url(
    return_to: str | None, allowed_hosts: list[str] | None = None
) -> str:
    """Where to send the browser after login; ``/`` unless ``return_to`` is safe.

    Safe means a local path, or an absolute http(s) URL on one of
    ``allowed_hosts``.
    """
    target = (return_to or "").strip()
    if _is_local_path(target):
        return target

    if allowed_hosts and target.startswith(("http://", "https://")):
        if urlparse(target).hostname in allowed_hosts:
            return target
    return "/"
