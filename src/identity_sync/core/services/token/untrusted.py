"""Compact-JWT codec that performs no signature verification.

Everything here treats tokens as untrusted input. Decoding only checks that a
token is structurally a JWT and reads its JSON segments; it says nothing about
who issued it. Callers that accept these claims as identity are making a
deployment-level trust decision.
"""

import binascii
import json
import time
from dataclasses import dataclass
from typing import Any, Final

from authlib.common.encoding import json_b64encode, to_bytes, urlsafe_b64decode

MAX_TOKEN_CHARS: Final = 16 * 1024
_ALLOWED: Final = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
)

UNSIGNED_HEADER: Final = {"alg": "none", "typ": "JWT"}
SYNTHESIZED_LIFETIME_SECONDS: Final = 3600


class UntrustedTokenError(ValueError):
    """A bearer string that cannot be read as a compact JWT."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class InvalidTokenFormat(UntrustedTokenError):
    def __init__(self):
        super().__init__("invalid token format")


class InvalidTokenPayload(UntrustedTokenError):
    def __init__(self):
        super().__init__("invalid token payload")


@dataclass(frozen=True)
class UntrustedToken:
    header: dict[str, Any] | None
    claims: dict[str, Any]
    signature_present: bool

    @property
    def alg(self) -> str | None:
        return self.header.get("alg") if self.header else None


def token_shape(token: str | None) -> dict[str, int]:
    """Loggable description of a token. Never includes token content."""
    if not token:
        return {"segments": 0, "length": 0}
    return {"segments": token.count(".") + 1, "length": len(token)}


def split_segments(token: str) -> tuple[str, str, str]:
    """Split into exactly three dot-separated segments.

    The signature segment may be empty (unsigned tokens); header and payload
    may not.
    """
    if not token or len(token) > MAX_TOKEN_CHARS:
        raise InvalidTokenFormat()

    parts = token.split(".")
    if len(parts) != 3:
        raise InvalidTokenFormat()

    header, payload, signature = parts
    if not header or not payload:
        raise InvalidTokenFormat()
    return header, payload, signature


def _decode_json_segment(segment: str) -> dict[str, Any] | None:
    # Padding is optional on input
    segment = segment.rstrip("=")
    if not set(segment) <= _ALLOWED:
        return None
    try:
        obj = json.loads(urlsafe_b64decode(to_bytes(segment)).decode("utf-8"))
    except (binascii.Error, ValueError):
        # ValueError covers UnicodeDecodeError and JSONDecodeError
        return None
    return obj if isinstance(obj, dict) else None


def decode_claims(token: str) -> dict[str, Any]:
    """Return the payload claims of ``token`` without verifying it.

    Raises:
        InvalidTokenFormat: Not three segments
        InvalidTokenPayload: The payload is not a base64url JSON object
    """
    _, payload, _ = split_segments(token)
    claims = _decode_json_segment(payload)
    if claims is None:
        raise InvalidTokenPayload()
    return claims


def inspect_token(token: str) -> UntrustedToken:
    """Decode header and payload for display. The header is best effort."""
    header, payload, signature = split_segments(token)
    claims = _decode_json_segment(payload)
    if claims is None:
        raise InvalidTokenPayload()
    return UntrustedToken(
        header=_decode_json_segment(header),
        claims=claims,
        signature_present=bool(signature),
    )


def encode_unsigned(claims: dict[str, Any]) -> str:
    """Serialize ``claims`` as ``header.payload.`` with an empty signature."""
    header = json_b64encode(UNSIGNED_HEADER).decode("ascii")
    payload = json_b64encode(claims).decode("ascii")
    return f"{header}.{payload}."


def synthesize_credential(
    sub: str,
    email: str | None = None,
    name: str | None = None,
    picture: str | None = None,
    now: int | None = None,
) -> str:
    """Build an unsigned credential carrying a principal's claims.

    Used as the last-resort bearer when a session holds no issued credential.
    """
    issued_at = int(time.time()) if now is None else now
    return encode_unsigned(
        {
            "sub": sub,
            "email": email or "",
            "name": name,
            "picture": picture,
            "iat": issued_at,
            "exp": issued_at + SYNTHESIZED_LIFETIME_SECONDS,
        }
    )
