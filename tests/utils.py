import time
from typing import Any

from authlib.common.encoding import json_b64encode
from authlib.jose import JsonWebKey, jwt


def make_jwt(
    claims: dict[str, Any],
    header: dict[str, Any] | None = None,
    signature: str = "c2lnbmF0dXJl",
) -> str:
    """Compact JWT with arbitrary claims and a placeholder signature."""
    header = header or {"alg": "RS256", "typ": "JWT", "kid": "test-key"}
    return ".".join(
        [
            json_b64encode(header).decode("ascii"),
            json_b64encode(claims).decode("ascii"),
            signature,
        ]
    )


def make_signed_jwt(claims: dict[str, Any], key, kid: str = "test-key") -> str:
    """RS256 JWT signed with ``key``; ``exp`` defaults to five minutes out."""
    claims = {"iat": int(time.time()), "exp": int(time.time()) + 300, **claims}
    header = {"alg": "RS256", "typ": "JWT", "kid": kid}
    return jwt.encode(header, claims, key).decode("ascii")


def public_jwks(*keys_by_kid: tuple[str, Any]) -> dict[str, Any]:
    """JWKS document publishing the public half of each ``(kid, key)``."""
    return {
        "keys": [
            {**key.as_dict(is_private=False), "kid": kid, "use": "sig"}
            for kid, key in keys_by_kid
        ]
    }


def generate_rsa_key():
    return JsonWebKey.generate_key("RSA", 2048, is_private=True)
