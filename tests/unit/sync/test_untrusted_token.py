"""Tests for the unverified compact-JWT codec."""

import base64
import json

import pytest

from src.identity_sync.core.services.token.untrusted import (
    InvalidTokenFormat,
    InvalidTokenPayload,
    decode_claims,
    encode_unsigned,
    inspect_token,
    synthesize_credential,
    token_shape,
)
from tests.utils import make_jwt


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


class TestDecodeClaims:
    def test_reads_payload_without_verification(self):
        token = make_jwt({"sub": "idp|42", "email": "a@x.io"}, signature="garbage")

        assert decode_claims(token) == {"sub": "idp|42", "email": "a@x.io"}

    def test_accepts_empty_signature_segment(self):
        token = encode_unsigned({"sub": "idp|7"})

        assert token.endswith(".")
        assert decode_claims(token)["sub"] == "idp|7"

    @pytest.mark.parametrize(
        "token",
        ["", "only-one-segment", "two.segments", "a.b.c.d", ".payload.", "header..sig"],
    )
    def test_wrong_segment_count_is_invalid_format(self, token):
        with pytest.raises(InvalidTokenFormat) as exc:
            decode_claims(token)
        assert exc.value.reason == "invalid token format"

    def test_non_json_payload_is_invalid_payload(self):
        token = f"{_b64(b'{}')}.{_b64(b'not json')}.sig"

        with pytest.raises(InvalidTokenPayload) as exc:
            decode_claims(token)
        assert exc.value.reason == "invalid token payload"

    def test_json_array_payload_is_invalid_payload(self):
        token = f"{_b64(b'{}')}.{_b64(b'[1, 2]')}.sig"

        with pytest.raises(InvalidTokenPayload):
            decode_claims(token)

    def test_accepts_padded_payload(self):
        payload = base64.urlsafe_b64encode(b'{"sub": "ab"}').decode("ascii")
        assert payload.endswith("=")

        assert decode_claims(f"eyJhbGciOiJub25lIn0.{payload}.") == {"sub": "ab"}

    def test_padding_inside_payload_is_invalid_payload(self):
        with pytest.raises(InvalidTokenPayload):
            decode_claims("eyJhbGciOiJub25lIn0.eyJz=dWIiOiJhYiJ9.")

    def test_non_base64_payload_is_invalid_payload(self):
        with pytest.raises(InvalidTokenPayload):
            decode_claims("aGVhZGVy.!!!not-base64!!!.sig")


class TestSynthesizedCredential:
    def test_structure(self):
        token = synthesize_credential(
            sub="idp|42", email="a@x.io", name="Ada", picture=None, now=1_700_000_000
        )
        header_seg, payload_seg, signature = token.split(".")

        assert signature == ""
        assert "=" not in token
        header = json.loads(base64.urlsafe_b64decode(header_seg + "=" * (-len(header_seg) % 4)))
        assert header == {"alg": "none", "typ": "JWT"}
        assert decode_claims(token) == {
            "sub": "idp|42",
            "email": "a@x.io",
            "name": "Ada",
            "picture": None,
            "iat": 1_700_000_000,
            "exp": 1_700_003_600,
        }

    def test_missing_email_becomes_empty_string(self):
        claims = decode_claims(synthesize_credential(sub="idp|1", now=10))

        assert claims["email"] == ""
        assert claims["name"] is None
        assert claims["exp"] - claims["iat"] == 3600


def test_inspect_reports_header_and_signature():
    decoded = inspect_token(synthesize_credential(sub="idp|1"))

    assert decoded.alg == "none"
    assert decoded.signature_present is False
    assert decoded.claims["sub"] == "idp|1"


def test_token_shape_never_contains_content():
    token = make_jwt({"sub": "secret-subject"})

    shape = token_shape(token)

    assert shape == {"segments": 3, "length": len(token)}
    assert token_shape(None) == {"segments": 0, "length": 0}
