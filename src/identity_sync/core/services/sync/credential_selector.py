"""Choose the bearer credential a session can present to the resource server.

Sessions come in different shapes depending on how login was configured and
which code produced them, so every field is probed explicitly under each of
its known names. Selection never touches the network.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from src.identity_sync.core.models.sync import (
    NO_CREDENTIAL,
    CredentialKind,
    SelectedCredential,
)
from src.identity_sync.core.services.token.untrusted import synthesize_credential

API_CREDENTIAL_PATHS = ("access_token", "accessToken", "token.access_token")
IDENTITY_CREDENTIAL_PATHS = ("id_token", "idToken")
PRINCIPAL_PATHS = ("principal_id", "sub", "user.sub", "raw_claims.sub")
EMAIL_PATHS = ("email", "user.email", "raw_claims.email")
DISPLAY_NAME_PATHS = ("display_name", "name", "user.name", "raw_claims.name")
NICKNAME_PATHS = ("nickname", "user.nickname", "raw_claims.nickname")
PICTURE_PATHS = ("picture_url", "picture", "user.picture", "raw_claims.picture")


def _as_mapping(session: Any) -> Mapping[str, Any]:
    if session is None:
        return {}
    if isinstance(session, BaseModel):
        return session.model_dump()
    if isinstance(session, Mapping):
        return session
    return {}


def _probe(data: Mapping[str, Any], paths: tuple[str, ...]) -> str | None:
    """First non-empty string found under any of the dotted ``paths``."""
    for path in paths:
        node: Any = data
        for part in path.split("."):
            if not isinstance(node, Mapping):
                node = None
                break
            node = node.get(part)
        if isinstance(node, str) and node:
            return node
    return None


class CredentialSelector:
    """Pure inspection of a session into a preference-ordered credential list.

    Order: API credential, identity credential, synthesized unsigned
    credential (only when a principal is known), then none.
    """

    def __init__(self, now=None):
        # Clock hook for deterministic synthesized tokens
        self._now = now

    def candidates(self, session: Any) -> list[SelectedCredential]:
        """Every credential the session can produce, best first."""
        data = _as_mapping(session)
        found: list[SelectedCredential] = []

        api_token = _probe(data, API_CREDENTIAL_PATHS)
        if api_token:
            found.append(SelectedCredential(CredentialKind.API, api_token))

        identity_token = _probe(data, IDENTITY_CREDENTIAL_PATHS)
        if identity_token:
            found.append(SelectedCredential(CredentialKind.IDENTITY, identity_token))

        principal_id = _probe(data, PRINCIPAL_PATHS)
        if principal_id:
            found.append(
                SelectedCredential(
                    CredentialKind.SYNTHESIZED,
                    synthesize_credential(
                        sub=principal_id,
                        email=_probe(data, EMAIL_PATHS),
                        name=_probe(data, DISPLAY_NAME_PATHS)
                        or _probe(data, NICKNAME_PATHS),
                        picture=_probe(data, PICTURE_PATHS),
                        now=self._now() if self._now else None,
                    ),
                )
            )

        return found

    def select(self, session: Any) -> SelectedCredential:
        found = self.candidates(session)
        return found[0] if found else NO_CREDENTIAL

    def api_credential(self, session: Any) -> str | None:
        return _probe(_as_mapping(session), API_CREDENTIAL_PATHS)

    def principal_id(self, session: Any) -> str | None:
        return _probe(_as_mapping(session), PRINCIPAL_PATHS)
