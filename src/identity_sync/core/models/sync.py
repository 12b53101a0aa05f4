"""Value types exchanged by the identity synchronization subsystem."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class CredentialKind(str, Enum):
    """Tiers of bearer credential, in preference order."""

    API = "api_credential"
    IDENTITY = "identity_credential"
    SYNTHESIZED = "session_data"
    NONE = "none"


@dataclass(frozen=True)
class SelectedCredential:
    """A bearer credential picked from a session. Never persisted."""

    kind: CredentialKind
    token: str | None = None

    @property
    def method(self) -> str:
        return self.kind.value

    @property
    def is_none(self) -> bool:
        return self.kind is CredentialKind.NONE

    def __repr__(self) -> str:
        # Tokens never end up in reprs or logs
        length = len(self.token) if self.token else 0
        return f"SelectedCredential(kind={self.kind.value}, token_len={length})"


NO_CREDENTIAL = SelectedCredential(kind=CredentialKind.NONE)


@dataclass(frozen=True)
class Synced:
    user: dict[str, Any]
    method: str

    def to_response(self) -> dict[str, Any]:
        return {"synced": True, "user": self.user, "method": self.method}


@dataclass(frozen=True)
class Deferred:
    reason: str
    hint: str | None = None

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"synced": False, "error": self.reason}
        if self.hint:
            body["hint"] = self.hint
        return body


@dataclass(frozen=True)
class Failed:
    error: str
    status_code: int | None = None
    hint: str | None = None
    method: str | None = None
    detail: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code == 401

    @property
    def is_transport_failure(self) -> bool:
        return self.status_code is None

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"synced": False, "error": self.error}
        if self.detail:
            body["detail"] = self.detail
        if self.hint:
            body["hint"] = self.hint
        if self.method:
            body["method"] = self.method
        body.update(self.extra)
        return body


SyncAttemptResult = Synced | Deferred | Failed
