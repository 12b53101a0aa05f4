"""Session and synchronization models."""

from .session import AuthSession, IdentitySession
from .sync import (
    NO_CREDENTIAL,
    CredentialKind,
    Deferred,
    Failed,
    SelectedCredential,
    Synced,
    SyncAttemptResult,
)

__all__ = [
    "AuthSession",
    "IdentitySession",
    "CredentialKind",
    "SelectedCredential",
    "NO_CREDENTIAL",
    "Synced",
    "Deferred",
    "Failed",
    "SyncAttemptResult",
]
