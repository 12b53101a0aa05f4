from dataclasses import dataclass

from src.identity_sync.core.services.oidc_client_service import OidcClientService
from src.identity_sync.core.services.session.auth_session import AuthSessionService
from src.identity_sync.core.services.session.identity_session import (
    IdentitySessionService,
)
from src.identity_sync.core.services.sync.credential_selector import CredentialSelector
from src.identity_sync.core.services.sync.orchestrator import SyncOrchestrator
from src.identity_sync.core.services.sync.sync_client import SyncClient
from src.identity_sync.core.storage.session_storage import SessionStorage


@dataclass
class WebAppDependencies:
    session_storage: SessionStorage
    auth_session_service: AuthSessionService
    identity_session_service: IdentitySessionService
    oidc_client_service: OidcClientService
    credential_selector: CredentialSelector
    sync_client: SyncClient
    sync_orchestrator: SyncOrchestrator
