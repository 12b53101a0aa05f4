"""When identity synchronization runs, and how often.

Two best-effort triggers exist for one dashboard page load: a render-time
attempt on the server, bounded by a :class:`SyncLifecycle`, and a retry the
dashboard script makes after the page mounts, bounded by the same two flags
in the browser. Each produces at most one network attempt. Both may land for
the same page load; the resource server's upsert makes that harmless.
"""

from enum import Enum
from typing import Any

from loguru import logger

from src.identity_sync.core.models.sync import (
    Deferred,
    Failed,
    Synced,
    SyncAttemptResult,
)
from src.identity_sync.core.services.sync.credential_selector import CredentialSelector
from src.identity_sync.core.services.sync.sync_client import NO_SESSION, SyncClient


class SyncState(str, Enum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    SYNCED = "synced"
    DEFERRED = "deferred"
    FAILED = "failed"


class SyncLifecycle:
    """``Idle -> Attempting -> {Synced, Deferred, Failed}``; terminals are final."""

    def __init__(self):
        self.state = SyncState.IDLE
        self.result: SyncAttemptResult | None = None

    @property
    def attempted(self) -> bool:
        return self.state is not SyncState.IDLE

    @property
    def synced(self) -> bool:
        return self.state is SyncState.SYNCED

    def begin(self) -> bool:
        """Claim the lifecycle's single attempt. False if already claimed."""
        if self.state is not SyncState.IDLE:
            return False
        self.state = SyncState.ATTEMPTING
        return True

    def finish(self, result: SyncAttemptResult) -> None:
        if self.state is not SyncState.ATTEMPTING:
            raise RuntimeError(f"Cannot finish a sync from state {self.state.value}")
        self.result = result
        if isinstance(result, Synced):
            self.state = SyncState.SYNCED
        elif isinstance(result, Deferred):
            self.state = SyncState.DEFERRED
        else:
            self.state = SyncState.FAILED


def log_sync_result(result: SyncAttemptResult, trigger: str) -> None:
    log = logger.bind(trigger=trigger)
    if isinstance(result, Synced):
        log.bind(method=result.method, user_id=result.user.get("id")).info(
            "User synced with resource server"
        )
    elif isinstance(result, Deferred):
        log.info("Sync deferred: {}", result.reason)
    else:
        log.bind(status_code=result.status_code, method=result.method).warning(
            "Sync failed: {} ({})", result.error, result.hint or "no hint"
        )


class SyncOrchestrator:
    """Runs the credential cascade for a session."""

    def __init__(self, selector: CredentialSelector, client: SyncClient):
        self._selector = selector
        self._client = client

    async def sync_session(self, session: Any) -> SyncAttemptResult:
        """One sync for ``session``: every available tier, best first."""
        if session is None:
            return Deferred(NO_SESSION)
        return await self._client.sync_first_accepted(
            self._selector.candidates(session)
        )

    async def render_time_sync(
        self, session: Any, lifecycle: SyncLifecycle | None = None
    ) -> SyncAttemptResult | None:
        """Sync while a page renders. Never raises.

        Returns None when the lifecycle already had its attempt.
        """
        lifecycle = lifecycle or SyncLifecycle()
        if not lifecycle.begin():
            return None

        try:
            result = await self.sync_session(session)
        except Exception as e:
            logger.exception("Render-time sync crashed")
            result = Failed(error="Failed to sync user", detail=str(e))

        lifecycle.finish(result)
        log_sync_result(result, trigger="render")
        return result
