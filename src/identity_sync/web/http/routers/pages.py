"""Landing page and dashboard."""

import html
import json

from fastapi import APIRouter, Depends, status
from fastapi.responses import HTMLResponse, RedirectResponse

from src.identity_sync.core.models.session import IdentitySession
from src.identity_sync.core.services.sync.orchestrator import (
    SyncLifecycle,
    SyncOrchestrator,
)
from src.identity_sync.runtime.context import get_config
from src.identity_sync.web.http.deps import get_optional_session, get_sync_orchestrator

router = APIRouter(tags=["pages"])

# One-shot retry after mount. The two flags mirror SyncLifecycle: once an
# attempt starts, nothing in this page lifecycle starts another.
CLIENT_SYNC_SCRIPT = """
<script>
(function () {
  var state = { hasAttempted: false, hasSynced: false };
  var principal = %(principal)s;
  function syncUser() {
    if (!principal || state.hasSynced || state.hasAttempted) { return; }
    state.hasAttempted = true;
    fetch("/api/sync-user", { cache: "no-store", credentials: "same-origin" })
      .then(function (response) { return response.json(); })
      .then(function (data) {
        if (data.synced) {
          state.hasSynced = true;
          console.log("User synced with backend", data.method);
        } else {
          console.warn(data.error || "User sync will happen on first backend API call.");
        }
      })
      .catch(function (err) { console.error("Failed to sync user with backend", err); });
  }
  window.identitySync = { syncUser: syncUser, state: state };
  if (document.readyState === "loading") {
    document.addEventListener("DOMContentLoaded", syncUser);
  } else {
    syncUser();
  }
})();
</script>
"""


def _page(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html>\n<html lang=\"en\">\n<head>\n"
        "<meta charset=\"utf-8\">\n"
        f"<title>{html.escape(title)}</title>\n"
        "</head>\n<body>\n"
        f"{body}\n"
        "</body>\n</html>\n"
    )


@router.get("/", response_class=HTMLResponse, response_model=None)
async def landing(
    session: IdentitySession | None = Depends(get_optional_session),
) -> HTMLResponse | RedirectResponse:
    if session is not None and session.is_authenticated:
        return RedirectResponse(url="/dashboard", status_code=status.HTTP_302_FOUND)

    name = html.escape(get_config().app.name)
    body = (
        f"<main><h1>{name}</h1>"
        "<p>Sign in to upload and process your resumes.</p>"
        "<a href=\"/auth/login?returnTo=/dashboard\">Log in</a></main>"
    )
    return HTMLResponse(_page(get_config().app.name, body))


@router.get("/dashboard", response_class=HTMLResponse, response_model=None)
async def dashboard(
    session: IdentitySession | None = Depends(get_optional_session),
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
) -> HTMLResponse | RedirectResponse:
    """Render the dashboard after one best-effort render-time sync."""
    if session is None or not session.is_authenticated:
        return RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)

    # Never raises; the page renders whatever the outcome
    lifecycle = SyncLifecycle()
    await orchestrator.render_time_sync(session, lifecycle)

    display = session.display_name or session.nickname or session.email or "there"
    principal = json.dumps(session.principal_id).replace("</", "<\\/")
    body = (
        "<main>"
        f"<h1>Dashboard</h1><p>Welcome, {html.escape(display)}.</p>"
        "<p>Upload and process multiple PDF resumes.</p>"
        "<a href=\"/auth/logout\">Log out</a>"
        "</main>"
        + CLIENT_SYNC_SCRIPT % {"principal": principal}
    )
    return HTMLResponse(
        _page(f"Dashboard | {get_config().app.name}", body),
        headers={"X-Sync-State": lifecycle.state.value},
    )
