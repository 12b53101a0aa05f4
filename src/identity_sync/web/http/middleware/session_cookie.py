"""Loads the identity session named by the signed session cookie."""

from fastapi import Request
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from src.identity_sync.core.security import unsign_session_id
from src.identity_sync.core.storage.session_storage import SessionDecodeError
from src.identity_sync.runtime.context import get_config

CHUNK_SUFFIXES = ("", ".0", ".1")


def session_cookie_names(cookie_name: str) -> list[str]:
    """The cookie plus the chunked variants some clients split it into."""
    return [f"{cookie_name}{suffix}" for suffix in CHUNK_SUFFIXES]


def clear_session_cookies(response: Response, cookie_name: str) -> None:
    for name in session_cookie_names(cookie_name):
        response.delete_cookie(name, path="/")


class SessionCookieMiddleware(BaseHTTPMiddleware):
    """Attach ``request.state.identity_session``.

    A cookie with a bad signature, or one whose stored session cannot be
    decoded, is a session error: the request continues unauthenticated and
    the response clears the cookie.
    """

    async def dispatch(self, request: Request, call_next):
        cookie_name = get_config().session.cookie_name
        request.state.identity_session = None
        request.state.session_error = False

        raw_cookie = request.cookies.get(cookie_name)
        if raw_cookie is not None:
            session_id = unsign_session_id(raw_cookie)
            if session_id is None:
                logger.warning("Session cookie failed signature check; clearing it")
                request.state.session_error = True
            else:
                service = request.app.state.app_dependencies.identity_session_service
                try:
                    request.state.identity_session = (
                        await service.get_identity_session(session_id)
                    )
                except SessionDecodeError:
                    logger.warning("Stored session is corrupted; clearing cookie")
                    request.state.session_error = True
        elif any(name in request.cookies for name in session_cookie_names(cookie_name)):
            # Orphaned chunks without the main cookie
            request.state.session_error = True

        response = await call_next(request)
        if request.state.session_error:
            clear_session_cookies(response, cookie_name)
        return response
