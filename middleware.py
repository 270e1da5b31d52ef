"""Cookie session transport and FastAPI auth dependencies.

Reads the session token from the ``sessionToken`` cookie, writes and
clears that cookie on responses, and resolves the caller behind a
request.

Branches: COOKIE-NO-HEADER, COOKIE-ABSENT, COOKIE-FOUND, CALLER-ANON,
CALLER-KNOWN
"""
from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from starlette.responses import Response

from contract import (
    DEFAULT_SESSION_TTL_DAYS,
    MSG_UNAUTHORIZED,
    SECONDS_PER_DAY,
    SESSION_COOKIE_NAME,
)
from models import Caller
from service import AuthService

_COOKIE_PREFIX = f"{SESSION_COOKIE_NAME}=".encode("latin-1")


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------

def extract_token(request: Request) -> str | None:
    """Return the session token carried by *request*, if any."""
    if request.headers.get("cookie") is None:
        return None                                               # COOKIE-NO-HEADER
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        return None                                               # COOKIE-ABSENT
    return token                                                  # COOKIE-FOUND


def _copy(response: Response) -> Response:
    body = getattr(response, "body", None)
    if body is None:
        raise TypeError(
            f"{type(response).__name__} has no buffered body to carry a session cookie"
        )
    copied = Response(
        content=body,
        status_code=response.status_code,
        background=response.background,
    )
    copied.raw_headers = [
        (name, value)
        for name, value in response.raw_headers
        if not (name == b"set-cookie" and value.startswith(_COOKIE_PREFIX))
    ]
    return copied


def _set_session_cookie(
    response: Response, value: str, max_age: int, secure: bool
) -> None:
    response.set_cookie(
        SESSION_COOKIE_NAME,
        value,
        max_age=max_age,
        path="/",
        secure=secure,
        httponly=True,
        samesite="Strict",
    )


def attach_session_cookie(
    response: Response,
    token: str,
    expiry_days: int = DEFAULT_SESSION_TTL_DAYS,
    *,
    secure: bool = True,
) -> Response:
    """Return a copy of *response* that sets the session cookie.

    Status, body and other headers are preserved; an earlier session
    cookie on the response is replaced.  *response* itself is untouched.
    """
    if expiry_days < 1:
        raise ValueError("expiry_days must be at least 1")
    copied = _copy(response)
    _set_session_cookie(copied, token, expiry_days * SECONDS_PER_DAY, secure)
    return copied


def clear_session_cookie(response: Response, *, secure: bool = True) -> Response:
    """Return a copy of *response* that expires the session cookie."""
    copied = _copy(response)
    _set_session_cookie(copied, "", 0, secure)
    return copied


async def resolve_caller(request: Request, service: AuthService) -> Caller:
    """Identify the user behind *request*, or an anonymous caller."""
    check = await service.verify_session(extract_token(request))
    if not check.valid or check.user_id is None:
        return Caller()                                           # CALLER-ANON
    user = await service.get_user_by_id(check.user_id)
    if user is None:
        return Caller()                                           # CALLER-ANON
    return Caller(user_id=user.id, user_info=user)                # CALLER-KNOWN


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------

def get_auth_service(request: Request) -> AuthService:
    service = getattr(request.app.state, "auth_service", None)
    assert service is not None, "Auth service not initialized"
    return service


async def current_caller(
    request: Request, service: AuthService = Depends(get_auth_service)
) -> Caller:
    """Dependency: the caller, possibly anonymous."""
    return await resolve_caller(request, service)


async def require_caller(caller: Caller = Depends(current_caller)) -> Caller:
    """Dependency: the caller, or 401 when anonymous."""
    if not caller.is_authenticated:
        raise HTTPException(status_code=401, detail=MSG_UNAUTHORIZED)
    return caller
