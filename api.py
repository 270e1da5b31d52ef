"""FastAPI REST endpoints for authentication.

Routes
------
POST   /api/auth/register   Register a new user
POST   /api/auth/login      Log in; the session travels in a cookie
POST   /api/auth/logout     Revoke the session and clear the cookie
GET    /api/auth/me         Current user profile
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from config import Settings
from contract import (
    MSG_LOGGED_OUT,
    MSG_SESSION_EXPIRED,
    MSG_UNAUTHORIZED,
    MSG_USER_NOT_FOUND,
)
from middleware import (
    attach_session_cookie,
    clear_session_cookie,
    extract_token,
    get_auth_service,
)
from models import LoginRequest, RegisterRequest
from service import AuthService

auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


def get_settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    assert settings is not None, "Settings not initialized"
    return settings


@auth_router.post("/register", status_code=201)
async def register(
    payload: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> Response:
    """Register a new user account."""
    result = await service.register(payload.username, payload.email, payload.password)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.message)
    return JSONResponse(status_code=201, content=result.to_dict())


@auth_router.post("/login")
async def login(
    payload: LoginRequest,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Authenticate and receive a session cookie."""
    result = await service.authenticate(payload.email, payload.password)
    if not result.success or result.session_token is None:
        raise HTTPException(status_code=401, detail=result.message)

    user = await service.get_user_by_id(result.user_id)
    response = JSONResponse(
        content={
            "success": True,
            "message": result.message,
            "user": user.model_dump(mode="json") if user else None,
        }
    )
    return attach_session_cookie(
        response,
        result.session_token,
        service.session_ttl_days,
        secure=settings.cookie_secure,
    )


@auth_router.post("/logout")
async def logout(
    request: Request,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Revoke the current session.  Succeeds with or without one."""
    result = await service.logout(extract_token(request))
    response = JSONResponse(
        content={"success": result.success, "message": MSG_LOGGED_OUT}
    )
    return clear_session_cookie(response, secure=settings.cookie_secure)


@auth_router.get("/me")
async def me(
    request: Request,
    service: AuthService = Depends(get_auth_service),
) -> dict:
    """Get the current authenticated user's profile.

    401 without a cookie or with a dead session, 404 when the session
    outlived its user.
    """
    token = extract_token(request)
    if token is None:
        raise HTTPException(status_code=401, detail=MSG_UNAUTHORIZED)
    check = await service.verify_session(token)
    if not check.valid or check.user_id is None:
        raise HTTPException(status_code=401, detail=MSG_SESSION_EXPIRED)
    user = await service.get_user_by_id(check.user_id)
    if user is None:
        raise HTTPException(status_code=404, detail=MSG_USER_NOT_FOUND)
    return {"success": True, "user": user.model_dump(mode="json")}
