"""Authentication endpoints: register, login, guest, X login, PIN reset, session check."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel

from rangegame.accounts import AccountService
from rangegame.api.auth import create_token
from rangegame.api.deps import app_state, get_accounts, get_config
from rangegame.api.routes.shared import user_out
from rangegame.config import AppConfig
from rangegame.errors import AuthError, UserExistsError
from rangegame.models.user import User

logger = logging.getLogger(__name__)

router = APIRouter()

COOKIE_NAME = "session"


class RegisterRequest(BaseModel):
    username: str
    email: str
    password: str


class LoginRequest(BaseModel):
    username: str
    password: str


class GuestRequest(BaseModel):
    username: str


class XLoginRequest(BaseModel):
    twitterId: str
    username: str
    name: str | None = None
    image: str | None = None


class ResetPinRequest(BaseModel):
    username: str
    email: str
    newPassword: str


def _start_session(user: User, request: Request, response: Response, config: AppConfig) -> dict:
    token = create_token(user.subject, config.auth_secret_key, config.auth_token_expiry_hours)
    # Secure cookie only over HTTPS (proxies set X-Forwarded-Proto)
    is_https = (
        request.url.scheme == "https"
        or request.headers.get("x-forwarded-proto") == "https"
    )
    response.set_cookie(
        key=COOKIE_NAME,
        value=token,
        httponly=True,
        secure=is_https,
        samesite="lax",
        max_age=config.auth_token_expiry_hours * 3600,
        path="/",
    )
    return {"ok": True, "user": user_out(user)}


def _clean_username(username: str) -> str:
    name = username.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Nickname is required")
    return name


@router.post("/auth/register", status_code=201)
def register(
    body: RegisterRequest,
    request: Request,
    response: Response,
    accounts: AccountService = Depends(get_accounts),
    config: AppConfig = Depends(get_config),
) -> dict:
    """Create a nickname + 4-digit PIN account and start a session."""
    username = _clean_username(body.username)
    try:
        user = accounts.register(username, body.email.strip(), body.password)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UserExistsError:
        raise HTTPException(status_code=409, detail="Username or email already exists")
    return _start_session(user, request, response, config)


@router.post("/auth/login")
def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    accounts: AccountService = Depends(get_accounts),
    config: AppConfig = Depends(get_config),
) -> dict:
    try:
        user = accounts.login(_clean_username(body.username), body.password)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))
    return _start_session(user, request, response, config)


@router.post("/auth/guest")
def guest(
    body: GuestRequest,
    request: Request,
    response: Response,
    accounts: AccountService = Depends(get_accounts),
    config: AppConfig = Depends(get_config),
) -> dict:
    try:
        user = accounts.guest_login(_clean_username(body.username))
    except UserExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _start_session(user, request, response, config)


@router.post("/auth/x-login")
def x_login(
    body: XLoginRequest,
    request: Request,
    response: Response,
    accounts: AccountService = Depends(get_accounts),
    config: AppConfig = Depends(get_config),
) -> dict:
    if not body.twitterId:
        raise HTTPException(status_code=400, detail="Missing required fields")
    try:
        user = accounts.x_login(
            body.twitterId, _clean_username(body.username), body.name, body.image,
        )
    except UserExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _start_session(user, request, response, config)


@router.post("/auth/reset-pin")
def reset_pin(body: ResetPinRequest, accounts: AccountService = Depends(get_accounts)) -> dict:
    try:
        accounts.reset_pin(_clean_username(body.username), body.email.strip(), body.newPassword)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "message": "Password updated successfully"}


@router.post("/auth/logout")
def logout(response: Response) -> dict:
    """Clear the session cookie."""
    response.delete_cookie(key=COOKIE_NAME, path="/")
    return {"ok": True}


@router.get("/auth/check")
def check_auth(request: Request) -> dict:
    """Report whether the caller has a valid session and who they are."""
    subject = getattr(request.state, "subject", None)
    if not subject or app_state.registry is None:
        return {"authenticated": False}
    user = app_state.registry.get_user_by_subject(subject)
    if user is None:
        return {"authenticated": False}
    return {"authenticated": True, "user": user_out(user)}
