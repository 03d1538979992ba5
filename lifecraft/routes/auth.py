from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from lifecraft.auth import AccountService
from lifecraft.db import ProfileRow
from lifecraft.dependencies import get_account_service, get_current_user
from lifecraft.gamification import get_rank_info
from lifecraft.schemas import (
    LoginRequest,
    PasswordResetConfirm,
    PasswordResetRequest,
    ProfileResponse,
    RegisterRequest,
    StatusResponse,
    TokenResponse,
)

router = APIRouter()


def _profile_response(profile: ProfileRow) -> ProfileResponse:
    return ProfileResponse(
        id=profile.id,
        email=profile.email,
        full_name=profile.full_name,
        role=profile.role,
        points=profile.points,
        rank=profile.rank,
        rank_info=get_rank_info(profile.points),
    )


@router.post("/register", response_model=ProfileResponse, status_code=201)
def register(
    payload: RegisterRequest,
    accounts: AccountService = Depends(get_account_service),
):
    profile = accounts.register(payload.email, payload.password, payload.full_name)
    return _profile_response(profile)


@router.post("/login", response_model=TokenResponse)
async def login(
    request: Request,
    accounts: AccountService = Depends(get_account_service),
):
    """Accepts an OAuth2 password form (username=email) or a JSON body."""
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            body = LoginRequest.model_validate(await request.json())
        except ValidationError as exc:
            raise RequestValidationError(exc.errors()) from exc
        email, password = body.email, body.password
    else:
        form = await request.form()
        email, password = form.get("username"), form.get("password")
        if not email or not password:
            raise RequestValidationError(
                [{"loc": ("body", "username"), "msg": "username and password are required", "type": "missing"}]
            )
    token = await run_in_threadpool(accounts.login, str(email), str(password))
    return TokenResponse(access_token=token)


@router.get("/me", response_model=ProfileResponse)
def me(user: ProfileRow = Depends(get_current_user)):
    return _profile_response(user)


@router.post("/password-reset/request", response_model=StatusResponse, status_code=202)
def request_password_reset(
    payload: PasswordResetRequest,
    accounts: AccountService = Depends(get_account_service),
):
    accounts.request_password_reset(payload.email)
    return StatusResponse(detail="If the email is registered, a reset link has been sent.")


@router.post("/password-reset/confirm", response_model=StatusResponse)
def confirm_password_reset(
    payload: PasswordResetConfirm,
    accounts: AccountService = Depends(get_account_service),
):
    accounts.confirm_password_reset(payload.token, payload.new_password)
    return StatusResponse()
