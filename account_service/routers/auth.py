from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from account_service.auth.deps import extract_bearer_token, get_principal
from account_service.deps import get_auth_service, get_user_service
from account_service.models import (
    ChangePasswordReq,
    ConfirmForgotPasswordReq,
    ForgotPasswordReq,
    LoginReq,
    LoginResp,
    MessageResp,
    RefreshReq,
    RefreshResp,
    RegisterReq,
    RegisterResp,
    UserOut,
)
from account_service.services.auth import AuthService
from account_service.services.users import UserService

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=LoginResp)
def login(body: LoginReq, auth: AuthService = Depends(get_auth_service)):
    return auth.login(body.username, body.password)


@router.post("/register", response_model=RegisterResp, status_code=201)
def register(body: RegisterReq, auth: AuthService = Depends(get_auth_service)):
    user = auth.register(body.model_dump(exclude={"password"}), body.password)
    return RegisterResp(user=user, message="User registered successfully")


@router.post("/refresh", response_model=RefreshResp)
def refresh(body: RefreshReq, auth: AuthService = Depends(get_auth_service)):
    return auth.refresh(body.refresh_token, body.username)


@router.post("/logout", response_model=MessageResp)
def logout(req: Request, auth: AuthService = Depends(get_auth_service)):
    auth.sign_out(extract_bearer_token(req.headers.get("authorization")))
    return MessageResp(message="Logged out successfully")


@router.post("/change-password", response_model=MessageResp)
def change_password(req: Request, body: ChangePasswordReq, auth: AuthService = Depends(get_auth_service)):
    access_token = extract_bearer_token(req.headers.get("authorization"))
    auth.change_password(access_token, body.old_password, body.new_password)
    return MessageResp(message="Password changed successfully")


@router.post("/forgot-password", response_model=MessageResp)
def forgot_password(body: ForgotPasswordReq, auth: AuthService = Depends(get_auth_service)):
    auth.forgot_password(body.username)
    return MessageResp(message="Password reset code sent")


@router.post("/confirm-forgot-password", response_model=MessageResp)
def confirm_forgot_password(body: ConfirmForgotPasswordReq, auth: AuthService = Depends(get_auth_service)):
    auth.confirm_forgot_password(body.username, body.confirmation_code, body.new_password)
    return MessageResp(message="Password reset successfully")


@router.get("/me", response_model=UserOut)
def me(principal: Dict[str, Any] = Depends(get_principal), users: UserService = Depends(get_user_service)):
    return users.get_profile(principal["username"])
