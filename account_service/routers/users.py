from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from account_service.auth.deps import get_principal
from account_service.deps import get_user_service
from account_service.models import FullProfileOut, MessageResp, ProfileUpdateReq, UserOut, present_fields
from account_service.services.users import UserService

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me", response_model=UserOut)
def get_me(principal: Dict[str, Any] = Depends(get_principal), users: UserService = Depends(get_user_service)):
    return users.get_profile(principal["username"])


@router.get("/me/full", response_model=FullProfileOut)
def get_me_full(principal: Dict[str, Any] = Depends(get_principal), users: UserService = Depends(get_user_service)):
    return users.get_full_profile(principal["username"])


@router.put("/me", response_model=UserOut)
def update_me(
    body: ProfileUpdateReq,
    principal: Dict[str, Any] = Depends(get_principal),
    users: UserService = Depends(get_user_service),
):
    return users.update_profile(principal["username"], present_fields(body))


@router.delete("/me", response_model=MessageResp)
def delete_me(principal: Dict[str, Any] = Depends(get_principal), users: UserService = Depends(get_user_service)):
    users.delete_account(principal["username"])
    return MessageResp(message="Account deleted successfully")
