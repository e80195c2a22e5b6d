from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends

from account_service.auth.deps import require_admin
from account_service.deps import get_address_service, get_user_service
from account_service.models import (
    AddressOut,
    AdminFullUserOut,
    AdminUserOut,
    AdminUserUpdateReq,
    MessageResp,
    StatisticsOut,
    present_fields,
)
from account_service.services.addresses import AddressService
from account_service.services.users import UserService

router = APIRouter(prefix="/api/admin/users", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("", response_model=List[AdminUserOut])
def list_users(search: Optional[str] = None, users: UserService = Depends(get_user_service)):
    return users.admin_list(search)


@router.get("/statistics", response_model=StatisticsOut)
def statistics(users: UserService = Depends(get_user_service)):
    return users.statistics()


@router.get("/{user_id}", response_model=AdminUserOut)
def get_user(user_id: int, users: UserService = Depends(get_user_service)):
    return users.admin_get(user_id)


@router.get("/{user_id}/full", response_model=AdminFullUserOut)
def get_user_full(user_id: int, users: UserService = Depends(get_user_service)):
    return users.admin_get_full(user_id)


@router.get("/{user_id}/addresses", response_model=List[AddressOut])
def get_user_addresses(user_id: int, addresses: AddressService = Depends(get_address_service)):
    return addresses.list_for_user_id(user_id)


@router.put("/{user_id}", response_model=AdminUserOut)
def update_user(user_id: int, body: AdminUserUpdateReq, users: UserService = Depends(get_user_service)):
    return users.admin_update(user_id, present_fields(body))


@router.delete("/{user_id}", response_model=MessageResp)
def delete_user(user_id: int, users: UserService = Depends(get_user_service)):
    users.admin_delete(user_id)
    return MessageResp(message="User deleted successfully")
