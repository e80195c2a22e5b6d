from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class _Req(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------- auth

class LoginReq(_Req):
    username: str
    password: str


class RegisterReq(_Req):
    username: str = Field(min_length=3, max_length=50)
    email: str = Field(max_length=254)
    password: str = Field(min_length=1)
    first_name: str = Field(max_length=100, validation_alias=AliasChoices("first_name", "firstName"))
    last_name: str = Field(max_length=100, validation_alias=AliasChoices("last_name", "lastName"))
    phone: Optional[str] = Field(default=None, max_length=20)


class RefreshReq(_Req):
    refresh_token: str = Field(validation_alias=AliasChoices("refresh_token", "refreshToken"))
    username: Optional[str] = None


class ChangePasswordReq(_Req):
    old_password: str = Field(validation_alias=AliasChoices("old_password", "oldPassword"))
    new_password: str = Field(validation_alias=AliasChoices("new_password", "newPassword"))


class ForgotPasswordReq(_Req):
    username: str


class ConfirmForgotPasswordReq(_Req):
    username: str
    confirmation_code: str = Field(validation_alias=AliasChoices("confirmation_code", "confirmationCode", "code"))
    new_password: str = Field(validation_alias=AliasChoices("new_password", "newPassword"))


class MessageResp(BaseModel):
    message: str


# ---------------------------------------------------------------- users

class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    role: str
    created_at: datetime
    updated_at: datetime


class AdminUserOut(UserOut):
    address_count: int = 0


class LoginResp(BaseModel):
    token: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: str = "Bearer"
    user: UserOut


class RegisterResp(BaseModel):
    user: UserOut
    message: str


class RefreshResp(BaseModel):
    token: str
    access_token: Optional[str] = None
    expires_in: Optional[int] = None


class ProfileUpdateReq(_Req):
    email: Optional[str] = Field(default=None, max_length=254)
    first_name: Optional[str] = Field(default=None, max_length=100, validation_alias=AliasChoices("first_name", "firstName"))
    last_name: Optional[str] = Field(default=None, max_length=100, validation_alias=AliasChoices("last_name", "lastName"))
    phone: Optional[str] = Field(default=None, max_length=20)


class AdminUserUpdateReq(ProfileUpdateReq):
    username: Optional[str] = Field(default=None, max_length=50)
    role: Optional[str] = None
    password: Optional[str] = None


class StatisticsOut(BaseModel):
    total_users: int
    admin_count: int
    user_count: int
    total_addresses: int


# ---------------------------------------------------------------- addresses

class AddressCreateReq(_Req):
    address_line1: str = Field(max_length=255, validation_alias=AliasChoices("address_line1", "addressLine1", "line1"))
    address_line2: Optional[str] = Field(
        default=None, max_length=255, validation_alias=AliasChoices("address_line2", "addressLine2", "line2")
    )
    city: str = Field(max_length=100)
    state: str = Field(max_length=100)
    postal_code: str = Field(max_length=20, validation_alias=AliasChoices("postal_code", "postalCode"))
    country: str = Field(max_length=100)
    is_default: Optional[bool] = Field(default=None, validation_alias=AliasChoices("is_default", "isDefault"))
    address_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("address_type", "addressType"))


class AddressUpdateReq(_Req):
    address_line1: Optional[str] = Field(
        default=None, max_length=255, validation_alias=AliasChoices("address_line1", "addressLine1", "line1")
    )
    address_line2: Optional[str] = Field(
        default=None, max_length=255, validation_alias=AliasChoices("address_line2", "addressLine2", "line2")
    )
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    postal_code: Optional[str] = Field(default=None, max_length=20, validation_alias=AliasChoices("postal_code", "postalCode"))
    country: Optional[str] = Field(default=None, max_length=100)
    is_default: Optional[bool] = Field(default=None, validation_alias=AliasChoices("is_default", "isDefault"))
    address_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("address_type", "addressType"))


class AddressOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    state: str
    postal_code: str
    country: str
    is_default: bool = False
    address_type: str
    created_at: datetime
    updated_at: datetime


class FullProfileOut(BaseModel):
    user: UserOut
    addresses: List[AddressOut] = Field(default_factory=list)


class AdminFullUserOut(BaseModel):
    user: AdminUserOut
    addresses: List[AddressOut] = Field(default_factory=list)


class HealthOut(BaseModel):
    status: str
    components: Dict[str, Any] = Field(default_factory=dict)


def present_fields(body: BaseModel) -> Dict[str, Any]:
    """Partial-update view of a request: absent and explicit-null both mean 'leave unchanged'."""
    return {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
