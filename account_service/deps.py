"""Request-scoped accessors for the services wired onto ``app.state`` by ``create_app``."""
from __future__ import annotations

from fastapi import Request

from account_service.services.addresses import AddressService
from account_service.services.auth import AuthService
from account_service.services.users import UserService


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


def get_address_service(request: Request) -> AddressService:
    return request.app.state.address_service
