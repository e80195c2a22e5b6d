from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Response

from account_service.auth.deps import get_principal
from account_service.deps import get_address_service
from account_service.models import AddressCreateReq, AddressOut, AddressUpdateReq, present_fields
from account_service.services.addresses import AddressService

router = APIRouter(prefix="/api/users/me/addresses", tags=["addresses"])


@router.get("", response_model=List[AddressOut])
def list_addresses(
    principal: Dict[str, Any] = Depends(get_principal),
    addresses: AddressService = Depends(get_address_service),
):
    return addresses.list_addresses(principal["username"])


@router.post("", response_model=AddressOut, status_code=201)
def create_address(
    body: AddressCreateReq,
    principal: Dict[str, Any] = Depends(get_principal),
    addresses: AddressService = Depends(get_address_service),
):
    return addresses.create(principal["username"], body.model_dump())


# declared before /{address_id} so "default" is not parsed as an id
@router.get("/default", response_model=AddressOut)
def get_default_address(
    principal: Dict[str, Any] = Depends(get_principal),
    addresses: AddressService = Depends(get_address_service),
):
    return addresses.get_default_address(principal["username"])


@router.get("/{address_id}", response_model=AddressOut)
def get_address(
    address_id: int,
    principal: Dict[str, Any] = Depends(get_principal),
    addresses: AddressService = Depends(get_address_service),
):
    return addresses.get_address(address_id, principal["username"])


@router.put("/{address_id}", response_model=AddressOut)
def update_address(
    address_id: int,
    body: AddressUpdateReq,
    principal: Dict[str, Any] = Depends(get_principal),
    addresses: AddressService = Depends(get_address_service),
):
    return addresses.update(address_id, principal["username"], present_fields(body))


@router.delete("/{address_id}", status_code=204)
def delete_address(
    address_id: int,
    principal: Dict[str, Any] = Depends(get_principal),
    addresses: AddressService = Depends(get_address_service),
):
    addresses.delete(address_id, principal["username"])
    return Response(status_code=204)


@router.patch("/{address_id}/default", response_model=AddressOut)
def set_default_address(
    address_id: int,
    principal: Dict[str, Any] = Depends(get_principal),
    addresses: AddressService = Depends(get_address_service),
):
    return addresses.set_default(address_id, principal["username"])
