"""Address book for a user.

At most one address per user carries ``is_default``. Every write that can
flip the flag clears the others and sets the new one inside the same
transaction, so readers never see two defaults and a failure part-way
leaves the previous state intact.

Deleting the current default leaves the user without one; callers pick the
next default explicitly.
"""
from __future__ import annotations

from typing import Any, Dict, List

from loguru import logger

from account_service.core.db import Database
from account_service.core.errors import NotFound, ValidationError
from account_service.core.normalize import clean_str, normalize_choice, require_str
from account_service.core.tables import ADDRESS_TYPES, DEFAULT_ADDRESS_TYPE, User, UserAddress, utcnow
from account_service.metrics import Metrics
from account_service.models import AddressOut
from account_service.repository import AddressRepository, UserRepository

MAX_LINE_LEN = 255
MAX_PLACE_LEN = 100
MAX_POSTAL_LEN = 20

# required field -> max length
REQUIRED_FIELDS = {
    "address_line1": MAX_LINE_LEN,
    "city": MAX_PLACE_LEN,
    "state": MAX_PLACE_LEN,
    "postal_code": MAX_POSTAL_LEN,
    "country": MAX_PLACE_LEN,
}


def _address_type(value: Any) -> str:
    cleaned = clean_str(value, field="address_type")
    if not cleaned:
        return DEFAULT_ADDRESS_TYPE
    return normalize_choice(cleaned, ADDRESS_TYPES, field="address_type")


class AddressService:
    def __init__(self, db: Database, metrics: Metrics) -> None:
        self.db = db
        self.metrics = metrics

    @staticmethod
    def _owner(session, username: str) -> User:
        user = UserRepository(session).find_by_username(username)
        if not user:
            raise NotFound(f"User not found: {username}")
        return user

    @staticmethod
    def _owned(addresses: AddressRepository, address_id: int, user: User) -> UserAddress:
        address = addresses.find_owned(address_id, user.id)
        if not address:
            raise NotFound(f"Address not found with id: {address_id}")
        return address

    # ------------------------------------------------------------ reads

    def list_addresses(self, username: str) -> List[AddressOut]:
        with self.db.transaction() as session:
            user = self._owner(session, username)
            return [AddressOut.model_validate(a) for a in AddressRepository(session).list_for_user(user.id)]

    def list_for_user_id(self, user_id: int) -> List[AddressOut]:
        with self.db.transaction() as session:
            if not UserRepository(session).get(user_id):
                raise NotFound(f"User not found with id: {user_id}")
            return [AddressOut.model_validate(a) for a in AddressRepository(session).list_for_user(user_id)]

    def get_address(self, address_id: int, username: str) -> AddressOut:
        with self.db.transaction() as session:
            user = self._owner(session, username)
            return AddressOut.model_validate(self._owned(AddressRepository(session), address_id, user))

    def get_default_address(self, username: str) -> AddressOut:
        with self.db.transaction() as session:
            user = self._owner(session, username)
            address = AddressRepository(session).find_default(user.id)
            if not address:
                raise NotFound(f"No default address found for user: {username}")
            return AddressOut.model_validate(address)

    # ------------------------------------------------------------ writes

    def create(self, username: str, fields: Dict[str, Any]) -> AddressOut:
        logger.info("Creating address for user: {}", username)
        values = {name: require_str(fields.get(name), max_len=limit, field=name) for name, limit in REQUIRED_FIELDS.items()}
        values["address_line2"] = clean_str(fields.get("address_line2"), max_len=MAX_LINE_LEN, field="address_line2")
        values["address_type"] = _address_type(fields.get("address_type"))
        is_default = bool(fields.get("is_default") or False)

        with self.db.transaction() as session:
            user = self._owner(session, username)
            addresses = AddressRepository(session)
            if is_default:
                # new row has no id yet, so every existing default is cleared
                addresses.reset_default(user.id)
            now = utcnow()
            address = addresses.add(
                UserAddress(user_id=user.id, is_default=is_default, created_at=now, updated_at=now, **values)
            )
            out = AddressOut.model_validate(address)

        logger.info("Address created with id: {} for user: {}", out.id, username)
        self.metrics.address_created.inc()
        return out

    def update(self, address_id: int, username: str, fields: Dict[str, Any]) -> AddressOut:
        logger.info("Updating address {} for user: {}", address_id, username)
        changes: Dict[str, Any] = {}
        for name, limit in REQUIRED_FIELDS.items():
            if name in fields:
                changes[name] = require_str(fields[name], max_len=limit, field=name)
        if "address_line2" in fields:
            changes["address_line2"] = clean_str(fields["address_line2"], max_len=MAX_LINE_LEN, field="address_line2")
        if "address_type" in fields:
            changes["address_type"] = _address_type(fields["address_type"])
        if "is_default" in fields:
            changes["is_default"] = bool(fields["is_default"])
        if not changes:
            raise ValidationError("No valid fields to update")

        with self.db.transaction() as session:
            user = self._owner(session, username)
            addresses = AddressRepository(session)
            address = self._owned(addresses, address_id, user)
            if changes.get("is_default") and not address.is_default:
                addresses.reset_default(user.id, exclude_id=address.id)
            for name, value in changes.items():
                setattr(address, name, value)
            address.updated_at = utcnow()
            session.flush()
            out = AddressOut.model_validate(address)

        logger.info("Address {} updated for user: {}", address_id, username)
        self.metrics.address_updated.inc()
        return out

    def delete(self, address_id: int, username: str) -> None:
        logger.info("Deleting address {} for user: {}", address_id, username)
        with self.db.transaction() as session:
            user = self._owner(session, username)
            if not AddressRepository(session).delete_owned(address_id, user.id):
                raise NotFound(f"Address not found with id: {address_id}")
        logger.info("Address {} deleted for user: {}", address_id, username)
        self.metrics.address_deleted.inc()

    def set_default(self, address_id: int, username: str) -> AddressOut:
        logger.info("Setting address {} as default for user: {}", address_id, username)
        with self.db.transaction() as session:
            user = self._owner(session, username)
            addresses = AddressRepository(session)
            address = self._owned(addresses, address_id, user)
            addresses.reset_default(user.id, exclude_id=address.id)
            address.is_default = True
            address.updated_at = utcnow()
            session.flush()
            out = AddressOut.model_validate(address)

        logger.info("Address {} set as default for user: {}", address_id, username)
        self.metrics.address_default_changed.inc()
        return out
