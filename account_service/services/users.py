from __future__ import annotations

from typing import Any, Dict, List, Optional

from loguru import logger

from account_service.core.crypto import hash_password
from account_service.core.db import Database
from account_service.core.errors import Conflict, EmailInUse, NotFound, UpstreamError, UsernameTaken
from account_service.core.normalize import (
    clean_str,
    normalize_choice,
    normalize_email,
    normalize_phone,
    normalize_username,
)
from account_service.core.tables import ROLE_ADMIN, ROLE_USER, ROLES, User, utcnow
from account_service.metrics import Metrics
from account_service.models import (
    AddressOut,
    AdminFullUserOut,
    AdminUserOut,
    FullProfileOut,
    StatisticsOut,
    UserOut,
)
from account_service.repository import AddressRepository, UserRepository

MAX_NAME_LEN = 100

# Fallback for provider accounts without an email claim; .invalid never resolves.
PLACEHOLDER_EMAIL_DOMAIN = "users.invalid"


def _admin_view(user: User, address_count: int) -> AdminUserOut:
    return AdminUserOut(**UserOut.model_validate(user).model_dump(), address_count=address_count)


def _clean_phone(value: Any) -> Optional[str]:
    phone = clean_str(value, max_len=32, field="phone")
    return normalize_phone(phone) if phone else None


class UserService:
    def __init__(self, db: Database, metrics: Metrics) -> None:
        self.db = db
        self.metrics = metrics

    # ------------------------------------------------------------ helpers

    @staticmethod
    def _by_username(users: UserRepository, username: str) -> User:
        user = users.find_by_username(username)
        if not user:
            raise NotFound(f"User not found: {username}")
        return user

    @staticmethod
    def _by_id(users: UserRepository, user_id: int) -> User:
        user = users.get(user_id)
        if not user:
            raise NotFound(f"User not found with id: {user_id}")
        return user

    @staticmethod
    def _collect_common_changes(
        users: UserRepository,
        user: User,
        fields: Dict[str, Any],
        *,
        ignore_blank_email: bool,
    ) -> Dict[str, Any]:
        """Diff email/first_name/last_name/phone against the row; blank optional text clears."""
        changes: Dict[str, Any] = {}
        if "email" in fields:
            raw = clean_str(fields["email"], max_len=254, field="email")
            if raw is not None or not ignore_blank_email:
                email = normalize_email(raw or "")
                if email != user.email:
                    if users.email_taken(email, exclude_id=user.id):
                        raise EmailInUse()
                    changes["email"] = email
        for name in ("first_name", "last_name"):
            if name in fields:
                value = clean_str(fields[name], max_len=MAX_NAME_LEN, field=name)
                if value != getattr(user, name):
                    changes[name] = value
        if "phone" in fields:
            phone = _clean_phone(fields["phone"])
            if phone != user.phone:
                changes["phone"] = phone
        return changes

    @staticmethod
    def _apply(user: User, changes: Dict[str, Any]) -> None:
        for name, value in changes.items():
            setattr(user, name, value)
        user.updated_at = utcnow()

    # ------------------------------------------------------------ lifecycle

    def ensure_available(self, username: str, email: str) -> None:
        with self.db.transaction() as session:
            users = UserRepository(session)
            if users.username_taken(username):
                raise UsernameTaken()
            if users.email_taken(email):
                raise EmailInUse()

    def create_local_user(
        self,
        *,
        username: str,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        phone: Optional[str] = None,
        role: str = ROLE_USER,
    ) -> UserOut:
        username = normalize_username(username)
        email = normalize_email(email)
        with self.db.transaction() as session:
            users = UserRepository(session)
            if users.username_taken(username):
                raise UsernameTaken()
            if users.email_taken(email):
                raise EmailInUse()
            now = utcnow()
            user = users.add(
                User(
                    username=username,
                    email=email,
                    password_hash=hash_password(password),
                    first_name=clean_str(first_name, max_len=MAX_NAME_LEN, field="first_name"),
                    last_name=clean_str(last_name, max_len=MAX_NAME_LEN, field="last_name"),
                    phone=_clean_phone(phone),
                    role=role,
                    created_at=now,
                    updated_at=now,
                )
            )
            logger.info("Local user created: {} (id={})", username, user.id)
            return UserOut.model_validate(user)

    def find_or_create_from_claims(self, username: str, claims: Dict[str, Any], password: str) -> UserOut:
        """Local row for a user the identity provider just authenticated; created lazily if missing.

        The provider already accepted the credentials, so a collision while
        creating the row is reconciled against the existing row (a concurrent
        first login, or a row an admin renamed) instead of surfacing as 409.
        """
        email = claims.get("email") or f"{username}@{PLACEHOLDER_EMAIL_DOMAIN}"
        existing = self._reconcile(username, email)
        if existing:
            return existing
        logger.info("No local row for authenticated user {}; creating from provider claims", username)
        try:
            return self.create_local_user(
                username=username,
                email=email,
                password=password,
                first_name=claims.get("given_name"),
                last_name=claims.get("family_name"),
                phone=claims.get("phone_number"),
            )
        except Conflict as exc:
            existing = self._reconcile(username, email)
            if existing:
                return existing
            logger.error("Could not reconcile local row for authenticated user {}", username)
            raise UpstreamError("Local account could not be reconciled") from exc

    def _reconcile(self, username: str, email: str) -> Optional[UserOut]:
        with self.db.transaction() as session:
            users = UserRepository(session)
            user = users.find_by_username(username)
            if not user:
                user = users.find_by_email(email)
                if user:
                    logger.warning("Provider user {} matched local user {} by email", username, user.username)
            return UserOut.model_validate(user) if user else None

    # ------------------------------------------------------------ self-service

    def get_profile(self, username: str) -> UserOut:
        with self.db.transaction() as session:
            return UserOut.model_validate(self._by_username(UserRepository(session), username))

    def get_full_profile(self, username: str) -> FullProfileOut:
        with self.db.transaction() as session:
            user = self._by_username(UserRepository(session), username)
            addresses = AddressRepository(session).list_for_user(user.id)
            return FullProfileOut(
                user=UserOut.model_validate(user),
                addresses=[AddressOut.model_validate(a) for a in addresses],
            )

    def update_profile(self, username: str, fields: Dict[str, Any]) -> UserOut:
        with self.db.transaction() as session:
            users = UserRepository(session)
            user = self._by_username(users, username)
            changes = self._collect_common_changes(users, user, fields, ignore_blank_email=False)
            if changes:
                self._apply(user, changes)
                session.flush()
            out = UserOut.model_validate(user)

        if changes:
            logger.info("Profile updated for user {}: {}", username, sorted(changes))
            self.metrics.user_profile_update.inc()
        return out

    def delete_account(self, username: str) -> None:
        with self.db.transaction() as session:
            users = UserRepository(session)
            users.delete(self._by_username(users, username))
        logger.info("User deleted: {}", username)
        self.metrics.user_deletion.inc()

    # ------------------------------------------------------------ admin

    def admin_list(self, search: Optional[str] = None) -> List[AdminUserOut]:
        with self.db.transaction() as session:
            found = UserRepository(session).list(search)
            counts = AddressRepository(session).counts_by_user()
            return [_admin_view(u, counts.get(u.id, 0)) for u in found]

    def admin_get(self, user_id: int) -> AdminUserOut:
        with self.db.transaction() as session:
            user = self._by_id(UserRepository(session), user_id)
            return _admin_view(user, AddressRepository(session).count_for_user(user_id))

    def admin_get_full(self, user_id: int) -> AdminFullUserOut:
        with self.db.transaction() as session:
            user = self._by_id(UserRepository(session), user_id)
            addresses = AddressRepository(session).list_for_user(user_id)
            return AdminFullUserOut(
                user=_admin_view(user, len(addresses)),
                addresses=[AddressOut.model_validate(a) for a in addresses],
            )

    def admin_update(self, user_id: int, fields: Dict[str, Any]) -> AdminUserOut:
        logger.info("Admin updating user {}", user_id)
        with self.db.transaction() as session:
            users = UserRepository(session)
            user = self._by_id(users, user_id)

            changes: Dict[str, Any] = {}
            new_username = clean_str(fields.get("username"), max_len=50, field="username")
            if new_username:
                new_username = normalize_username(new_username)
                if new_username != user.username:
                    if users.username_taken(new_username, exclude_id=user.id):
                        raise UsernameTaken()
                    changes["username"] = new_username

            changes.update(self._collect_common_changes(users, user, fields, ignore_blank_email=True))

            role = clean_str(fields.get("role"), field="role")
            if role:
                role = normalize_choice(role, ROLES, field="role")
                if role != user.role:
                    changes["role"] = role

            password = clean_str(fields.get("password"), field="password")
            if password:
                # local credential store only; the identity provider keeps its own
                changes["password_hash"] = hash_password(password)

            if changes:
                self._apply(user, changes)
                session.flush()
            out = _admin_view(user, AddressRepository(session).count_for_user(user_id))

        if changes:
            logger.info("User {} updated by admin: {}", user_id, sorted(changes))
            self.metrics.admin_user_update.inc()
        return out

    def admin_delete(self, user_id: int) -> None:
        with self.db.transaction() as session:
            users = UserRepository(session)
            users.delete(self._by_id(users, user_id))
        logger.info("User {} deleted by admin", user_id)
        self.metrics.user_deletion.inc()

    def statistics(self) -> StatisticsOut:
        with self.db.transaction() as session:
            users = UserRepository(session)
            return StatisticsOut(
                total_users=users.count(),
                admin_count=users.count_by_role(ROLE_ADMIN),
                user_count=users.count_by_role(ROLE_USER),
                total_addresses=AddressRepository(session).count(),
            )
