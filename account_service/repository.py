"""Query helpers over an open SQLAlchemy session."""
from __future__ import annotations

from typing import Dict, List, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from account_service.core.tables import User, UserAddress, utcnow


class UserRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def find_by_username(self, username: str) -> Optional[User]:
        stmt = select(User).where(User.username == username)
        return self.session.execute(stmt).scalar_one_or_none()

    def find_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(func.lower(User.email) == email.lower())
        return self.session.execute(stmt).scalar_one_or_none()

    def username_taken(self, username: str, *, exclude_id: Optional[int] = None) -> bool:
        stmt = select(User.id).where(User.username == username)
        if exclude_id is not None:
            stmt = stmt.where(User.id != exclude_id)
        return self.session.execute(stmt.limit(1)).first() is not None

    def email_taken(self, email: str, *, exclude_id: Optional[int] = None) -> bool:
        stmt = select(User.id).where(func.lower(User.email) == email.lower())
        if exclude_id is not None:
            stmt = stmt.where(User.id != exclude_id)
        return self.session.execute(stmt.limit(1)).first() is not None

    def add(self, user: User) -> User:
        self.session.add(user)
        self.session.flush()
        return user

    def delete(self, user: User) -> None:
        self.session.delete(user)
        self.session.flush()

    def list(self, search: Optional[str] = None) -> List[User]:
        stmt = select(User).order_by(User.id)
        q = (search or "").strip().lower()
        if q:
            stmt = stmt.where(
                or_(
                    func.lower(User.username).contains(q, autoescape=True),
                    func.lower(User.email).contains(q, autoescape=True),
                )
            )
        return list(self.session.execute(stmt).scalars().all())

    def count(self) -> int:
        return self.session.execute(select(func.count(User.id))).scalar_one()

    def count_by_role(self, role: str) -> int:
        return self.session.execute(select(func.count(User.id)).where(User.role == role)).scalar_one()


class AddressRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_for_user(self, user_id: int) -> List[UserAddress]:
        stmt = (
            select(UserAddress)
            .where(UserAddress.user_id == user_id)
            .order_by(UserAddress.is_default.desc(), UserAddress.created_at.desc(), UserAddress.id.desc())
        )
        return list(self.session.execute(stmt).scalars().all())

    def find_owned(self, address_id: int, user_id: int) -> Optional[UserAddress]:
        # ownership is part of the predicate, so another user's id looks nonexistent
        stmt = select(UserAddress).where(UserAddress.id == address_id, UserAddress.user_id == user_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def find_default(self, user_id: int) -> Optional[UserAddress]:
        stmt = (
            select(UserAddress)
            .where(UserAddress.user_id == user_id, UserAddress.is_default.is_(True))
            .order_by(UserAddress.updated_at.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def reset_default(self, user_id: int, *, exclude_id: Optional[int] = None) -> int:
        """Clear the default flag on the user's addresses, optionally keeping one."""
        stmt = (
            update(UserAddress)
            .where(UserAddress.user_id == user_id, UserAddress.is_default.is_(True))
            .values(is_default=False, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        if exclude_id is not None:
            stmt = stmt.where(UserAddress.id != exclude_id)
        return self.session.execute(stmt).rowcount

    def add(self, address: UserAddress) -> UserAddress:
        self.session.add(address)
        self.session.flush()
        return address

    def delete_owned(self, address_id: int, user_id: int) -> int:
        stmt = delete(UserAddress).where(UserAddress.id == address_id, UserAddress.user_id == user_id)
        return self.session.execute(stmt).rowcount

    def count_for_user(self, user_id: int) -> int:
        stmt = select(func.count(UserAddress.id)).where(UserAddress.user_id == user_id)
        return self.session.execute(stmt).scalar_one()

    def counts_by_user(self) -> Dict[int, int]:
        stmt = select(UserAddress.user_id, func.count(UserAddress.id)).group_by(UserAddress.user_id)
        return {user_id: count for user_id, count in self.session.execute(stmt).all()}

    def count(self) -> int:
        return self.session.execute(select(func.count(UserAddress.id))).scalar_one()
