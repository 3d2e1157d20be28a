"""
Persistence for users, roles and role assignments.

`UserStore` is the contract the identity use cases depend on.
`SqlAlchemyUserStore` implements it on top of an async SQLAlchemy session.

Every mutating call is atomic on its own. Inside `run_in_transaction` the
calls only flush, and the whole callable commits or rolls back as one unit.
Uniqueness is left to the database constraints; violations come back as
`DuplicateEmailError` / `DuplicateRoleAssignmentError`, and an assignment whose
user or role is gone comes back as `MissingReferenceError`.
"""
import uuid
from typing import Any, Awaitable, Callable, List, Optional, Protocol, TypeVar

from sqlalchemy import delete, insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from user_service.auth.errors import (
    DuplicateEmailError, DuplicateRoleAssignmentError, MissingReferenceError,
)
from user_service.auth.models import User, Role, UserRole

T = TypeVar("T")


class UserStore(Protocol):
    """Store contract used by UserService."""

    async def get_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        """Return the user with roles loaded, or None."""

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Return the user (exact email match) with roles loaded, or None."""

    async def email_exists(self, email: str) -> bool:
        """Return True if a user with this exact email exists."""

    async def add_user(self, user: User) -> User:
        """Insert a user. Raises DuplicateEmailError on email collision."""

    async def update_user(self, user: User, **fields: Any) -> User:
        """Overwrite the given columns on an existing user."""

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        """Return the role with this exact name, or None."""

    async def list_roles(self) -> List[Role]:
        """Return all roles ordered by name."""

    async def add_user_role(self, user_id: uuid.UUID, role_id: uuid.UUID) -> None:
        """Insert an assignment. Raises DuplicateRoleAssignmentError if present,
        MissingReferenceError if the user or role does not exist."""

    async def get_user_role(self, user_id: uuid.UUID, role_id: uuid.UUID) -> Optional[UserRole]:
        """Return the assignment for the pair, or None."""

    async def delete_user_role(self, user_id: uuid.UUID, role_id: uuid.UUID) -> bool:
        """Delete the assignment for the pair. Returns False if none existed."""

    async def get_role_names(self, user_id: uuid.UUID) -> List[str]:
        """Return the names of the roles assigned to a user, sorted."""

    async def run_in_transaction(self, fn: Callable[["UserStore"], Awaitable[T]]) -> T:
        """Run fn(store) so that all of its writes commit or roll back together."""


class SqlAlchemyUserStore:
    """
    UserStore backed by an AsyncSession.

    One instance per session; the session is owned by the caller.
    """
    def __init__(self, db: AsyncSession):
        self.db = db
        self._transaction_depth = 0

    @property
    def in_transaction(self) -> bool:
        return self._transaction_depth > 0

    async def _save(self) -> None:
        if self.in_transaction:
            await self.db.flush()
        else:
            await self.db.commit()

    async def run_in_transaction(self, fn: Callable[["SqlAlchemyUserStore"], Awaitable[T]]) -> T:
        self._transaction_depth += 1
        try:
            result = await fn(self)
        except BaseException:
            self._transaction_depth -= 1
            if not self.in_transaction:
                await self.db.rollback()
            raise
        self._transaction_depth -= 1
        if not self.in_transaction:
            await self.db.commit()
        return result

    # --- Users ---

    def _user_query(self):
        return (
            select(User)
            .options(selectinload(User.user_roles).joinedload(UserRole.role))
            .execution_options(populate_existing=True)
        )

    async def get_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        result = await self.db.execute(self._user_query().where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(self._user_query().where(User.email == email))
        return result.scalar_one_or_none()

    async def email_exists(self, email: str) -> bool:
        result = await self.db.execute(
            select(User.id).where(User.email == email).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def add_user(self, user: User) -> User:
        self.db.add(user)
        try:
            await self._save()
        except IntegrityError as e:
            await self.db.rollback()
            raise DuplicateEmailError(user.email) from e
        return user

    async def update_user(self, user: User, **fields: Any) -> User:
        for name, value in fields.items():
            setattr(user, name, value)
        await self._save()
        return user

    # --- Roles ---

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        result = await self.db.execute(select(Role).where(Role.name == name))
        return result.scalar_one_or_none()

    async def list_roles(self) -> List[Role]:
        result = await self.db.execute(select(Role).order_by(Role.name))
        return list(result.scalars().all())

    # --- Assignments ---

    async def add_user_role(self, user_id: uuid.UUID, role_id: uuid.UUID) -> None:
        # Core insert so the unique key is always checked by the database
        try:
            await self.db.execute(insert(UserRole).values(user_id=user_id, role_id=role_id))
            await self._save()
        except IntegrityError as e:
            await self.db.rollback()
            if not await self._references_exist(user_id, role_id):
                raise MissingReferenceError(f"{user_id}:{role_id}") from e
            raise DuplicateRoleAssignmentError(f"{user_id}:{role_id}") from e

    async def _references_exist(self, user_id: uuid.UUID, role_id: uuid.UUID) -> bool:
        user = await self.db.execute(select(User.id).where(User.id == user_id))
        role = await self.db.execute(select(Role.id).where(Role.id == role_id))
        return user.scalar_one_or_none() is not None and role.scalar_one_or_none() is not None

    async def get_user_role(self, user_id: uuid.UUID, role_id: uuid.UUID) -> Optional[UserRole]:
        result = await self.db.execute(
            select(UserRole).where(
                UserRole.user_id == user_id,
                UserRole.role_id == role_id
            )
        )
        return result.scalar_one_or_none()

    async def delete_user_role(self, user_id: uuid.UUID, role_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            delete(UserRole).where(
                UserRole.user_id == user_id,
                UserRole.role_id == role_id
            )
        )
        await self._save()
        return result.rowcount > 0

    async def get_role_names(self, user_id: uuid.UUID) -> List[str]:
        result = await self.db.execute(
            select(Role.name)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id)
            .order_by(Role.name)
        )
        return list(result.scalars().all())
