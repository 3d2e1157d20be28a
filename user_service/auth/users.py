"""
User management service.

This module provides functionality for:
- User registration
- User authentication
- User profile management
- Role assignment and removal
"""
import uuid
from typing import Optional, List, Tuple
from datetime import datetime, timezone

from pydantic import BaseModel, EmailStr, Field, field_validator

from user_service.base_microservice import BaseMicroservice
from user_service.auth.errors import (
    ConflictError, UnauthenticatedError, ForbiddenError, NotFoundError,
    InternalError, DuplicateEmailError, DuplicateRoleAssignmentError, MissingReferenceError,
)
from user_service.auth.jwt import Token, TokenIssuer, token_issuer as default_token_issuer
from user_service.auth.models import User
from user_service.auth.passwords import (
    hash_password, verify_password, password_too_long, dummy_hash, MAX_PASSWORD_BYTES,
)
from user_service.auth.seed import DEFAULT_ROLE
from user_service.auth.store import UserStore

INVALID_CREDENTIALS = "Invalid email or password"
MAX_EMAIL_LENGTH = 100


# Pydantic models for request validation
class UserCreate(BaseModel):
    """Model for user registration."""
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=100)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)

    @field_validator("email")
    @classmethod
    def email_must_fit_column(cls, v):
        if len(v) > MAX_EMAIL_LENGTH:
            raise ValueError(f"Email must be at most {MAX_EMAIL_LENGTH} characters")
        return v

    @field_validator("password")
    @classmethod
    def password_must_fit_bcrypt(cls, v):
        if password_too_long(v):
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return v


class UserLogin(BaseModel):
    """Model for user login."""
    email: EmailStr
    password: str


class UserUpdate(BaseModel):
    """Model for updating user profile. Blank or missing fields are left as they are."""
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)


class UserOut(BaseModel):
    """Model for user information returned to clients."""
    id: uuid.UUID
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool
    created_at: datetime
    roles: List[str] = []


class RoleOut(BaseModel):
    """Model for role information returned to clients."""
    id: uuid.UUID
    name: str
    description: Optional[str] = None


class AuthResponse(BaseModel):
    """Credentials issued on registration or login."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserOut


def to_user_out(user: User, roles: List[str]) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        is_active=user.is_active,
        created_at=user.created_at,
        roles=list(roles),
    )


def _present(value: Optional[str]) -> bool:
    return value is not None and value.strip() != ""


class UserService(BaseMicroservice):
    """
    Service for user management operations.

    Takes plain inputs (ids, role names, strings) so it can run behind any
    transport once the caller has established who is asking.
    """
    def __init__(self, store: UserStore, token_issuer: TokenIssuer = None):
        super().__init__(service_name="users")
        self.store = store
        self.token_issuer = token_issuer or default_token_issuer

    def _auth_response(self, user: User, roles: List[str]) -> AuthResponse:
        try:
            tokens: Token = self.token_issuer.create_tokens(user, roles)
        except Exception as e:
            self.log_error(e, context="Token issue")
            raise InternalError("Failed to issue credentials") from e

        return AuthResponse(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_type=tokens.token_type,
            expires_at=tokens.expires_at,
            user=to_user_out(user, roles),
        )

    async def _require_user(self, user_id: uuid.UUID) -> User:
        user = await self.store.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def register(
        self,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> AuthResponse:
        """
        Register a new user and issue credentials.

        The user row and its default role assignment are written in one
        transaction.

        Raises:
            ConflictError: If the email is already registered
        """
        if await self.store.email_exists(email):
            raise ConflictError("User with this email already exists")

        try:
            password_hash = hash_password(password)
        except ValueError as e:
            raise InternalError(str(e)) from e

        async def create(store: UserStore) -> Tuple[User, List[str]]:
            user = await store.add_user(User(
                id=uuid.uuid4(),
                email=email,
                password_hash=password_hash,
                first_name=first_name,
                last_name=last_name,
                is_active=True,
                created_at=datetime.now(timezone.utc),
            ))

            default_role = await store.get_role_by_name(DEFAULT_ROLE)
            if default_role is None:
                self.log_warning("Default role missing; user created without roles", {
                    "role": DEFAULT_ROLE,
                    "user_id": user.id,
                })
                return user, []

            await store.add_user_role(user.id, default_role.id)
            return user, [default_role.name]

        try:
            user, roles = await self.store.run_in_transaction(create)
        except DuplicateEmailError as e:
            raise ConflictError("User with this email already exists") from e

        self.log_event("user.registered", {"id": user.id, "email": user.email})
        return self._auth_response(user, roles)

    async def login(self, email: str, password: str) -> AuthResponse:
        """
        Authenticate a user and issue credentials.

        Raises:
            UnauthenticatedError: Unknown email or wrong password
            ForbiddenError: Correct credentials on an inactive account
        """
        user = await self.store.get_user_by_email(email)

        # Unknown emails still pay for a bcrypt check
        stored_hash = user.password_hash if user is not None else dummy_hash()
        if not verify_password(password, stored_hash) or user is None:
            self.log_event("user.login.failed", {"reason": UnauthenticatedError.kind})
            raise UnauthenticatedError(INVALID_CREDENTIALS)

        if not user.is_active:
            self.log_event("user.login.failed", {"reason": ForbiddenError.kind, "id": user.id})
            raise ForbiddenError("User account is inactive")

        roles = user.role_names
        self.log_event("user.login", {"id": user.id, "email": user.email})
        return self._auth_response(user, roles)

    async def get_profile(self, user_id: uuid.UUID) -> UserOut:
        """
        Get a user's profile with current roles.

        Raises:
            NotFoundError: If no such user
        """
        user = await self._require_user(user_id)
        self.log_event("user.profile.read", {"id": user.id})
        return to_user_out(user, user.role_names)

    async def update_profile(
        self,
        user_id: uuid.UUID,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> UserOut:
        """
        Partially update a profile. Only present, non-blank fields are written.

        Raises:
            NotFoundError: If no such user
        """
        user = await self._require_user(user_id)

        fields = {}
        if _present(first_name):
            fields["first_name"] = first_name
        if _present(last_name):
            fields["last_name"] = last_name
        fields["updated_at"] = datetime.now(timezone.utc)

        await self.store.update_user(user, **fields)
        roles = await self.store.get_role_names(user_id)

        self.log_event("user.updated", {
            "id": user_id,
            "fields_updated": sorted(k for k in fields if k != "updated_at"),
        })
        return to_user_out(user, roles)

    async def assign_role(self, user_id: uuid.UUID, role_name: str) -> bool:
        """
        Give a user a role.

        Returns:
            True if the assignment was created, False if it already existed

        Raises:
            NotFoundError: If the user or the role does not exist
        """
        await self._require_user(user_id)

        role = await self.store.get_role_by_name(role_name)
        if role is None:
            raise NotFoundError("Role not found")
        role_id = role.id

        if await self.store.get_user_role(user_id, role_id) is not None:
            return False

        try:
            await self.store.add_user_role(user_id, role_id)
        except DuplicateRoleAssignmentError:
            # Lost the race to a concurrent writer
            return False
        except MissingReferenceError as e:
            # User or role deleted since the lookups above
            raise NotFoundError("User or role not found") from e

        self.log_event("user.role.added", {"user_id": user_id, "role_name": role_name})
        return True

    async def remove_role(self, user_id: uuid.UUID, role_name: str) -> bool:
        """
        Take a role away from a user.

        Returns:
            True if an assignment was deleted, False if there was none

        Raises:
            NotFoundError: If the user or the role does not exist
        """
        await self._require_user(user_id)

        role = await self.store.get_role_by_name(role_name)
        if role is None:
            raise NotFoundError("Role not found")

        if not await self.store.delete_user_role(user_id, role.id):
            return False

        self.log_event("user.role.removed", {"user_id": user_id, "role_name": role_name})
        return True

    async def list_roles(self) -> List[RoleOut]:
        """List the reference roles."""
        roles = await self.store.list_roles()
        return [RoleOut(id=r.id, name=r.name, description=r.description) for r in roles]
