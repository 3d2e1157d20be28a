"""
Identity router.

This module provides FastAPI routes for:
- User registration and login
- Current user profile read/update
- Admin user lookup and role management
"""
import uuid
from typing import Dict, Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from user_service.base_microservice import BaseMicroservice, Base, engine, AsyncSessionLocal, get_db_session
from user_service.auth.errors import (
    ConflictError, UnauthenticatedError, ForbiddenError, NotFoundError,
)
from user_service.auth.jwt import TokenIssuer, get_token_issuer, get_current_user
from user_service.auth.middleware import RBACMiddleware, get_current_user_id
from user_service.auth.seed import ADMIN_ROLE, seed_roles
from user_service.auth.store import SqlAlchemyUserStore
from user_service.auth.users import UserService, UserCreate, UserLogin, UserUpdate

# Create routers
auth_router = APIRouter(prefix="/auth", tags=["auth"])
users_router = APIRouter(prefix="/users", tags=["users"])

# Create service instance
base_service = BaseMicroservice(service_name="users")

ERROR_STATUS = {
    ConflictError: status.HTTP_409_CONFLICT,
    UnauthenticatedError: status.HTTP_401_UNAUTHORIZED,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
}

require_admin = RBACMiddleware.has_roles([ADMIN_ROLE])


async def start_auth_service():
    """Create tables and seed the reference roles."""
    base_service.log_event("service.startup", {"service": "users"})
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with AsyncSessionLocal() as session:
            created = await seed_roles(session)
        base_service.log_event("roles.seeded", {"created": created})
    except Exception as e:
        base_service.log_error(e, context="Auth service startup")
        raise


async def get_user_service(
    db: AsyncSession = Depends(get_db_session),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> UserService:
    """Dependency building a UserService bound to the request's session."""
    return UserService(SqlAlchemyUserStore(db), issuer)


def http_error(error: Exception, context: str) -> HTTPException:
    """Map an identity error to an HTTPException, logging anything unexpected."""
    status_code = ERROR_STATUS.get(type(error))
    if status_code is not None:
        headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
        return HTTPException(status_code=status_code, detail=error.message, headers=headers)

    base_service.log_error(error, context=context)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An internal server error occurred"
    )


# --- Registration and login ---

@auth_router.post("/register", response_model=Dict[str, Any], status_code=status.HTTP_201_CREATED)
async def register_user(
    user_data: UserCreate,
    service: UserService = Depends(get_user_service)
):
    """
    Register a new user.

    Args:
        user_data: User registration data
        service: User service

    Returns:
        Dict with credentials and user information
    """
    try:
        auth = await service.register(
            email=user_data.email,
            password=user_data.password,
            first_name=user_data.first_name,
            last_name=user_data.last_name,
        )
    except Exception as e:
        raise http_error(e, context="User registration")

    return {
        "status": "ok",
        "message": "User registered successfully",
        "data": auth
    }


@auth_router.post("/login", response_model=Dict[str, Any])
async def login(
    login_data: UserLogin,
    service: UserService = Depends(get_user_service)
):
    """
    Authenticate a user and return credentials.

    Args:
        login_data: Email and password
        service: User service

    Returns:
        Dict with credentials and user information
    """
    try:
        auth = await service.login(login_data.email, login_data.password)
    except Exception as e:
        raise http_error(e, context="User login")

    return {
        "status": "ok",
        "message": "Login successful",
        "data": auth
    }


# --- Current user ---

@users_router.get("/me", response_model=Dict[str, Any])
async def get_current_user_info(
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: UserService = Depends(get_user_service)
):
    """
    Get information about the current authenticated user.
    """
    try:
        user_info = await service.get_profile(user_id)
    except Exception as e:
        raise http_error(e, context="Get current user")

    return {
        "status": "ok",
        "message": "User information retrieved successfully",
        "data": user_info
    }


@users_router.put("/me", response_model=Dict[str, Any])
async def update_current_user(
    update_data: UserUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: UserService = Depends(get_user_service)
):
    """
    Update first/last name of the current authenticated user.

    Args:
        update_data: Fields to update; blank fields are ignored
        user_id: Caller's id from the token
        service: User service

    Returns:
        Dict with updated user information
    """
    try:
        updated_user = await service.update_profile(
            user_id,
            first_name=update_data.first_name,
            last_name=update_data.last_name,
        )
    except Exception as e:
        raise http_error(e, context="Update current user")

    return {
        "status": "ok",
        "message": "User updated successfully",
        "data": updated_user
    }


# --- Roles ---

@users_router.get("/roles", response_model=Dict[str, Any], dependencies=[Depends(get_current_user)])
async def get_roles(
    service: UserService = Depends(get_user_service)
):
    """List all roles."""
    try:
        roles = await service.list_roles()
    except Exception as e:
        raise http_error(e, context="Get roles")

    return {
        "status": "ok",
        "message": "Roles retrieved successfully",
        "data": roles
    }


# --- Admin ---

@users_router.get("/{user_id}", response_model=Dict[str, Any], dependencies=[Depends(require_admin)])
async def get_user_by_id(
    user_id: uuid.UUID,
    service: UserService = Depends(get_user_service)
):
    """Get any user's profile (Admin only)."""
    try:
        user_info = await service.get_profile(user_id)
    except Exception as e:
        raise http_error(e, context="Get user")

    return {
        "status": "ok",
        "message": "User information retrieved successfully",
        "data": user_info
    }


@users_router.post("/{user_id}/roles/{role_name}", response_model=Dict[str, Any], dependencies=[Depends(require_admin)])
async def add_role_to_user(
    user_id: uuid.UUID,
    role_name: str,
    service: UserService = Depends(get_user_service)
):
    """
    Add a role to a user (Admin only).

    Args:
        user_id: User ID
        role_name: Name of the role to add
        service: User service

    Returns:
        Dict with status information
    """
    try:
        assigned = await service.assign_role(user_id, role_name)
    except Exception as e:
        raise http_error(e, context="Add role to user")

    if not assigned:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Role already assigned"
        )

    return {
        "status": "ok",
        "message": f"Role '{role_name}' assigned successfully",
        "data": {"user_id": user_id, "role_name": role_name}
    }


@users_router.delete("/{user_id}/roles/{role_name}", response_model=Dict[str, Any], dependencies=[Depends(require_admin)])
async def remove_role_from_user(
    user_id: uuid.UUID,
    role_name: str,
    service: UserService = Depends(get_user_service)
):
    """
    Remove a role from a user (Admin only).

    Args:
        user_id: User ID
        role_name: Name of the role to remove
        service: User service

    Returns:
        Dict with status information
    """
    try:
        removed = await service.remove_role(user_id, role_name)
    except Exception as e:
        raise http_error(e, context="Remove role from user")

    if not removed:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Role not assigned"
        )

    return {
        "status": "ok",
        "message": f"Role '{role_name}' removed successfully",
        "data": {"user_id": user_id, "role_name": role_name}
    }
