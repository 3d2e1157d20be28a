"""
Authentication dependencies.

This module provides FastAPI dependencies for:
- Resolving the caller from a validated bearer token
- Role-based access control on token claims
"""
import uuid
from typing import List

from fastapi import HTTPException, status, Depends

from user_service.auth.jwt import get_current_user, TokenData


class RBACMiddleware:
    """
    Role-Based Access Control.

    Creates FastAPI dependencies for protecting routes based on the role
    claims of an already validated token. The store is not consulted, so a
    role change takes effect when the caller obtains a new token.
    """

    @staticmethod
    def has_roles(roles: List[str]):
        """
        Dependency to check if the user has any of the specified roles.

        Args:
            roles: List of required role names (any match is sufficient)

        Returns:
            Dependency function
        """
        async def verify_roles(token_data: TokenData = Depends(get_current_user)):
            if not any(role in token_data.roles for role in roles):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Role required: {', '.join(roles)}",
                )
            return token_data

        return verify_roles


async def get_current_user_id(token_data: TokenData = Depends(get_current_user)) -> uuid.UUID:
    """
    Dependency returning the caller's user id from the subject claim.

    Raises:
        HTTPException: If the subject is not a valid user id
    """
    try:
        return uuid.UUID(token_data.user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
