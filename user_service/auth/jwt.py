"""
JWT token handling for authentication.

This module provides functionality for:
- Minting signed access tokens (HS256)
- Minting opaque refresh tokens
- Validating access tokens at the HTTP boundary

Access token claims:
    sub    user id (string)
    email  user email
    name   first name, or email when there is none
    role   list with one entry per assigned role name
    iat    issued-at, seconds since epoch
    exp    expiry, seconds since epoch
    iss    issuer
    aud    audience

Refresh tokens are 32 random bytes, base64-encoded. They carry no claims and
are neither stored nor redeemable by this service.
"""
import os
import base64
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, List, Any

import jwt
from jwt.exceptions import PyJWTError
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel

from user_service.auth.models import User

logger = logging.getLogger("user_service.auth.jwt")

# JWT Configuration
# The default secret works but is public; never run production with it.
DEFAULT_SECRET_KEY = "YourSuperSecretKeyThatShouldBeAtLeast32CharactersLong!"
SECRET_KEY = os.getenv("JWT_SECRET_KEY", DEFAULT_SECRET_KEY)
ISSUER = os.getenv("JWT_ISSUER", "UserService")
AUDIENCE = os.getenv("JWT_AUDIENCE", "UserService")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60))
ALGORITHM = "HS256"
REFRESH_TOKEN_BYTES = 32

# Authentication scheme
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/auth/login", auto_error=False)


class Token(BaseModel):
    """Token response model."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: datetime


class TokenData(BaseModel):
    """Validated token payload."""
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    roles: List[str] = []
    exp: Optional[int] = None


class TokenIssuer:
    """
    Builds access and refresh tokens from a user and a role set.

    Holds only immutable configuration, so one instance can be shared by
    every request.
    """
    def __init__(
        self,
        secret_key: str = None,
        issuer: str = None,
        audience: str = None,
        expire_minutes: int = None,
    ):
        self.secret_key = secret_key or SECRET_KEY
        self.issuer = issuer or ISSUER
        self.audience = audience or AUDIENCE
        self.expire_minutes = expire_minutes if expire_minutes is not None else ACCESS_TOKEN_EXPIRE_MINUTES

        if self.secret_key == DEFAULT_SECRET_KEY:
            logger.warning("JWT_SECRET_KEY is not set; using the built-in development secret")

    def expires_at(self, now: datetime) -> datetime:
        return now + timedelta(minutes=self.expire_minutes)

    def issue_access_token(self, user: User, roles: List[str], now: Optional[datetime] = None) -> str:
        """
        Create a signed access token.

        Args:
            user: User the token is issued to
            roles: Role names to embed, one claim entry each
            now: Issue time, defaults to the current UTC time

        Returns:
            Encoded JWT string
        """
        now = now or datetime.now(timezone.utc)
        payload = {
            "sub": str(user.id),
            "email": user.email,
            "name": user.display_name,
            "role": list(roles),
            "iat": now,
            "exp": self.expires_at(now),
            "iss": self.issuer,
            "aud": self.audience,
        }
        return jwt.encode(payload, self.secret_key, algorithm=ALGORITHM)

    def issue_refresh_token(self) -> str:
        """Create an opaque 256-bit refresh token."""
        return base64.b64encode(secrets.token_bytes(REFRESH_TOKEN_BYTES)).decode("ascii")

    def create_tokens(self, user: User, roles: List[str], now: Optional[datetime] = None) -> Token:
        """
        Create both access and refresh tokens for a user.

        Args:
            user: User the tokens are issued to
            roles: Role names for the access token
            now: Issue time, defaults to the current UTC time

        Returns:
            Token object with access_token, refresh_token and expiry
        """
        now = now or datetime.now(timezone.utc)
        return Token(
            access_token=self.issue_access_token(user, roles, now),
            refresh_token=self.issue_refresh_token(),
            token_type="bearer",
            expires_at=self.expires_at(now),
        )

    def decode(self, token: str) -> dict[str, Any]:
        """Decode and validate signature, expiry, issuer and audience."""
        return jwt.decode(
            token,
            self.secret_key,
            algorithms=[ALGORITHM],
            audience=self.audience,
            issuer=self.issuer,
            options={"require": ["sub", "exp", "iat"]},
        )

    def verify_token(self, token: str) -> Optional[TokenData]:
        """
        Verify a JWT token and return its data.

        Args:
            token: JWT token string

        Returns:
            TokenData if valid, None otherwise
        """
        try:
            payload = self.decode(token)
        except PyJWTError:
            return None

        roles = payload.get("role", [])
        if isinstance(roles, str):
            roles = [roles]
        return TokenData(
            user_id=payload["sub"],
            email=payload.get("email"),
            name=payload.get("name"),
            roles=roles,
            exp=payload.get("exp"),
        )


token_issuer = TokenIssuer()


def get_token_issuer() -> TokenIssuer:
    """FastAPI dependency returning the shared token issuer."""
    return token_issuer


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> TokenData:
    """
    FastAPI dependency to get the current authenticated user from token.

    Args:
        token: JWT token from Authorization header
        issuer: Token issuer holding the verification key

    Returns:
        TokenData object for the authenticated user

    Raises:
        HTTPException: If token is missing, invalid or expired
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not token:
        raise credentials_exception

    token_data = issuer.verify_token(token)
    if token_data is None:
        raise credentials_exception

    return token_data
