"""
Reference roles and the bootstrap that installs them.

The identifiers are fixed so foreign keys stay valid across restarts and
migrations. Seeding is idempotent: existing rows are left alone, and a role
inserted by another process between the check and the commit counts as seeded.
"""
import uuid
from typing import Dict, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from user_service.auth.models import Role

ADMIN_ROLE = "Admin"
USER_ROLE = "User"
SELLER_ROLE = "Seller"

DEFAULT_ROLE = USER_ROLE

SEED_ROLES: List[Dict] = [
    {
        "id": uuid.UUID("11111111-1111-1111-1111-111111111111"),
        "name": ADMIN_ROLE,
        "description": "Administrator with full access",
    },
    {
        "id": uuid.UUID("22222222-2222-2222-2222-222222222222"),
        "name": USER_ROLE,
        "description": "Regular user",
    },
    {
        "id": uuid.UUID("33333333-3333-3333-3333-333333333333"),
        "name": SELLER_ROLE,
        "description": "User who can sell products",
    },
]


async def _role_exists(db: AsyncSession, role_id: uuid.UUID) -> bool:
    result = await db.execute(select(Role.id).where(Role.id == role_id))
    return result.scalar_one_or_none() is not None


async def seed_roles(db: AsyncSession) -> List[str]:
    """
    Insert any missing reference roles.

    Args:
        db: Database session

    Returns:
        Names of the roles that were created
    """
    created = []
    for spec in SEED_ROLES:
        if await _role_exists(db, spec["id"]):
            continue
        db.add(Role(**spec))
        try:
            await db.commit()
        except IntegrityError:
            # Another worker seeded it first
            await db.rollback()
            continue
        created.append(spec["name"])
    return created
