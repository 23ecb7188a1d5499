"""
Idempotent seeding of the role/permission catalog.

Brings the roles, permissions and role-permission matrix to the fixed state in
``catalog.py`` and grants the bootstrap admin role when nobody holds an
organization role yet. Every write is an insert-if-absent, so seeding can run
at every startup and from several processes at once.
"""
import enum
from typing import Iterable, Mapping, Optional
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions import repository
from app.features.permissions.catalog import (
    PERMISSION_DESCRIPTIONS,
    PERMISSION_MATRIX,
    ROLE_NAMES,
    RoleCode,
)
from app.features.permissions.exceptions import SeedingFailure
from app.features.permissions.models import Permission, Role, role_permissions
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


def _plain(code: str | enum.Enum) -> str:
    return getattr(code, "value", code)


async def seed_roles(db: AsyncSession, roles: Mapping[str, str]) -> None:
    """Insert each (code, name) role unless its code exists."""
    log.info("Seeding roles...")
    for code, name in roles.items():
        code = _plain(code)
        created = await repository.insert_if_absent(
            db, Role.__table__, {"code": code, "name": name}, ("code",)
        )
        if created:
            log.info(f"Created role: {code}")
        else:
            log.debug(f"Role '{code}' already exists, skipping")


async def seed_permissions(db: AsyncSession, permissions: Mapping[str, str]) -> None:
    """Insert each (code, description) permission unless its code exists."""
    log.info("Seeding permissions...")
    for code, description in permissions.items():
        code = _plain(code)
        created = await repository.insert_if_absent(
            db, Permission.__table__, {"code": code, "description": description}, ("code",)
        )
        if created:
            log.info(f"Created permission: {code}")
        else:
            log.debug(f"Permission '{code}' already exists, skipping")


async def seed_role_permissions(db: AsyncSession, matrix: Mapping[str, Iterable[str]]) -> int:
    """
    Link roles to permissions according to ``matrix``.

    A role or permission code missing from the catalog skips only that mapping.

    Returns:
        Number of mappings skipped
    """
    log.info("Seeding role-permission mappings...")
    roles = {role.code: role.id for role in (await db.execute(select(Role))).scalars().all()}
    permissions = {
        perm.code: perm.id for perm in (await db.execute(select(Permission))).scalars().all()
    }

    skipped = 0
    for role_code, permission_codes in matrix.items():
        role_code = _plain(role_code)
        role_id = roles.get(role_code)
        if role_id is None:
            log.warning(f"Role '{role_code}' not found, skipping its permissions")
            skipped += 1
            continue

        for permission_code in permission_codes:
            permission_code = _plain(permission_code)
            permission_id = permissions.get(permission_code)
            if permission_id is None:
                log.warning(f"Permission '{permission_code}' not found for role '{role_code}'")
                skipped += 1
                continue

            await repository.insert_if_absent(
                db,
                role_permissions,
                {"role_id": role_id, "permission_id": permission_id},
                ("role_id", "permission_id"),
            )
    return skipped


async def _bootstrap_candidate(db: AsyncSession, admin_email: Optional[str]) -> Optional[User]:
    if admin_email:
        result = await db.execute(select(User).where(User.email == admin_email))
        user = result.scalars().first()
        if user is None:
            log.warning(f"Bootstrap admin '{admin_email}' does not exist yet")
        return user
    # ULIDs sort by creation time
    result = await db.execute(select(User).order_by(User.created_at, User.id).limit(1))
    return result.scalars().first()


async def bootstrap_admin(db: AsyncSession, admin_email: Optional[str] = None) -> Optional[User]:
    """
    Grant the admin role to the designated user if no organization role exists.

    Args:
        db: Database session
        admin_email: Designated user; the oldest user when not set

    Returns:
        The user that was granted admin, or None if nothing was done
    """
    if await repository.count_org_assignments(db) > 0:
        log.debug("Organization roles already assigned, skipping bootstrap admin")
        return None

    user = await _bootstrap_candidate(db, admin_email)
    admin_role = await repository.role_by_code(db, RoleCode.ADMIN.value)
    if user is None or admin_role is None:
        return None

    # The count above is only a shortcut; this insert re-checks atomically
    if not await repository.grant_org_role_if_none_assigned(db, user.id, admin_role.id):
        return None

    log.info(f"Admin role assigned to user {user.email}")
    return user


async def seed_rbac(
    db: AsyncSession,
    *,
    admin_email: Optional[str] = None,
    roles: Mapping[str, str] = ROLE_NAMES,
    permissions: Mapping[str, str] = PERMISSION_DESCRIPTIONS,
    matrix: Mapping[str, Iterable[str]] = PERMISSION_MATRIX,
) -> None:
    """
    Seed roles, permissions, the role-permission matrix and the bootstrap admin.

    Raises:
        SeedingFailure: If storage fails; the transaction is rolled back
    """
    log.info("Seeding RBAC system...")
    try:
        await seed_roles(db, roles)
        await seed_permissions(db, permissions)
        await db.commit()

        await seed_role_permissions(db, matrix)
        await db.commit()

        await bootstrap_admin(db, admin_email)
        await db.commit()
    except SQLAlchemyError as e:
        log.error(f"Error seeding RBAC system: {e}", exc_info=True)
        await db.rollback()
        raise SeedingFailure(str(e)) from e

    log.info("RBAC system seeded successfully")
