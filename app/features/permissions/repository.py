"""
Catalog and assignment store queries.

Lookups for codes that are not in the catalog return None or an empty result;
"not in the catalog" always means "grants nothing". Storage errors are not
handled here and propagate as ``SQLAlchemyError``.
"""
from typing import Any, Iterable, Mapping, Optional, Sequence
from sqlalchemy import Row, Table, delete, insert, literal, select, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions.models import (
    Permission,
    Role,
    role_permissions,
    org_role_assignments,
    project_role_assignments,
)
from app.features.projects.models import Project
from app.features.users.models import User


# ============================================================================
# Idempotent inserts
# ============================================================================

async def insert_if_absent(
    db: AsyncSession,
    table: Table,
    values: Mapping[str, Any],
    conflict_columns: Sequence[str],
) -> bool:
    """
    Insert a row unless one with the same ``conflict_columns`` exists.

    Uses ON CONFLICT DO NOTHING on SQLite and PostgreSQL so concurrent callers
    cannot create duplicates; other backends fall back to a savepoint that
    swallows only the unique violation.

    Returns:
        True if a row was inserted
    """
    dialect = db.get_bind().dialect.name
    if dialect in ("sqlite", "postgresql"):
        dialect_insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
        stmt = dialect_insert(table).values(**values).on_conflict_do_nothing(
            index_elements=list(conflict_columns)
        )
        result = await db.execute(stmt)
        return result.rowcount > 0

    try:
        async with db.begin_nested():
            await db.execute(insert(table).values(**values))
    except IntegrityError:
        return False
    return True


# ============================================================================
# Catalog lookups
# ============================================================================

async def role_by_code(db: AsyncSession, code: str) -> Optional[Role]:
    result = await db.execute(select(Role).where(Role.code == code))
    return result.scalars().first()


async def permission_by_code(db: AsyncSession, code: str) -> Optional[Permission]:
    result = await db.execute(select(Permission).where(Permission.code == code))
    return result.scalars().first()


async def roles_by_codes(db: AsyncSession, codes: Iterable[str]) -> dict[str, Role]:
    """Map each known code to its Role; unknown codes are left out."""
    codes = set(codes)
    if not codes:
        return {}
    result = await db.execute(select(Role).where(Role.code.in_(codes)))
    return {role.code: role for role in result.scalars().all()}


async def list_roles(db: AsyncSession) -> Sequence[Role]:
    result = await db.execute(select(Role).order_by(Role.name))
    return result.scalars().all()


async def list_permissions(db: AsyncSession) -> Sequence[Permission]:
    result = await db.execute(select(Permission).order_by(Permission.code))
    return result.scalars().all()


async def permissions_granted_by(db: AsyncSession, *role_ids: str) -> set[str]:
    """Return the permission codes granted by any of ``role_ids``."""
    if not role_ids:
        return set()
    stmt = (
        select(Permission.code)
        .join(role_permissions, role_permissions.c.permission_id == Permission.id)
        .where(role_permissions.c.role_id.in_(role_ids))
    )
    result = await db.execute(stmt)
    return set(result.scalars().all())


# ============================================================================
# Assignment lookups
# ============================================================================

async def org_roles_for_user(db: AsyncSession, user_id: str) -> Sequence[Row]:
    """Return ``(id, code)`` rows for every organization role held by ``user_id``."""
    stmt = (
        select(Role.id, Role.code)
        .join(org_role_assignments, org_role_assignments.c.role_id == Role.id)
        .where(org_role_assignments.c.user_id == user_id)
        .order_by(Role.code)
    )
    result = await db.execute(stmt)
    return result.all()


async def project_roles_for_user(db: AsyncSession, user_id: str, project_id: int) -> Sequence[Row]:
    """Return ``(id, code)`` rows for the roles ``user_id`` holds on one project."""
    stmt = (
        select(Role.id, Role.code)
        .join(project_role_assignments, project_role_assignments.c.role_id == Role.id)
        .where(
            project_role_assignments.c.user_id == user_id,
            project_role_assignments.c.project_id == project_id,
        )
        .order_by(Role.code)
    )
    result = await db.execute(stmt)
    return result.all()


async def project_roles_by_project(db: AsyncSession, user_id: str) -> Sequence[Row]:
    """Return ``(project_id, project_name, role_code)`` rows across all projects."""
    stmt = (
        select(
            project_role_assignments.c.project_id,
            Project.name.label("project_name"),
            Role.code.label("role_code"),
        )
        .join(Project, Project.id == project_role_assignments.c.project_id)
        .join(Role, Role.id == project_role_assignments.c.role_id)
        .where(project_role_assignments.c.user_id == user_id)
        .order_by(project_role_assignments.c.project_id, Role.code)
    )
    result = await db.execute(stmt)
    return result.all()


async def existing_user_ids(db: AsyncSession, user_ids: Iterable[str]) -> set[str]:
    """Return the subset of ``user_ids`` that exist."""
    user_ids = set(user_ids)
    if not user_ids:
        return set()
    result = await db.execute(select(User.id).where(User.id.in_(user_ids)))
    return set(result.scalars().all())


async def count_org_assignments(db: AsyncSession) -> int:
    result = await db.execute(select(func.count()).select_from(org_role_assignments))
    return result.scalar() or 0


# ============================================================================
# Assignment writes
# ============================================================================

async def add_org_roles(db: AsyncSession, user_id: str, role_ids: Iterable[str]) -> int:
    added = 0
    for role_id in role_ids:
        if await insert_if_absent(
            db,
            org_role_assignments,
            {"user_id": user_id, "role_id": role_id},
            ("user_id", "role_id"),
        ):
            added += 1
    return added


async def remove_org_roles(db: AsyncSession, user_id: str, role_ids: Iterable[str]) -> int:
    role_ids = list(role_ids)
    if not role_ids:
        return 0
    result = await db.execute(
        delete(org_role_assignments).where(
            org_role_assignments.c.user_id == user_id,
            org_role_assignments.c.role_id.in_(role_ids),
        )
    )
    return result.rowcount


async def add_project_roles(
    db: AsyncSession, user_id: str, project_id: int, role_ids: Iterable[str]
) -> int:
    added = 0
    for role_id in role_ids:
        if await insert_if_absent(
            db,
            project_role_assignments,
            {"user_id": user_id, "role_id": role_id, "project_id": project_id},
            ("user_id", "role_id", "project_id"),
        ):
            added += 1
    return added


async def remove_project_roles(
    db: AsyncSession, user_id: str, project_id: int, role_ids: Iterable[str]
) -> int:
    role_ids = list(role_ids)
    if not role_ids:
        return 0
    result = await db.execute(
        delete(project_role_assignments).where(
            project_role_assignments.c.user_id == user_id,
            project_role_assignments.c.project_id == project_id,
            project_role_assignments.c.role_id.in_(role_ids),
        )
    )
    return result.rowcount


async def grant_org_role_if_none_assigned(db: AsyncSession, user_id: str, role_id: str) -> bool:
    """
    Grant ``role_id`` to ``user_id`` only when no organization assignment exists.

    The emptiness check and the insert run as one INSERT ... SELECT ... WHERE
    NOT EXISTS statement, so two concurrent callers cannot both succeed.
    """
    existing = select(org_role_assignments.c.user_id).correlate(None)
    stmt = insert(org_role_assignments).from_select(
        ["user_id", "role_id"],
        select(literal(user_id), literal(role_id)).where(~existing.exists()),
    )
    result = await db.execute(stmt)
    return result.rowcount > 0
