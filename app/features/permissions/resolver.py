"""
Effective permission resolution.

A user's effective permissions are the codes granted by every organization role
they hold, plus, only when a project is given, the codes granted by the roles
they hold on that project. Nothing is cached: every call reads the current
assignment state, so revocations apply on the next request.
"""
from dataclasses import dataclass
from typing import Iterable, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions import repository
from app.features.permissions.exceptions import ResolutionFailure
from app.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class EffectivePermissions:
    """Role codes that contributed and the resulting permission codes."""

    org_roles: tuple[str, ...]
    project_roles: tuple[str, ...]
    permissions: frozenset[str]


async def resolve_effective_permissions(
    db: AsyncSession,
    user_id: str,
    project_id: Optional[int] = None,
) -> EffectivePermissions:
    """
    Resolve the effective permissions of ``user_id``.

    Args:
        db: Database session
        user_id: User whose assignments are read
        project_id: Project scope; None means organization roles only

    Returns:
        The contributing role codes and the union of granted permission codes

    Raises:
        ResolutionFailure: If any storage read fails. No partial set is returned.
    """
    try:
        org_roles = await repository.org_roles_for_user(db, user_id)
        granted = await repository.permissions_granted_by(db, *(role.id for role in org_roles))

        project_roles = []
        if project_id is not None:
            project_roles = await repository.project_roles_for_user(db, user_id, project_id)
            granted |= await repository.permissions_granted_by(
                db, *(role.id for role in project_roles)
            )
    except SQLAlchemyError as e:
        log.error(
            "Permission resolution failed for user %s (project %s)", user_id, project_id, exc_info=True
        )
        raise ResolutionFailure() from e

    return EffectivePermissions(
        org_roles=tuple(role.code for role in org_roles),
        project_roles=tuple(role.code for role in project_roles),
        permissions=frozenset(granted),
    )


async def resolve_permissions(
    db: AsyncSession,
    user_id: str,
    project_id: Optional[int] = None,
) -> frozenset[str]:
    """Return only the permission codes of :func:`resolve_effective_permissions`."""
    effective = await resolve_effective_permissions(db, user_id, project_id)
    return effective.permissions


async def preview_permissions(
    db: AsyncSession,
    org_role_codes: Iterable[str],
    project_role_codes: Iterable[str] = (),
) -> EffectivePermissions:
    """
    Compute the permissions a proposed set of role codes would grant.

    Nothing is written. Codes missing from the catalog grant nothing and are
    left out of the returned role lists.
    """
    org_role_codes = list(dict.fromkeys(org_role_codes))
    project_role_codes = list(dict.fromkeys(project_role_codes))
    try:
        roles = await repository.roles_by_codes(db, [*org_role_codes, *project_role_codes])
        granted = await repository.permissions_granted_by(db, *(role.id for role in roles.values()))
    except SQLAlchemyError as e:
        log.error("Permission preview failed", exc_info=True)
        raise ResolutionFailure() from e

    return EffectivePermissions(
        org_roles=tuple(code for code in org_role_codes if code in roles),
        project_roles=tuple(code for code in project_role_codes if code in roles),
        permissions=frozenset(granted),
    )
