"""
Permission enforcement for route protection.

Implements:
- Project id extraction for project-scoped operations
- The "all of these codes" check built on the resolver
- FastAPI dependencies for route protection, plus named convenience checks

Every check runs in a fixed order: caller identity, then project scope, then
resolution. The outcome is either a ``PermissionContext`` handed to the route
or one of the named exceptions in ``exceptions.py``.
"""
from dataclasses import dataclass
from typing import Annotated, Iterable, Optional
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.dependencies import get_optional_user
from app.features.users.models import User
from app.features.projects.models import MAX_PROJECT_ID
from app.features.permissions.catalog import PermissionCode
from app.features.permissions.exceptions import Forbidden, InvalidScope, Unauthenticated
from app.features.permissions.resolver import resolve_permissions
from app.utils import get_logger


log = get_logger(__name__)

# Checked in this order, path parameters before query parameters
PROJECT_ID_PARAMS = ("project_id", "projectId")


@dataclass(frozen=True)
class PermissionContext:
    """What an allowed request was checked against."""

    user: User
    required: tuple[str, ...]
    project_id: Optional[int] = None


# ============================================================================
# Permission Checking Functions
# ============================================================================

def normalize_codes(codes: Iterable[PermissionCode | str]) -> tuple[str, ...]:
    """
    Validate ``codes`` against the catalog and drop duplicates, keeping order.

    Raises:
        ValueError: If a code is not a known permission
    """
    return tuple(dict.fromkeys(PermissionCode(code).value for code in codes))


def parse_project_id(raw: Optional[str]) -> int:
    """
    Parse a project id, raising InvalidScope unless it is a plain decimal
    integer between 1 and ``MAX_PROJECT_ID``.
    """
    if raw is None:
        raise InvalidScope()
    text = str(raw).strip()
    # int() alone also accepts "+5", "1_000" and non-ASCII digits
    if not (text.isascii() and text.isdigit()):
        raise InvalidScope()
    project_id = int(text)
    if not 0 < project_id <= MAX_PROJECT_ID:
        raise InvalidScope()
    return project_id


def find_project_id(request: Request) -> Optional[int]:
    """
    Read an optional project id from the path, falling back to the query string.

    Returns None when absent; raises InvalidScope when present but malformed.
    """
    for source in (request.path_params, request.query_params):
        for name in PROJECT_ID_PARAMS:
            value = source.get(name)
            if value not in (None, ""):
                return parse_project_id(value)
    return None


def extract_project_id(request: Request) -> int:
    """Read the project id a project-scoped operation requires."""
    project_id = find_project_id(request)
    if project_id is None:
        raise InvalidScope()
    return project_id


async def check_permissions(
    db: AsyncSession,
    user_id: str,
    required: Iterable[str],
    project_id: Optional[int] = None,
) -> None:
    """
    Require every code in ``required`` for ``user_id``.

    Raises:
        Forbidden: Naming the missing codes
        ResolutionFailure: If permissions could not be read
    """
    required = tuple(required)
    granted = await resolve_permissions(db, user_id, project_id)
    missing = [code for code in required if code not in granted]
    if missing:
        log.info(
            "User %s denied %s (project %s): missing %s",
            user_id, list(required), project_id, missing,
        )
        raise Forbidden(missing=missing, required=required)


# ============================================================================
# FastAPI Dependencies
# ============================================================================

def require_permissions(*codes: PermissionCode | str, project_scoped: bool = False):
    """
    FastAPI dependency requiring all of ``codes``.

    Usage:
        @router.post("/projects/{project_id}/controls/{control_id}/approve")
        async def approve_control(
            ctx: PermissionContext = Depends(
                require_permissions(PermissionCode.APPROVE_CONTROLS, project_scoped=True)
            )
        ):
            ...

    Args:
        codes: Required permission codes
        project_scoped: Read a project id from the request and include the
            caller's roles on that project

    Returns:
        Dependency function that returns a PermissionContext when allowed
    """
    required = normalize_codes(codes)

    async def permission_dependency(
        request: Request,
        db: Annotated[AsyncSession, Depends(get_db)],
        user: Annotated[Optional[User], Depends(get_optional_user)],
    ) -> PermissionContext:
        if user is None:
            raise Unauthenticated()
        project_id = extract_project_id(request) if project_scoped else None
        await check_permissions(db, user.id, required, project_id)
        return PermissionContext(user=user, required=required, project_id=project_id)

    return permission_dependency


def require_self_or_permissions(*codes: PermissionCode | str):
    """
    Allow a caller acting on their own ``user_id`` path parameter; anyone else
    needs all of ``codes`` at organization scope.
    """
    required = normalize_codes(codes)

    async def permission_dependency(
        user_id: str,
        db: Annotated[AsyncSession, Depends(get_db)],
        user: Annotated[Optional[User], Depends(get_optional_user)],
    ) -> PermissionContext:
        if user is None:
            raise Unauthenticated()
        if user.id == user_id:
            return PermissionContext(user=user, required=())
        await check_permissions(db, user.id, required)
        return PermissionContext(user=user, required=required)

    return permission_dependency


# Convenience checks for common permission patterns
def require_view_regulations():
    return require_permissions(PermissionCode.VIEW_REGULATIONS)


def require_create_projects():
    return require_permissions(PermissionCode.CREATE_PROJECTS_FROM_REGULATIONS)


def require_assign_projects(project_scoped: bool = False):
    return require_permissions(PermissionCode.ASSIGN_PROJECTS_TO_USERS, project_scoped=project_scoped)


def require_create_tasks():
    return require_permissions(PermissionCode.CREATE_TASKS)


def require_create_risks():
    return require_permissions(PermissionCode.CREATE_RISKS)


def require_view_evidence():
    return require_permissions(PermissionCode.VIEW_EVIDENCE_REPOSITORY)


def require_edit_evidence():
    return require_permissions(PermissionCode.EDIT_EVIDENCE_REPOSITORY)


def require_review_evidence():
    return require_permissions(PermissionCode.REVIEW_EVIDENCES_SUBMITTED)


def require_approve_controls(project_scoped: bool = True):
    return require_permissions(PermissionCode.APPROVE_CONTROLS, project_scoped=project_scoped)


def require_org_settings():
    return require_permissions(PermissionCode.CHANGE_ORGANIZATION_SETTINGS)


def require_user_permissions():
    return require_permissions(PermissionCode.CHANGE_USER_PERMISSIONS)


# Multi-permission checks
def require_evidence_access():
    return require_permissions(
        PermissionCode.VIEW_EVIDENCE_REPOSITORY,
        PermissionCode.REVIEW_EVIDENCES_SUBMITTED,
    )


def require_project_management():
    return require_permissions(
        PermissionCode.CREATE_PROJECTS_FROM_REGULATIONS,
        PermissionCode.ASSIGN_PROJECTS_TO_USERS,
    )


def require_admin_access():
    return require_permissions(
        PermissionCode.CHANGE_ORGANIZATION_SETTINGS,
        PermissionCode.CHANGE_USER_PERMISSIONS,
    )
