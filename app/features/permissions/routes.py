"""
Role and permission API routes.

Provides the role/permission catalog, organization, project and bulk role
management, and effective permission lookups.
"""
from typing import Annotated, List, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.features.projects.models import Project
from app.features.notifications.service import (
    NotificationSender,
    RoleAssignmentsChanged,
    get_notification_sender,
)
from app.features.permissions import repository
from app.features.permissions.catalog import PermissionCode
from app.features.permissions.dependencies import (
    PermissionContext,
    find_project_id,
    require_self_or_permissions,
    require_user_permissions,
)
from app.features.permissions.models import Role
from app.features.permissions.resolver import (
    EffectivePermissions,
    preview_permissions,
    resolve_effective_permissions,
)
from app.features.permissions.schemas import (
    BulkRoleAssignment,
    BulkRoleAssignmentResponse,
    EffectivePermissionsResponse,
    OrgRolesUpdate,
    PermissionResponse,
    PermissionsPreviewRequest,
    ProjectRoleSummary,
    ProjectRolesUpdate,
    RoleResponse,
)
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


def _to_response(effective: EffectivePermissions) -> EffectivePermissionsResponse:
    return EffectivePermissionsResponse(
        org_roles=list(effective.org_roles),
        project_roles=list(effective.project_roles),
        permissions=sorted(effective.permissions),
    )


async def _get_user_or_404(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


async def _roles_for_codes(db: AsyncSession, codes: List[str]) -> dict[str, Role]:
    """Resolve role codes, rejecting any that are not in the catalog."""
    roles = await repository.roles_by_codes(db, codes)
    unknown = sorted(set(codes) - set(roles))
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown role codes: {', '.join(unknown)}"
        )
    return roles


# ============================================================================
# Catalog Routes
# ============================================================================

@router.get("/roles", response_model=List[RoleResponse])
async def list_roles(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    """List every role in the catalog."""
    return await repository.list_roles(db)


@router.get("/permissions", response_model=List[PermissionResponse])
async def list_permissions(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    """List every permission in the catalog."""
    return await repository.list_permissions(db)


# ============================================================================
# Assignment Routes
# ============================================================================

@router.put("/users/{user_id}/org-roles", response_model=EffectivePermissionsResponse)
async def update_org_roles(
    user_id: str,
    update: OrgRolesUpdate,
    background_tasks: BackgroundTasks,
    ctx: Annotated[PermissionContext, Depends(require_user_permissions())],
    db: Annotated[AsyncSession, Depends(get_db)],
    sender: Annotated[NotificationSender, Depends(get_notification_sender)],
):
    """Add and remove organization roles for a user. Removals apply first."""
    await _get_user_or_404(db, user_id)
    roles = await _roles_for_codes(db, [*update.add, *update.remove])

    await repository.remove_org_roles(db, user_id, [roles[code].id for code in update.remove])
    await repository.add_org_roles(db, user_id, [roles[code].id for code in update.add])
    await db.commit()

    background_tasks.add_task(
        sender.send,
        RoleAssignmentsChanged(
            user_id=user_id,
            changed_by_id=ctx.user.id,
            added=tuple(update.add),
            removed=tuple(update.remove),
        ),
    )

    return _to_response(await resolve_effective_permissions(db, user_id))


@router.post("/users/{user_id}/project-roles", response_model=EffectivePermissionsResponse)
async def update_project_roles(
    user_id: str,
    update: ProjectRolesUpdate,
    background_tasks: BackgroundTasks,
    ctx: Annotated[PermissionContext, Depends(require_user_permissions())],
    db: Annotated[AsyncSession, Depends(get_db)],
    sender: Annotated[NotificationSender, Depends(get_notification_sender)],
):
    """Add and remove a user's roles on one project. Removals apply first."""
    await _get_user_or_404(db, user_id)
    if await db.get(Project, update.project_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    roles = await _roles_for_codes(db, [*update.add, *update.remove])

    await repository.remove_project_roles(
        db, user_id, update.project_id, [roles[code].id for code in update.remove]
    )
    await repository.add_project_roles(
        db, user_id, update.project_id, [roles[code].id for code in update.add]
    )
    await db.commit()

    background_tasks.add_task(
        sender.send,
        RoleAssignmentsChanged(
            user_id=user_id,
            changed_by_id=ctx.user.id,
            added=tuple(update.add),
            removed=tuple(update.remove),
            project_id=update.project_id,
        ),
    )

    return _to_response(await resolve_effective_permissions(db, user_id, update.project_id))


@router.post("/admin/users/bulk-assign", response_model=BulkRoleAssignmentResponse)
async def bulk_assign_roles(
    body: BulkRoleAssignment,
    background_tasks: BackgroundTasks,
    ctx: Annotated[PermissionContext, Depends(require_user_permissions())],
    db: Annotated[AsyncSession, Depends(get_db)],
    sender: Annotated[NotificationSender, Depends(get_notification_sender)],
):
    """
    Apply the same role changes to several users in one transaction.

    Every user, the project and every role code are checked before anything
    is written, so the request either applies to all users or to none.
    """
    user_ids = list(dict.fromkeys(body.user_ids))
    unknown_users = sorted(set(user_ids) - await repository.existing_user_ids(db, user_ids))
    if unknown_users:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Users not found: {', '.join(unknown_users)}"
        )

    org = body.org_roles or OrgRolesUpdate()
    project = body.project_roles
    codes = [*org.add, *org.remove]
    if project is not None:
        if await db.get(Project, project.project_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
        codes += [*project.add, *project.remove]
    roles = await _roles_for_codes(db, codes)

    for user_id in user_ids:
        await repository.remove_org_roles(db, user_id, [roles[code].id for code in org.remove])
        await repository.add_org_roles(db, user_id, [roles[code].id for code in org.add])
        if project is not None:
            await repository.remove_project_roles(
                db, user_id, project.project_id, [roles[code].id for code in project.remove]
            )
            await repository.add_project_roles(
                db, user_id, project.project_id, [roles[code].id for code in project.add]
            )
    await db.commit()
    log.info(f"User {ctx.user.id} updated roles of {len(user_ids)} users")

    # One event per user and changed scope
    for user_id in user_ids:
        if org.add or org.remove:
            background_tasks.add_task(
                sender.send,
                RoleAssignmentsChanged(
                    user_id=user_id,
                    changed_by_id=ctx.user.id,
                    added=tuple(org.add),
                    removed=tuple(org.remove),
                ),
            )
        if project is not None and (project.add or project.remove):
            background_tasks.add_task(
                sender.send,
                RoleAssignmentsChanged(
                    user_id=user_id,
                    changed_by_id=ctx.user.id,
                    added=tuple(project.add),
                    removed=tuple(project.remove),
                    project_id=project.project_id,
                ),
            )

    return BulkRoleAssignmentResponse(updated_user_ids=user_ids)


@router.get("/users/{user_id}/project-roles", response_model=List[ProjectRoleSummary])
async def list_project_roles(
    user_id: str,
    ctx: Annotated[
        PermissionContext, Depends(require_self_or_permissions(PermissionCode.CHANGE_USER_PERMISSIONS))
    ],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """List a user's roles grouped by project."""
    await _get_user_or_404(db, user_id)
    summaries: dict[int, ProjectRoleSummary] = {}
    for row in await repository.project_roles_by_project(db, user_id):
        summary = summaries.setdefault(
            row.project_id,
            ProjectRoleSummary(project_id=row.project_id, project_name=row.project_name),
        )
        summary.roles.append(row.role_code)
    return list(summaries.values())


# ============================================================================
# Effective Permission Routes
# ============================================================================

@router.get("/users/{user_id}/effective-permissions", response_model=EffectivePermissionsResponse)
async def get_effective_permissions(
    user_id: str,
    ctx: Annotated[
        PermissionContext, Depends(require_self_or_permissions(PermissionCode.CHANGE_USER_PERMISSIONS))
    ],
    project_id: Annotated[Optional[int], Depends(find_project_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Get a user's organization roles, project roles and effective permissions."""
    await _get_user_or_404(db, user_id)
    return _to_response(await resolve_effective_permissions(db, user_id, project_id))


@router.post(
    "/users/{user_id}/effective-permissions/preview",
    response_model=EffectivePermissionsResponse,
)
async def preview_effective_permissions(
    user_id: str,
    body: PermissionsPreviewRequest,
    ctx: Annotated[PermissionContext, Depends(require_user_permissions())],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Compute the permissions a proposed role selection would grant, without saving it."""
    await _get_user_or_404(db, user_id)
    project_roles = body.project_roles if body.project_id is not None else []
    return _to_response(await preview_permissions(db, body.org_roles, project_roles))


@router.get("/me/permissions", response_model=EffectivePermissionsResponse)
async def get_my_permissions(
    current_user: Annotated[User, Depends(get_current_user)],
    project_id: Annotated[Optional[int], Depends(find_project_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Get the caller's own effective permissions."""
    return _to_response(await resolve_effective_permissions(db, current_user.id, project_id))
