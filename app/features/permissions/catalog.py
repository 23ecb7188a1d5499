"""
Fixed catalog of permission and role codes.

This module is the single source of truth for codes, their labels and the
role-permission matrix. Requirements are declared with ``PermissionCode``
members, so a misspelt code fails at import time instead of silently
granting nothing.
"""
import enum
from typing import Mapping


class PermissionCode(str, enum.Enum):
    VIEW_REGULATIONS = "view_regulations"
    CREATE_PROJECTS_FROM_REGULATIONS = "create_projects_from_regulations"
    ASSIGN_PROJECTS_TO_USERS = "assign_projects_to_users"
    CHANGE_ORGANIZATION_SETTINGS = "change_organization_settings"
    CHANGE_USER_PERMISSIONS = "change_user_permissions"
    CREATE_TASKS = "create_tasks"
    CREATE_RISKS = "create_risks"
    REVIEW_EVIDENCES_SUBMITTED = "review_evidences_submitted"
    VIEW_EVIDENCE_REPOSITORY = "view_evidence_repository"
    EDIT_EVIDENCE_REPOSITORY = "edit_evidence_repository"
    APPROVE_CONTROLS = "approve_controls"


class RoleCode(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"
    OFFICER = "officer"
    COLLABORATOR = "collaborator"
    VIEWER = "viewer"


PERMISSION_DESCRIPTIONS: Mapping[PermissionCode, str] = {
    PermissionCode.VIEW_REGULATIONS: "View regulations and compliance frameworks",
    PermissionCode.CREATE_PROJECTS_FROM_REGULATIONS: "Create new projects based on regulatory frameworks",
    PermissionCode.ASSIGN_PROJECTS_TO_USERS: "Assign projects and tasks to team members",
    PermissionCode.CHANGE_ORGANIZATION_SETTINGS: "Modify organization-wide settings and configurations",
    PermissionCode.CHANGE_USER_PERMISSIONS: "Manage user roles and permissions",
    PermissionCode.CREATE_TASKS: "Create and manage compliance tasks",
    PermissionCode.CREATE_RISKS: "Create and manage compliance risks",
    PermissionCode.REVIEW_EVIDENCES_SUBMITTED: "Review and validate submitted evidence",
    PermissionCode.VIEW_EVIDENCE_REPOSITORY: "Access and browse the evidence repository",
    PermissionCode.EDIT_EVIDENCE_REPOSITORY: "Edit and manage evidence files and metadata",
    PermissionCode.APPROVE_CONTROLS: "Approve compliance control implementations",
}

ROLE_NAMES: Mapping[RoleCode, str] = {
    RoleCode.ADMIN: "Administrator",
    RoleCode.USER: "User",
    RoleCode.OFFICER: "Compliance Officer",
    RoleCode.COLLABORATOR: "Collaborator",
    RoleCode.VIEWER: "Viewer",
}

_READ_ONLY = (
    PermissionCode.VIEW_REGULATIONS,
    PermissionCode.REVIEW_EVIDENCES_SUBMITTED,
    PermissionCode.VIEW_EVIDENCE_REPOSITORY,
)

PERMISSION_MATRIX: Mapping[RoleCode, tuple[PermissionCode, ...]] = {
    RoleCode.ADMIN: tuple(PermissionCode),
    RoleCode.USER: (
        PermissionCode.VIEW_REGULATIONS,
        PermissionCode.CREATE_PROJECTS_FROM_REGULATIONS,
        PermissionCode.ASSIGN_PROJECTS_TO_USERS,
        PermissionCode.CREATE_TASKS,
        PermissionCode.CREATE_RISKS,
        PermissionCode.REVIEW_EVIDENCES_SUBMITTED,
        PermissionCode.VIEW_EVIDENCE_REPOSITORY,
        PermissionCode.EDIT_EVIDENCE_REPOSITORY,
    ),
    RoleCode.OFFICER: (PermissionCode.APPROVE_CONTROLS,),
    RoleCode.COLLABORATOR: _READ_ONLY,
    RoleCode.VIEWER: _READ_ONLY,
}
