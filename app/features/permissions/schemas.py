"""
Pydantic schemas for the role and permission endpoints.

Request bodies accept camelCase or snake_case keys; responses use camelCase.
"""
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.features.projects.models import MAX_PROJECT_ID


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Catalog Schemas
# ============================================================================

class RoleResponse(BaseModel):
    """Schema for role response."""
    id: str
    code: str
    name: str

    model_config = ConfigDict(from_attributes=True)


class PermissionResponse(BaseModel):
    """Schema for permission response."""
    id: str
    code: str
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Assignment Schemas
# ============================================================================

class OrgRolesUpdate(CamelModel):
    """Role codes to add to and remove from a user's organization roles."""
    add: List[str] = Field(default_factory=list)
    remove: List[str] = Field(default_factory=list)


class ProjectRolesUpdate(CamelModel):
    """Role codes to add to and remove from a user's roles on one project."""
    project_id: int = Field(..., gt=0, le=MAX_PROJECT_ID)
    add: List[str] = Field(default_factory=list)
    remove: List[str] = Field(default_factory=list)


class BulkRoleAssignment(CamelModel):
    """The same organization and/or project role changes for several users."""
    user_ids: List[str] = Field(..., min_length=1)
    org_roles: Optional[OrgRolesUpdate] = None
    project_roles: Optional[ProjectRolesUpdate] = None


class BulkRoleAssignmentResponse(CamelModel):
    updated_user_ids: List[str]


class ProjectRoleSummary(CamelModel):
    project_id: int
    project_name: str
    roles: List[str] = []


# ============================================================================
# Effective Permission Schemas
# ============================================================================

class EffectivePermissionsResponse(CamelModel):
    """Roles that contributed and the resulting permission codes."""
    org_roles: List[str] = []
    project_roles: List[str] = []
    permissions: List[str] = []


class PermissionsPreviewRequest(CamelModel):
    """Proposed role codes to evaluate without saving them."""
    org_roles: List[str] = Field(default_factory=list)
    project_id: Optional[int] = Field(None, gt=0, le=MAX_PROJECT_ID)
    project_roles: List[str] = Field(default_factory=list)
