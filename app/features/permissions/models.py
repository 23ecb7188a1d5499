"""
Role and permission models for organization- and project-scoped RBAC.

Tables:
- roles, permissions: the fixed catalog, written only by the seeder
- role_permissions: the role-permission matrix, unique per pair
- org_role_assignments: user roles at organization scope, unique per pair
- project_role_assignments: user roles on one project, unique per triple
"""
from sqlalchemy import String, ForeignKey, Table, Column, Integer, Text, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid


# ============================================================================
# Association Tables
# ============================================================================

role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", String(26), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)

org_role_assignments = Table(
    "org_role_assignments",
    Base.metadata,
    Column("user_id", String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("assigned_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)

project_role_assignments = Table(
    "project_role_assignments",
    Base.metadata,
    Column("user_id", String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("project_id", Integer, ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True, index=True),
    Column("assigned_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)


# ============================================================================
# Catalog Models
# ============================================================================

class Permission(Base, TimestampMixin):
    """A single grantable capability, identified by its code (e.g. view_regulations)."""
    __tablename__ = "permissions"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Permission(id={self.id}, code={self.code!r})>"


class Role(Base, TimestampMixin):
    """A named bundle of permissions (e.g. admin, officer, viewer)."""
    __tablename__ = "roles"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, code={self.code!r})>"
