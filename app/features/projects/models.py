"""
Project model.

Projects are managed elsewhere; this table exists so project-scoped role
assignments can reference a project and report its name.
"""
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin


# Largest id a 32-bit INTEGER column holds on every supported backend
MAX_PROJECT_ID = 2**31 - 1


class Project(Base, TimestampMixin):
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, name={self.name!r})>"
