from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.portal.models import Base
from app.portal.modules.access_control.permissions import PermissionSet


class Module(Base):
    """
    Navigational module. Parents are pure containers (no tabs, no extra permissions);
    a child points at a parent and nesting stops there.
    """

    __tablename__ = "modules"
    __table_args__ = (
        Index("idx_modules_parent_id", "parent_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)  # e.g. "Empresas"
    icon: Mapped[str] = mapped_column(String(50), nullable=False)  # e.g. "building-2"
    route: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)  # e.g. "/empresas"
    is_parent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    parent_id: Mapped[int | None] = mapped_column(ForeignKey("modules.id", ondelete="SET NULL"), nullable=True)
    extra_permissions: Mapped[frozenset[str] | None] = mapped_column(PermissionSet(), nullable=True)

    # Soft delete
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class Tab(Base):
    __tablename__ = "tabs"
    __table_args__ = (
        UniqueConstraint("module_id", "name", name="uq_tabs_module_name"),
        UniqueConstraint("module_id", "route", name="uq_tabs_module_route"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    module_id: Mapped[int] = mapped_column(ForeignKey("modules.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(50), nullable=False)  # e.g. "Listado"
    route: Mapped[str] = mapped_column(String(255), nullable=False)  # relative to the module, e.g. "/listado"
    extra_permissions: Mapped[frozenset[str] | None] = mapped_column(PermissionSet(), nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class ModuleGrant(Base):
    """Role -> module grant. permissions NULL means visible, read-only."""

    __tablename__ = "module_grants"
    __table_args__ = (
        UniqueConstraint("role_id", "module_id", name="uq_module_grants_role_module"),
        Index("idx_module_grants_module_id", "module_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    role_id: Mapped[int] = mapped_column(ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
    module_id: Mapped[int] = mapped_column(ForeignKey("modules.id", ondelete="CASCADE"), nullable=False)
    permissions: Mapped[frozenset[str] | None] = mapped_column(PermissionSet(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class TabGrant(Base):
    """Role -> tab grant. Only valid while the role also holds a grant on the tab's module."""

    __tablename__ = "tab_grants"
    __table_args__ = (
        UniqueConstraint("role_id", "tab_id", name="uq_tab_grants_role_tab"),
        Index("idx_tab_grants_tab_id", "tab_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    role_id: Mapped[int] = mapped_column(ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
    tab_id: Mapped[int] = mapped_column(ForeignKey("tabs.id", ondelete="CASCADE"), nullable=False)
    permissions: Mapped[frozenset[str] | None] = mapped_column(PermissionSet(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
