from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select

from app.portal.modules.access_control.models import ModuleGrant, Tab, TabGrant

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


@dataclass(frozen=True)
class Grant:
    """A role's grant on one module or tab. permissions None = view-only."""

    role_id: int
    target_id: int
    permissions: frozenset[str] | None = None


def _module_grant(row: ModuleGrant) -> Grant:
    return Grant(role_id=row.role_id, target_id=row.module_id, permissions=row.permissions)


def _tab_grant(row: TabGrant) -> Grant:
    return Grant(role_id=row.role_id, target_id=row.tab_id, permissions=row.permissions)


class PermissionStore:
    """
    Grant persistence on a SQLAlchemy session.

    Reads are plain lookups. The write and locking primitives exist for
    AssignmentManager, which owns the invariants between them.
    """

    def __init__(self, s: "Session") -> None:
        self.s = s

    # ---------- Reads ----------
    def module_grant(self, role_id: int, module_id: int) -> Grant | None:
        row = self._module_row(role_id, module_id)
        return _module_grant(row) if row else None

    def tab_grant(self, role_id: int, tab_id: int) -> Grant | None:
        row = self._tab_row(role_id, tab_id)
        return _tab_grant(row) if row else None

    def module_grants_for_role(self, role_id: int) -> dict[int, Grant]:
        rows = self.s.scalars(select(ModuleGrant).where(ModuleGrant.role_id == role_id)).all()
        return {r.module_id: _module_grant(r) for r in rows}

    def tab_grants_for_role(self, role_id: int) -> dict[int, Grant]:
        rows = self.s.scalars(select(TabGrant).where(TabGrant.role_id == role_id)).all()
        return {r.tab_id: _tab_grant(r) for r in rows}

    def count_module_grants(self, role_id: int, module_ids: Collection[int]) -> int:
        if not module_ids:
            return 0
        return self.s.scalar(
            select(func.count(ModuleGrant.id))
            .where(ModuleGrant.role_id == role_id)
            .where(ModuleGrant.module_id.in_(list(module_ids)))
        ) or 0

    # ---------- Locking ----------
    def lock_module_grants(self, role_id: int, module_ids: Collection[int]) -> list[Grant]:
        """
        SELECT ... FOR UPDATE on the role's grants for these modules.
        Held until the surrounding transaction ends. SQLite ignores the clause
        (its writer lock already serializes).
        """
        if not module_ids:
            return []
        rows = self.s.scalars(
            select(ModuleGrant)
            .where(ModuleGrant.role_id == role_id)
            .where(ModuleGrant.module_id.in_(list(module_ids)))
            .order_by(ModuleGrant.module_id.asc())
            .with_for_update()
        ).all()
        return [_module_grant(r) for r in rows]

    # ---------- Writes ----------
    def put_module_grant(
        self, role_id: int, module_id: int, permissions: frozenset[str] | None
    ) -> tuple[Grant | None, Grant]:
        """Upsert. Returns (previous, current)."""
        row = self._module_row(role_id, module_id)
        previous = _module_grant(row) if row else None
        if row is None:
            row = ModuleGrant(role_id=role_id, module_id=module_id, permissions=permissions)
            self.s.add(row)
        elif row.permissions != permissions:
            row.permissions = permissions
            row.updated_at = datetime.utcnow()
        self.s.flush()
        return previous, _module_grant(row)

    def delete_module_grant(self, role_id: int, module_id: int) -> Grant | None:
        row = self._module_row(role_id, module_id)
        if row is None:
            return None
        removed = _module_grant(row)
        self.s.delete(row)
        self.s.flush()
        return removed

    def put_tab_grant(
        self, role_id: int, tab_id: int, permissions: frozenset[str] | None
    ) -> tuple[Grant | None, Grant]:
        row = self._tab_row(role_id, tab_id)
        previous = _tab_grant(row) if row else None
        if row is None:
            row = TabGrant(role_id=role_id, tab_id=tab_id, permissions=permissions)
            self.s.add(row)
        elif row.permissions != permissions:
            row.permissions = permissions
            row.updated_at = datetime.utcnow()
        self.s.flush()
        return previous, _tab_grant(row)

    def delete_tab_grant(self, role_id: int, tab_id: int) -> Grant | None:
        row = self._tab_row(role_id, tab_id)
        if row is None:
            return None
        removed = _tab_grant(row)
        self.s.delete(row)
        self.s.flush()
        return removed

    def delete_tab_grants_of_module(self, role_id: int, module_id: int) -> list[Grant]:
        """Remove the role's grants on every tab of a module (deleted tabs included)."""
        removed = [_tab_grant(row) for row in self.s.scalars(
            select(TabGrant)
            .join(Tab, Tab.id == TabGrant.tab_id)
            .where(TabGrant.role_id == role_id)
            .where(Tab.module_id == module_id)
            .order_by(TabGrant.tab_id.asc())
        )]
        if removed:
            self.s.execute(
                delete(TabGrant)
                .where(TabGrant.role_id == role_id)
                .where(TabGrant.tab_id.in_([g.target_id for g in removed]))
                .execution_options(synchronize_session="fetch")
            )
            self.s.flush()
        return removed

    def _module_row(self, role_id: int, module_id: int) -> ModuleGrant | None:
        return self.s.scalars(
            select(ModuleGrant)
            .where(ModuleGrant.role_id == role_id)
            .where(ModuleGrant.module_id == module_id)
        ).one_or_none()

    def _tab_row(self, role_id: int, tab_id: int) -> TabGrant | None:
        return self.s.scalars(
            select(TabGrant)
            .where(TabGrant.role_id == role_id)
            .where(TabGrant.tab_id == tab_id)
        ).one_or_none()
