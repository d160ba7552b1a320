from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import select

from app.portal.modules.access_control.errors import NotFoundError
from app.portal.modules.access_control.models import Module, Tab

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


@dataclass(frozen=True)
class ModuleNode:
    id: int
    name: str
    icon: str
    route: str
    is_parent: bool = False
    parent_id: int | None = None
    extra_permissions: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class TabNode:
    id: int
    module_id: int
    name: str
    route: str
    extra_permissions: frozenset[str] = field(default_factory=frozenset)


class ModuleGraph:
    """
    Immutable snapshot of the live module/tab catalogue.

    Every ordering is ascending id ("first created wins"). Soft-deleted rows are
    absent, and so is anything under a soft-deleted module: a child whose parent
    is gone, and the tabs of a module that is gone.
    """

    def __init__(self, modules: Iterable[ModuleNode], tabs: Iterable[TabNode]) -> None:
        candidates = {m.id: m for m in modules}
        self._modules: dict[int, ModuleNode] = {
            m.id: m for m in candidates.values() if m.parent_id is None or m.parent_id in candidates
        }
        self._by_route: dict[str, ModuleNode] = {m.route: m for m in self._modules.values()}
        self._children: dict[int, list[ModuleNode]] = {mid: [] for mid in self._modules}
        for m in sorted(self._modules.values(), key=lambda n: n.id):
            if m.parent_id is not None:
                self._children[m.parent_id].append(m)

        self._tabs: dict[int, TabNode] = {}
        self._tabs_by_module: dict[int, list[TabNode]] = {mid: [] for mid in self._modules}
        for t in sorted(tabs, key=lambda n: n.id):
            if t.module_id not in self._modules:
                continue
            self._tabs[t.id] = t
            self._tabs_by_module[t.module_id].append(t)

    @classmethod
    def load(cls, s: "Session") -> "ModuleGraph":
        """Build from two plain queries; no relationship loading."""
        module_rows = s.execute(
            select(
                Module.id,
                Module.name,
                Module.icon,
                Module.route,
                Module.is_parent,
                Module.parent_id,
                Module.extra_permissions,
            )
            .where(Module.is_deleted.is_(False))
            .order_by(Module.id.asc())
        ).all()
        tab_rows = s.execute(
            select(Tab.id, Tab.module_id, Tab.name, Tab.route, Tab.extra_permissions)
            .where(Tab.is_deleted.is_(False))
            .order_by(Tab.id.asc())
        ).all()
        modules = [
            ModuleNode(
                id=r.id,
                name=r.name,
                icon=r.icon,
                route=r.route,
                is_parent=bool(r.is_parent),
                parent_id=r.parent_id,
                extra_permissions=r.extra_permissions or frozenset(),
            )
            for r in module_rows
        ]
        tabs = [
            TabNode(
                id=r.id,
                module_id=r.module_id,
                name=r.name,
                route=r.route,
                extra_permissions=r.extra_permissions or frozenset(),
            )
            for r in tab_rows
        ]
        return cls(modules, tabs)

    # ---------- Lookups ----------
    def module(self, module_id: int) -> ModuleNode:
        try:
            return self._modules[module_id]
        except KeyError:
            raise NotFoundError(f"Module {module_id} not found.") from None

    def tab(self, tab_id: int) -> TabNode:
        try:
            return self._tabs[tab_id]
        except KeyError:
            raise NotFoundError(f"Tab {tab_id} not found.") from None

    def module_by_route(self, route: str) -> ModuleNode | None:
        return self._by_route.get(route)

    def tab_by_route(self, module_id: int, route: str) -> TabNode | None:
        for t in self.tabs_of(module_id):
            if t.route == route:
                return t
        return None

    def has_module(self, module_id: int) -> bool:
        return module_id in self._modules

    def has_tab(self, tab_id: int) -> bool:
        return tab_id in self._tabs

    # ---------- Structure ----------
    def modules(self) -> list[ModuleNode]:
        return sorted(self._modules.values(), key=lambda n: n.id)

    def top_modules(self) -> list[ModuleNode]:
        return [m for m in sorted(self._modules.values(), key=lambda n: n.id) if m.parent_id is None]

    def children_of(self, module_id: int) -> list[ModuleNode]:
        self.module(module_id)
        return list(self._children[module_id])

    def tabs_of(self, module_id: int) -> list[TabNode]:
        self.module(module_id)
        return list(self._tabs_by_module[module_id])

    def parent_of(self, module_id: int) -> ModuleNode | None:
        m = self.module(module_id)
        if m.parent_id is None:
            return None
        return self._modules[m.parent_id]

    def full_route(self, module_id: int) -> str:
        """Route of a module qualified by its parent's route."""
        parent = self.parent_of(module_id)
        own = self._modules[module_id].route
        return parent.route + own if parent else own

    def tab_route(self, tab_id: int) -> str:
        t = self.tab(tab_id)
        return self.full_route(t.module_id) + t.route
