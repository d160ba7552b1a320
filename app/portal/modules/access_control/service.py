"""
ACCESS CONTROL SERVICE
======================

Entry points the rest of the portal calls. Views and scripts should go
through these factories rather than wiring graph/store/resolvers by hand.

Caller         | Uses
---------------|---------------------------------------------
route guards   | access_resolver(s).has_module_access / can_perform
/navigate      | resolve_route(s, role_id, route)
sidebar, tabs  | menu_for_role / tabs_for_module
admin API      | assignable_tree / assignable_tab_tree / assignment_manager

INVARIANTS:
- ModuleGraph is built at most once per app context and never mutated.
- Read models list everything in ascending id order, like resolution does.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from flask import g, has_app_context

from app.portal.modules.access_control.access import AccessResolver
from app.portal.modules.access_control.assignments import AssignmentManager
from app.portal.modules.access_control.graph import ModuleGraph, ModuleNode, TabNode
from app.portal.modules.access_control.navigation import NavigationResolver, Resolution
from app.portal.modules.access_control.store import Grant, PermissionStore

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.portal.models import User


def module_graph(s: "Session") -> ModuleGraph:
    if not has_app_context():
        return ModuleGraph.load(s)
    graph = getattr(g, "module_graph", None)
    if graph is None:
        graph = ModuleGraph.load(s)
        g.module_graph = graph
    return graph


def access_resolver(s: "Session") -> AccessResolver:
    return AccessResolver(PermissionStore(s))


def navigation_resolver(s: "Session") -> NavigationResolver:
    return NavigationResolver(module_graph(s), access_resolver(s))


def resolve_route(s: "Session", role_id: int, route: str) -> Resolution:
    return navigation_resolver(s).resolve(role_id, route)


def assignment_manager(s: "Session", actor: "User | None" = None) -> AssignmentManager:
    return AssignmentManager(s, module_graph(s), PermissionStore(s), actor=actor)


# ---------- Read models ----------
def _permissions(grant: Grant | None) -> list[str]:
    # View-only and ungranted both read as []; "granted" tells them apart.
    if grant is None or grant.permissions is None:
        return []
    return sorted(grant.permissions)


def _module_dict(m: ModuleNode) -> dict[str, Any]:
    return {
        "id": m.id,
        "name": m.name,
        "icon": m.icon,
        "route": m.route,
        "is_parent": m.is_parent,
        "parent_id": m.parent_id,
        "extra_permissions": sorted(m.extra_permissions),
    }


def _tab_dict(t: TabNode, grants: dict[int, Grant]) -> dict[str, Any]:
    return {
        "id": t.id,
        "name": t.name,
        "route": t.route,
        "extra_permissions": sorted(t.extra_permissions),
        "granted": t.id in grants,
        "permissions": _permissions(grants.get(t.id)),
    }


def assignable_tree(s: "Session", role_id: int) -> list[dict[str, Any]]:
    """
    Full module tree with the role's grants marked, for the permission editor.
    Every module appears whether granted or not.
    """
    graph = module_graph(s)
    store = PermissionStore(s)
    module_grants = store.module_grants_for_role(role_id)
    tab_grants = store.tab_grants_for_role(role_id)

    def node(m: ModuleNode) -> dict[str, Any]:
        return {
            "module": _module_dict(m),
            "granted": m.id in module_grants,
            "permissions": _permissions(module_grants.get(m.id)),
            "tabs": [_tab_dict(t, tab_grants) for t in graph.tabs_of(m.id)],
            "children": [node(c) for c in graph.children_of(m.id)],
        }

    return [node(m) for m in graph.top_modules()]


def assignable_tab_tree(s: "Session", role_id: int) -> list[dict[str, Any]]:
    """
    Tabs the role could be granted: only tabs of modules it already holds.
    Grouped by parent; a granted top-level leaf is a group of its own (parent None).
    """
    graph = module_graph(s)
    store = PermissionStore(s)
    module_grants = store.module_grants_for_role(role_id)
    if not module_grants:
        return []
    tab_grants = store.tab_grants_for_role(role_id)

    def entry(m: ModuleNode) -> dict[str, Any]:
        return {"module": _module_dict(m), "tabs": [_tab_dict(t, tab_grants) for t in graph.tabs_of(m.id)]}

    def eligible(m: ModuleNode) -> bool:
        return not m.is_parent and m.id in module_grants and bool(graph.tabs_of(m.id))

    groups: list[dict[str, Any]] = []
    for top in graph.top_modules():
        if top.is_parent:
            modules = [entry(c) for c in graph.children_of(top.id) if eligible(c)]
            if modules:
                groups.append({"parent": _module_dict(top), "modules": modules})
        elif eligible(top):
            groups.append({"parent": None, "modules": [entry(top)]})
    return groups


def menu_for_role(s: "Session", role_id: int) -> list[dict[str, Any]]:
    """Sidebar entries: granted top-level modules, each with its granted children."""
    graph = module_graph(s)
    granted = PermissionStore(s).module_grants_for_role(role_id)
    menu: list[dict[str, Any]] = []
    for top in graph.top_modules():
        if top.id not in granted:
            continue
        items = [
            {"title": c.name, "url": top.route + c.route, "icon": c.icon}
            for c in graph.children_of(top.id)
            if c.id in granted
        ]
        menu.append({"title": top.name, "url": top.route, "icon": top.icon, "items": items})
    return menu


def tabs_for_module(s: "Session", role_id: int, module_id: int) -> list[dict[str, Any]]:
    """Tab bar of one module for the role. Raises NotFoundError for unknown modules."""
    graph = module_graph(s)
    tab_grants = PermissionStore(s).tab_grants_for_role(role_id)
    return [
        {
            "id": t.id,
            "name": t.name,
            "route": graph.tab_route(t.id),
            "permissions": _permissions(tab_grants.get(t.id)),
        }
        for t in graph.tabs_of(module_id)
        if t.id in tab_grants
    ]
