from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from app.portal.modules.access_control.access import AccessResolver
from app.portal.modules.access_control.graph import ModuleGraph, ModuleNode, TabNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Destination:
    route: str
    module_id: int
    tab_id: int


@dataclass(frozen=True)
class Forbidden:
    message: str
    blocked_by: str


@dataclass(frozen=True)
class NotFound:
    route: str

    @property
    def message(self) -> str:
        return f"Module not found: {self.route}"


Resolution = Union[Destination, Forbidden, NotFound]


class NavigationResolver:
    """
    Turns an entry route into the first page a role may land on.

    Parent module: first child (ascending id) the role holds a module grant on,
    then that child's first granted tab (ascending id).
    Leaf module: its first granted tab.
    Never raises for a denial; the caller maps the result to 302/403/404.
    """

    def __init__(self, graph: ModuleGraph, access: AccessResolver) -> None:
        self.graph = graph
        self.access = access

    def resolve(self, role_id: int, entry_route: str) -> Resolution:
        module = self.graph.module_by_route(entry_route)
        if module is None:
            return NotFound(route=entry_route)
        if module.is_parent:
            return self._resolve_parent(role_id, module)
        return self._resolve_leaf(role_id, module)

    def _resolve_parent(self, role_id: int, parent: ModuleNode) -> Resolution:
        granted_children = [
            child for child in self.graph.children_of(parent.id) if self.access.has_module_access(role_id, child.id)
        ]
        if not granted_children:
            logger.info("resolve: role=%s has no granted module inside %r", role_id, parent.name)
            return Forbidden(message=f"No accessible module inside {parent.name}", blocked_by=parent.name)

        for child in granted_children:
            tab = self._first_granted_tab(role_id, child)
            if tab is not None:
                return Destination(route=parent.route + child.route + tab.route, module_id=child.id, tab_id=tab.id)

        logger.info("resolve: role=%s has no granted section inside %r", role_id, parent.name)
        return Forbidden(message=f"No accessible section inside {parent.name}", blocked_by=parent.name)

    def _resolve_leaf(self, role_id: int, module: ModuleNode) -> Resolution:
        if not self.graph.tabs_of(module.id):
            # Tab-less leaves are served by their own controller, not by resolution.
            logger.warning("resolve called for tab-less module %r (id=%s)", module.name, module.id)

        tab = self._first_granted_tab(role_id, module)
        if tab is None:
            logger.info("resolve: role=%s has no granted section of %r", role_id, module.name)
            return Forbidden(message=f"No accessible section of {module.name}", blocked_by=module.name)

        return Destination(route=self.graph.full_route(module.id) + tab.route, module_id=module.id, tab_id=tab.id)

    def _first_granted_tab(self, role_id: int, module: ModuleNode) -> TabNode | None:
        for tab in self.graph.tabs_of(module.id):
            if self.access.has_tab_access(role_id, tab.id):
                return tab
        return None
