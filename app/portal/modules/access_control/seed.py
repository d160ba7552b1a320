"""
Default catalogue and SuperAdmin grants.

Rows are matched by route, so running the seed twice adds nothing. On an empty
database the modules get ids 1..15 and the tabs 1..22 in the order below, which
is the order navigation falls back on.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select

from app.portal.models import Role, User
from app.portal.modules.access_control.assignments import AssignmentManager
from app.portal.modules.access_control.graph import ModuleGraph
from app.portal.modules.access_control.models import Module, Tab
from app.portal.modules.access_control.permissions import CREATE, DELETE, EDIT

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

CRUD = (CREATE, EDIT, DELETE)

ROLES = (
    ("SuperAdmin", "SA"),
    ("Estandar", "E"),
)

# (name, icon, route, parent route, is_parent)
MODULES = (
    ("Administración Web", "user-cog", "/administracion-web", None, True),
    ("Seguridad y Acceso", "user-lock", "/seguridad-acceso", None, True),
    ("Gestión de Módulos", "panels-top-left", "/gestion-modulos", None, True),
    ("Recursos Humanos", "file-user", "/recursos-humanos", None, True),
    ("Auditorías", "scroll-text", "/auditorias", None, False),
    ("Empresas", "building-2", "/empresas", "/administracion-web", False),
    ("Configuración General", "settings", "/configuracion-general", "/administracion-web", False),
    ("Tablas Maestras", "layout-list", "/tablas-maestras", "/administracion-web", False),
    ("Usuarios", "users", "/usuarios", "/seguridad-acceso", False),
    ("Roles", "shield-user", "/roles", "/seguridad-acceso", False),
    ("Módulos", "layout-dashboard", "/modulos", "/gestion-modulos", False),
    ("Pestañas", "panel-top-dashed", "/pestanas", "/gestion-modulos", False),
    ("Documentos Corporativos", "file-text", "/documentos", "/recursos-humanos", False),
    ("Calendario Corporativo", "calendar-cog", "/calendario", "/recursos-humanos", False),
    ("Control de Accesos", "shield-check", "/control-accesos", "/seguridad-acceso", False),
)

# (module route, name, route, extra permissions)
TABS = (
    ("/empresas", "Listado", "/listado", ()),
    ("/empresas", "Gestión", "/gestion", ()),
    ("/configuracion-general", "Información Corporativa", "/informacion-corporativa", ()),
    ("/configuracion-general", "Redes Sociales", "/redes-sociales", ()),
    ("/tablas-maestras", "Tipos de Identificaciones", "/tipos-identificaciones", ()),
    ("/tablas-maestras", "Tipos de PQRSD", "/tipos-pqrsd", ()),
    ("/tablas-maestras", "Estados de PQRSD", "/estados-pqrsd", ()),
    ("/usuarios", "Listado", "/listado", ()),
    ("/usuarios", "Gestión", "/gestion", ("bloquear", "restaurar_password")),
    ("/roles", "Listado", "/listado", ()),
    ("/roles", "Gestión", "/gestion", ()),
    ("/roles", "Asignar Permisos", "/asignar-permisos", ()),
    ("/modulos", "Listado", "/listado", ()),
    ("/modulos", "Gestión", "/crear", ()),
    ("/pestanas", "Listado", "/listado", ()),
    ("/pestanas", "Gestión", "/crear", ()),
    ("/documentos", "Listado", "/listado", ()),
    ("/documentos", "Gestión", "/gestion", ()),
    ("/calendario", "Calendario", "/calendario", ()),
    ("/calendario", "Gestión de Eventos", "/gestion-evento", ()),
    ("/control-accesos", "Módulos", "/modulos", ()),
    ("/control-accesos", "Pestañas", "/pestanas", ()),
)

SUPERADMIN_MODULES = (
    "/administracion-web",
    "/seguridad-acceso",
    "/gestion-modulos",
    "/recursos-humanos",
    "/auditorias",
    "/empresas",
    "/configuracion-general",
    "/tablas-maestras",
    "/usuarios",
    "/roles",
    "/modulos",
    "/pestanas",
    "/documentos",
    "/calendario",
)

# (module route, tab route, permissions); empty = view-only
SUPERADMIN_TABS = (
    ("/empresas", "/listado", ()),
    ("/empresas", "/gestion", CRUD),
    ("/configuracion-general", "/informacion-corporativa", (EDIT,)),
    ("/configuracion-general", "/redes-sociales", (EDIT,)),
    ("/tablas-maestras", "/tipos-identificaciones", CRUD),
    ("/tablas-maestras", "/tipos-pqrsd", CRUD),
    ("/tablas-maestras", "/estados-pqrsd", CRUD),
    ("/usuarios", "/listado", ()),
    ("/usuarios", "/gestion", (CREATE, EDIT, "bloquear", "restaurar_password")),
    ("/roles", "/listado", ()),
    ("/roles", "/gestion", ()),
    ("/roles", "/asignar-permisos", ()),
    ("/modulos", "/listado", ()),
    ("/modulos", "/crear", CRUD),
    ("/pestanas", "/listado", ()),
    ("/pestanas", "/crear", CRUD),
    ("/documentos", "/listado", ()),
    ("/documentos", "/gestion", CRUD),
    ("/calendario", "/calendario", ()),
    ("/calendario", "/gestion-evento", ()),
)

ACCESS_CONTROL_TABS = (
    ("/control-accesos", "/modulos", CRUD),
    ("/control-accesos", "/pestanas", CRUD),
)


def seed_roles(s: "Session") -> dict[str, Role]:
    """Ensure the default roles exist. Returns them keyed by abbreviation."""
    roles: dict[str, Role] = {}
    for name, abbreviation in ROLES:
        role = s.scalars(select(Role).where(Role.name == name)).one_or_none()
        if role is None:
            role = Role(name=name, abbreviation=abbreviation)
            s.add(role)
            s.flush()
        roles[abbreviation] = role
    return roles


def seed_catalogue(s: "Session") -> None:
    """Insert missing modules and tabs. Existing rows are left untouched."""
    modules_by_route: dict[str, Module] = {m.route: m for m in s.scalars(select(Module))}
    added = 0
    for name, icon, route, parent_route, is_parent in MODULES:
        if route in modules_by_route:
            continue
        parent = modules_by_route[parent_route] if parent_route else None
        m = Module(
            name=name,
            icon=icon,
            route=route,
            is_parent=is_parent,
            parent_id=parent.id if parent else None,
        )
        s.add(m)
        # Flush one by one so ids follow declaration order.
        s.flush()
        modules_by_route[route] = m
        added += 1

    existing_tabs = {(t.module_id, t.route) for t in s.scalars(select(Tab))}
    for module_route, name, route, extras in TABS:
        module = modules_by_route[module_route]
        if (module.id, route) in existing_tabs:
            continue
        s.add(Tab(module_id=module.id, name=name, route=route, extra_permissions=frozenset(extras) or None))
        s.flush()
        added += 1

    if added:
        logger.info("seed_catalogue: added %s modules/tabs", added)


def seed_superadmin_grants(
    s: "Session",
    role_id: int,
    *,
    include_access_control: bool = True,
    actor: User | None = None,
) -> None:
    """
    Grant the SuperAdmin catalogue to a role through AssignmentManager.

    include_access_control also grants the access-control module and its tabs,
    which the admin API checks before any assignment.
    """
    graph = ModuleGraph.load(s)
    manager = AssignmentManager(s, graph, actor=actor)

    module_routes = list(SUPERADMIN_MODULES)
    tab_grants = list(SUPERADMIN_TABS)
    if include_access_control:
        module_routes.append("/control-accesos")
        tab_grants.extend(ACCESS_CONTROL_TABS)

    for route in module_routes:
        module = graph.module_by_route(route)
        if module is None:
            raise RuntimeError(f"Module {route} missing; run seed_catalogue first.")
        manager.assign_module(role_id, module.id)

    for module_route, tab_route, permissions in tab_grants:
        module = graph.module_by_route(module_route)
        tab = graph.tab_by_route(module.id, tab_route) if module else None
        if tab is None:
            raise RuntimeError(f"Tab {module_route}{tab_route} missing; run seed_catalogue first.")
        manager.assign_tab(role_id, tab.id, permissions)
