"""Tests for access checks and navigation resolution on the seeded catalogue."""
import logging

import pytest

from app.portal.db import make_engine, make_sessionmaker
from app.portal.models import Base
from app.portal.modules.access_control.access import AccessResolver
from app.portal.modules.access_control.models import Module
from app.portal.modules.access_control.navigation import Destination, Forbidden, NotFound
from app.portal.modules.access_control.seed import seed_catalogue, seed_roles, seed_superadmin_grants
from app.portal.modules.access_control.service import assignment_manager, resolve_route
from app.portal.modules.access_control.store import PermissionStore


@pytest.fixture()
def s(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path/'test.db'}")
    Base.metadata.create_all(bind=engine)
    session = make_sessionmaker(engine)()
    roles = seed_roles(session)
    seed_catalogue(session)
    seed_superadmin_grants(session, roles["SA"].id, include_access_control=False)
    session.commit()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


SA = 1
STANDARD = 2


def test_superadmin_lands_on_first_tab_of_first_child(s):
    result = resolve_route(s, SA, "/administracion-web")
    assert result == Destination(route="/administracion-web/empresas/listado", module_id=6, tab_id=1)


def test_superadmin_resolves_every_parent(s):
    assert resolve_route(s, SA, "/seguridad-acceso").route == "/seguridad-acceso/usuarios/listado"
    assert resolve_route(s, SA, "/gestion-modulos").route == "/gestion-modulos/modulos/listado"
    assert resolve_route(s, SA, "/recursos-humanos").route == "/recursos-humanos/documentos/listado"


def test_child_route_is_prefixed_with_parent(s):
    assert resolve_route(s, SA, "/tablas-maestras").route == "/administracion-web/tablas-maestras/tipos-identificaciones"


def test_unknown_route_is_not_found(s):
    result = resolve_route(s, SA, "/nope")
    assert isinstance(result, NotFound)
    assert result.route == "/nope"


def test_parent_without_granted_child_is_forbidden(s):
    result = resolve_route(s, STANDARD, "/administracion-web")
    assert result == Forbidden(message="No accessible module inside Administración Web", blocked_by="Administración Web")

    # A bare parent grant changes nothing.
    assignment_manager(s).assign_module(STANDARD, 1)
    s.commit()
    assert isinstance(resolve_route(s, STANDARD, "/administracion-web"), Forbidden)


def test_granted_child_without_tabs_is_forbidden_section(s):
    assignment_manager(s).assign_module(STANDARD, 6)
    s.commit()
    result = resolve_route(s, STANDARD, "/administracion-web")
    assert isinstance(result, Forbidden)
    assert result.message == "No accessible section inside Administración Web"
    assert result.blocked_by == "Administración Web"


def test_first_child_with_a_granted_tab_wins(s):
    mgr = assignment_manager(s)
    mgr.assign_module(STANDARD, 6)
    mgr.assign_module(STANDARD, 7)
    mgr.assign_tab(STANDARD, 4)  # Redes Sociales
    s.commit()
    # Empresas (6) is granted but has no granted tab; fall through to 7.
    assert resolve_route(s, STANDARD, "/administracion-web").route == "/administracion-web/configuracion-general/redes-sociales"

    mgr.assign_tab(STANDARD, 2)  # Empresas / Gestión
    s.commit()
    assert resolve_route(s, STANDARD, "/administracion-web").route == "/administracion-web/empresas/gestion"


def test_leaf_without_granted_tab_is_forbidden(s):
    assignment_manager(s).assign_module(STANDARD, 9)
    s.commit()
    result = resolve_route(s, STANDARD, "/usuarios")
    assert result == Forbidden(message="No accessible section of Usuarios", blocked_by="Usuarios")


def test_tabless_leaf_is_forbidden_and_warns(s, caplog):
    with caplog.at_level(logging.WARNING, logger="app.portal.modules.access_control.navigation"):
        result = resolve_route(s, SA, "/auditorias")
    assert result == Forbidden(message="No accessible section of Auditorías", blocked_by="Auditorías")
    assert any("tab-less" in r.getMessage() for r in caplog.records)


def test_soft_deleted_child_is_skipped(s):
    s.get(Module, 6).is_deleted = True
    s.commit()
    assert resolve_route(s, SA, "/administracion-web").route == "/administracion-web/configuracion-general/informacion-corporativa"
    assert isinstance(resolve_route(s, SA, "/empresas"), NotFound)


def test_access_resolver(s):
    access = AccessResolver(PermissionStore(s))
    assert access.has_module_access(SA, 6)
    assert not access.has_module_access(STANDARD, 6)
    assert access.has_tab_access(SA, 1)

    # Listado is view-only, Gestión carries CRUD.
    assert access.permissions_for(SA, tab_id=1) == frozenset()
    assert not access.can_perform(SA, "edit", tab_id=1)
    assert access.can_perform(SA, "delete", tab_id=2)
    assert access.permissions_for(SA, tab_id=9) == frozenset({"create", "edit", "bloquear", "restaurar_password"})
    assert not access.can_perform(STANDARD, "create", tab_id=2)
    assert access.permissions_for(SA, module_id=6) == frozenset()


def test_access_resolver_needs_exactly_one_target(s):
    access = AccessResolver(PermissionStore(s))
    with pytest.raises(TypeError):
        access.permissions_for(SA)
    with pytest.raises(TypeError):
        access.can_perform(SA, "edit", module_id=6, tab_id=1)
