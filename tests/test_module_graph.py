"""Tests for the in-memory module/tab graph."""
import pytest

from app.portal.modules.access_control.errors import NotFoundError
from app.portal.modules.access_control.graph import ModuleGraph, ModuleNode, TabNode


def _graph() -> ModuleGraph:
    # Deliberately unordered input; every accessor must come back in id order.
    modules = [
        ModuleNode(id=7, name="Configuración General", icon="settings", route="/configuracion-general", parent_id=1),
        ModuleNode(id=5, name="Auditorías", icon="scroll-text", route="/auditorias"),
        ModuleNode(id=1, name="Administración Web", icon="user-cog", route="/administracion-web", is_parent=True),
        ModuleNode(id=6, name="Empresas", icon="building-2", route="/empresas", parent_id=1),
        ModuleNode(id=30, name="Huérfano", icon="x", route="/huerfano", parent_id=99),
    ]
    tabs = [
        TabNode(id=2, module_id=6, name="Gestión", route="/gestion"),
        TabNode(id=1, module_id=6, name="Listado", route="/listado"),
        TabNode(id=3, module_id=7, name="Información Corporativa", route="/informacion-corporativa"),
        TabNode(id=40, module_id=99, name="Perdida", route="/perdida"),
    ]
    return ModuleGraph(modules, tabs)


def test_ordering_is_ascending_id():
    g = _graph()
    assert [m.id for m in g.top_modules()] == [1, 5]
    assert [m.id for m in g.children_of(1)] == [6, 7]
    assert [t.id for t in g.tabs_of(6)] == [1, 2]
    assert [m.id for m in g.modules()] == [1, 5, 6, 7]


def test_unreachable_rows_are_dropped():
    g = _graph()
    assert not g.has_module(30)
    assert g.module_by_route("/huerfano") is None
    assert not g.has_tab(40)


def test_routes_are_qualified_by_parent():
    g = _graph()
    assert g.full_route(6) == "/administracion-web/empresas"
    assert g.full_route(5) == "/auditorias"
    assert g.tab_route(2) == "/administracion-web/empresas/gestion"
    assert g.parent_of(6).id == 1
    assert g.parent_of(1) is None


def test_lookups():
    g = _graph()
    assert g.module_by_route("/empresas").id == 6
    assert g.tab_by_route(6, "/gestion").id == 2
    assert g.tab_by_route(6, "/nope") is None
    assert g.tabs_of(5) == []


def test_unknown_ids_raise_not_found():
    g = _graph()
    with pytest.raises(NotFoundError):
        g.module(999)
    with pytest.raises(NotFoundError):
        g.tab(999)
    with pytest.raises(LookupError):
        g.children_of(999)
