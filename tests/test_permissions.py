"""Tests for permission sanitising, grantability and the JSON column type."""
import pytest
from sqlalchemy import text

from app.portal.db import make_engine, make_sessionmaker
from app.portal.models import Base, Role
from app.portal.modules.access_control.errors import ValidationError
from app.portal.modules.access_control.models import Module, ModuleGrant
from app.portal.modules.access_control.permissions import (
    allowed_actions,
    check_grantable,
    extra_permission_errors,
    sanitize_permissions,
)


@pytest.fixture()
def s(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path/'test.db'}")
    Base.metadata.create_all(bind=engine)
    session = make_sessionmaker(engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


def test_sanitize_trims_and_dedupes():
    assert sanitize_permissions(["  edit", "edit", "create ", ""]) == frozenset({"create", "edit"})


def test_sanitize_empty_means_view_only():
    assert sanitize_permissions(None) is None
    assert sanitize_permissions([]) is None
    assert sanitize_permissions(["  ", ""]) is None


@pytest.mark.parametrize(
    "raw",
    [
        "create",
        ["crea te"],
        ["create1"],
        [42],
        ["a" * 51],
        5,
        {"create": True},
    ],
)
def test_sanitize_rejects_malformed(raw):
    with pytest.raises(ValidationError):
        sanitize_permissions(raw)


def test_sanitize_caps_list_size():
    names = [f"perm_{chr(97 + i // 26)}{chr(97 + i % 26)}" for i in range(51)]
    with pytest.raises(ValidationError):
        sanitize_permissions(names)
    assert len(sanitize_permissions(names[:50])) == 50


def test_check_grantable_uses_extras():
    assert allowed_actions(["bloquear"]) == frozenset({"create", "edit", "delete", "bloquear"})
    check_grantable(frozenset({"bloquear", "edit"}), frozenset({"bloquear"}), target="Gestión")
    check_grantable(None, None, target="Listado")
    with pytest.raises(ValidationError) as exc:
        check_grantable(frozenset({"bloquear"}), None, target="Listado")
    assert "Listado" in exc.value.message
    assert "bloquear" in exc.value.message


def test_extra_permission_errors():
    assert extra_permission_errors(None) == []
    assert extra_permission_errors(["bloquear", "restaurar_password"]) == []
    errors = extra_permission_errors(["Bloquear", "bloquear", ""])
    assert any("lowercase" in e for e in errors)
    assert "Duplicate permissions are not allowed." in errors
    assert any("non-empty" in e for e in errors)


def test_permission_column_stores_sorted_json_and_null(s):
    role = Role(name="SuperAdmin", abbreviation="SA")
    m1 = Module(name="Empresas", icon="building-2", route="/empresas")
    m2 = Module(name="Auditorías", icon="scroll-text", route="/auditorias")
    s.add_all([role, m1, m2])
    s.flush()
    s.add_all(
        [
            ModuleGrant(role_id=role.id, module_id=m1.id, permissions=frozenset({"edit", "create"})),
            ModuleGrant(role_id=role.id, module_id=m2.id, permissions=None),
        ]
    )
    s.commit()

    raw = dict(s.execute(text("SELECT module_id, permissions FROM module_grants")).all())
    assert raw[m1.id] == '["create", "edit"]'
    assert raw[m2.id] is None

    s.expire_all()
    grants = {g.module_id: g.permissions for g in s.query(ModuleGrant).all()}
    assert grants[m1.id] == frozenset({"create", "edit"})
    assert grants[m2.id] is None
