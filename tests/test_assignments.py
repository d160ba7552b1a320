"""Tests for grant/revoke with parent propagation, orphan cleanup and audit."""
import json

import pytest
from sqlalchemy import func, select

from app.portal.db import make_engine, make_sessionmaker
from app.portal.models import AuditEvent, Base, Role
from app.portal.modules.access_control.assignments import AssignmentManager
from app.portal.modules.access_control.errors import NotFoundError, ValidationError
from app.portal.modules.access_control.graph import ModuleGraph
from app.portal.modules.access_control.models import ModuleGrant, TabGrant
from app.portal.modules.access_control.seed import seed_catalogue, seed_roles
from app.portal.modules.access_control.store import PermissionStore


@pytest.fixture()
def s(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path/'test.db'}")
    Base.metadata.create_all(bind=engine)
    session = make_sessionmaker(engine)()
    seed_roles(session)
    seed_catalogue(session)
    session.commit()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def mgr(s):
    return AssignmentManager(s, ModuleGraph.load(s))


ROLE = 2  # Estandar


def _module_ids(s, role_id=ROLE):
    return sorted(PermissionStore(s).module_grants_for_role(role_id))


def _tab_ids(s, role_id=ROLE):
    return sorted(PermissionStore(s).tab_grants_for_role(role_id))


def _actions(s):
    return [e.action for e in s.scalars(select(AuditEvent).order_by(AuditEvent.id.asc()))]


def test_assign_child_grants_parent_view_only(s, mgr):
    grant = mgr.assign_module(ROLE, 6, ["create", "edit"])
    s.commit()
    assert grant.permissions == frozenset({"create", "edit"})
    assert _module_ids(s) == [1, 6]
    assert PermissionStore(s).module_grant(ROLE, 1).permissions is None
    assert _actions(s) == ["module_grant.insert", "module_grant.insert"]


def test_assign_module_is_idempotent(s, mgr):
    mgr.assign_module(ROLE, 6)
    mgr.assign_module(ROLE, 6)
    s.commit()
    assert s.scalar(select(func.count(ModuleGrant.id)).where(ModuleGrant.role_id == ROLE)) == 2
    assert _actions(s) == ["module_grant.insert", "module_grant.insert"]


def test_assign_module_updates_permissions(s, mgr):
    mgr.assign_module(ROLE, 6)
    mgr.assign_module(ROLE, 6, [" delete ", "delete"])
    s.commit()
    assert PermissionStore(s).module_grant(ROLE, 6).permissions == frozenset({"delete"})
    assert _actions(s)[-1] == "module_grant.update"

    ev = s.scalars(select(AuditEvent).where(AuditEvent.action == "module_grant.update")).one()
    assert ev.entity_type == "ModuleGrant"
    assert ev.entity_id == f"{ROLE}-6"
    assert json.loads(ev.metadata_json) == {"after": ["delete"], "before": None}


def test_parent_takes_no_permissions(s, mgr):
    with pytest.raises(ValidationError):
        mgr.assign_module(ROLE, 1, ["create"])
    mgr.assign_module(ROLE, 1, [])
    s.commit()
    assert _module_ids(s) == [1]


def test_permissions_outside_catalogue_are_rejected(s, mgr):
    with pytest.raises(ValidationError) as exc:
        mgr.assign_module(ROLE, 6, ["fly"])
    assert exc.value.message == "Permissions not available on Empresas: fly"
    assert _module_ids(s) == []


def test_unknown_targets_raise_not_found(s, mgr):
    with pytest.raises(NotFoundError):
        mgr.assign_module(ROLE, 999)
    with pytest.raises(NotFoundError):
        mgr.assign_module(999, 6)
    with pytest.raises(NotFoundError):
        mgr.assign_tab(ROLE, 999)
    with pytest.raises(NotFoundError):
        mgr.revoke_module(ROLE, 999)


def test_assign_tab_requires_module_grant(s, mgr):
    with pytest.raises(ValidationError) as exc:
        mgr.assign_tab(ROLE, 1)
    assert exc.value.message == "Module must be granted before its tab."
    assert _tab_ids(s) == []

    mgr.assign_module(ROLE, 6)
    mgr.assign_tab(ROLE, 1)
    s.commit()
    assert _tab_ids(s) == [1]


def test_assign_tab_checks_tab_extras(s, mgr):
    mgr.assign_module(ROLE, 9)
    grant = mgr.assign_tab(ROLE, 9, ["bloquear", "edit"])
    assert grant.permissions == frozenset({"bloquear", "edit"})
    with pytest.raises(ValidationError):
        mgr.assign_tab(ROLE, 8, ["bloquear"])


def test_revoking_last_child_removes_parent(s, mgr):
    mgr.assign_module(ROLE, 6)
    s.commit()
    assert mgr.revoke_module(ROLE, 6) is True
    s.commit()
    assert _module_ids(s) == []
    assert _actions(s)[-2:] == ["module_grant.delete", "module_grant.delete"]


def test_revoking_child_keeps_parent_while_sibling_granted(s, mgr):
    mgr.assign_module(ROLE, 6)
    mgr.assign_module(ROLE, 7)
    mgr.revoke_module(ROLE, 6)
    s.commit()
    assert _module_ids(s) == [1, 7]

    mgr.revoke_module(ROLE, 7)
    s.commit()
    assert _module_ids(s) == []


def test_revoking_ungranted_child_still_clears_empty_parent(s, mgr):
    mgr.assign_module(ROLE, 1)
    assert mgr.revoke_module(ROLE, 6) is False
    s.commit()
    assert _module_ids(s) == []
    assert _actions(s) == ["module_grant.insert", "module_grant.delete"]


def test_revoking_module_drops_its_tab_grants(s, mgr):
    mgr.assign_module(ROLE, 6)
    mgr.assign_module(ROLE, 7)
    mgr.assign_tab(ROLE, 1)
    mgr.assign_tab(ROLE, 2)
    mgr.assign_tab(ROLE, 3)
    mgr.revoke_module(ROLE, 6)
    s.commit()
    assert _tab_ids(s) == [3]
    assert s.scalar(select(func.count(TabGrant.id)).where(TabGrant.role_id == ROLE)) == 1


def test_cascaded_tab_revoke_keeps_permissions_in_audit(s, mgr):
    mgr.assign_module(ROLE, 6)
    mgr.assign_tab(ROLE, 2, ["create", "edit", "delete"])
    mgr.revoke_module(ROLE, 6)
    s.commit()

    ev = s.scalars(select(AuditEvent).where(AuditEvent.action == "tab_grant.delete")).one()
    assert ev.entity_id == f"{ROLE}-2"
    assert ev.reason == "module Empresas revoked"
    assert json.loads(ev.metadata_json) == {"before": ["create", "delete", "edit"]}


def test_revoking_parent_cascades_to_children(s, mgr):
    mgr.assign_module(ROLE, 6)
    mgr.assign_module(ROLE, 8)
    mgr.assign_tab(ROLE, 5)
    mgr.revoke_module(ROLE, 1)
    s.commit()
    assert _module_ids(s) == []
    assert _tab_ids(s) == []


def test_revoke_tab_only_touches_the_tab(s, mgr):
    mgr.assign_module(ROLE, 6)
    mgr.assign_tab(ROLE, 1)
    assert mgr.revoke_tab(ROLE, 1) is True
    assert mgr.revoke_tab(ROLE, 1) is False
    s.commit()
    assert _module_ids(s) == [1, 6]
    assert _tab_ids(s) == []


def test_failure_rolls_back_partial_writes(s):
    class FailingParentStore(PermissionStore):
        def put_module_grant(self, role_id, module_id, permissions):
            if module_id == 1:
                raise RuntimeError("storage down")
            return super().put_module_grant(role_id, module_id, permissions)

    mgr = AssignmentManager(s, ModuleGraph.load(s), FailingParentStore(s))
    with pytest.raises(RuntimeError):
        mgr.assign_module(ROLE, 6)
    s.commit()
    assert _module_ids(s) == []
    assert _actions(s) == []


def test_failed_change_keeps_earlier_changes(s, mgr):
    mgr.assign_module(ROLE, 6)
    with pytest.raises(NotFoundError):
        mgr.assign_tab(ROLE, 9999)
    with pytest.raises(ValidationError):
        mgr.assign_module(ROLE, 7, ["nope"])
    s.commit()
    assert _module_ids(s) == [1, 6]
    assert _actions(s) == ["module_grant.insert", "module_grant.insert"]


def test_grants_follow_role_deletion(s, mgr):
    mgr.assign_module(ROLE, 6)
    mgr.assign_tab(ROLE, 1)
    s.commit()
    s.delete(s.get(Role, ROLE))
    s.commit()
    assert s.scalar(select(func.count(ModuleGrant.id))) == 0
    assert s.scalar(select(func.count(TabGrant.id))) == 0
