from __future__ import annotations

from typing import Any

from flask import Blueprint, abort, current_app, g, jsonify, request
from sqlalchemy import select

from app.portal.db import db_session
from app.portal.models import Role, User
from app.portal.modules.access_control.errors import NotFoundError, ValidationError
from app.portal.modules.access_control.permissions import CREATE, DELETE, EDIT
from app.portal.modules.access_control.service import (
    assignable_tab_tree,
    assignable_tree,
    assignment_manager,
)
from app.portal.modules.access_control.store import Grant, PermissionStore
from app.portal.rbac import require_module_access, require_tab_access, require_tab_action, role_can

bp = Blueprint("access_control", __name__)


def _module_route() -> str:
    return current_app.config["ACCESS_CONTROL_ROUTE"]


def _modules_tab() -> str:
    return current_app.config["ACCESS_CONTROL_MODULES_TAB"]


def _tabs_tab() -> str:
    return current_app.config["ACCESS_CONTROL_TABS_TAB"]


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _payload() -> dict[str, Any]:
    data = request.get_json(silent=True) if request.is_json else None
    if isinstance(data, dict):
        return data
    form = request.form.to_dict()
    if "permissions" in request.form:
        form["permissions"] = request.form.getlist("permissions")
    return form


def _int_field(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key)
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(f"{key} must be an integer.")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer.") from None


def _role_or_404(role_id: int) -> Role:
    role = db_session().get(Role, role_id)
    if role is None:
        raise NotFoundError(f"Role {role_id} not found.")
    return role


def _role_dict(role: Role) -> dict[str, Any]:
    return {"id": role.id, "name": role.name, "abbreviation": role.abbreviation}


def _grant_dict(grant: Grant) -> dict[str, Any]:
    return {
        "role_id": grant.role_id,
        "target_id": grant.target_id,
        "permissions": sorted(grant.permissions) if grant.permissions is not None else None,
    }


def _require_assign_action(existing: Grant | None, tab_route: str) -> None:
    # New grants need "create" on the admin tab; changing one needs "edit".
    action = EDIT if existing is not None else CREATE
    if not role_can(_current_user(), _module_route(), tab_route, action):
        g.missing_permission = f"{_module_route()}{tab_route}:{action}"
        abort(403)


@bp.get("/roles")
@require_module_access(_module_route)
def list_roles():
    s = db_session()
    roles = s.scalars(select(Role).order_by(Role.name.asc())).all()
    return jsonify({"roles": [_role_dict(r) for r in roles]})


@bp.get("/roles/<int:role_id>/modules")
@require_tab_access(_module_route, _modules_tab)
def role_modules(role_id: int):
    role = _role_or_404(role_id)
    return jsonify({"role": _role_dict(role), "modules": assignable_tree(db_session(), role.id)})


@bp.get("/roles/<int:role_id>/tabs")
@require_tab_access(_module_route, _tabs_tab)
def role_tabs(role_id: int):
    role = _role_or_404(role_id)
    return jsonify({"role": _role_dict(role), "groups": assignable_tab_tree(db_session(), role.id)})


@bp.post("/modules/assign")
@require_tab_access(_module_route, _modules_tab)
def assign_module():
    s = db_session()
    payload = _payload()
    role_id = _int_field(payload, "role_id")
    module_id = _int_field(payload, "module_id")
    _require_assign_action(PermissionStore(s).module_grant(role_id, module_id), _modules_tab())

    grant = assignment_manager(s, actor=_current_user()).assign_module(role_id, module_id, payload.get("permissions"))
    s.commit()
    return jsonify({"ok": True, "grant": _grant_dict(grant)})


@bp.post("/modules/revoke")
@require_tab_action(_module_route, _modules_tab, DELETE)
def revoke_module():
    s = db_session()
    payload = _payload()
    role_id = _int_field(payload, "role_id")
    module_id = _int_field(payload, "module_id")

    removed = assignment_manager(s, actor=_current_user()).revoke_module(role_id, module_id)
    s.commit()
    return jsonify({"ok": True, "removed": removed})


@bp.post("/tabs/assign")
@require_tab_access(_module_route, _tabs_tab)
def assign_tab():
    s = db_session()
    payload = _payload()
    role_id = _int_field(payload, "role_id")
    tab_id = _int_field(payload, "tab_id")
    _require_assign_action(PermissionStore(s).tab_grant(role_id, tab_id), _tabs_tab())

    grant = assignment_manager(s, actor=_current_user()).assign_tab(role_id, tab_id, payload.get("permissions"))
    s.commit()
    return jsonify({"ok": True, "grant": _grant_dict(grant)})


@bp.post("/tabs/revoke")
@require_tab_action(_module_route, _tabs_tab, DELETE)
def revoke_tab():
    s = db_session()
    payload = _payload()
    role_id = _int_field(payload, "role_id")
    tab_id = _int_field(payload, "tab_id")

    removed = assignment_manager(s, actor=_current_user()).revoke_tab(role_id, tab_id)
    s.commit()
    return jsonify({"ok": True, "removed": removed})
