from flask import Blueprint, abort, g, jsonify, redirect, request

from app.portal.db import db_session
from app.portal.modules.access_control.errors import ForbiddenError, NotFoundError
from app.portal.modules.access_control.navigation import Destination, Forbidden
from app.portal.modules.access_control.service import menu_for_role, resolve_route, tabs_for_module
from app.portal.rbac import require_login, role_can
from app.portal.security import ensure_csrf_token

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    user = getattr(g, "current_user", None)
    return {"app": "portal", "authenticated": bool(user), "csrf_token": ensure_csrf_token()}


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for load balancer probes. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/navigate")
@require_login
def navigate():
    """
    Entry point for sidebar links: /navigate?route=/administracion-web
    302 to the first page the user's role may open, else 403/404 JSON.
    """
    route = (request.args.get("route") or "").strip()
    result = resolve_route(db_session(), g.current_user.role_id, route)
    if isinstance(result, Destination):
        return redirect(result.route, code=302)
    if isinstance(result, Forbidden):
        raise ForbiddenError(result.message, blocked_by=result.blocked_by)
    raise NotFoundError(result.message)


@bp.get("/navigate/menu")
@require_login
def navigate_menu():
    return jsonify({"items": menu_for_role(db_session(), g.current_user.role_id)})


@bp.get("/navigate/modules/<int:module_id>/tabs")
@require_login
def navigate_tabs(module_id: int):
    if not role_can(g.current_user, module_id):
        g.missing_permission = f"{module_id}:view"
        abort(403)
    return jsonify({"tabs": tabs_for_module(db_session(), g.current_user.role_id, module_id)})
