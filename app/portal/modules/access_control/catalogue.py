from __future__ import annotations

import re
from typing import Any

from app.portal.modules.access_control.graph import ModuleGraph
from app.portal.modules.access_control.permissions import extra_permission_errors

MAX_NAME_LENGTH = 50
MAX_ICON_LENGTH = 50
MAX_ROUTE_LENGTH = 255

_ROUTE_RE = re.compile(r"^/[a-z0-9\-/]*$")


def _int_or_none(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "on", "yes")
    return bool(value)


def route_errors(route: str, label: str = "Route") -> list[str]:
    if not route:
        return [f"{label} is required."]
    errors = []
    if len(route) > MAX_ROUTE_LENGTH:
        errors.append(f"{label} must not exceed {MAX_ROUTE_LENGTH} characters.")
    if not _ROUTE_RE.fullmatch(route):
        errors.append(f"{label} must start with / and use only lowercase letters, digits, - and /.")
    elif route != "/" and route.endswith("/"):
        errors.append(f"{label} must not end with /.")
    elif route == "/":
        errors.append(f"{label} must not be just /.")
    return errors


def validate_module_payload(payload: dict, graph: ModuleGraph, module_id: int | None = None) -> list[str]:
    """Validate module creation/update payload against the live catalogue. Returns list of errors."""
    errors: list[str] = []
    name = (payload.get("name") or "").strip()
    icon = (payload.get("icon") or "").strip()
    route = (payload.get("route") or "").strip()
    is_parent = _truthy(payload.get("is_parent"))
    parent_id = _int_or_none(payload.get("parent_id"))
    extras = payload.get("extra_permissions") or []

    if not name:
        errors.append("Name is required.")
    elif len(name) > MAX_NAME_LENGTH:
        errors.append(f"Name must not exceed {MAX_NAME_LENGTH} characters.")
    if not icon:
        errors.append("Icon is required.")
    elif len(icon) > MAX_ICON_LENGTH:
        errors.append(f"Icon must not exceed {MAX_ICON_LENGTH} characters.")
    errors.extend(route_errors(route))

    others = [m for m in graph.modules() if m.id != module_id]
    if name and any(m.name.lower() == name.lower() for m in others):
        errors.append("A module with this name already exists.")
    if route and any(m.route == route for m in others):
        errors.append("A module with this route already exists.")

    if is_parent:
        if parent_id is not None:
            errors.append("A parent module cannot itself have a parent.")
        if extras:
            errors.append("A parent module cannot declare extra permissions.")
        if module_id is not None and graph.has_module(module_id) and graph.tabs_of(module_id):
            errors.append("A module with tabs cannot become a parent module.")
    elif module_id is not None and graph.has_module(module_id) and graph.children_of(module_id):
        errors.append("A module with child modules must stay a parent module.")

    if parent_id is not None and not is_parent:
        if module_id is not None and parent_id == module_id:
            errors.append("A module cannot be its own parent.")
        elif not graph.has_module(parent_id):
            errors.append("Parent module not found.")
        elif not graph.module(parent_id).is_parent:
            errors.append("The selected parent is not a parent module.")

    if isinstance(extras, str):
        errors.append("Extra permissions must be a list.")
    else:
        errors.extend(extra_permission_errors(extras))
    return errors


def validate_tab_payload(payload: dict, graph: ModuleGraph, tab_id: int | None = None) -> list[str]:
    """Validate tab creation/update payload. Returns list of errors."""
    errors: list[str] = []
    module_id = _int_or_none(payload.get("module_id"))
    name = (payload.get("name") or "").strip()
    route = (payload.get("route") or "").strip()
    extras = payload.get("extra_permissions") or []

    siblings = []
    if module_id is None:
        errors.append("Module is required.")
    elif not graph.has_module(module_id):
        errors.append("Module not found.")
    elif graph.module(module_id).is_parent:
        errors.append("Tabs cannot be added to a parent module.")
    else:
        siblings = [t for t in graph.tabs_of(module_id) if t.id != tab_id]

    if not name:
        errors.append("Name is required.")
    elif len(name) > MAX_NAME_LENGTH:
        errors.append(f"Name must not exceed {MAX_NAME_LENGTH} characters.")
    errors.extend(route_errors(route))

    if name and any(t.name.lower() == name.lower() for t in siblings):
        errors.append("This module already has a tab with this name.")
    if route and any(t.route == route for t in siblings):
        errors.append("This module already has a tab with this route.")

    if isinstance(extras, str):
        errors.append("Extra permissions must be a list.")
    else:
        errors.extend(extra_permission_errors(extras))
    return errors
