"""
Route guards backed by module/tab grants.

- Unauthenticated: 401.
- Authenticated but no grant, or the module/tab does not exist: 403.
  The missing grant is put on g.missing_permission for the 403 handler to log.
"""

from collections.abc import Callable
from functools import wraps
from typing import Any, Union

from flask import abort, current_app, g

from app.portal.db import db_session
from app.portal.models import User
from app.portal.modules.access_control.graph import ModuleNode
from app.portal.modules.access_control.service import access_resolver, module_graph


def _current_user() -> User | None:
    user: User | None = getattr(g, "current_user", None)
    if not user or not user.is_active:
        return None
    return user


def _find_module(module: int | str) -> ModuleNode | None:
    graph = module_graph(db_session())
    if isinstance(module, int):
        return graph.module(module) if graph.has_module(module) else None
    return graph.module_by_route(module)


def role_can(user: User | None, module: int | str, tab_route: str | None = None, action: str | None = None) -> bool:
    """
    True if the user's role holds the module (and tab) grant, and the action
    when one is given. Actions are checked on the tab when tab_route is given,
    otherwise on the module.
    """
    if not user or not user.is_active:
        return False
    access = access_resolver(db_session())
    m = _find_module(module)
    if m is None or not access.has_module_access(user.role_id, m.id):
        return False
    if tab_route is None:
        return action is None or access.can_perform(user.role_id, action, module_id=m.id)
    t = module_graph(db_session()).tab_by_route(m.id, tab_route)
    if t is None or not access.has_tab_access(user.role_id, t.id):
        return False
    return action is None or access.can_perform(user.role_id, action, tab_id=t.id)


Target = Union[int, str, Callable[[], Union[int, str]]]
Decorator = Callable[[Callable[..., Any]], Callable[..., Any]]


def _value(target: Target) -> int | str:
    return target() if callable(target) else target


def _guard(module: Target, tab_route: Target | None = None, action: str | None = None) -> Decorator:
    """
    module/tab_route may be callables resolved per request, e.g. routes
    read from app config.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = _current_user()
            if user is None:
                abort(401)
            m = _value(module)
            t = str(_value(tab_route)) if tab_route is not None else None
            if not role_can(user, m, t, action):
                g.missing_permission = f"{m}{t or ''}:{action or 'view'}"
                current_app.logger.info("Denied %s for role=%s", g.missing_permission, user.role_id)
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if _current_user() is None:
            abort(401)
        return fn(*args, **kwargs)

    return wrapped


def require_module_access(module: Target) -> Decorator:
    """Guard a view with a module grant, by module id or module route."""
    return _guard(module)


def require_tab_access(module: Target, tab_route: Target) -> Decorator:
    return _guard(module, tab_route)


def require_tab_action(module: Target, tab_route: Target, action: str) -> Decorator:
    return _guard(module, tab_route, action)
