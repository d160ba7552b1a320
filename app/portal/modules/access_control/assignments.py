from __future__ import annotations

import logging
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from typing import TYPE_CHECKING

from app.portal.audit import record_event
from app.portal.models import Role, User
from app.portal.modules.access_control.errors import NotFoundError, ValidationError
from app.portal.modules.access_control.graph import ModuleGraph, ModuleNode
from app.portal.modules.access_control.permissions import check_grantable, sanitize_permissions
from app.portal.modules.access_control.store import Grant, PermissionStore

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def _as_list(permissions: frozenset[str] | None) -> list[str] | None:
    return sorted(permissions) if permissions is not None else None


class AssignmentManager:
    """
    Write side of access control: grant and revoke modules/tabs for a role.

    Invariants kept here (not by the store):
    - a child module grant implies a grant on its parent (inserted view-only);
    - the last child revoked under a parent takes the parent grant with it;
    - a tab grant needs a grant on the tab's module, and dies with it.

    Each operation runs in its own SAVEPOINT: it either applies completely or
    is undone on its own, leaving earlier work in the session untouched.
    Committing is the caller's job.
    """

    def __init__(
        self,
        s: "Session",
        graph: ModuleGraph,
        store: PermissionStore | None = None,
        actor: User | None = None,
    ) -> None:
        self.s = s
        self.graph = graph
        self.store = store or PermissionStore(s)
        self.actor = actor

    # ---------- Modules ----------
    def assign_module(self, role_id: int, module_id: int, permissions: Iterable[str] | None = None) -> Grant:
        with self._atomic():
            self._require_role(role_id)
            module = self.graph.module(module_id)
            perms = sanitize_permissions(permissions)
            if module.is_parent and perms is not None:
                raise ValidationError(f"{module.name} groups other modules; it cannot carry permissions.")
            check_grantable(perms, module.extra_permissions, target=module.name)

            self._lock_scope(role_id, module)
            previous, current = self.store.put_module_grant(role_id, module.id, perms)
            self._audit_put("module_grant", "ModuleGrant", previous, current)

            if module.parent_id is not None and self.store.module_grant(role_id, module.parent_id) is None:
                _, parent_grant = self.store.put_module_grant(role_id, module.parent_id, None)
                self._audit_put("module_grant", "ModuleGrant", None, parent_grant, reason=f"parent of {module.name}")
        return current

    def revoke_module(self, role_id: int, module_id: int) -> bool:
        """Returns False when the role held no grant on the module."""
        with self._atomic():
            self._require_role(role_id)
            module = self.graph.module(module_id)
            self._lock_scope(role_id, module)

            removed = self._drop_module(role_id, module)
            if module.is_parent:
                for child in self.graph.children_of(module.id):
                    self._drop_module(role_id, child, reason=f"parent {module.name} revoked")

            if module.parent_id is not None:
                siblings = [c.id for c in self.graph.children_of(module.parent_id) if c.id != module.id]
                if self.store.count_module_grants(role_id, siblings) == 0:
                    parent = self.graph.module(module.parent_id)
                    self._drop_module(role_id, parent, reason=f"no granted module left inside {parent.name}")
        return removed is not None

    # ---------- Tabs ----------
    def assign_tab(self, role_id: int, tab_id: int, permissions: Iterable[str] | None = None) -> Grant:
        with self._atomic():
            self._require_role(role_id)
            tab = self.graph.tab(tab_id)
            perms = sanitize_permissions(permissions)
            check_grantable(perms, tab.extra_permissions, target=tab.name)

            self.store.lock_module_grants(role_id, [tab.module_id])
            if self.store.module_grant(role_id, tab.module_id) is None:
                raise ValidationError("Module must be granted before its tab.")

            previous, current = self.store.put_tab_grant(role_id, tab.id, perms)
            self._audit_put("tab_grant", "TabGrant", previous, current)
        return current

    def revoke_tab(self, role_id: int, tab_id: int) -> bool:
        with self._atomic():
            self._require_role(role_id)
            tab = self.graph.tab(tab_id)
            removed = self.store.delete_tab_grant(role_id, tab.id)
            if removed is not None:
                self._audit_delete("tab_grant", "TabGrant", removed)
        return removed is not None

    # ---------- Internals ----------
    @contextmanager
    def _atomic(self) -> Generator[None, None, None]:
        # SAVEPOINT per operation: a failure undoes this call only.
        with self.s.begin_nested():
            yield

    def _require_role(self, role_id: int) -> None:
        if self.s.get(Role, role_id) is None:
            raise NotFoundError(f"Role {role_id} not found.")

    def _lock_scope(self, role_id: int, module: ModuleNode) -> None:
        # Lock the whole parent family so concurrent sibling revokes/assigns serialize.
        if module.parent_id is not None:
            ids = [module.parent_id] + [c.id for c in self.graph.children_of(module.parent_id)]
        elif module.is_parent:
            ids = [module.id] + [c.id for c in self.graph.children_of(module.id)]
        else:
            ids = [module.id]
        self.store.lock_module_grants(role_id, ids)

    def _drop_module(self, role_id: int, module: ModuleNode, reason: str | None = None) -> Grant | None:
        for tab_grant in self.store.delete_tab_grants_of_module(role_id, module.id):
            self._audit_delete("tab_grant", "TabGrant", tab_grant, reason=f"module {module.name} revoked")
        removed = self.store.delete_module_grant(role_id, module.id)
        if removed is not None:
            self._audit_delete("module_grant", "ModuleGrant", removed, reason=reason)
        return removed

    def _audit_put(
        self,
        kind: str,
        entity_type: str,
        previous: Grant | None,
        current: Grant,
        reason: str | None = None,
    ) -> None:
        if previous is None:
            action = f"{kind}.insert"
        elif previous.permissions != current.permissions:
            action = f"{kind}.update"
        else:
            return
        logger.info(
            "%s role=%s target=%s permissions=%s", action, current.role_id, current.target_id, _as_list(current.permissions)
        )
        record_event(
            self.s,
            actor=self.actor,
            action=action,
            entity_type=entity_type,
            entity_id=f"{current.role_id}-{current.target_id}",
            reason=reason,
            metadata={
                "before": _as_list(previous.permissions) if previous else None,
                "after": _as_list(current.permissions),
            },
        )

    def _audit_delete(self, kind: str, entity_type: str, removed: Grant, reason: str | None = None) -> None:
        action = f"{kind}.delete"
        logger.info("%s role=%s target=%s", action, removed.role_id, removed.target_id)
        record_event(
            self.s,
            actor=self.actor,
            action=action,
            entity_type=entity_type,
            entity_id=f"{removed.role_id}-{removed.target_id}",
            reason=reason,
            metadata={"before": _as_list(removed.permissions)},
        )
