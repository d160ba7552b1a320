from __future__ import annotations

from app.portal.modules.access_control.store import Grant, PermissionStore


class AccessResolver:
    """
    Read-side answers to "can role R do A on module/tab X".

    Denial is always a boolean. Only storage errors escape from here.
    """

    def __init__(self, store: PermissionStore) -> None:
        self.store = store

    def has_module_access(self, role_id: int, module_id: int) -> bool:
        return self.store.module_grant(role_id, module_id) is not None

    def has_tab_access(self, role_id: int, tab_id: int) -> bool:
        return self.store.tab_grant(role_id, tab_id) is not None

    def permissions_for(
        self, role_id: int, *, module_id: int | None = None, tab_id: int | None = None
    ) -> frozenset[str]:
        grant = self._grant(role_id, module_id, tab_id)
        if grant is None or grant.permissions is None:
            return frozenset()
        return grant.permissions

    def can_perform(
        self, role_id: int, action: str, *, module_id: int | None = None, tab_id: int | None = None
    ) -> bool:
        grant = self._grant(role_id, module_id, tab_id)
        if grant is None or grant.permissions is None:
            return False
        return action in grant.permissions

    def _grant(self, role_id: int, module_id: int | None, tab_id: int | None) -> Grant | None:
        if (module_id is None) == (tab_id is None):
            raise TypeError("Pass exactly one of module_id or tab_id.")
        if module_id is not None:
            return self.store.module_grant(role_id, module_id)
        return self.store.tab_grant(role_id, tab_id)  # type: ignore[arg-type]
