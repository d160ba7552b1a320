from __future__ import annotations

import json
import re
from collections.abc import Iterable

from sqlalchemy import Text
from sqlalchemy.types import TypeDecorator

from app.portal.modules.access_control.errors import ValidationError

CREATE = "create"
EDIT = "edit"
DELETE = "delete"

# Every grantable target supports these; modules/tabs may declare extras (e.g. "block").
BASE_ACTIONS = frozenset({CREATE, EDIT, DELETE})

MAX_PERMISSIONS = 50
MAX_PERMISSION_LENGTH = 50

_GRANT_PERMISSION_RE = re.compile(r"^[a-zA-Z_]+$")
_EXTRA_PERMISSION_RE = re.compile(r"^[a-z_]+$")


class PermissionSet(TypeDecorator):
    """
    Nullable JSON list of permission names <-> ``frozenset[str] | None``.

    NULL stays None (a view-only grant); lists are stored sorted so equal sets
    produce equal column values.
    """

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return json.dumps(sorted(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        decoded = json.loads(value)
        if decoded is None:
            return None
        return frozenset(str(p) for p in decoded)


def allowed_actions(extra_permissions: Iterable[str] | None) -> frozenset[str]:
    return BASE_ACTIONS | frozenset(extra_permissions or ())


def sanitize_permissions(raw: Iterable[str] | None) -> frozenset[str] | None:
    """
    Normalize a requested permission list: trim, drop blanks and duplicates.

    Returns None for an empty request, which stores a view-only grant.
    Raises ValidationError on malformed names or oversized lists.
    """
    if raw is None:
        return None
    if not isinstance(raw, (list, tuple, set, frozenset)):
        raise ValidationError("Permissions must be a list of names.")

    cleaned: set[str] = set()
    for item in raw:
        if not isinstance(item, str):
            raise ValidationError("Each permission must be a string.")
        name = item.strip()
        if not name:
            continue
        if len(name) > MAX_PERMISSION_LENGTH:
            raise ValidationError(f"Permission {name[:20]!r}... exceeds {MAX_PERMISSION_LENGTH} characters.")
        if not _GRANT_PERMISSION_RE.fullmatch(name):
            raise ValidationError(f"Permission {name!r} may only contain letters and underscores.")
        cleaned.add(name)

    if len(cleaned) > MAX_PERMISSIONS:
        raise ValidationError(f"No more than {MAX_PERMISSIONS} permissions can be assigned.")
    return frozenset(cleaned) or None


def check_grantable(
    permissions: frozenset[str] | None,
    extra_permissions: Iterable[str] | None,
    *,
    target: str,
) -> None:
    """Reject permissions outside ``BASE_ACTIONS | extra_permissions`` of the target."""
    if permissions is None:
        return
    unknown = sorted(permissions - allowed_actions(extra_permissions))
    if unknown:
        raise ValidationError(f"Permissions not available on {target}: {', '.join(unknown)}")


def extra_permission_errors(raw: Iterable[str] | None) -> list[str]:
    """Format errors for a module/tab catalogue entry's declared extra permissions."""
    errors: list[str] = []
    if not raw:
        return errors
    seen: set[str] = set()
    for index, name in enumerate(raw, start=1):
        name = (name or "").strip() if isinstance(name, str) else ""
        if not name:
            errors.append(f"Permission {index}: must be a non-empty string.")
            continue
        if len(name) > MAX_PERMISSION_LENGTH:
            errors.append(f"Permission {index}: must not exceed {MAX_PERMISSION_LENGTH} characters.")
        if not _EXTRA_PERMISSION_RE.fullmatch(name):
            errors.append(f"Permission {index}: only lowercase letters and underscores are allowed.")
        if name.lower() in seen:
            errors.append("Duplicate permissions are not allowed.")
        seen.add(name.lower())
    return errors
