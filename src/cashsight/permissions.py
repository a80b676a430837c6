# CashSight - Cash Flow & Working Capital engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Typed permissions and the per-request session object.

Permissions are stored as JSON maps such as ``{"view_reports": true}``.
They are parsed once, at the storage boundary, into a ``Permission`` flag
set; checks then reduce to bit operations. Unknown keys are rejected rather
than silently ignored.

The Session carries the current user, its company (tenant) and its
permissions. It is passed explicitly to the service functions; there is no
process-wide current user.
"""

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Flag, auto
from typing import Any, Union

from .errors import PermissionDenied, ValidationError


class Permission(Flag):
    NONE = 0

    VIEW_TRANSACTIONS = auto()
    CREATE_TRANSACTIONS = auto()
    EDIT_TRANSACTIONS = auto()
    DELETE_TRANSACTIONS = auto()
    IMPORT_BANK = auto()

    VIEW_REPORTS = auto()
    VIEW_PROFIT = auto()
    EXPORT_REPORTS = auto()

    VIEW_CUSTOMERS = auto()
    MANAGE_CUSTOMERS = auto()

    VIEW_SUPPLIERS = auto()
    MANAGE_SUPPLIERS = auto()

    MANAGE_USERS = auto()
    INVITE_USERS = auto()

    VIEW_SETTINGS = auto()
    MANAGE_SETTINGS = auto()

    @property
    def key(self) -> str:
        """Storage key of a single permission (e.g. 'view_reports')."""
        return self.name.lower()


ALL_PERMISSIONS = Permission(0)
for _perm in Permission:
    ALL_PERMISSIONS |= _perm

_BY_KEY = {p.key: p for p in Permission if p.name != "NONE"}

ROLE_DEFAULTS: dict[str, Permission] = {
    "admin": ALL_PERMISSIONS,
    "manager": (
        Permission.VIEW_TRANSACTIONS
        | Permission.CREATE_TRANSACTIONS
        | Permission.EDIT_TRANSACTIONS
        | Permission.IMPORT_BANK
        | Permission.VIEW_REPORTS
        | Permission.VIEW_PROFIT
        | Permission.EXPORT_REPORTS
        | Permission.VIEW_CUSTOMERS
        | Permission.MANAGE_CUSTOMERS
        | Permission.VIEW_SUPPLIERS
        | Permission.MANAGE_SUPPLIERS
    ),
    "user": (
        Permission.VIEW_TRANSACTIONS
        | Permission.CREATE_TRANSACTIONS
        | Permission.VIEW_REPORTS
        | Permission.EXPORT_REPORTS
        | Permission.VIEW_CUSTOMERS
        | Permission.VIEW_SUPPLIERS
    ),
    "operational": (
        Permission.VIEW_TRANSACTIONS
        | Permission.CREATE_TRANSACTIONS
        | Permission.IMPORT_BANK
    ),
}


def parse_permissions(raw: Union[str, Mapping[str, Any], None]) -> Permission:
    """
    Parse a stored permission map into a Permission flag set.

    Args:
        raw: JSON text or mapping of permission keys to booleans. None and
            empty values yield Permission.NONE.

    Raises:
        ValidationError: for invalid JSON, non-boolean values or unknown
            keys.
    """
    if raw is None or raw == "":
        return Permission.NONE

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise ValidationError("Invalid permissions JSON.") from exc

    if not isinstance(raw, Mapping):
        raise ValidationError("Permissions must be a JSON object.")

    result = Permission.NONE
    for key, granted in raw.items():
        perm = _BY_KEY.get(str(key))
        if perm is None:
            raise ValidationError(f"Unknown permission: {key!r}")
        if not isinstance(granted, bool):
            raise ValidationError(f"Permission {key!r} must be true or false.")
        if granted:
            result |= perm
    return result


def dump_permissions(perms: Permission) -> str:
    """Serialize a flag set back to the stored JSON form (sorted keys)."""
    return json.dumps({key: bool(perm & perms) for key, perm in _BY_KEY.items()}, sort_keys=True)


def role_permissions(role: str) -> Permission:
    try:
        return ROLE_DEFAULTS[role]
    except KeyError as exc:
        raise ValidationError(f"Unknown role: {role!r}") from exc


@dataclass(frozen=True)
class Session:
    """Authenticated context of one request."""

    user_id: int
    company_id: int
    role: str
    permissions: Permission
    is_super_admin: bool = False

    @classmethod
    def for_role(cls, user_id: int, company_id: int, role: str) -> "Session":
        return cls(
            user_id=user_id,
            company_id=company_id,
            role=role,
            permissions=role_permissions(role),
        )

    def has_permission(self, perm: Permission) -> bool:
        if self.is_super_admin:
            return True
        return (self.permissions & perm) == perm

    def has_any(self, perms: Iterable[Permission]) -> bool:
        return any(self.has_permission(p) for p in perms)

    def has_all(self, perms: Iterable[Permission]) -> bool:
        return all(self.has_permission(p) for p in perms)


def require_permission(session: Session, perm: Permission) -> None:
    """Raise PermissionDenied unless the session holds ``perm``."""
    if not session.has_permission(perm):
        raise PermissionDenied(
            f"User {session.user_id} lacks permission {perm.name.lower()!r}."
        )
