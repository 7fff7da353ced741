from __future__ import annotations

from typing import Final, Literal

Role = Literal["doctor", "patient", "coordinator", "admin", "super_admin"]
Namespace = Literal["doctor", "patient", "coordinator", "admin"]

LEGACY_ROLE_ALIASES: Final[dict[str, str]] = {
    "moderator": "admin",
    "superadmin": "super_admin",
    "super-admin": "super_admin",
}

CANONICAL_ROLES: Final[tuple[str, ...]] = ("doctor", "patient", "coordinator", "admin", "super_admin")
NAMESPACES: Final[tuple[str, ...]] = ("doctor", "patient", "coordinator", "admin")
ADMIN_ROLES: Final[frozenset[str]] = frozenset({"admin", "super_admin"})

def normalize_role(role: str | None) -> str:
    raw = (role or "").strip().lower()
    normalized = LEGACY_ROLE_ALIASES.get(raw, raw)
    if normalized not in CANONICAL_ROLES:
        raise ValueError(f"Unsupported role: {role}")
    return normalized


def namespace_for_role(role: str | None) -> str:
    normalized = normalize_role(role)
    if normalized in ADMIN_ROLES:
        return "admin"
    return normalized


def normalize_namespace(namespace: str | None) -> str:
    """Resolve a role or namespace label to one of the four storage namespaces."""
    return namespace_for_role(namespace)


def role_matches_namespace(role: str | None, namespace: str) -> bool:
    try:
        return namespace_for_role(role) == normalize_namespace(namespace)
    except ValueError:
        return False


def is_super_admin_role(role: str | None) -> bool:
    try:
        return normalize_role(role) == "super_admin"
    except ValueError:
        return False
