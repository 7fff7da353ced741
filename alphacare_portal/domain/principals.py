"""Backend payload normalization for principals and auth envelopes.

Backends answer in a mix of camelCase and snake_case, sometimes with a
MongoDB-style ``_id``.  Everything is mapped onto ``Principal`` here, once,
at the service boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Final, Mapping, Sequence

from alphacare_portal.domain.roles import CANONICAL_ROLES, LEGACY_ROLE_ALIASES, is_super_admin_role
from alphacare_portal.models.principal import Principal


# Canonical field -> accepted spellings. Ties keep the earlier spelling.
PRINCIPAL_FIELD_SPELLINGS: Final[dict[str, tuple[str, ...]]] = {
    "id": ("id", "_id", "user_id", "userId"),
    "full_name": ("full_name", "fullName"),
    "username": ("username", "user_name", "userName"),
    "email": ("email",),
    "phone_number": ("phone_number", "phoneNumber", "phone"),
    "account_status": ("account_status", "accountStatus"),
    "specialty": ("specialty",),
    "medical_registration_id": ("medical_registration_id", "medicalRegistrationId"),
    "uhid": ("uhid", "UHID"),
    "hospital_id": ("hospital_id", "hospitalId"),
    "is_verified": ("is_verified", "isVerified"),
    "is_super_admin": ("is_super_admin", "isSuperAdmin"),
    "permissions": ("permissions",),
    "last_login": ("last_login", "lastLogin"),
    "created_at": ("created_at", "createdAt"),
    "updated_at": ("updated_at", "updatedAt"),
}

_ROLE_FIELDS: Final[tuple[str, ...]] = ("role", "roles")
_TOKEN_KEYS: Final[tuple[str, ...]] = ("accessToken", "access_token")
_REFRESH_TOKEN_KEYS: Final[tuple[str, ...]] = ("refreshToken", "refresh_token")


@dataclass(frozen=True)
class AuthPayload:
    access_token: str | None = None
    refresh_token: str | None = None
    principal: dict[str, Any] | None = None


def _richness(value: Any) -> tuple[int, int]:
    if value is None:
        return (0, 0)
    if isinstance(value, str):
        stripped = value.strip()
        return (2 if stripped else 1, len(stripped))
    if isinstance(value, (list, tuple, set, dict)):
        return (2 if value else 1, len(value))
    return (2, 0)


def _pick_richer(payload: Mapping[str, Any], spellings: Sequence[str]) -> tuple[bool, Any]:
    present = [payload[name] for name in spellings if name in payload]
    if not present:
        return False, None
    return True, max(present, key=_richness)


def _resolve_role(payload: Mapping[str, Any], default_role: str | None) -> str | None:
    role = payload.get("role")
    if isinstance(role, str) and role.strip():
        return role
    roles = payload.get("roles")
    if isinstance(roles, (list, tuple)):
        candidates = []
        for item in roles:
            key = str(item).strip().lower()
            key = LEGACY_ROLE_ALIASES.get(key, key)
            if key in CANONICAL_ROLES:
                candidates.append(key)
        # Most privileged first so an admin who also practises lands in the admin portal.
        for preferred in ("super_admin", "admin", "coordinator", "doctor", "patient"):
            if preferred in candidates:
                return preferred
    if payload.get("isSuperAdmin") is True or payload.get("is_super_admin") is True:
        return "super_admin"
    return default_role


def normalize_principal(payload: Mapping[str, Any], *, default_role: str | None = None) -> Principal:
    """Map a backend principal payload onto the canonical ``Principal`` shape.

    Raises ``ValueError`` (pydantic ``ValidationError``) when the payload has no
    usable id or role, or an unknown role or account status.
    """
    if not isinstance(payload, Mapping):
        raise ValueError("Principal payload must be an object")

    canonical: dict[str, Any] = {}
    consumed: set[str] = set(_ROLE_FIELDS)
    for field_name, spellings in PRINCIPAL_FIELD_SPELLINGS.items():
        consumed.update(spellings)
        found, value = _pick_richer(payload, spellings)
        if found and value is not None:
            canonical[field_name] = value

    canonical["role"] = _resolve_role(payload, default_role)
    if canonical.get("is_super_admin") is None:
        canonical.pop("is_super_admin", None)
    if is_super_admin_role(canonical["role"]):
        canonical["is_super_admin"] = True

    extra = {key: value for key, value in payload.items() if key not in consumed}
    if isinstance(payload.get("roles"), (list, tuple)):
        extra["roles"] = list(payload["roles"])
    canonical["extra"] = extra
    return Principal.model_validate(canonical)


def _first_string(sources: Sequence[Mapping[str, Any]], keys: Sequence[str]) -> str | None:
    for source in sources:
        for key in keys:
            value = source.get(key)
            if isinstance(value, str) and value.strip():
                return value
    return None


def extract_auth_payload(body: Any, principal_keys: Sequence[str]) -> AuthPayload:
    """Unwrap the backend's auth envelopes into token, refresh token and principal.

    Handles ``{data: {doctor, accessToken}}``, ``{data: {coordinator, tokens: {...}}}``,
    ``{accessToken, user}`` and ``{data: <principal>}``.
    """
    if not isinstance(body, Mapping):
        return AuthPayload()

    data = body.get("data")
    envelope: Mapping[str, Any] = data if isinstance(data, Mapping) else body
    sources: list[Mapping[str, Any]] = [envelope]
    tokens = envelope.get("tokens")
    if isinstance(tokens, Mapping):
        sources.insert(0, tokens)
    if envelope is not body:
        sources.append(body)

    access_token = _first_string(sources, _TOKEN_KEYS)
    refresh_token = _first_string(sources, _REFRESH_TOKEN_KEYS)

    principal: dict[str, Any] | None = None
    for key in (*principal_keys, "user", "principal"):
        for source in (envelope, body):
            candidate = source.get(key)
            if isinstance(candidate, Mapping):
                principal = dict(candidate)
                break
        if principal is not None:
            break

    if principal is None and envelope is not body and ("id" in envelope or "_id" in envelope):
        principal = {key: value for key, value in envelope.items() if key != "tokens"}

    return AuthPayload(access_token=access_token, refresh_token=refresh_token, principal=principal)
