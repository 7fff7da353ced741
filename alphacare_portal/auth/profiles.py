from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from alphacare_portal.domain.roles import normalize_namespace


@dataclass(frozen=True)
class RoleProfile:
    """Everything that differs between the four portals' auth flows."""

    namespace: str
    principal_keys: tuple[str, ...]
    auto_login_on_register: bool
    register_extra: tuple[tuple[str, str], ...] = ()


ROLE_PROFILES: Final[dict[str, RoleProfile]] = {
    # Doctor and coordinator accounts wait for admin verification after sign-up.
    "doctor": RoleProfile(
        namespace="doctor",
        principal_keys=("doctor",),
        auto_login_on_register=False,
    ),
    "patient": RoleProfile(
        namespace="patient",
        principal_keys=("user", "patient"),
        auto_login_on_register=True,
        register_extra=(("role", "patient"),),
    ),
    "coordinator": RoleProfile(
        namespace="coordinator",
        principal_keys=("coordinator",),
        auto_login_on_register=False,
    ),
    "admin": RoleProfile(
        namespace="admin",
        principal_keys=("admin",),
        auto_login_on_register=True,
    ),
}


def get_role_profile(role: str) -> RoleProfile:
    return ROLE_PROFILES[normalize_namespace(role)]
