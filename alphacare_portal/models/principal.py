from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from alphacare_portal.domain.roles import normalize_role
from alphacare_portal.domain.normalization import normalize_account_status


RoleCanonical = Literal["doctor", "patient", "coordinator", "admin", "super_admin"]
AccountStatus = Literal["active", "pending_verification", "suspended"]


class Principal(BaseModel):
    """Canonical identity record for an authenticated user of one role."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    role: RoleCanonical
    full_name: str | None = None
    username: str | None = None
    email: str | None = None
    phone_number: str | None = None
    account_status: AccountStatus = "active"
    specialty: str | None = None
    medical_registration_id: str | None = None
    uhid: str | None = None
    hospital_id: str | None = None
    is_verified: bool | None = None
    is_super_admin: bool = False
    permissions: dict[str, bool] | list[str] = Field(default_factory=dict)
    last_login: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str) and not value.strip():
            raise ValueError("Principal id must be non-empty")
        return value

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: str) -> str:
        return normalize_role(value)

    @field_validator("account_status", mode="before")
    @classmethod
    def _normalize_account_status(cls, value: str | None) -> str:
        return normalize_account_status(value)

    @property
    def display_name(self) -> str:
        return self.full_name or self.username or self.email or self.id

    @property
    def is_active(self) -> bool:
        return self.account_status == "active"


class PrincipalSummary(BaseModel):
    id: str
    role: RoleCanonical
    display_name: str
    email: str | None
    account_status: AccountStatus

    @classmethod
    def from_principal(cls, principal: Principal) -> "PrincipalSummary":
        return cls(
            id=principal.id,
            role=principal.role,
            display_name=principal.display_name,
            email=principal.email,
            account_status=principal.account_status,
        )
