from dataclasses import dataclass, field

from alphacare_portal.domain.roles import normalize_namespace, role_matches_namespace
from alphacare_portal.models.principal import Principal


@dataclass
class Session:
    """Token and principal persisted for one role namespace."""
    access_token: str = field(repr=False)
    principal: Principal
    role: str
    refresh_token: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.access_token:
            raise ValueError("Session requires an access token")
        self.role = normalize_namespace(self.role)
        if not role_matches_namespace(self.principal.role, self.role):
            raise ValueError(
                f"Principal role {self.principal.role} does not belong to namespace {self.role}"
            )
