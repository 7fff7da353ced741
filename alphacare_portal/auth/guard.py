from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from alphacare_portal.auth.dispatcher import login_route
from alphacare_portal.auth.service import RoleAuthService
from alphacare_portal.domain.roles import normalize_namespace, role_matches_namespace
from alphacare_portal.models.principal import Principal
from alphacare_portal.observability import log_event

GuardDecision = Literal["loading", "render", "redirect"]


@dataclass(frozen=True)
class GuardOutcome:
    decision: GuardDecision
    redirect_to: str | None = None
    principal: Principal | None = None

    @property
    def allowed(self) -> bool:
        return self.decision == "render"


class RouteGuard:
    """Gates a role-scoped view on the role's auth service.

    Protected content is never rendered while the service is still loading.
    """

    def __init__(self, service: RoleAuthService, required_role: str) -> None:
        namespace = normalize_namespace(required_role)
        if service.namespace != namespace:
            raise ValueError(f"Guard for {namespace} cannot use the {service.namespace} auth service")
        self.service = service
        self.namespace = namespace
        self._redirected = False

    def decide(self) -> GuardOutcome:
        state = self.service.state
        if state.is_loading:
            return GuardOutcome(decision="loading")
        principal = state.principal
        if state.is_authenticated and principal is not None and role_matches_namespace(principal.role, self.namespace):
            return GuardOutcome(decision="render", principal=principal)
        return GuardOutcome(decision="redirect", redirect_to=login_route(self.namespace))

    async def resolve(self) -> GuardOutcome:
        """Wait for bootstrap, decide, and navigate to the login page at most once."""
        await self.service.bootstrap()
        outcome = self.decide()
        if outcome.decision == "redirect" and not self._redirected:
            self._redirected = True
            log_event("route_guard_redirect", namespace=self.namespace, redirect_to=outcome.redirect_to)
            self.service.navigator.replace(outcome.redirect_to or login_route(self.namespace))
        return outcome
