"""Tier and restriction based access control, evaluated before any dispatch."""

from dataclasses import dataclass

from multiai.errors import AuthRequired, Forbidden, MultiAIError
from multiai.models import Caller, Restriction, Tier


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str | None = None      # "forbidden" or "auth_required" when denied
    model_id: str = ""

    def raise_if_denied(self) -> None:
        if self.allowed:
            return
        raise self.to_error()

    def to_error(self) -> MultiAIError:
        if self.reason == "forbidden":
            return Forbidden(self.model_id)
        return AuthRequired(self.model_id)


class AccessPolicy:
    """Rules, in order: admin-only needs admin; premium needs authentication; else allow."""

    def authorize(
        self,
        caller: Caller,
        model_id: str,
        tier: Tier,
        restriction: Restriction = "none",
    ) -> AccessDecision:
        if restriction == "admin_only" and caller.role != "admin":
            return AccessDecision(False, "forbidden", model_id)
        if tier == "premium" and not caller.authenticated:
            return AccessDecision(False, "auth_required", model_id)
        return AccessDecision(True, model_id=model_id)
