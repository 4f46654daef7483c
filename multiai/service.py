"""Single-model chat path: access check, routing, normalization, gateway call, audit."""

import logging
from collections.abc import Iterable

from multiai.access import AccessDecision, AccessPolicy
from multiai.audit import AuditEntry, AuditSink
from multiai.catalog import ModelCatalog
from multiai.errors import GatewayIsolationError, ServerMisconfiguration
from multiai.gateway import ProviderGateway
from multiai.identity import IdentitySource
from multiai.models import Caller, ChatMessage, ChatResult, Restriction, Tier
from multiai.normalizer import prepare_for_model
from multiai.router import ModelRouter

logger = logging.getLogger(__name__)


class ChatService:
    """The authoritative path every model call goes through.

    Access is evaluated against the caller returned by the identity source on
    each call, so a revoked or expired credential takes effect immediately.
    """

    def __init__(
        self,
        catalog: ModelCatalog,
        router: ModelRouter,
        gateways: dict[str, ProviderGateway],
        identity: IdentitySource,
        *,
        policy: AccessPolicy | None = None,
        system_prompt: str = "",
        fold_system_models: Iterable[str] = (),
        audit: AuditSink | None = None,
    ) -> None:
        self.catalog = catalog
        self.router = router
        self._gateways = gateways
        self._identity = identity
        self._policy = policy or AccessPolicy()
        self._system_prompt = system_prompt
        self._fold_system_models = tuple(fold_system_models)
        self._audit = audit

    def current_caller(self) -> Caller:
        return self._identity.current_caller()

    def _catalog_ids(self, model_id: str) -> list[str]:
        """The requested id, its upstream id and every public alias of that upstream id."""
        upstream = self.router.resolve(model_id).upstream_model_id
        return list(dict.fromkeys([model_id, upstream, *self.router.public_ids_for(upstream)]))

    def effective_tier(self, model_id: str) -> Tier:
        """Premium if any catalog entry reachable through the route is premium."""
        ids = self._catalog_ids(model_id)
        known = [m for m in ids if self.catalog.get(m) is not None]
        if not known:
            return self.catalog.tier(model_id)
        return "premium" if self.catalog.has_premium(known) else "free"

    def effective_restriction(self, model_id: str) -> Restriction:
        """admin_only if the catalog says so or the router sends it to the restricted gateway."""
        for m in self._catalog_ids(model_id):
            if self.catalog.restriction(m) == "admin_only" or self.router.is_restricted(m):
                return "admin_only"
        return "none"

    def authorize(self, model_id: str, caller: Caller | None = None) -> AccessDecision:
        caller = caller if caller is not None else self.current_caller()
        return self._policy.authorize(
            caller,
            model_id,
            self.effective_tier(model_id),
            self.effective_restriction(model_id),
        )

    async def send_message(self, messages: list[ChatMessage], model_id: str) -> ChatResult:
        """Send a conversation to one model and return its reply.

        Raises:
            AuthRequired: Premium model and unauthenticated caller.
            Forbidden: Admin-only model and non-admin caller.
            ServerMisconfiguration: No gateway configured for the route.
            ProviderError: Upstream failure after the gateway's retries.
        """
        caller = self.current_caller()
        self.authorize(model_id, caller).raise_if_denied()

        route = self.router.resolve(model_id)
        gateway = self._gateways.get(route.gateway)
        if gateway is None:
            raise ServerMisconfiguration(f"no {route.gateway} gateway configured for {model_id}")
        if gateway.kind != route.gateway:
            raise GatewayIsolationError(model_id, route.gateway, gateway.kind)

        prepared = prepare_for_model(
            messages,
            route.upstream_model_id,
            system_prompt=self._system_prompt,
            fold_families=self._fold_system_models,
        )
        logger.info("Chat request: %s -> %s (%d messages)", model_id, route.upstream_model_id, len(prepared))

        result = await gateway.call(route.upstream_model_id, prepared)
        await self._record_audit(messages, result, route.upstream_model_id, caller)
        return result

    async def _record_audit(
        self,
        messages: list[ChatMessage],
        result: ChatResult,
        model_id: str,
        caller: Caller,
    ) -> None:
        if self._audit is None:
            return
        entry = AuditEntry(
            prompt="\n".join(m.content for m in messages if m.role == "user"),
            result=result.content,
            model_id=model_id,
            owner=caller.email or caller.subject,
        )
        try:
            await self._audit.record(entry)
        except Exception as exc:
            logger.warning("Prompt logging failed (non-fatal): %s", exc)
