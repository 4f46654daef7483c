"""Public model id -> upstream model id and gateway selection."""

import logging

from config.config_loader import RoutingConfig
from multiai.models import Route

logger = logging.getLogger(__name__)


class ModelRouter:
    """Resolve public ids against a static map and an exact restricted allow-list.

    Only ids listed in ``restricted_models`` (either the public id or the bare
    upstream name) go to the restricted gateway. There is no prefix matching.
    Unknown ids pass through unchanged to the primary gateway.
    """

    def __init__(self, model_map: dict[str, str], restricted_models: dict[str, str]) -> None:
        self._model_map = dict(model_map)
        self._restricted = dict(restricted_models)
        self._restricted_upstream = set(self._restricted.values())

    @classmethod
    def from_config(cls, routing: RoutingConfig) -> "ModelRouter":
        return cls(routing.model_map, routing.restricted_models)

    def is_restricted(self, model_id: str) -> bool:
        return model_id in self._restricted or model_id in self._restricted_upstream

    def resolve(self, public_model_id: str) -> Route:
        if public_model_id in self._restricted:
            route = Route(self._restricted[public_model_id], "restricted")
        elif public_model_id in self._restricted_upstream:
            route = Route(public_model_id, "restricted")
        else:
            route = Route(self._model_map.get(public_model_id, public_model_id), "primary")
        logger.debug("Resolved %s -> %s via %s gateway", public_model_id, route.upstream_model_id, route.gateway)
        return route

    def public_ids_for(self, upstream_model_id: str) -> list[str]:
        """Public ids that resolve to ``upstream_model_id``."""
        mappings = (*self._model_map.items(), *self._restricted.items())
        return [public for public, upstream in mappings if upstream == upstream_model_id]

    def restricted_upstream_models(self) -> list[str]:
        return sorted(self._restricted_upstream)
