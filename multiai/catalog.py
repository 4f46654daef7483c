"""Model catalog: parse raw external records into ModelDescriptor and answer tier queries."""

import json
import logging
from collections.abc import Callable, Iterable
from pathlib import Path

import yaml

from multiai.models import ModelDescriptor, Restriction, Tier

logger = logging.getLogger(__name__)

_RESTRICTIONS = {"none", "admin_only"}

# OpenRouter names its zero-priced variants with this suffix.
FREE_SUFFIX = ":free"


class CatalogError(ValueError):
    """Raised when catalog records cannot be turned into a consistent catalog."""


def _pick(raw: dict, *keys: str, default=None):
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def _price(raw: dict, *keys: str) -> float:
    value = _pick(raw, *keys, default=0)
    try:
        price = float(value)
    except (TypeError, ValueError) as exc:
        raise CatalogError(f"Invalid price {value!r} for keys {keys}") from exc
    if price < 0:
        raise CatalogError(f"Negative price {price} for keys {keys}")
    return price


def parse_model_record(raw: dict) -> ModelDescriptor:
    """Convert one raw catalog row into a ModelDescriptor.

    Accepts both the store's snake_case columns and camelCase keys.

    Raises:
        CatalogError: If the row has no id or carries invalid values.
    """
    if not isinstance(raw, dict):
        raise CatalogError(f"Catalog record must be a mapping, got {type(raw).__name__}")

    model_id = str(_pick(raw, "id", "model_id", default="")).strip()
    if not model_id:
        raise CatalogError("Catalog record is missing an id")

    context = _pick(raw, "context_window", "contextWindow", "context_window_tokens")
    try:
        context_window = int(context) if context is not None else None
    except (TypeError, ValueError) as exc:
        raise CatalogError(f"Invalid context window {context!r} for {model_id}") from exc

    restriction = str(_pick(raw, "restriction", "restriction_class", "restrictionClass", default="none"))
    if restriction not in _RESTRICTIONS:
        raise CatalogError(f"Unknown restriction {restriction!r} for {model_id}")

    return ModelDescriptor(
        id=model_id,
        display_name=str(_pick(raw, "name", "display_name", "displayName", default=model_id)),
        provider=str(_pick(raw, "provider", default="unknown")),
        input_price_per_million=_price(raw, "input_price", "inputPrice", "input_price_per_million"),
        output_price_per_million=_price(raw, "output_price", "outputPrice", "output_price_per_million"),
        context_window_tokens=context_window,
        is_active=bool(_pick(raw, "is_active", "isActive", default=True)),
        restriction=restriction,  # type: ignore[arg-type]
    )


def _load_records_file(path: Path) -> list[dict]:
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if isinstance(data, dict):
        data = data.get("models") or data.get("catalog") or []
    return list(data or [])


class ModelCatalog:
    """Read-only view of the model catalog.

    The loader is the external store; when it fails or returns nothing the
    static fallback records are used instead.
    """

    def __init__(
        self,
        loader: Callable[[], Iterable[dict]] | None = None,
        fallback_records: Iterable[dict] = (),
    ) -> None:
        self._loader = loader
        self._fallback = list(fallback_records)
        self._models: dict[str, ModelDescriptor] = {}
        self.refresh()

    @classmethod
    def from_records(cls, records: Iterable[dict]) -> "ModelCatalog":
        return cls(loader=None, fallback_records=records)

    @classmethod
    def from_file(cls, path: Path, fallback_records: Iterable[dict] = ()) -> "ModelCatalog":
        return cls(loader=lambda: _load_records_file(path), fallback_records=fallback_records)

    def refresh(self) -> None:
        """Reload the catalog from its source on demand."""
        records: list[dict] = []
        if self._loader is not None:
            try:
                records = list(self._loader())
            except Exception as exc:
                logger.warning("Catalog source failed, using fallback list: %s", exc)
                records = []
            if not records:
                logger.warning("Catalog source returned no models, using fallback list")
        if not records:
            records = self._fallback

        models: dict[str, ModelDescriptor] = {}
        for raw in records:
            try:
                descriptor = parse_model_record(raw)
            except CatalogError as exc:
                logger.warning("Skipping invalid catalog record: %s", exc)
                continue
            if descriptor.id in models:
                raise CatalogError(f"Duplicate model id in catalog: {descriptor.id}")
            models[descriptor.id] = descriptor

        self._models = models
        logger.debug("Catalog loaded: %d models", len(models))

    def list_models(self, include_inactive: bool = False) -> list[ModelDescriptor]:
        return [m for m in self._models.values() if include_inactive or m.is_active]

    def get(self, model_id: str) -> ModelDescriptor | None:
        return self._models.get(model_id)

    def tier(self, model_id: str) -> Tier:
        """Catalog tier; ids missing from the catalog are premium unless they carry the free suffix."""
        model = self.get(model_id)
        if model:
            return model.tier
        return "free" if model_id.endswith(FREE_SUFFIX) else "premium"

    def restriction(self, model_id: str) -> Restriction:
        model = self.get(model_id)
        return model.restriction if model else "none"

    def has_premium(self, model_ids: Iterable[str]) -> bool:
        return any(self.tier(model_id) == "premium" for model_id in model_ids)
