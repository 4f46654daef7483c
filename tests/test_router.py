"""Tests for multiai/router.py."""

from config.config_loader import RoutingConfig
from multiai.models import Route
from multiai.router import ModelRouter


def test_resolve_mapped_model(router):
    assert router.resolve("gpt-4o") == Route("openai/gpt-4o", "primary")


def test_resolve_unknown_model_passes_through(router):
    assert router.resolve("mistralai/mistral-7b-instruct:free") == Route(
        "mistralai/mistral-7b-instruct:free", "primary"
    )


def test_resolve_restricted_public_id(router):
    assert router.resolve("perplexity/sonar") == Route("sonar", "restricted")


def test_resolve_restricted_upstream_name(router):
    assert router.resolve("sonar") == Route("sonar", "restricted")


def test_no_prefix_matching_for_restricted_family(router):
    """A lookalike id outside the allow-list stays on the primary gateway."""
    route = router.resolve("perplexity/sonar-pro")
    assert route.gateway == "primary"
    assert not router.is_restricted("perplexity/sonar-pro")


def test_is_restricted(router):
    assert router.is_restricted("perplexity/sonar")
    assert router.is_restricted("sonar")
    assert not router.is_restricted("gpt-4o")


def test_from_config():
    routing = RoutingConfig(model_map={"a": "vendor/a"}, restricted_models={"r": "r-upstream"})
    router = ModelRouter.from_config(routing)
    assert router.resolve("a") == Route("vendor/a", "primary")
    assert router.resolve("r") == Route("r-upstream", "restricted")
    assert router.restricted_upstream_models() == ["r-upstream"]


def test_public_ids_for_upstream(router):
    assert router.public_ids_for("openai/gpt-4o") == ["gpt-4o"]
    assert router.public_ids_for("sonar") == ["perplexity/sonar", "sonar"]
    assert router.public_ids_for("vendor/unknown") == []
