"""Click CLI: wires config, catalog, gateways and identity, then runs chat or synthesis."""

import asyncio
import logging
import sys
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from multiai.audit import JsonlAuditSink
from multiai.catalog import ModelCatalog
from multiai.errors import MultiAIError, ServerMisconfiguration
from multiai.gateway import ProviderGateway
from multiai.health import HealthAdvisoryStore
from multiai.healthcheck import run_health_checks
from multiai.identity import CredentialSigner, IdentitySource, SignedCredentialIdentity, StaticIdentity
from multiai.models import ChatMessage, DispatchResult
from multiai.output import (
    print_chat_result,
    print_health_results,
    print_models,
    print_synthesis_outcome,
    save_to_file,
)
from multiai.prompt_file import load_history, models_from_metadata, parse_prompt_file
from multiai.providers.base import ChatTransport
from multiai.providers.openai_compatible import OpenAICompatibleTransport
from multiai.retry import RetryPolicy
from multiai.router import ModelRouter
from multiai.service import ChatService
from multiai.synthesis import SynthesisOrchestrator

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


@dataclass
class Runtime:
    config: AppConfig
    catalog: ModelCatalog
    router: ModelRouter
    health: HealthAdvisoryStore
    transports: dict[str, ChatTransport]
    service: ChatService


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _parse_models_arg(models_arg: str | None) -> list[str] | None:
    if not models_arg:
        return None
    return [m.strip() for m in models_arg.split(",") if m.strip()]


def _build_transports(config: AppConfig) -> dict[str, ChatTransport]:
    """Build transports for gateways that have credentials. Returns dict keyed by gateway kind."""
    transports: dict[str, ChatTransport] = {}
    for name in config.available_gateways:
        try:
            transports[name] = OpenAICompatibleTransport(config.gateways[name])
        except ServerMisconfiguration as exc:
            logging.warning("Failed to set up gateway '%s': %s", name, exc)
    return transports


def _build_identity(config: AppConfig, token: str | None) -> IdentitySource:
    """Signed credentials when a token is given; anonymous otherwise."""
    if not token:
        return StaticIdentity()
    signer = CredentialSigner.from_env(config.auth.secret_env, timedelta(minutes=config.auth.token_ttl_min))
    return SignedCredentialIdentity(signer, token)


def _build_runtime(config: AppConfig, token: str | None) -> Runtime:
    catalog = ModelCatalog.from_records(config.catalog)
    router = ModelRouter.from_config(config.routing)
    health = HealthAdvisoryStore.from_config(config.health)
    transports = _build_transports(config)
    retry = RetryPolicy.from_config(config.retry)

    gateways = {
        kind: ProviderGateway(
            kind,
            transport,
            router.is_restricted,
            health=health,
            retry=retry,
            timeout_sec=config.gateways[kind].timeout_sec,
        )
        for kind, transport in transports.items()
    }
    audit = JsonlAuditSink(config.defaults.audit_log) if config.defaults.audit_log else None

    service = ChatService(
        catalog,
        router,
        gateways,
        _build_identity(config, token),
        system_prompt=config.defaults.system_prompt,
        fold_system_models=config.routing.fold_system_models,
        audit=audit,
    )
    return Runtime(config, catalog, router, health, transports, service)


def _read_prompt(prompt: str | None, prompt_file: str | None) -> tuple[str, dict]:
    if prompt_file:
        return parse_prompt_file(Path(prompt_file))
    if prompt:
        return prompt, {}
    console.print("[bold red]Error:[/bold red] Provide a PROMPT argument or --file.")
    sys.exit(1)


def _read_history(history_file: str | None) -> list[ChatMessage]:
    if not history_file:
        return []
    try:
        return load_history(Path(history_file))
    except ValueError as exc:
        console.print(f"[bold red]History error:[/bold red] {exc}")
        sys.exit(1)


def _fail(exc: MultiAIError) -> None:
    logger.debug("Request failed: %r", exc)
    console.print(f"[bold red]Error:[/bold red] {exc.user_message}")
    sys.exit(1)


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--token", envvar="MULTIAI_TOKEN", default=None, help="Signed credential (or set MULTIAI_TOKEN)")
@click.pass_context
def main(ctx: click.Context, verbose: bool, token: str | None) -> None:
    """Multi AI -- chat with one model or synthesize answers from several.

    \b
    Examples:
      multiai chat "Explain CRDTs" --model gpt-4o-mini
      multiai synth "REST or GraphQL?" --models gpt-4o,google/gemma-3-27b-it:free
      multiai synth --file question.md --history history.yaml
      multiai health --mode ping
      multiai token --subject alice --role admin
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    ctx.obj = {"config": config, "token": token}


def _runtime(ctx: click.Context) -> Runtime:
    try:
        return _build_runtime(ctx.obj["config"], ctx.obj["token"])
    except MultiAIError as exc:
        _fail(exc)
        raise


@main.command()
@click.argument("prompt", required=False)
@click.option("--model", "model_id", default=None, help="Model id (default: from prompt file front matter)")
@click.option("--file", "prompt_file", type=click.Path(exists=True), help="Read prompt from .md file")
@click.option("--history", "history_file", type=click.Path(exists=True), help="YAML conversation history")
@click.pass_context
def chat(
    ctx: click.Context,
    prompt: str | None,
    model_id: str | None,
    prompt_file: str | None,
    history_file: str | None,
) -> None:
    """Send a prompt to a single model."""
    text, meta = _read_prompt(prompt, prompt_file)
    model_id = model_id or meta.get("model")
    if not model_id:
        console.print("[bold red]Error:[/bold red] Provide --model or a 'model' front matter key.")
        sys.exit(1)

    runtime = _runtime(ctx)
    messages = [*_read_history(history_file), ChatMessage("user", text)]
    try:
        result = asyncio.run(runtime.service.send_message(messages, model_id))
    except MultiAIError as exc:
        _fail(exc)
        return
    print_chat_result(model_id, result)


@main.command()
@click.argument("prompt", required=False)
@click.option("--models", "models_arg", default=None, help="Comma-separated model list (default: from config)")
@click.option("--file", "prompt_file", type=click.Path(exists=True), help="Read prompt from .md file")
@click.option("--history", "history_file", type=click.Path(exists=True), help="YAML conversation history")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--no-save", is_flag=True, default=False, help="Do not save a markdown transcript")
@click.pass_context
def synth(
    ctx: click.Context,
    prompt: str | None,
    models_arg: str | None,
    prompt_file: str | None,
    history_file: str | None,
    output_path: str | None,
    no_save: bool,
) -> None:
    """Fan a prompt out to several models and synthesize one answer."""
    text, meta = _read_prompt(prompt, prompt_file)
    config: AppConfig = ctx.obj["config"]
    # CLI flag wins over front matter, which wins over config default
    model_ids = (
        _parse_models_arg(models_arg)
        or models_from_metadata(meta)
        or config.synthesis.default_models
    )

    runtime = _runtime(ctx)
    orchestrator = SynthesisOrchestrator(runtime.service, config.synthesis, config.prompts.synthesis)
    history = _read_history(history_file)

    console.print(f"\n[bold cyan]Multi AI Synthesis[/bold cyan] — {len(model_ids)} models")
    console.print(f"Models: {', '.join(model_ids)}")
    console.print(f"Question: [italic]{text[:80]}{'...' if len(text) > 80 else ''}[/italic]\n")

    async def _run():
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        ) as progress:

            def on_chunk_complete(index: int, results: list[DispatchResult]) -> None:
                ok = sum(1 for r in results if r.ok)
                progress.print(f"[green]OK[/green] Chunk {index + 1} complete ({ok}/{len(results)} responses)")

            progress.add_task("Querying models...", total=None)
            return await orchestrator.synthesize(text, history, model_ids, on_chunk_complete=on_chunk_complete)

    try:
        outcome = asyncio.run(_run())
    except MultiAIError as exc:
        _fail(exc)
        return

    print_synthesis_outcome(outcome)

    if not no_save:
        output_dir = Path(output_path) if output_path else config.defaults.output_dir
        saved_path = save_to_file(outcome, text, output_dir)
        console.print(f"\n[dim]Saved to: {saved_path}[/dim]")


@main.command("models")
@click.option("--all", "include_inactive", is_flag=True, help="Include inactive models")
@click.pass_context
def list_models(ctx: click.Context, include_inactive: bool) -> None:
    """List catalog models with tier and restriction."""
    runtime = _runtime(ctx)
    print_models(runtime.catalog.list_models(include_inactive), runtime.health)


@main.command()
@click.option("--mode", type=click.Choice(["catalog", "ping"]), default="catalog", show_default=True,
              help="catalog uses the free upstream model list, ping spends a tiny completion per model")
@click.option("--models", "models_arg", default=None, help="Comma-separated model list (default: whole catalog)")
@click.pass_context
def health(ctx: click.Context, mode: str, models_arg: str | None) -> None:
    """Check model availability and record it in the health store."""
    runtime = _runtime(ctx)
    model_ids = _parse_models_arg(models_arg) or [m.id for m in runtime.catalog.list_models(include_inactive=True)]

    console.print(f"\n[bold]Checking {len(model_ids)} models ({mode})...[/bold]")
    results = asyncio.run(
        run_health_checks(
            model_ids,
            runtime.router,
            runtime.transports,
            runtime.health,
            mode=mode,
            pause_sec=runtime.config.health.ping_pause_sec,
        )
    )
    print_health_results(results)

    failed = [n for n, (ok, _) in results.items() if not ok]
    console.print(f"\n{len(results) - len(failed)} available, {len(failed)} unavailable")


@main.command()
@click.option("--subject", required=True, help="User id to put in the credential")
@click.option("--email", default=None, help="Optional email claim")
@click.option("--role", type=click.Choice(["user", "admin"]), default="user", show_default=True)
@click.pass_context
def token(ctx: click.Context, subject: str, email: str | None, role: str) -> None:
    """Issue a signed credential for --token / MULTIAI_TOKEN."""
    config: AppConfig = ctx.obj["config"]
    try:
        signer = CredentialSigner.from_env(config.auth.secret_env, timedelta(minutes=config.auth.token_ttl_min))
    except MultiAIError as exc:
        _fail(exc)
        return
    click.echo(signer.issue(subject, role=role, email=email))


if __name__ == "__main__":
    main()
