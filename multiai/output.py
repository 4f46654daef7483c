"""Rich console output and markdown file save for chat and synthesis results."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from multiai.health import HealthAdvisoryStore
from multiai.models import ChatResult, ModelDescriptor, ModelReply, SynthesisOutcome

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _reply_preview(reply: ModelReply, words: int = 50) -> str:
    """Return first N words of a response."""
    all_words = reply.content.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def print_chat_result(model_id: str, result: ChatResult) -> None:
    console.print(Rule(f"[bold cyan]{model_id}[/bold cyan]"))
    console.print(Markdown(result.content or "_(empty response)_"))
    tokens = f" | Tokens: {result.usage.total_tokens}" if result.usage else ""
    console.print(Text(f"Model: {result.model} | Latency: {result.latency_sec:.1f}s{tokens}", style="dim"))
    for index, citation in enumerate(result.citations, start=1):
        console.print(Text(f"[{index}] {citation}", style="dim"))


def print_synthesis_outcome(outcome: SynthesisOutcome) -> None:
    """Print per-model previews, failures and the full synthesis."""
    console.print(Rule("[bold cyan]Model Responses[/bold cyan]"))
    for reply in outcome.per_model_responses:
        console.print(Panel(_reply_preview(reply), title=f"[bold]{reply.model_id}[/bold]", border_style="dim"))
    for failure in outcome.failures:
        console.print(f"  [red]FAIL[/red] {failure.model_id}: {failure.error_message or failure.error_kind or 'empty response'}")

    console.print(Rule("[bold green]Synthesis[/bold green]"))
    console.print(
        Text(
            f"Synthesized by: {outcome.synthesis_model} | "
            f"Responses: {len(outcome.per_model_responses)} | "
            f"Duration: {outcome.duration_sec:.1f}s",
            style="dim",
        )
    )
    console.print(Markdown(outcome.synthesis))


def print_models(models: list[ModelDescriptor], health: HealthAdvisoryStore | None = None) -> None:
    table = Table(title="Models")
    table.add_column("id")
    table.add_column("name")
    table.add_column("tier")
    table.add_column("restriction")
    table.add_column("health")
    for m in models:
        status = health.is_available(m.id) if health is not None else None
        label = "?" if status is None else ("[green]up[/green]" if status else "[red]down[/red]")
        table.add_row(m.id, m.display_name, m.tier, m.restriction, label)
    console.print(table)


def print_health_results(results: dict[str, tuple[bool, str]]) -> None:
    for name in sorted(results):
        ok, err = results[name]
        if ok:
            console.print(f"  [green]OK  [/green] {name}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {short_err}")


def save_to_file(outcome: SynthesisOutcome, question: str, output_dir: Path) -> Path:
    """Save the full synthesis transcript as a markdown file.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{_slug(question)}.md"

    lines: list[str] = [
        f"# Multi AI Synthesis: {question[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Models:** {', '.join(r.model_id for r in outcome.per_model_responses)}",
        f"**Synthesizer:** {outcome.synthesis_model}",
        f"**Duration:** {outcome.duration_sec:.1f}s",
        "",
        "---",
        "",
        "## Model Responses",
        "",
    ]
    for reply in outcome.per_model_responses:
        lines += [f"### {reply.model_id}", "", reply.content, ""]

    if outcome.failures:
        lines += ["## Failed Models", ""]
        lines += [f"- {f.model_id}: {f.error_kind or 'empty response'}" for f in outcome.failures]
        lines.append("")

    lines += [f"## Synthesis (by {outcome.synthesis_model})", "", outcome.synthesis, ""]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Synthesis saved to: %s", filepath)
    return filepath
