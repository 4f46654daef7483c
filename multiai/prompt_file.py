"""Prompt files with optional YAML front matter, and conversation history files."""

from pathlib import Path

import frontmatter
import yaml

from multiai.models import ChatMessage

_ROLES = {"user", "assistant", "system"}


def parse_prompt_file(file_path: Path) -> tuple[str, dict]:
    """Parse a markdown prompt file with optional YAML front matter.

    Returns:
        (prompt, metadata) where prompt is the body text and metadata may carry
        ``model`` (str) and ``models`` (comma-separated str or list).
        If no front matter, metadata is {}.
    """
    post = frontmatter.load(str(file_path))
    return post.content.strip(), dict(post.metadata)


def models_from_metadata(metadata: dict) -> list[str] | None:
    raw = metadata.get("models")
    if raw is None:
        return None
    if isinstance(raw, str):
        return [m.strip() for m in raw.split(",") if m.strip()]
    return [str(m) for m in raw]


def load_history(file_path: Path) -> list[ChatMessage]:
    """Load a YAML list of {role, content} mappings.

    Raises:
        ValueError: If an entry has an unknown role or no content key.
    """
    raw = yaml.safe_load(file_path.read_text(encoding="utf-8")) or []
    if not isinstance(raw, list):
        raise ValueError(f"History file must contain a list of messages: {file_path}")

    history: list[ChatMessage] = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict) or item.get("role") not in _ROLES or "content" not in item:
            raise ValueError(f"Invalid history entry #{index + 1} in {file_path}")
        history.append(ChatMessage(item["role"], str(item["content"])))
    return history
