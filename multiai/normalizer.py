"""Conversation normalization: strict role alternation and system-role folding."""

import logging
from collections.abc import Iterable

from multiai.models import ChatMessage

logger = logging.getLogger(__name__)

PLACEHOLDER_USER_TEXT = "(Earlier conversation context follows.)"
_SEPARATOR = "\n\n"


def _merge_adjacent(messages: list[ChatMessage]) -> list[ChatMessage]:
    merged: list[ChatMessage] = []
    for msg in messages:
        if merged and merged[-1].role == msg.role:
            merged[-1] = ChatMessage(msg.role, merged[-1].content + _SEPARATOR + msg.content)
        else:
            merged.append(msg)
    return merged


def normalize(messages: Iterable[ChatMessage]) -> list[ChatMessage]:
    """Repair a message list so its non-system part alternates starting with user.

    System messages are kept in their original order and placed before the
    alternating sequence. Consecutive same-role messages are merged with a blank
    line; a leading assistant message gets a placeholder user turn in front.
    """
    messages = list(messages)
    system = [m for m in messages if m.role == "system"]
    dialogue = _merge_adjacent([m for m in messages if m.role != "system"])

    if dialogue and dialogue[0].role == "assistant":
        dialogue.insert(0, ChatMessage("user", PLACEHOLDER_USER_TEXT))
        dialogue = _merge_adjacent(dialogue)

    return system + dialogue


def fold_system_messages(messages: list[ChatMessage]) -> list[ChatMessage]:
    """Move all system text into the first user message for models that reject system roles."""
    system_text = "\n".join(m.content for m in messages if m.role == "system")
    rest = [m for m in messages if m.role != "system"]

    if not system_text:
        return rest

    if rest and rest[0].role == "user":
        return [ChatMessage("user", system_text + _SEPARATOR + rest[0].content), *rest[1:]]
    return [ChatMessage("user", system_text), *rest]


def needs_system_folding(upstream_model_id: str, fold_families: Iterable[str]) -> bool:
    return any(family in upstream_model_id for family in fold_families)


def prepare_for_model(
    messages: list[ChatMessage],
    upstream_model_id: str,
    *,
    system_prompt: str = "",
    fold_families: Iterable[str] = (),
) -> list[ChatMessage]:
    """Build the exact message list sent upstream for one model.

    Prepends the default system prompt, normalizes, then folds system messages
    for model families that reject them.
    """
    outgoing = list(messages)
    if system_prompt:
        outgoing.insert(0, ChatMessage("system", system_prompt))

    prepared = normalize(outgoing)
    if needs_system_folding(upstream_model_id, fold_families):
        prepared = fold_system_messages(prepared)

    if len(prepared) != len(outgoing):
        logger.debug(
            "Sanitized messages for model %s: %d -> %d",
            upstream_model_id,
            len(outgoing),
            len(prepared),
        )
    return prepared
