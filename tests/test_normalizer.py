"""Tests for multiai/normalizer.py."""

import itertools

import pytest

from multiai.models import ChatMessage
from multiai.normalizer import (
    PLACEHOLDER_USER_TEXT,
    fold_system_messages,
    needs_system_folding,
    normalize,
    prepare_for_model,
)


def _roles(messages: list[ChatMessage]) -> list[str]:
    return [m.role for m in messages]


def _alternates(messages: list[ChatMessage]) -> bool:
    dialogue = [m for m in messages if m.role != "system"]
    if dialogue and dialogue[0].role != "user":
        return False
    return all(a.role != b.role for a, b in zip(dialogue, dialogue[1:]))


def test_normalize_empty_list():
    assert normalize([]) == []


def test_normalize_keeps_valid_conversation():
    messages = [
        ChatMessage("system", "Be brief."),
        ChatMessage("user", "Hi"),
        ChatMessage("assistant", "Hello"),
        ChatMessage("user", "How are you?"),
    ]
    assert normalize(messages) == messages


def test_normalize_merges_consecutive_user_messages():
    result = normalize([ChatMessage("user", "A"), ChatMessage("user", "B")])
    assert result == [ChatMessage("user", "A\n\nB")]


def test_normalize_inserts_placeholder_before_leading_assistant():
    result = normalize([ChatMessage("assistant", "Earlier answer"), ChatMessage("user", "Follow up")])
    assert _roles(result) == ["user", "assistant", "user"]
    assert result[0].content == PLACEHOLDER_USER_TEXT


def test_normalize_moves_system_messages_first_in_order():
    messages = [
        ChatMessage("user", "Q1"),
        ChatMessage("system", "S1"),
        ChatMessage("assistant", "A1"),
        ChatMessage("system", "S2"),
        ChatMessage("user", "Q2"),
    ]
    result = normalize(messages)
    assert result[:2] == [ChatMessage("system", "S1"), ChatMessage("system", "S2")]
    assert _roles(result[2:]) == ["user", "assistant", "user"]


def test_normalize_only_system_messages():
    messages = [ChatMessage("system", "S1"), ChatMessage("system", "S2")]
    assert normalize(messages) == messages


def test_normalize_is_idempotent():
    messages = [
        ChatMessage("assistant", "x"),
        ChatMessage("assistant", "y"),
        ChatMessage("system", "s"),
        ChatMessage("user", "q"),
        ChatMessage("user", "r"),
        ChatMessage("assistant", "z"),
    ]
    once = normalize(messages)
    assert normalize(once) == once
    assert _alternates(once)


ROLE_SEQUENCES = [
    roles for length in range(6) for roles in itertools.product(("system", "user", "assistant"), repeat=length)
]


@pytest.mark.parametrize("roles", ROLE_SEQUENCES, ids=lambda roles: "-".join(roles) or "empty")
def test_normalize_properties_hold_for_every_role_sequence(roles):
    messages = [ChatMessage(role, f"{role}-{i}") for i, role in enumerate(roles)]
    result = normalize(messages)

    assert _alternates(result)
    assert normalize(result) == result
    system_count = roles.count("system")
    assert _roles(result[:system_count]) == ["system"] * system_count
    assert "system" not in _roles(result[system_count:])


def test_normalize_accepts_a_generator():
    messages = [ChatMessage("system", "s"), ChatMessage("user", "a"), ChatMessage("assistant", "b")]
    assert normalize(m for m in messages) == messages


def test_normalize_preserves_message_text():
    messages = [ChatMessage("user", "one"), ChatMessage("user", "two"), ChatMessage("assistant", "three")]
    joined = " ".join(m.content for m in normalize(messages))
    for text in ("one", "two", "three"):
        assert text in joined


def test_fold_system_messages_into_first_user():
    messages = [
        ChatMessage("system", "S1"),
        ChatMessage("system", "S2"),
        ChatMessage("user", "Question"),
        ChatMessage("assistant", "Answer"),
    ]
    result = fold_system_messages(messages)
    assert result[0] == ChatMessage("user", "S1\nS2\n\nQuestion")
    assert _roles(result) == ["user", "assistant"]


def test_fold_system_messages_without_user_turn():
    result = fold_system_messages([ChatMessage("system", "S")])
    assert result == [ChatMessage("user", "S")]


def test_fold_system_messages_without_system_is_noop():
    messages = [ChatMessage("user", "Q")]
    assert fold_system_messages(messages) == messages


def test_needs_system_folding_matches_family():
    assert needs_system_folding("google/gemma-3-27b-it:free", ["google/gemma-3-27b-it"])
    assert not needs_system_folding("google/gemini-2.0-flash", ["google/gemma-3-27b-it"])


def test_prepare_for_model_prepends_system_prompt():
    result = prepare_for_model([ChatMessage("user", "Q")], "openai/gpt-4o", system_prompt="Be helpful.")
    assert result == [ChatMessage("system", "Be helpful."), ChatMessage("user", "Q")]


def test_prepare_for_model_folds_for_listed_family():
    result = prepare_for_model(
        [ChatMessage("user", "Q")],
        "google/gemma-3-27b-it:free",
        system_prompt="Be helpful.",
        fold_families=["google/gemma-3-27b-it"],
    )
    assert result == [ChatMessage("user", "Be helpful.\n\nQ")]
    assert all(m.role != "system" for m in result)
