from datetime import datetime, timezone

import pytest

from backend.explorer.models.node import MessageNode
from backend.explorer.models.source import SourceMessage
from backend.explorer.services.classifier import (
    AUTO_GENERATED_TAG,
    build_node,
    classify,
    display_summary,
    is_auto_generated,
    is_auto_node,
    normalize_title,
)


@pytest.mark.parametrize(
    "summary, expected",
    [
        (None, ""),
        (True, ""),
        (False, ""),
        ("Fix the build", "Fix the build"),
        ({"title": "Refactor parser"}, "Refactor parser"),
        ({"title": 42}, ""),
        ({"diffs": []}, ""),
        (["not", "a", "title"], ""),
        (3.5, ""),
    ],
)
def test_normalize_title_handles_every_shape(summary, expected) -> None:
    assert normalize_title(summary) == expected


@pytest.mark.parametrize(
    "title",
    [
        "Continue the task",
        "RESUME where we left off",
        "From history",
        "↑ arrow",
        "Recalling the last prompt",
        "Auto-generated follow up",
        "previous query again",
    ],
)
def test_is_auto_generated_matches_patterns_case_insensitively(title: str) -> None:
    assert is_auto_generated(title)


def test_is_auto_generated_rejects_plain_titles() -> None:
    assert not is_auto_generated("Write unit tests for the parser")
    assert not is_auto_generated("")


def test_user_message_with_continue_title_is_auto() -> None:
    node_type, tags = classify("user", "Please continue", "build")

    assert node_type == "auto"
    assert tags == ["build", "user", AUTO_GENERATED_TAG]


@pytest.mark.parametrize(
    "role, expected_type",
    [
        ("assistant", "response"),
        ("system", "system"),
        ("user", "user"),
        ("tool", "prompt"),
    ],
)
def test_classify_maps_roles(role: str, expected_type: str) -> None:
    node_type, tags = classify(role, "Add a CLI flag", "plan")

    assert node_type == expected_type
    assert tags == ["plan", role]


def test_classify_keeps_empty_agent_and_role() -> None:
    _, tags = classify("", "Add a CLI flag", "")

    assert tags == ["", ""]


def test_assistant_is_never_auto_even_with_matching_title() -> None:
    node_type, tags = classify("assistant", "Continue", "build")

    assert node_type == "response"
    assert AUTO_GENERATED_TAG not in tags


def test_display_summary_defaults_by_role() -> None:
    assert display_summary("assistant", "") == "AI response"
    assert display_summary("system", "") == "System message"
    assert display_summary("user", "") == "user message"
    assert display_summary("user", "Explicit") == "Explicit"


def test_build_node_from_source_message() -> None:
    message = SourceMessage.model_validate(
        {
            "id": "m2",
            "sessionID": "ses_a",
            "role": "assistant",
            "parentId": "m1",
            "time": {"created": 1_700_000_000_000},
            "summary": {"title": "Explained the diff"},
            "agent": "build",
        }
    )

    node = build_node(message)

    assert node.id == "m2"
    assert node.type == "response"
    assert node.summary == "Explained the diff"
    assert node.parent_id == "m1"
    assert node.session_id == "ses_a"
    assert node.tags == ["build", "assistant"]
    assert node.timestamp == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)
    assert node.content == ""
    assert node.has_loaded is False
    assert node.children == []


def test_is_auto_node_checks_type_and_tag() -> None:
    assert is_auto_node(MessageNode(id="a", type="auto"))
    assert is_auto_node(MessageNode(id="b", type="user", tags=[AUTO_GENERATED_TAG]))
    assert not is_auto_node(MessageNode(id="c", type="response", summary="Resume parser fix"))
    assert not is_auto_node(MessageNode(id="d", type="user", summary="Add tests"))
