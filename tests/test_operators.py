"""Tests for the operator directory and log helpers."""

import json

import pytest

from flowops.core.operators import DEFAULT_OPERATORS, OperatorDirectory, load_operator_directory
from flowops.core.structured_logging import build_log_context, mask_email
from flowops.db.enums import OperatorRole


def test_default_directory_when_unset():
    directory = load_operator_directory("")
    assert len(directory) == len(DEFAULT_OPERATORS)
    assert directory.get_by_token("supervisor-token").role == OperatorRole.SUPERVISOR


def test_directory_from_json():
    raw = json.dumps(
        [
            {"id": "op_a", "name": "A", "role": "operator", "token": "tok-a"},
            {"id": "op_b", "name": "B", "role": "viewer", "token": "tok-b"},
        ]
    )
    directory = load_operator_directory(raw)

    assert directory.get_by_token("tok-a").id == "op_a"
    assert directory.get_by_id("op_b").role == OperatorRole.VIEWER
    assert directory.get_by_token("tok-c") is None
    assert directory.get_by_token(None) is None


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        json.dumps([{"id": "op_a", "name": "A", "role": "admin", "token": "t"}]),
        json.dumps({"id": "op_a"}),
    ],
)
def test_invalid_json_is_rejected(raw):
    with pytest.raises(ValueError, match="Invalid OPERATORS_JSON"):
        load_operator_directory(raw)


def test_duplicate_tokens_are_rejected():
    operator = DEFAULT_OPERATORS[0]
    with pytest.raises(ValueError, match="unique"):
        OperatorDirectory([operator, operator.model_copy(update={"id": "op_dup"})])


@pytest.mark.parametrize(
    "email,expected",
    [
        ("customer@example.com", "cus...@example.com"),
        ("ab@x.io", "ab...@x.io"),
        ("no-domain", "no-..."),
        ("", ""),
        (None, ""),
    ],
)
def test_mask_email(email, expected):
    assert mask_email(email) == expected


def test_build_log_context_drops_empty_fields():
    assert build_log_context(operator_id="op_1", customer_id=None, route="/chat") == {
        "operator_id": "op_1",
        "route": "/chat",
    }
