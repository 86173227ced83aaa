"""Parsing and contract checks for structured model output.

Providers are asked for strict JSON, but models still wrap answers in code
fences or prose now and then. Everything here tolerates that and reports
contract violations as AIOutputValidationError so the outbox retries.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?```\s*$", re.DOTALL)
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

MAX_REPORTED_ERRORS = 3


class AIOutputValidationError(Exception):
    """Model output was not JSON or did not match the expected contract."""

    pass


def _unfence(text: str) -> str:
    content = text.strip()
    match = _FENCE_RE.match(content)
    return match.group(1).strip() if match else content


def parse_json_object(text: str | None) -> dict | None:
    """First JSON object in ``text`` (bare, fenced, or embedded in prose)."""
    if not text:
        return None
    content = _unfence(text)
    for candidate in (content, *_OBJECT_RE.findall(content)):
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        return data if isinstance(data, dict) else None
    logger.warning("No JSON object in model output (%s chars)", len(content))
    return None


def _describe(exc: ValidationError) -> str:
    fields = [".".join(str(p) for p in err["loc"]) or "<root>" for err in exc.errors()]
    shown = ", ".join(fields[:MAX_REPORTED_ERRORS])
    if len(fields) > MAX_REPORTED_ERRORS:
        shown += f" (+{len(fields) - MAX_REPORTED_ERRORS} more)"
    return shown


def require_model(model_cls: type[ModelT], raw: dict | str | Any) -> ModelT:
    """
    Validate provider output against ``model_cls``.

    Accepts an already-decoded dict or the raw response text.

    Raises:
        AIOutputValidationError: no JSON object, or fields failing the contract
    """
    data = parse_json_object(raw) if isinstance(raw, str) else raw
    if not isinstance(data, dict):
        raise AIOutputValidationError(f"{model_cls.__name__}: no JSON object in output")
    try:
        return model_cls.model_validate(data)
    except ValidationError as exc:
        raise AIOutputValidationError(
            f"{model_cls.__name__}: {exc.error_count()} validation error(s) at {_describe(exc)}"
        ) from exc
