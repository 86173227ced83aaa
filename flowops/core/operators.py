"""Operator directory (bearer token -> operator identity and role).

Built once at startup and stored on ``app.state.operators``. Tests inject
their own directory.
"""

from __future__ import annotations

import hmac
import json
import logging

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from flowops.core.config import settings
from flowops.db.enums import OperatorRole

logger = logging.getLogger(__name__)


class Operator(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    role: OperatorRole
    token: str


DEFAULT_OPERATORS: tuple[Operator, ...] = (
    Operator(id="op_viewer", name="Read Only", role=OperatorRole.VIEWER, token="viewer-token"),
    Operator(
        id="op_operator", name="Support Agent", role=OperatorRole.OPERATOR, token="operator-token"
    ),
    Operator(
        id="op_supervisor", name="Supervisor", role=OperatorRole.SUPERVISOR, token="supervisor-token"
    ),
)

_operator_list = TypeAdapter(list[Operator])


class OperatorDirectory:
    def __init__(self, operators: list[Operator] | tuple[Operator, ...]) -> None:
        tokens = [op.token for op in operators]
        if len(tokens) != len(set(tokens)):
            raise ValueError("Operator tokens must be unique")
        self._operators = tuple(operators)

    def __len__(self) -> int:
        return len(self._operators)

    def get_by_token(self, token: str | None) -> Operator | None:
        if not token:
            return None
        for operator in self._operators:
            if hmac.compare_digest(operator.token.encode(), token.encode()):
                return operator
        return None

    def get_by_id(self, operator_id: str) -> Operator | None:
        return next((op for op in self._operators if op.id == operator_id), None)


def load_operator_directory(raw: str | None = None) -> OperatorDirectory:
    """Build the directory from OPERATORS_JSON, or the built-in trio when unset."""
    raw = settings.OPERATORS_JSON if raw is None else raw
    if not raw or not raw.strip():
        if settings.ENV != "dev":
            logger.warning("OPERATORS_JSON not set; using built-in demo operators")
        return OperatorDirectory(DEFAULT_OPERATORS)
    try:
        operators = _operator_list.validate_python(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ValueError(f"Invalid OPERATORS_JSON: {exc}") from exc
    return OperatorDirectory(operators)
