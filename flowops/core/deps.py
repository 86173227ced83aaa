"""FastAPI dependencies for authentication, authorization, and database access."""

from typing import Generator

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from flowops.core.operators import Operator, OperatorDirectory
from flowops.db.session import SessionLocal

BEARER_PREFIX = "Bearer "


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_operator_directory(request: Request) -> OperatorDirectory:
    return request.app.state.operators


def get_current_operator(
    request: Request,
    directory: OperatorDirectory = Depends(get_operator_directory),
) -> Operator:
    """
    Resolve the operator from the ``Authorization: Bearer <token>`` header.

    Raises:
        HTTPException 401: Missing or unknown token
    """
    auth = request.headers.get("authorization") or ""
    token = auth[len(BEARER_PREFIX):].strip() if auth.startswith(BEARER_PREFIX) else None

    operator = directory.get_by_token(token)
    if operator is None:
        raise HTTPException(status_code=401, detail="Missing or invalid operator token")
    return operator


def require_roles(allowed_roles):
    """
    Dependency factory for role-based authorization.

    Uses enum values (not strings) to prevent drift.

    Usage:
        @router.post("/x", dependencies=[Depends(require_roles(ROLES_CAN_WORK_HANDOFFS))])
    """
    def dependency(operator: Operator = Depends(get_current_operator)) -> Operator:
        if operator.role not in allowed_roles:
            raise HTTPException(
                status_code=403,
                detail=f"Role '{operator.role.value}' not authorized for this action",
            )
        return operator
    return dependency
