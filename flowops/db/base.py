import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, MetaData, Uuid
from sqlalchemy.orm import DeclarativeBase

# Deterministic constraint names so Alembic batch mode on SQLite can find them
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """
    Base class for FlowOps models.

    Datetimes are timezone-aware, ids are native UUIDs where the backend has
    them, and dict/list columns map to JSON so the schema runs on both
    PostgreSQL and SQLite.
    """
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
    type_annotation_map = {
        datetime: DateTime(timezone=True),
        uuid.UUID: Uuid,
        dict: JSON,
        list: JSON,
    }
