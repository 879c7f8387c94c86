"""
Declarative base shared by all lms-core models.

Column types stay portable (JSON, not JSONB; integer keys) so the same
models run on PostgreSQL in production and SQLite in tests.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    type_annotation_map = {
        datetime: DateTime(timezone=True),
        dict[str, Any]: JSON,
        list[Any]: JSON,
    }


def enum_column(enum_cls: type[Enum]) -> SAEnum:
    """String-backed enum column storing member values ("in_progress"), not names."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=32,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )
