"""Dialect-aware INSERT ... ON CONFLICT.

PostgreSQL in production, SQLite in the test suite. Both dialects expose
the same ``on_conflict_do_nothing`` / ``on_conflict_do_update`` API.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def insert_for(db: AsyncSession, model: Any) -> Any:  # noqa: ANN401
    """Return an INSERT construct for ``model`` matching the session's dialect."""
    bind = db.get_bind()
    if bind.dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)
