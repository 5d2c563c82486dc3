"""Startup assertion that the database matches the mapped models.

The schema is owned by Alembic migrations. Instead of probing for tables at
request time, the app checks once at startup that every mapped table and column
exists and refuses to start otherwise.
"""

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from tenantgate_api.db.base import Base

logger = logging.getLogger(__name__)


class SchemaDriftError(RuntimeError):
    """Database schema is behind the models; run the migrations."""


def find_schema_drift(engine: Engine) -> list[str]:
    """Return a description of every mapped table or column the database lacks."""
    # Imported for side effects: registers every model on Base.metadata
    import tenantgate_api.models  # noqa: F401

    inspector = inspect(engine)
    existing_tables = set(inspector.get_table_names())
    problems = []
    for table in Base.metadata.sorted_tables:
        if table.name not in existing_tables:
            problems.append(f"missing table {table.name}")
            continue
        existing_columns = {column["name"] for column in inspector.get_columns(table.name)}
        for column in table.columns:
            if column.name not in existing_columns:
                problems.append(f"missing column {table.name}.{column.name}")
    return problems


def verify_schema(engine: Engine) -> None:
    """Raise SchemaDriftError if the database is missing mapped tables/columns."""
    problems = find_schema_drift(engine)
    if problems:
        logger.error(f"Schema drift detected: {problems}")
        raise SchemaDriftError("; ".join(problems))
