"""
SQL parameter rendering and execution helpers.

Queries are written as templates with ``@name`` placeholders that are
replaced by literal values before execution. No dialect translation is
done: templates must use SQL every target database understands.
"""

import re
from datetime import date, datetime
from typing import Any

import pandas as pd

from cdmcovariates.utils.logging import get_logger

log = get_logger(__name__)

_PARAM_PATTERN = re.compile(r"@([A-Za-z_][A-Za-z0-9_]*)")


def _format_value(value: Any) -> str:
    """Format a Python value as an SQL literal fragment."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return f"'{value.strftime('%Y-%m-%d')}'"
    if isinstance(value, (list, tuple, set, frozenset)):
        if not value:
            msg = "Cannot render an empty sequence into SQL"
            raise ValueError(msg)
        return ",".join(_format_value(v) for v in value)
    # Strings are inserted verbatim: they are identifiers or SQL fragments.
    return str(value)


def render_sql(sql: str, **params: Any) -> str:
    """
    Replace ``@name`` placeholders with parameter values.

    Strings are inserted as-is (schema and table names), numbers and dates
    as literals, and sequences as comma-separated literal lists.

    Example:
        render_sql("SELECT * FROM @schema.person WHERE person_id IN (@ids)",
                   schema="cdm", ids=[1, 2])

    Args:
        sql: SQL template.
        **params: Parameter values by name.

    Returns:
        Rendered SQL.

    Raises:
        ValueError: If the template uses a parameter that was not supplied.
    """
    missing: list[str] = []

    def replacer(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in params:
            missing.append(name)
            return match.group(0)
        return _format_value(params[name])

    rendered = _PARAM_PATTERN.sub(replacer, sql)
    if missing:
        msg = f"Missing SQL parameters: {', '.join(sorted(set(missing)))}"
        raise ValueError(msg)
    return rendered


def qualify(schema: str | None, table: str) -> str:
    """Schema-qualify a table name when a schema is given."""
    return f"{schema}.{table}" if schema else table


def read_sql(connection: Any, sql: str) -> pd.DataFrame:
    """
    Run a query on a DB-API connection and return the result as a DataFrame.

    Args:
        connection: Open DB-API 2.0 connection.
        sql: Rendered SQL.

    Returns:
        Query result.
    """
    log.debug("Running query", sql=sql)
    cursor = connection.cursor()
    try:
        cursor.execute(sql)
        columns = [d[0].lower() for d in cursor.description]
        rows = cursor.fetchall()
    finally:
        cursor.close()
    return pd.DataFrame.from_records(rows, columns=columns)


def execute_sql(connection: Any, sql: str) -> None:
    """
    Execute one statement that returns no rows and commit.

    Args:
        connection: Open DB-API 2.0 connection.
        sql: Rendered SQL.
    """
    log.debug("Executing statement", sql=sql)
    cursor = connection.cursor()
    try:
        cursor.execute(sql)
    finally:
        cursor.close()
    connection.commit()
