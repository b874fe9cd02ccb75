"""Case-insensitive text matching that behaves the same on SQLite and PostgreSQL.

SQLite's built-in ``lower`` folds ASCII letters only, so SQLite connections get
a ``py_casefold`` function backed by ``str.casefold``. Other dialects render
``casefold`` as ``lower``.
"""

from __future__ import annotations

import json

from sqlalchemy import String, event, literal, select
from sqlalchemy.engine import Engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql import func
from sqlalchemy.sql.functions import GenericFunction

LIKE_ESCAPE = "/"


def dumps_json(value) -> str:
    return json.dumps(value, ensure_ascii=False)


class casefold(GenericFunction):
    type = String()
    inherit_cache = True


@compiles(casefold)
def _compile_casefold(element, compiler, **kw) -> str:
    return f"lower({compiler.process(element.clauses, **kw)})"


@compiles(casefold, "sqlite")
def _compile_casefold_sqlite(element, compiler, **kw) -> str:
    return f"py_casefold({compiler.process(element.clauses, **kw)})"


def _py_casefold(value):
    return value.casefold() if isinstance(value, str) else value


def install_sqlite_functions(engine: Engine) -> None:
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _register_functions(dbapi_connection, connection_record) -> None:
        dbapi_connection.create_function("py_casefold", 1, _py_casefold, deterministic=True)


def _like_pattern(term: str) -> str:
    escaped = term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2).replace("%", f"{LIKE_ESCAPE}%").replace("_", f"{LIKE_ESCAPE}_")
    return f"%{escaped}%"


def folded_contains(column, term: str):
    """``column`` contains ``term`` ignoring case, with LIKE wildcards in ``term`` taken literally."""
    return casefold(column).like(casefold(literal(_like_pattern(term), String())), escape=LIKE_ESCAPE)


def json_array_folded_contains(column, term: str, *, dialect: str, correlate_to):
    """Some string element of the JSON array ``column`` contains ``term``, ignoring case."""
    if dialect == "postgresql":
        elements = func.json_array_elements_text(column).table_valued("value")
    else:
        elements = func.json_each(column).table_valued("value")
    return (
        select(literal(1))
        .select_from(elements)
        .where(folded_contains(elements.c.value, term))
        .correlate(correlate_to)
        .exists()
    )
