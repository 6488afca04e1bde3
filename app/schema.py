# app/schema.py
"""
Creates, drops and renders the library schema.

Tables are handled one by one in dependency order (reference data -> catalog
-> people -> activity -> audit) so the sequence matches the order a plain DDL
script would run in. A failing CREATE aborts that statement only; tables that
were already created stay in place.
"""
from __future__ import annotations

import os
from typing import List, Optional

from sqlalchemy import Table, create_engine, inspect, text
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.schema import CreateIndex, CreateTable

from app import models

CREATION_ORDER: List[Table] = [
    # reference data
    models.Publisher.__table__,
    models.Author.__table__,
    models.Genre.__table__,
    # catalog
    models.Book.__table__,
    models.BookAuthor.__table__,
    models.book_genre,
    # people
    models.Member.__table__,
    models.Staff.__table__,
    # activity
    models.Borrowing.__table__,
    models.Fine.__table__,
    models.Reservation.__table__,
    # audit
    models.AuditLog.__table__,
]

DIALECTS = {
    "mysql": mysql.dialect,
    "postgresql": postgresql.dialect,
    "sqlite": sqlite.dialect,
}


def ensure_database(database_url: str) -> None:
    """Equivalent of CREATE DATABASE IF NOT EXISTS for the backends that need it."""
    url = make_url(database_url)
    backend = url.get_backend_name()

    if backend == "sqlite":
        if url.database and url.database != ":memory:":
            db_dir = os.path.dirname(url.database)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)
        return

    if backend in ("mysql", "mariadb"):
        name = url.database
        if not name:
            return
        server = create_engine(url.set(database=None))
        try:
            with server.begin() as conn:
                conn.execute(text(f"CREATE DATABASE IF NOT EXISTS `{name}`"))
            print(f"[SCHEMA] Database {name} ready", flush=True)
        finally:
            server.dispose()
        return

    print(f"[SCHEMA] Backend {backend!r}: database must already exist, skipping creation", flush=True)


def create_schema(engine: Engine) -> List[str]:
    """
    Creates every table (with its constraints and indexes) that is not there yet.
    Returns the names of the tables created by this call.
    """
    created = []
    with engine.begin() as conn:
        for table in CREATION_ORDER:
            if inspect(conn).has_table(table.name):
                continue
            table.create(bind=conn)
            created.append(table.name)
            print(f"[SCHEMA] Created table {table.name}", flush=True)
    return created


def drop_schema(engine: Engine) -> List[str]:
    dropped = []
    with engine.begin() as conn:
        for table in reversed(CREATION_ORDER):
            if not inspect(conn).has_table(table.name):
                continue
            table.drop(bind=conn)
            dropped.append(table.name)
            print(f"[SCHEMA] Dropped table {table.name}", flush=True)
    return dropped


def render_ddl(dialect_name: str = "mysql") -> str:
    """
    Returns the CREATE TABLE / CREATE INDEX script for a dialect without
    connecting to a server.
    """
    try:
        dialect_cls = DIALECTS[dialect_name]
    except KeyError:
        raise ValueError(
            f"Unsupported dialect {dialect_name!r}; choose one of {', '.join(sorted(DIALECTS))}"
        ) from None
    # named paramstyle keeps LIKE '%@%.%' from being rendered as '%%@%%.%%'
    dialect = dialect_cls(paramstyle="named")

    statements: List[str] = []
    for table in CREATION_ORDER:
        statements.append(str(CreateTable(table).compile(dialect=dialect)).strip())
        for index in sorted(table.indexes, key=lambda ix: ix.name or ""):
            statements.append(str(CreateIndex(index).compile(dialect=dialect)).strip())
    return ";\n\n".join(statements) + ";\n"

