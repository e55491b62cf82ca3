"""Database connection utilities for the knowledge graph store.

Query paths open read-only connections; the loader opens a writable one.
"""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from .schema import apply_schema, validate_schema


def _casefold(value: Optional[str]) -> Optional[str]:
    return value.casefold() if value is not None else None


def _configure_connection(conn: sqlite3.Connection, read_only: bool) -> None:
    """Configure connection for dict-like rows and, when asked, read-only use."""
    conn.row_factory = sqlite3.Row
    # SQLite's LOWER() only folds ASCII; pattern search compares with this instead.
    conn.create_function("casefold", 1, _casefold, deterministic=True)

    if read_only:
        conn.execute("PRAGMA query_only = ON;")
    else:
        conn.execute("PRAGMA journal_mode = WAL;")
        conn.execute("PRAGMA foreign_keys = ON;")


def connect(db_path: Path, validate: bool = True, read_only: bool = True) -> sqlite3.Connection:
    """Create a connection to a knowledge graph database.

    Args:
        db_path: Path to the SQLite database
        validate: If True, validate that expected tables exist
        read_only: If True, open with mode=ro; otherwise create the file
            and schema when missing

    Returns:
        Configured SQLite connection

    Raises:
        FileNotFoundError: If a read-only database file doesn't exist
        SchemaError: If validation fails (missing tables)
    """
    if read_only:
        if not db_path.exists():
            raise FileNotFoundError(f"Database not found: {db_path}")
        # Use URI mode for read-only access
        uri = f"file:{db_path}?mode=ro"
        conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
    else:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(db_path), check_same_thread=False)
    _configure_connection(conn, read_only)

    if not read_only:
        apply_schema(conn)
    if validate:
        validate_schema(conn)

    return conn


@contextmanager
def get_connection(
    db_path: Path, validate: bool = True, read_only: bool = True
) -> Iterator[sqlite3.Connection]:
    """Context manager for database connection.

    Writable connections commit on a clean exit and roll back on error.

    Args:
        db_path: Path to the SQLite database
        validate: If True, validate schema on connection
        read_only: Open the database read-only

    Yields:
        Configured SQLite connection
    """
    conn = connect(db_path, validate=validate, read_only=read_only)
    try:
        yield conn
        if not read_only:
            conn.commit()
    except Exception:
        if not read_only:
            conn.rollback()
        raise
    finally:
        conn.close()
