"""Migrations that add single columns to existing tables."""

from __future__ import annotations

import sqlite3


def _add_column(conn: sqlite3.Connection, table: str, definition: str) -> None:
    with conn:
        conn.execute(f'ALTER TABLE "{table}" ADD COLUMN {definition}')


def add_cache_retention_period(conn: sqlite3.Connection) -> None:
    """Add the per-cache retention period, in seconds."""
    _add_column(conn, "cache", '"retention_period" integer NULL')


def add_object_created_by(conn: sqlite3.Connection) -> None:
    """Add the uploader of each object."""
    _add_column(conn, "object", '"created_by" text NULL')


def add_nar_num_chunks(conn: sqlite3.Connection) -> None:
    """Add the number of chunks making up each NAR."""
    _add_column(conn, "nar", '"num_chunks" integer NOT NULL DEFAULT 1')


def add_nar_completeness_hint(conn: sqlite3.Connection) -> None:
    """Add the hint telling whether all chunks of a NAR are available."""
    _add_column(conn, "nar", '"completeness_hint" boolean NOT NULL DEFAULT 1')