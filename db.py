"""
Database connection utilities for Happy Harvests.

SQLite is the default store (WAL journal, foreign keys enforced). When
DATABASE_URL is set the same SQL runs against PostgreSQL through a
psycopg2 connection pool, with the SQLite dialect rewritten on the fly.
"""

import os
import re
import sqlite3
import logging
from contextlib import contextmanager

import psycopg2
from psycopg2 import pool as pg_pool

logger = logging.getLogger(__name__)

DATA_DIR = os.environ.get('DATA_DIR', 'data' if os.path.exists('data') else '.')
FARM_DB = os.path.join(DATA_DIR, 'happyharvests.db')

_DATABASE_URL = os.environ.get('DATABASE_URL')
_pg_pool = None

# SQLSTATE class 23 codes
_PG_VIOLATIONS = {
    '23503': 'foreign_key',
    '23505': 'unique',
    '23514': 'check',
    '23502': 'not_null',
}

_SQLITE_VIOLATIONS = (
    ('FOREIGN KEY CONSTRAINT FAILED', 'foreign_key'),
    ('UNIQUE CONSTRAINT FAILED', 'unique'),
    ('CHECK CONSTRAINT FAILED', 'check'),
    ('NOT NULL CONSTRAINT FAILED', 'not_null'),
)


def _get_pg_pool():
    """Lazily initialize the PostgreSQL connection pool."""
    global _pg_pool
    if _pg_pool is None and _DATABASE_URL:
        try:
            _pg_pool = pg_pool.ThreadedConnectionPool(minconn=1, maxconn=10, dsn=_DATABASE_URL)
            logger.info("PostgreSQL connection pool initialized (1-10 connections)")
        except psycopg2.Error as e:
            logger.error(f"Failed to initialize PostgreSQL pool: {e}")
            raise
    return _pg_pool


def is_postgres():
    return bool(_DATABASE_URL)


def sqlalchemy_url():
    """URL for the same database, in the form SQLAlchemy (and alembic) expect."""
    if _DATABASE_URL:
        # SQLAlchemy 2.x rejects the postgres:// scheme some hosts hand out
        if _DATABASE_URL.startswith('postgres://'):
            return 'postgresql://' + _DATABASE_URL[len('postgres://'):]
        return _DATABASE_URL
    return f'sqlite:///{FARM_DB}'


# ---------------------------------------------------------------------------
# SQLite dialect -> PostgreSQL
# ---------------------------------------------------------------------------

_INSERT_VALUES = re.compile(r'^\s*INSERT\s+INTO\s+\w+\s*\([^)]*\)\s*VALUES', re.IGNORECASE)


def _convert_sqlite_to_pg(sql):
    """Rewrite the SQLite flavour used by the farm modules for psycopg2.

    Placeholders become %s, AUTOINCREMENT keys become SERIAL, and plain
    INSERT ... VALUES statements get RETURNING id so ``lastrowid`` works.
    """
    sql = sql.replace('?', '%s')
    sql = sql.replace('INTEGER PRIMARY KEY AUTOINCREMENT', 'SERIAL PRIMARY KEY')
    if _INSERT_VALUES.match(sql) and 'RETURNING' not in sql.upper():
        sql = sql.strip().rstrip(';') + ' RETURNING id'
    return sql


# ---------------------------------------------------------------------------
# Integrity errors
# ---------------------------------------------------------------------------

def get_integrity_error():
    """IntegrityError class raised by the active backend."""
    return psycopg2.IntegrityError if is_postgres() else sqlite3.IntegrityError


def integrity_violation_kind(exc):
    """Classify an integrity error raised by either backend.

    Returns one of ``'foreign_key'``, ``'unique'``, ``'check'``,
    ``'not_null'`` or None when the exception is not a recognised
    constraint violation.
    """
    code = getattr(exc, 'pgcode', None)
    if code:
        return _PG_VIOLATIONS.get(code)
    message = str(exc).upper()
    for marker, kind in _SQLITE_VIOLATIONS:
        if marker in message:
            return kind
    return None


# ---------------------------------------------------------------------------
# psycopg2 adapters with the sqlite3 surface the modules rely on
# ---------------------------------------------------------------------------

class _PgRow:
    """Row addressable by column name or position, convertible with dict()."""

    def __init__(self, columns, values):
        self._columns = columns
        self._values = values

    def __getitem__(self, key):
        if isinstance(key, int):
            return self._values[key]
        return self._values[self._columns.index(key)]

    def keys(self):
        return list(self._columns)


class _PgCursor:
    def __init__(self, cursor):
        self._cursor = cursor

    def _columns(self):
        return [col.name for col in self._cursor.description or ()]

    def fetchone(self):
        row = self._cursor.fetchone()
        return None if row is None else _PgRow(self._columns(), row)

    def fetchall(self):
        columns = self._columns()
        return [_PgRow(columns, r) for r in self._cursor.fetchall()]

    @property
    def lastrowid(self):
        # Populated by the RETURNING id clause added on conversion
        return self._cursor.fetchone()[0] if self._cursor.description else None

    @property
    def rowcount(self):
        return self._cursor.rowcount


class _PgConnection:
    def __init__(self, conn):
        self._conn = conn

    def execute(self, sql, params=None):
        cursor = self._conn.cursor()
        cursor.execute(_convert_sqlite_to_pg(sql), params)
        return _PgCursor(cursor)


# ---------------------------------------------------------------------------
# Connection management
# ---------------------------------------------------------------------------

def _connect_sqlite(db_path):
    conn = sqlite3.connect(db_path)
    conn.execute('PRAGMA journal_mode=WAL')
    conn.execute('PRAGMA foreign_keys=ON')
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def get_db(db_path=None):
    """
    Open a connection for one unit of work.

    Everything executed inside one ``with`` block is a single transaction:
    committed when the block exits normally, rolled back on any exception.

        with get_db() as conn:
            conn.execute('SELECT ...')

    ``db_path`` selects another SQLite file and is ignored on PostgreSQL.
    """
    if is_postgres():
        pool = _get_pg_pool()
        raw = pool.getconn()
        try:
            yield _PgConnection(raw)
            raw.commit()
        except Exception:
            raw.rollback()
            raise
        finally:
            pool.putconn(raw)
        return

    conn = _connect_sqlite(db_path or FARM_DB)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
