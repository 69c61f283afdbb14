"""Persistence adapter.

One ``query/get/run`` surface over two interchangeable backends: a SQLite
file for local use and a pooled Postgres connection for deployment. Each
backend binds parameters natively and exposes its placeholder as ``ph``,
so callers write ``f"... WHERE id = {db.ph}"`` and nothing gets rewritten.
There are no transactions across calls; every ``run`` commits on its own.
"""
import logging
import sqlite3
from contextlib import closing, contextmanager
from datetime import date, datetime
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

from psycopg2 import pool as pg_pool
from psycopg2.extras import RealDictCursor

logger = logging.getLogger(__name__)


class RunResult(NamedTuple):
    inserted_id: Any
    rows_affected: int


SQLITE_SCHEMA = '''
    CREATE TABLE IF NOT EXISTS scheduled_tasks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        description TEXT,
        date TEXT NOT NULL,
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL,
        color TEXT DEFAULT '#3b82f6',
        completed INTEGER DEFAULT 0,
        completed_at TEXT,
        not_completed_reason TEXT,
        reflection_notes TEXT,
        recurrence_rule TEXT,
        recurrence_parent_id INTEGER,
        template_task_id INTEGER,
        is_from_template INTEGER DEFAULT 0,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        description TEXT,
        date TEXT NOT NULL,
        start_time TEXT,
        end_time TEXT,
        type TEXT DEFAULT 'event',
        color TEXT DEFAULT '#ef4444',
        completed INTEGER DEFAULT 0,
        completed_at TEXT,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS templates (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS template_tasks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        template_id INTEGER NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        day_of_week INTEGER NOT NULL,
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL,
        color TEXT DEFAULT '#3b82f6',
        FOREIGN KEY (template_id) REFERENCES templates(id) ON DELETE CASCADE
    );

    CREATE TABLE IF NOT EXISTS weekly_goals (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        text TEXT NOT NULL,
        completed INTEGER DEFAULT 0,
        week_start TEXT NOT NULL,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS pulse_notes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        content TEXT NOT NULL,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS blog_posts (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        full_content TEXT,
        date TEXT NOT NULL,
        theme TEXT,
        published INTEGER DEFAULT 1,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS blog_post_votes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        post_id TEXT NOT NULL,
        ip_address TEXT NOT NULL,
        vote_type TEXT NOT NULL,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (post_id, ip_address),
        FOREIGN KEY (post_id) REFERENCES blog_posts(id) ON DELETE CASCADE
    );
'''

POSTGRES_SCHEMA = [
    '''
    CREATE TABLE IF NOT EXISTS scheduled_tasks (
        id SERIAL PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT,
        date TEXT NOT NULL,
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL,
        color TEXT DEFAULT '#3b82f6',
        completed INTEGER DEFAULT 0,
        completed_at TEXT,
        not_completed_reason TEXT,
        reflection_notes TEXT,
        recurrence_rule TEXT,
        recurrence_parent_id INTEGER,
        template_task_id INTEGER,
        is_from_template INTEGER DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS events (
        id SERIAL PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT,
        date TEXT NOT NULL,
        start_time TEXT,
        end_time TEXT,
        type TEXT DEFAULT 'event',
        color TEXT DEFAULT '#ef4444',
        completed INTEGER DEFAULT 0,
        completed_at TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS templates (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS template_tasks (
        id SERIAL PRIMARY KEY,
        template_id INTEGER NOT NULL REFERENCES templates(id) ON DELETE CASCADE,
        title TEXT NOT NULL,
        description TEXT,
        day_of_week INTEGER NOT NULL,
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL,
        color TEXT DEFAULT '#3b82f6'
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS weekly_goals (
        id SERIAL PRIMARY KEY,
        text TEXT NOT NULL,
        completed INTEGER DEFAULT 0,
        week_start TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS pulse_notes (
        id SERIAL PRIMARY KEY,
        content TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS blog_posts (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        full_content TEXT,
        date TEXT NOT NULL,
        theme TEXT,
        published INTEGER DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS blog_post_votes (
        id SERIAL PRIMARY KEY,
        post_id TEXT NOT NULL REFERENCES blog_posts(id) ON DELETE CASCADE,
        ip_address TEXT NOT NULL,
        vote_type TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (post_id, ip_address)
    )
    ''',
]

INDEXES = [
    'CREATE INDEX IF NOT EXISTS idx_scheduled_tasks_date ON scheduled_tasks (date)',
    'CREATE INDEX IF NOT EXISTS idx_scheduled_tasks_parent ON scheduled_tasks (recurrence_parent_id)',
    'CREATE INDEX IF NOT EXISTS idx_events_date ON events (date)',
    'CREATE INDEX IF NOT EXISTS idx_template_tasks_template ON template_tasks (template_id)',
    'CREATE INDEX IF NOT EXISTS idx_weekly_goals_week ON weekly_goals (week_start)',
    'CREATE INDEX IF NOT EXISTS idx_blog_post_votes_post ON blog_post_votes (post_id)',
]


class Database:
    """Common contract for both backends."""

    backend = None
    ph = '?'

    def placeholders(self, count: int) -> str:
        return ', '.join([self.ph] * count)

    def query(self, sql: str, params: Sequence = ()) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def get(self, sql: str, params: Sequence = ()) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def run(self, sql: str, params: Sequence = ()) -> RunResult:
        raise NotImplementedError

    def init_db(self) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class SQLiteDatabase(Database):
    backend = 'sqlite'
    ph = '?'

    def __init__(self, path):
        self.path = str(path)

    def _connect(self):
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        conn.execute('PRAGMA foreign_keys = ON')
        return conn

    def query(self, sql, params=()):
        with closing(self._connect()) as conn:
            return [dict(row) for row in conn.execute(sql, tuple(params)).fetchall()]

    def get(self, sql, params=()):
        with closing(self._connect()) as conn:
            row = conn.execute(sql, tuple(params)).fetchone()
            return dict(row) if row else None

    def run(self, sql, params=()):
        with closing(self._connect()) as conn:
            cursor = conn.execute(sql, tuple(params))
            conn.commit()
            return RunResult(cursor.lastrowid, cursor.rowcount)

    def init_db(self):
        with closing(self._connect()) as conn:
            conn.executescript(SQLITE_SCHEMA)
            for statement in INDEXES:
                conn.execute(statement)
            conn.commit()
        logger.info(f"SQLite database initialized at: {self.path}")


def _plain(row):
    # TIMESTAMP columns come back as datetime objects; hand out ISO strings like SQLite does
    return {
        key: value.isoformat(sep=' ') if isinstance(value, datetime)
        else value.isoformat() if isinstance(value, date)
        else value
        for key, value in row.items()
    }


class PostgresDatabase(Database):
    backend = 'postgres'
    ph = '%s'

    def __init__(self, database_url, max_connections=20, connect_timeout=2):
        self.database_url = database_url
        self.pool = pg_pool.ThreadedConnectionPool(
            1, max_connections, database_url, connect_timeout=connect_timeout
        )

    @contextmanager
    def _cursor(self):
        conn = self.pool.getconn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self.pool.putconn(conn)

    def query(self, sql, params=()):
        with self._cursor() as cursor:
            cursor.execute(sql, tuple(params))
            return [_plain(row) for row in cursor.fetchall()]

    def get(self, sql, params=()):
        with self._cursor() as cursor:
            cursor.execute(sql, tuple(params))
            row = cursor.fetchone()
            return _plain(row) if row else None

    def run(self, sql, params=()):
        statement = sql.strip()
        is_insert = statement.upper().startswith('INSERT')
        if is_insert and 'RETURNING' not in statement.upper():
            statement = f"{statement} RETURNING id"

        with self._cursor() as cursor:
            cursor.execute(statement, tuple(params))
            inserted_id = None
            if is_insert:
                row = cursor.fetchone()
                inserted_id = row['id'] if row else None
            return RunResult(inserted_id, cursor.rowcount or 0)

    def init_db(self):
        with self._cursor() as cursor:
            for statement in POSTGRES_SCHEMA + INDEXES:
                cursor.execute(statement)
        logger.info("PostgreSQL database initialized")

    def close(self):
        self.pool.closeall()


def connect_database(config) -> Database:
    """Pick Postgres when a connection string is configured, SQLite otherwise."""
    database_url = (config.get('DATABASE_URL') or '').strip()
    if database_url:
        logger.info("Using PostgreSQL")
        return PostgresDatabase(database_url)
    logger.info("Using SQLite")
    return SQLiteDatabase(config.get('SQLITE_PATH') or 'calendar.db')
