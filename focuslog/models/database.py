"""
PostgreSQL Entry Store
Daily focus entries are stored one row per (owner, date) with the sessions
kept as a JSONB document.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from psycopg2 import pool
from psycopg2.extras import Json, RealDictCursor

from focuslog import config
from focuslog.models.entry import Entry, Session, Track, TodoItem, merge_sessions

logger = logging.getLogger(__name__)

_pool = None

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id SERIAL PRIMARY KEY,
    username TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    tracks JSONB NOT NULL DEFAULT '[]'::jsonb,
    todos JSONB NOT NULL DEFAULT '[]'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS focus_entries (
    id SERIAL PRIMARY KEY,
    owner_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    date DATE NOT NULL,
    sessions JSONB NOT NULL DEFAULT '[]'::jsonb,
    notes TEXT NOT NULL DEFAULT '',
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CONSTRAINT focus_entries_owner_date_key UNIQUE (owner_id, date)
);
"""

ENTRY_COLUMNS = "id, owner_id, date, sessions, notes, created_at, updated_at"
USER_COLUMNS = "id, username, password_hash, tracks, todos, created_at"


def get_pool():
    """Get or create connection pool."""
    global _pool
    if _pool is None:
        _pool = pool.ThreadedConnectionPool(
            minconn=config.DB_POOL_MIN,
            maxconn=config.DB_POOL_MAX,
            dsn=config.DATABASE_URL
        )
    return _pool


@contextmanager
def get_cursor(cursor_factory=RealDictCursor):
    """Cursor bound to one transaction: commit on success, rollback on error."""
    conn = get_pool().getconn()
    cur = None
    try:
        cur = conn.cursor(cursor_factory=cursor_factory)
        yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if cur is not None:
            cur.close()
        get_pool().putconn(conn)


def init_db():
    """Create the schema if needed and verify the connection."""
    try:
        with get_cursor() as cur:
            cur.execute(SCHEMA)
            cur.execute("SELECT 1")
        logger.info("PostgreSQL connected, schema ready")
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False


def close_pool():
    global _pool
    if _pool:
        _pool.closeall()
        _pool = None
        logger.info("PostgreSQL connection pool closed")


# =============================================================================
# ROW FORMATTING
# =============================================================================

def _format_entry(row: Dict[str, Any]) -> Entry:
    row = dict(row)
    entry_date = row.get('date')
    if isinstance(entry_date, date):
        entry_date = entry_date.isoformat()
    return Entry(
        id=str(row['id']),
        owner=str(row['owner_id']),
        date=entry_date,
        sessions=[Session.model_validate(s) for s in (row.get('sessions') or [])],
        notes=row.get('notes') or '',
        created_at=row.get('created_at'),
        updated_at=row.get('updated_at'),
    )


def _format_user(row: Dict[str, Any]) -> Dict[str, Any]:
    user = dict(row)
    user['id'] = str(user['id'])
    user['tracks'] = user.get('tracks') or []
    user['todos'] = user.get('todos') or []
    if isinstance(user.get('created_at'), datetime):
        user['created_at'] = user['created_at'].isoformat()
    return user


def _sessions_json(sessions: List[Session]) -> Json:
    return Json([s.to_dict() for s in sessions])


def _entry_id(entry_id) -> Optional[int]:
    try:
        return int(entry_id)
    except (TypeError, ValueError):
        return None


# =============================================================================
# ENTRY FUNCTIONS
# =============================================================================

def upsert_merge(owner: str, entry_date: str, sessions: List[Session],
                 notes: Optional[str] = None) -> Entry:
    """
    Create the owner's entry for a date, or merge into the existing one.

    Runs in a single transaction. When the row already exists it is locked
    with FOR UPDATE before merging, so concurrent merges for the same
    (owner, date) serialize instead of overwriting each other.
    """
    now = datetime.now()

    with get_cursor() as cur:
        cur.execute(f"""
            INSERT INTO focus_entries (owner_id, date, sessions, notes, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (owner_id, date) DO NOTHING
            RETURNING {ENTRY_COLUMNS}
        """, (owner, entry_date, _sessions_json(sessions), notes or '', now, now))
        created = cur.fetchone()
        if created:
            entry = _format_entry(created)
            entry_merged = False
        else:
            cur.execute(f"""
                SELECT {ENTRY_COLUMNS}
                FROM focus_entries
                WHERE owner_id = %s AND date = %s
                FOR UPDATE
            """, (owner, entry_date))
            existing = _format_entry(cur.fetchone())

            merged = merge_sessions(existing.sessions, sessions)
            new_notes = notes if notes else existing.notes

            cur.execute(f"""
                UPDATE focus_entries
                SET sessions = %s, notes = %s, updated_at = %s
                WHERE id = %s AND owner_id = %s
                RETURNING {ENTRY_COLUMNS}
            """, (_sessions_json(merged), new_notes, now, int(existing.id), owner))
            entry = _format_entry(cur.fetchone())
            entry_merged = True

    logger.info(f"Entry {entry.id} {'merged' if entry_merged else 'created'} for {entry_date}")
    return entry


def replace(owner: str, entry_id, sessions: List[Session], notes: Optional[str]) -> Optional[Entry]:
    """Overwrite an entry's sessions and notes. None if the owner has no such entry."""
    row_id = _entry_id(entry_id)
    if row_id is None:
        return None

    with get_cursor() as cur:
        cur.execute(f"""
            UPDATE focus_entries
            SET sessions = %s, notes = %s, updated_at = %s
            WHERE id = %s AND owner_id = %s
            RETURNING {ENTRY_COLUMNS}
        """, (_sessions_json(sessions), notes or '', datetime.now(), row_id, owner))
        row = cur.fetchone()

    return _format_entry(row) if row else None


def list_all(owner: str) -> List[Entry]:
    """Every entry for the owner, newest first."""
    with get_cursor() as cur:
        cur.execute(f"""
            SELECT {ENTRY_COLUMNS}
            FROM focus_entries
            WHERE owner_id = %s
            ORDER BY date DESC
        """, (owner,))
        rows = cur.fetchall()
    return [_format_entry(row) for row in rows]


def list_recent(owner: str, limit: int = 7) -> List[Entry]:
    """The owner's latest entries, newest first."""
    with get_cursor() as cur:
        cur.execute(f"""
            SELECT {ENTRY_COLUMNS}
            FROM focus_entries
            WHERE owner_id = %s
            ORDER BY date DESC
            LIMIT %s
        """, (owner, limit))
        rows = cur.fetchall()
    return [_format_entry(row) for row in rows]


def delete_by_id(owner: str, entry_id) -> bool:
    """Delete one of the owner's entries. False if nothing matched."""
    row_id = _entry_id(entry_id)
    if row_id is None:
        return False

    with get_cursor() as cur:
        cur.execute("""
            DELETE FROM focus_entries
            WHERE id = %s AND owner_id = %s
        """, (row_id, owner))
        return cur.rowcount > 0


# =============================================================================
# USER FUNCTIONS
# =============================================================================

def create_user(username: str, password_hash: str) -> Optional[Dict[str, Any]]:
    """Insert a user. None if the username is taken."""
    with get_cursor() as cur:
        cur.execute(f"""
            INSERT INTO users (username, password_hash, created_at)
            VALUES (%s, %s, %s)
            ON CONFLICT (username) DO NOTHING
            RETURNING {USER_COLUMNS}
        """, (username, password_hash, datetime.now()))
        row = cur.fetchone()
    return _format_user(row) if row else None


def get_user_by_username(username: str) -> Optional[Dict[str, Any]]:
    with get_cursor() as cur:
        cur.execute(f"""
            SELECT {USER_COLUMNS}
            FROM users
            WHERE username = %s
        """, (username,))
        row = cur.fetchone()
    return _format_user(row) if row else None


def get_user(user_id) -> Optional[Dict[str, Any]]:
    row_id = _entry_id(user_id)
    if row_id is None:
        return None
    with get_cursor() as cur:
        cur.execute(f"""
            SELECT {USER_COLUMNS}
            FROM users
            WHERE id = %s
        """, (row_id,))
        row = cur.fetchone()
    return _format_user(row) if row else None


def update_tracks(user_id, tracks: List[Track]) -> Optional[List[Dict[str, Any]]]:
    """Replace the user's track list."""
    payload = [t.model_dump(by_alias=True) for t in tracks]
    with get_cursor() as cur:
        cur.execute("""
            UPDATE users
            SET tracks = %s
            WHERE id = %s
            RETURNING tracks
        """, (Json(payload), int(user_id)))
        row = cur.fetchone()
    return row['tracks'] if row else None


def update_todos(user_id, todos: List[TodoItem]) -> Optional[List[Dict[str, Any]]]:
    """Replace the user's todo list."""
    payload = [t.model_dump(by_alias=True) for t in todos]
    with get_cursor() as cur:
        cur.execute("""
            UPDATE users
            SET todos = %s
            WHERE id = %s
            RETURNING todos
        """, (Json(payload), int(user_id)))
        row = cur.fetchone()
    return row['todos'] if row else None
