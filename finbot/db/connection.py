import sqlite3
import threading
import contextlib
from finbot.config import DB_PATH
from finbot.db.migrations import run_migrations

_migrated_paths = set()
_migration_lock = threading.Lock()

def _ensure_schema(conn: sqlite3.Connection, path: str):
    with _migration_lock:
        if path in _migrated_paths:
            return
        run_migrations(conn)
        _migrated_paths.add(path)

@contextlib.contextmanager
def get_connection(db_path=None) -> sqlite3.Connection:
    """Opens a connection to the movements database, committing on success."""
    path = db_path or DB_PATH
    conn = sqlite3.connect(path, timeout=10, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    # Slots are removed together with their user.
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA journal_mode = WAL;")
    _ensure_schema(conn, path)
    try:
        yield conn
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise
    finally:
        conn.close()
