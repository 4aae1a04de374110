import sqlite3
from finbot.config import DB_TIMEZONE_OFFSET

def run_migrations(conn: sqlite3.Connection):
    cursor = conn.cursor()

    # Migration 001: Initial schema
    cursor.executescript(f"""
        CREATE TABLE IF NOT EXISTS users (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          tg_id INTEGER UNIQUE NOT NULL,
          username TEXT,
          display_name TEXT,
          email TEXT,        -- backend account of the user
          api_token TEXT,    -- bearer token for the backend API
          registered_at TEXT DEFAULT (datetime('now', '{DB_TIMEZONE_OFFSET}'))
        );

        -- One JSON blob per (user, slot). Slots: create_movement_progress, gateway_recovery
        CREATE TABLE IF NOT EXISTS storage_slots (
          user_id INTEGER NOT NULL,
          slot TEXT NOT NULL,
          value_json TEXT NOT NULL,
          updated_at TEXT DEFAULT (datetime('now', '{DB_TIMEZONE_OFFSET}')),
          PRIMARY KEY (user_id, slot),
          FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
        );
    """)
