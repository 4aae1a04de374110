import json
from finbot.db.connection import get_connection
from finbot.logger import get_logger
logger = get_logger(__name__)

PROGRESS_SLOT = "create_movement_progress"
GATEWAY_RECOVERY_SLOT = "gateway_recovery"

def create_user_if_not_exists(tg_id: int, username: str | None, display_name: str | None) -> int:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("INSERT OR IGNORE INTO users (tg_id, username, display_name) VALUES (?, ?, ?)",
                       (tg_id, username, display_name))

        cursor.execute("SELECT id FROM users WHERE tg_id = ?", (tg_id,))
        user_id = cursor.fetchone()[0]
        return user_id

def get_user(user_id: int) -> dict | None:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        row = cursor.fetchone()
        return dict(row) if row else None

def link_user_account(user_id: int, email: str, api_token: str, display_name: str | None = None) -> None:
    with get_connection() as conn:
        cursor = conn.cursor()
        if display_name:
            cursor.execute("UPDATE users SET email = ?, api_token = ?, display_name = ? WHERE id = ?",
                           (email, api_token, display_name, user_id))
        else:
            cursor.execute("UPDATE users SET email = ?, api_token = ? WHERE id = ?", (email, api_token, user_id))
    logger.info(f"Linked user {user_id} to backend account {email}.")

def read_slot(user_id: int, slot: str) -> dict | None:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT value_json FROM storage_slots WHERE user_id = ? AND slot = ?", (user_id, slot))
        row = cursor.fetchone()
        return json.loads(row['value_json']) if row else None

def write_slot(user_id: int, slot: str, value: dict) -> None:
    logger.debug(f"Writing slot {slot} for user {user_id}: {value}")
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO storage_slots (user_id, slot, value_json, updated_at)
            VALUES (?, ?, ?, datetime('now'))
            ON CONFLICT(user_id, slot) DO UPDATE SET
                value_json = excluded.value_json,
                updated_at = excluded.updated_at
        """, (user_id, slot, json.dumps(value)))

def delete_slot(user_id: int, slot: str) -> None:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM storage_slots WHERE user_id = ? AND slot = ?", (user_id, slot))


class UserSlotStore:
    """Key-value slots of one user, backed by the storage_slots table."""

    def __init__(self, user_id: int):
        self.user_id = user_id

    def get(self, slot: str) -> dict | None:
        return read_slot(self.user_id, slot)

    def put(self, slot: str, value: dict) -> None:
        write_slot(self.user_id, slot, value)

    def delete(self, slot: str) -> None:
        delete_slot(self.user_id, slot)
