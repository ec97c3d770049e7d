import json
import os
import sqlite3
from typing import List

from .logger import get_logger
from .models import LineItem, dump_items, parse_items

logger = get_logger(__name__)


def get_db_connection(db_path: str) -> sqlite3.Connection:
    directory = os.path.dirname(db_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: str) -> None:
    conn = get_db_connection(db_path)
    cursor = conn.cursor()
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS client_storage (
            scope TEXT NOT NULL,
            key TEXT NOT NULL,
            value TEXT NOT NULL,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (scope, key)
        )
    ''')
    conn.commit()
    conn.close()


class LocalStore:
    """
    Durable per-client list storage, the server-side stand-in for the
    browser's localStorage. One row holds the whole JSON-encoded list for a
    (client scope, storage key) pair; every write replaces that row.
    """

    def __init__(self, db_path: str, storage_key: str, scope: str):
        self.db_path = db_path
        self.storage_key = storage_key
        self.scope = scope
        init_db(db_path)

    def get_items(self) -> List[LineItem]:
        try:
            conn = get_db_connection(self.db_path)
            try:
                row = conn.execute(
                    "SELECT value FROM client_storage WHERE scope = ? AND key = ?",
                    (self.scope, self.storage_key),
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error("Error loading %s for %s: %s", self.storage_key, self.scope, e)
            return []

        if not row:
            return []

        try:
            raw_items = json.loads(row['value'])
        except (TypeError, json.JSONDecodeError):
            logger.warning("Invalid JSON stored under %s for %s", self.storage_key, self.scope)
            return []

        if not isinstance(raw_items, list):
            logger.warning("Stored %s for %s is not a list", self.storage_key, self.scope)
            return []

        items = parse_items(raw_items)
        logger.debug("Loaded %d items from %s for %s", len(items), self.storage_key, self.scope)
        return items

    def save_items(self, items: List[LineItem]) -> bool:
        try:
            value = json.dumps(dump_items(items))
            conn = get_db_connection(self.db_path)
            try:
                conn.execute(
                    "INSERT INTO client_storage (scope, key, value, updated_at) VALUES (?, ?, ?, CURRENT_TIMESTAMP) "
                    "ON CONFLICT(scope, key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                    (self.scope, self.storage_key, value),
                )
                conn.commit()
            finally:
                conn.close()
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error("Error saving %s for %s: %s", self.storage_key, self.scope, e)
            return False
        return True

    def clear_items(self) -> bool:
        try:
            conn = get_db_connection(self.db_path)
            try:
                conn.execute(
                    "DELETE FROM client_storage WHERE scope = ? AND key = ?",
                    (self.scope, self.storage_key),
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error("Error clearing %s for %s: %s", self.storage_key, self.scope, e)
            return False
        return True
