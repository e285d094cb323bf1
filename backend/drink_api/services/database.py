"""
Drink store shared by the API routes.

Wraps drink_sync.DatabaseConnection (PostgreSQL from DATABASE_URL in
backend/.env, SQLite otherwise) so every request goes through the same
reconnect-and-retry path as the command-line sync.
"""

import os
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

from dotenv import load_dotenv

from drink_sync import (
    DATABASE_FILE,
    DatabaseConnection,
    DrinkSyncError,
    SyncResult,
    construct_category_map,
    get_drink_by_checksum,
    insert_drinks,
)


# Load .env from backend directory
_backend_dir = Path(__file__).parent.parent.parent
_env_path = _backend_dir / ".env"
load_dotenv(_env_path)


def get_database_file() -> str:
    """SQLite file used when DATABASE_URL is not set."""
    return os.getenv("DRINKS_DB_PATH", str(_backend_dir / DATABASE_FILE))


class StoreUnavailableError(DrinkSyncError):
    """The API was asked for data before the store was opened."""


def _ping(conn) -> None:
    cursor = conn.cursor()
    cursor.execute("SELECT 1")


class DrinkStore:
    """
    One connection shared by all requests.

    FastAPI runs the routes on a threadpool, so calls are serialized with a
    lock and the SQLite connection is opened without thread binding. Each
    drink in a sync commits on its own; reads end their transaction so a
    PostgreSQL connection is never left idle in one.
    """

    def __init__(self, db_path: Optional[str] = None):
        self._db = DatabaseConnection(db_path or get_database_file(), check_same_thread=False)
        self._lock = threading.RLock()

    def initialize(self) -> None:
        """Open the store (creates the drink tables if missing)."""
        with self._lock:
            self._db.connect()

    def _require_connection(self) -> None:
        if self._db.conn is None:
            raise StoreUnavailableError("Database not initialized")

    def _read(self, func, *args):
        with self._lock:
            self._require_connection()
            result = self._db.execute_with_retry(func, *args)
            self._db.conn.commit()
            return result

    def sync(self, drinks: Iterable[Any]) -> SyncResult:
        """Reconcile a batch; per-drink failures are counted as skipped."""
        with self._lock:
            self._require_connection()
            return insert_drinks(self._db, drinks)

    def find(self, checksum: str) -> Optional[Dict[str, Any]]:
        """Stored drink with this checksum, or None."""
        return self._read(get_drink_by_checksum, checksum)

    def category_map(self) -> Dict[str, Tuple[int, int]]:
        """Subcategory name → (subcategory_id, category_id)."""
        return self._read(construct_category_map)

    def ping(self) -> None:
        """Raise if the database cannot answer a trivial query."""
        self._read(_ping)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()


# Global store instance
drink_store = DrinkStore()
