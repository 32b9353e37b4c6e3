#===================================================================
# database.py
#
# - orders table: one record per order id (single source of record data)
# - order_status_sets: one membership row per order id, keyed by status
#   (the five status-indexed sets: pending/filling/filled/failed/cancelled)
# - record + membership are always written in the same transaction
# - WAL mode, busy timeout, connections usable across threads
#===================================================================

import sqlite3
import threading
import os
from pathlib import Path
from typing import Optional, Union

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_DB_LOCK = threading.Lock()

# Resolved LAZILY at first get_connection() call so config/env can set
# RELAYER_DB_PATH first.
_DB_PATH: Optional[Path] = None
_DEFAULT_DB_PATH = (
    _PROJECT_ROOT
    / "flashfill_relayer"
    / "persistence"
    / "data"
    / "orders.db"
)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS orders (
        id TEXT PRIMARY KEY,
        order_hash TEXT NOT NULL,
        extension_hash TEXT,

        salt TEXT NOT NULL,
        maker TEXT NOT NULL,
        receiver TEXT NOT NULL,
        maker_asset TEXT NOT NULL,
        taker_asset TEXT NOT NULL,
        making_amount TEXT NOT NULL,
        taking_amount TEXT NOT NULL,
        maker_traits TEXT NOT NULL,

        maker_signature TEXT NOT NULL,
        extension_calldata TEXT NOT NULL,
        extension_signature TEXT NOT NULL,

        status TEXT NOT NULL,
        created_at INTEGER NOT NULL,
        updated_at INTEGER NOT NULL,

        filled_at INTEGER,
        tx_hash TEXT,
        block_number INTEGER,
        error_message TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS order_status_sets (
        order_id TEXT PRIMARY KEY,
        status TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_status_sets_status ON order_status_sets(status)",
    "CREATE INDEX IF NOT EXISTS idx_orders_created ON orders(created_at)",
)


def _resolve_db_path(db_path: Optional[Union[str, Path]] = None) -> Path:
    """Resolve DB path lazily (after config has loaded)."""
    global _DB_PATH
    if db_path is not None:
        path = Path(db_path)
    else:
        if _DB_PATH is None:
            _DB_PATH = Path(
                os.environ.get("RELAYER_DB_PATH", str(_DEFAULT_DB_PATH))
            )
        path = _DB_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def get_connection(db_path: Optional[Union[str, Path]] = None) -> sqlite3.Connection:
    """
    Open a connection with the relayer schema in place.

    isolation_level=None: callers issue BEGIN IMMEDIATE / COMMIT themselves
    so multi-statement transitions are atomic.
    """
    with _DB_LOCK:
        conn = sqlite3.connect(
            _resolve_db_path(db_path),
            check_same_thread=False,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row

        # WAL for concurrent read/write from request + worker threads
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")

        for statement in _SCHEMA:
            conn.execute(statement)

        return conn
