# ===================================================================
# OrderStore
#
# Guarantees:
# - An order is a member of exactly one status set at any instant
# - Record and set membership are written in ONE transaction
# - transition() is a compare-and-swap on status: of two concurrent
#   callers expecting the same from_status, exactly one wins
# - Records are never deleted
# ===================================================================

import sqlite3
import time
from contextlib import closing
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from flashfill_relayer.core.errors import DuplicateOrderError, InvalidTransition
from flashfill_relayer.domain.business_models import (
    ALL_STATUSES,
    OrderStatus,
    is_allowed_transition,
)
from flashfill_relayer.logging.logger_config import get_component_logger
from flashfill_relayer.persistence.database import get_connection
from flashfill_relayer.persistence.models import OrderRecord

logger = get_component_logger('order_store')

TRANSITION_FIELDS = ("filled_at", "tx_hash", "block_number", "error_message")


def _now_ms() -> int:
    return int(time.time() * 1000)


class OrderStore:
    """
    SINGLE SOURCE OF TRUTH for order persistence.

    - No business logic
    - No chain access
    - Status changes only through transition()
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        return get_connection(self.db_path)

    # -----------------------------
    # CREATE
    # -----------------------------
    def create(self, record: OrderRecord) -> OrderRecord:
        now = _now_ms()
        record = record.with_updates(
            status=OrderStatus.PENDING,
            created_at=now if record.created_at is None else record.created_at,
            updated_at=now,
        )
        terms = record.terms

        with closing(self._connect()) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute(
                    """
                    INSERT INTO orders (
                        id, order_hash, extension_hash,
                        salt, maker, receiver, maker_asset, taker_asset,
                        making_amount, taking_amount, maker_traits,
                        maker_signature, extension_calldata, extension_signature,
                        status, created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.id,
                        record.order_hash,
                        record.extension_hash,

                        str(terms.salt),
                        terms.maker,
                        terms.receiver,
                        terms.maker_asset,
                        terms.taker_asset,
                        str(terms.making_amount),
                        str(terms.taking_amount),
                        str(terms.maker_traits),

                        record.maker_signature,
                        record.extension_calldata,
                        record.extension_signature,

                        record.status.value,
                        record.created_at,
                        record.updated_at,
                    ),
                )
                conn.execute(
                    "INSERT INTO order_status_sets (order_id, status) VALUES (?, ?)",
                    (record.id, OrderStatus.PENDING.value),
                )
                conn.execute("COMMIT")
            except sqlite3.IntegrityError:
                conn.execute("ROLLBACK")
                raise DuplicateOrderError(f"Order id already exists: {record.id}")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.info("ORDER_CREATED | order_id=%s | maker=%s", record.id, terms.maker)
        return record

    # -----------------------------
    # TRANSITION (COMPARE-AND-SWAP)
    # -----------------------------
    def transition(
        self,
        order_id: str,
        from_status: OrderStatus,
        to_status: OrderStatus,
        **fields,
    ) -> OrderRecord:
        from_status = OrderStatus(from_status)
        to_status = OrderStatus(to_status)

        unknown = set(fields) - set(TRANSITION_FIELDS)
        if unknown:
            raise ValueError(f"Unsupported transition fields: {sorted(unknown)}")

        if not is_allowed_transition(from_status, to_status):
            raise InvalidTransition(order_id, from_status.value, to_status.value,
                                    self._current_status(order_id))

        assignments = ["status = ?", "updated_at = ?"]
        values: List = [to_status.value, _now_ms()]
        for name in TRANSITION_FIELDS:
            if name in fields:
                assignments.append(f"{name} = ?")
                values.append(fields[name])

        with closing(self._connect()) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                cur = conn.execute(
                    f"UPDATE orders SET {', '.join(assignments)} "
                    "WHERE id = ? AND status = ?",
                    (*values, order_id, from_status.value),
                )
                if cur.rowcount != 1:
                    row = conn.execute(
                        "SELECT status FROM orders WHERE id = ?", (order_id,)
                    ).fetchone()
                    conn.execute("ROLLBACK")
                    raise InvalidTransition(
                        order_id, from_status.value, to_status.value,
                        row["status"] if row else None,
                    )

                conn.execute(
                    "INSERT OR REPLACE INTO order_status_sets (order_id, status) VALUES (?, ?)",
                    (order_id, to_status.value),
                )
                row = conn.execute(
                    "SELECT * FROM orders WHERE id = ?", (order_id,)
                ).fetchone()
                conn.execute("COMMIT")
            except InvalidTransition:
                raise
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.info(
            "ORDER_TRANSITION | order_id=%s | %s -> %s",
            order_id, from_status.value, to_status.value,
        )
        return OrderRecord.from_row(dict(row))

    # -----------------------------
    # READ
    # -----------------------------
    def get(self, order_id: str) -> Optional[OrderRecord]:
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT * FROM orders WHERE id = ?", (order_id,)
            ).fetchone()
        return OrderRecord.from_row(dict(row)) if row else None

    def _current_status(self, order_id: str) -> Optional[str]:
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT status FROM orders WHERE id = ?", (order_id,)
            ).fetchone()
        return row["status"] if row else None

    def list(
        self,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[OrderRecord], int]:
        """
        Newest-first listing over the status sets.
        No filter = union of all five sets. Slicing is not stable
        across concurrent mutation.
        """
        statuses = [OrderStatus(status).value] if status else [s.value for s in ALL_STATUSES]
        placeholders = ", ".join("?" for _ in statuses)

        with closing(self._connect()) as conn:
            total = conn.execute(
                f"SELECT COUNT(*) FROM order_status_sets WHERE status IN ({placeholders})",
                statuses,
            ).fetchone()[0]
            rows = conn.execute(
                f"""
                SELECT o.*
                FROM order_status_sets s
                JOIN orders o ON o.id = s.order_id
                WHERE s.status IN ({placeholders})
                ORDER BY o.created_at DESC, o.id DESC
                LIMIT ? OFFSET ?
                """,
                (*statuses, limit, offset),
            ).fetchall()

        return [OrderRecord.from_row(dict(r)) for r in rows], total

    def pending_ids(self, limit: int) -> List[str]:
        """Oldest-first pending ids for a drain step."""
        with closing(self._connect()) as conn:
            rows = conn.execute(
                """
                SELECT s.order_id
                FROM order_status_sets s
                JOIN orders o ON o.id = s.order_id
                WHERE s.status = ?
                ORDER BY o.created_at ASC, o.id ASC
                LIMIT ?
                """,
                (OrderStatus.PENDING.value, limit),
            ).fetchall()
        return [r["order_id"] for r in rows]

    def members(self, status: OrderStatus) -> List[str]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT order_id FROM order_status_sets WHERE status = ?",
                (OrderStatus(status).value,),
            ).fetchall()
        return [r["order_id"] for r in rows]

    def counts(self) -> Dict[str, int]:
        result = {s.value: 0 for s in ALL_STATUSES}
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS n FROM order_status_sets GROUP BY status"
            ).fetchall()
        for r in rows:
            result[r["status"]] = r["n"]
        return result

    def find_inconsistencies(self) -> List[Dict[str, Optional[str]]]:
        """
        Records whose set membership is missing or disagrees with status.
        Non-empty only after an interrupted write outside this store.
        """
        with closing(self._connect()) as conn:
            rows = conn.execute(
                """
                SELECT o.id AS order_id, o.status AS record_status, s.status AS set_status
                FROM orders o
                LEFT JOIN order_status_sets s ON s.order_id = o.id
                WHERE s.status IS NULL OR s.status != o.status
                """
            ).fetchall()
        return [dict(r) for r in rows]
