import threading
from contextlib import closing

import pytest

from flashfill_relayer.core.errors import DuplicateOrderError, InvalidTransition
from flashfill_relayer.domain.business_models import OrderStatus
from flashfill_relayer.persistence.database import get_connection

from conftest import make_record, make_terms


def _sets_containing(store, order_id):
    return [s for s in OrderStatus if order_id in store.members(s)]


def test_create_puts_order_in_pending_set_only(store):
    record = store.create(make_record("order_1"))

    assert record.status == OrderStatus.PENDING
    assert store.get("order_1").status == OrderStatus.PENDING
    assert _sets_containing(store, "order_1") == [OrderStatus.PENDING]


def test_create_preserves_uint256_values(store):
    big = 2**256 - 1
    store.create(make_record("order_big", terms=make_terms(maker_traits=big, salt=big)))

    loaded = store.get("order_big")
    assert loaded.terms.maker_traits == big
    assert loaded.terms.salt == big


def test_create_keeps_zero_created_at(store):
    store.create(make_record("order_a", created_at=0))
    store.create(make_record("order_b", created_at=1))

    assert store.get("order_a").created_at == 0
    assert store.pending_ids(10) == ["order_a", "order_b"]


def test_create_assigns_created_at_when_missing(store):
    record = store.create(make_record("order_1", created_at=None))

    assert record.created_at is not None
    assert record.created_at > 0
    assert store.get("order_1").created_at == record.created_at


def test_duplicate_id_rejected(store):
    store.create(make_record("order_1"))
    with pytest.raises(DuplicateOrderError):
        store.create(make_record("order_1"))
    assert store.counts()["pending"] == 1


def test_get_unknown_returns_none(store):
    assert store.get("missing") is None


def test_transition_moves_membership(store):
    store.create(make_record("order_1"))

    store.transition("order_1", OrderStatus.PENDING, OrderStatus.FILLING)
    filled = store.transition(
        "order_1", OrderStatus.FILLING, OrderStatus.FILLED,
        tx_hash="0xabc", filled_at=123, block_number=9,
    )

    assert filled.status == OrderStatus.FILLED
    assert filled.tx_hash == "0xabc"
    assert filled.filled_at == 123
    assert filled.block_number == 9
    assert _sets_containing(store, "order_1") == [OrderStatus.FILLED]


def test_transition_rejects_wrong_from_status(store):
    store.create(make_record("order_1"))

    with pytest.raises(InvalidTransition) as exc:
        store.transition("order_1", OrderStatus.FILLING, OrderStatus.FILLED)

    assert exc.value.current_status == "pending"
    assert "pending" in exc.value.message
    assert store.get("order_1").status == OrderStatus.PENDING


@pytest.mark.parametrize(
    "from_status,to_status",
    [
        (OrderStatus.PENDING, OrderStatus.FILLED),
        (OrderStatus.FILLING, OrderStatus.PENDING),
        (OrderStatus.FILLED, OrderStatus.FAILED),
        (OrderStatus.CANCELLED, OrderStatus.PENDING),
        (OrderStatus.FILLING, OrderStatus.CANCELLED),
    ],
)
def test_transition_rejects_edges_outside_state_machine(store, from_status, to_status):
    store.create(make_record("order_1"))
    with pytest.raises(InvalidTransition):
        store.transition("order_1", from_status, to_status)
    assert _sets_containing(store, "order_1") == [OrderStatus.PENDING]


def test_transition_unknown_order(store):
    with pytest.raises(InvalidTransition) as exc:
        store.transition("missing", OrderStatus.PENDING, OrderStatus.FILLING)
    assert exc.value.current_status is None


def test_transition_rejects_unknown_fields(store):
    store.create(make_record("order_1"))
    with pytest.raises(ValueError):
        store.transition("order_1", OrderStatus.PENDING, OrderStatus.FILLING, status="filled")


def test_concurrent_claim_has_single_winner(store):
    store.create(make_record("order_1"))
    barrier = threading.Barrier(8)
    wins, losses = [], []

    def claim():
        barrier.wait()
        try:
            store.transition("order_1", OrderStatus.PENDING, OrderStatus.FILLING)
            wins.append(1)
        except InvalidTransition:
            losses.append(1)

    threads = [threading.Thread(target=claim) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(wins) == 1
    assert len(losses) == 7
    assert _sets_containing(store, "order_1") == [OrderStatus.FILLING]


def test_list_newest_first_with_pagination(store):
    for i in range(5):
        store.create(make_record(f"order_{i}", created_at=1000 + i))

    records, total = store.list(limit=2, offset=1)

    assert total == 5
    assert [r.id for r in records] == ["order_3", "order_2"]


def test_list_filters_by_status(store):
    for i in range(3):
        store.create(make_record(f"order_{i}", created_at=1000 + i))
    store.transition("order_1", OrderStatus.PENDING, OrderStatus.CANCELLED)

    cancelled, total = store.list(OrderStatus.CANCELLED)
    assert total == 1
    assert [r.id for r in cancelled] == ["order_1"]

    pending, total = store.list(OrderStatus.PENDING)
    assert total == 2
    assert [r.id for r in pending] == ["order_2", "order_0"]


def test_pending_ids_oldest_first(store):
    for i, created in enumerate([30, 10, 20]):
        store.create(make_record(f"order_{i}", created_at=created))

    assert store.pending_ids(2) == ["order_1", "order_2"]


def test_counts_cover_all_sets(store):
    store.create(make_record("order_1"))
    store.create(make_record("order_2"))
    store.transition("order_2", OrderStatus.PENDING, OrderStatus.CANCELLED)

    assert store.counts() == {
        "pending": 1,
        "filling": 0,
        "filled": 0,
        "failed": 0,
        "cancelled": 1,
    }


def test_find_inconsistencies_detects_divergent_membership(store):
    store.create(make_record("order_1"))
    store.create(make_record("order_2"))
    assert store.find_inconsistencies() == []

    with closing(get_connection(store.db_path)) as conn:
        conn.execute("UPDATE order_status_sets SET status = 'filled' WHERE order_id = 'order_1'")
        conn.execute("DELETE FROM order_status_sets WHERE order_id = 'order_2'")

    issues = {i["order_id"]: i for i in store.find_inconsistencies()}
    assert issues["order_1"]["set_status"] == "filled"
    assert issues["order_1"]["record_status"] == "pending"
    assert issues["order_2"]["set_status"] is None


def test_schema_uses_wal(store):
    store.create(make_record("order_1"))
    with closing(get_connection(store.db_path)) as conn:
        mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
    assert mode == "wal"
