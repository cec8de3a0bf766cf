from __future__ import annotations

import pytest

from services import perf
from services.models import POStatus, SalesOrderStatus
from services.po_snapshot import PoSnapshot, StaleSnapshotError, derive, ensure_current, load_snapshot, snapshot_token
from services.store_client import StoreRequestError


def test_derive_builds_every_view(fake_store):
    view = derive(load_snapshot(fake_store))

    assert [po.po_number for po in view.purchase_orders] == ["PO-1", "PO-2", "PO-3"]
    assert view.statuses == {"PO-1": POStatus.NEW, "PO-2": POStatus.PUSHED, "PO-3": POStatus.NEW}
    assert [so.reference_code for so in view.sales_orders] == ["EE-100"]
    assert view.sales_orders[0].status == SalesOrderStatus.BATCH_CREATED
    assert [(r.master_sku, r.shortfall) for r in view.shortfall] == [("SKU-2", 3), ("SKU-1", 2)]
    assert view.stock == {"SKU-1": 12, "SKU-2": 2}
    assert view.channel_configs["Blinkit"].min_order_threshold == 5000.0
    assert view.po_tab_counts["New POs"] == 2
    assert view.sales_order_tab_counts["Batch Created"] == 1
    cards = {card["key"]: card["value"] for card in view.summary_cards}
    assert cards["procurementShortfall"] == 3


def test_po_actions_use_channel_threshold(fake_store):
    view = derive(load_snapshot(fake_store))
    po = view.get_purchase_order("PO-1")
    actions = view.po_actions(po)

    assert po.amount == 1500.0
    assert actions.can_mark_below_threshold is True
    assert actions.selectable_article_codes == ["A"]
    assert view.po_actions(view.get_purchase_order("PO-3")).primary.label == "Sync Contact"


def test_allocation_preview(fake_store):
    view = derive(load_snapshot(fake_store))
    assert view.allocation_preview() == [
        {"poNumber": "PO-1", "articleCode": "A", "fulfillableQty": 10},
        {"poNumber": "PO-1", "articleCode": "B", "fulfillableQty": 2},
        {"poNumber": "PO-3", "articleCode": "C", "fulfillableQty": 2},
    ]


def test_identical_snapshots_share_token_and_view(fake_store):
    first = load_snapshot(fake_store)
    second = load_snapshot(fake_store)

    assert first.fetched_at <= second.fetched_at
    assert snapshot_token(first) == snapshot_token(second)
    assert derive(first) is derive(second)
    assert len(perf.get_recent_timings("derive")) == 1


def test_changed_rows_change_token(fake_store, make_row):
    before = snapshot_token(load_snapshot(fake_store))
    fake_store.item_rows.append(make_row("PO-4", "Z"))
    after = snapshot_token(load_snapshot(fake_store))
    assert before != after


def test_ensure_current_rejects_superseded_token(fake_store):
    view = derive(load_snapshot(fake_store))
    ensure_current(view, None)
    ensure_current(view, view.token)
    with pytest.raises(StaleSnapshotError):
        ensure_current(view, "0" * 64)


def test_failed_read_yields_no_snapshot(fake_store):
    fake_store.read_error = StoreRequestError("down")
    with pytest.raises(StoreRequestError):
        load_snapshot(fake_store)


def test_empty_snapshot_derives_empty_view():
    view = derive(PoSnapshot())
    assert view.purchase_orders == []
    assert view.shortfall == []
    assert view.po_tab_counts["All POs"] == 0
