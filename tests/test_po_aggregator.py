from __future__ import annotations

import itertools

from services.models import POStatus
from services.po_aggregator import PurchaseOrderAggregator
from services.po_status import resolve_order_status
from services.row_normalizer import normalize_item_rows


def _orders(rows, dedupe_lines=False):
    return PurchaseOrderAggregator(dedupe_lines=dedupe_lines).add_all(normalize_item_rows(rows)).result()


def test_groups_rows_by_po_number_and_accumulates(make_row):
    rows = [
        make_row("PO-1", "A", **{"Qty": 10, "Unit Cost (Tax Exclusive)": 12.5}),
        make_row("PO-1", "B", **{"Qty": 4, "Unit Cost (Tax Exclusive)": 0.1}),
        make_row("PO-2", "A", **{"Qty": 1, "Unit Cost (Tax Exclusive)": 99}),
    ]
    orders = {po.po_number: po for po in _orders(rows)}

    assert set(orders) == {"PO-1", "PO-2"}
    assert orders["PO-1"].qty == 14
    assert orders["PO-1"].amount == 125.4
    assert [i.article_code for i in orders["PO-1"].items] == ["A", "B"]
    assert orders["PO-2"].amount == 99.0


def test_cancelled_lines_still_count_toward_totals(make_row):
    rows = [make_row("PO-1", "A"), make_row("PO-1", "B", **{"EE_item_item_status": "Cancelled", "Qty": 5})]
    po = _orders(rows)[0]
    assert po.qty == 15
    assert po.active_qty == 10


def test_order_fields_first_non_empty_wins(make_row):
    rows = [
        make_row("PO-1", "A", **{"Channel Name": "", "Status": "", "EE Customer ID": ""}),
        make_row("PO-1", "B", **{"Channel Name": "Zepto", "Status": "Confirmed", "EE Customer ID": "C-1"}),
        make_row("PO-1", "C", **{"Channel Name": "Blinkit", "Status": "New", "EE Customer ID": "C-2"}),
    ]
    po = _orders(rows)[0]
    assert po.channel == "Zepto"
    assert po.status == "Confirmed"
    assert po.external_customer_id == "C-1"


def test_defaults_for_missing_channel_and_status(make_row):
    po = _orders([make_row(**{"Channel Name": "", "Status": ""})])[0]
    assert po.channel == "Unknown"
    assert po.status == POStatus.NEW.value


def test_rows_without_po_number_or_item_code_are_dropped(make_row):
    aggregator = PurchaseOrderAggregator()
    aggregator.add_all(normalize_item_rows([make_row(""), make_row("PO-1", ""), make_row("PO-1", "A")]))
    orders = aggregator.result()
    assert len(orders) == 1
    assert aggregator.dropped == 2


def test_aggregation_is_order_independent(make_row):
    rows = [
        make_row("PO-1", "A", **{"Qty": 3, "Unit Cost (Tax Exclusive)": 0.1}),
        make_row("PO-1", "B", **{"Qty": 7, "Unit Cost (Tax Exclusive)": 0.2, "EE Order Ref ID": "EE-1"}),
        make_row("PO-1", "C", **{"Qty": 1, "Unit Cost (Tax Exclusive)": 0.3, "EE_item_item_status": "Cancelled"}),
    ]
    seen = set()
    for permutation in itertools.permutations(rows):
        po = _orders(list(permutation))[0]
        seen.add((po.qty, po.amount, resolve_order_status(po)))
    assert seen == {(11, 2.0, POStatus.PARTIALLY_PROCESSED)}


def test_duplicate_lines_append_by_default(make_row):
    rows = [make_row("PO-1", "A"), make_row("PO-1", "A")]
    po = _orders(rows)[0]
    assert len(po.items) == 2
    assert po.qty == 20


def test_dedupe_lines_keeps_last_write(make_row):
    rows = [
        make_row("PO-1", "A", **{"Qty": 10}),
        make_row("PO-1", "B", **{"Qty": 2}),
        make_row("PO-1", "A", **{"Qty": 6, "EE_item_item_status": "Cancelled"}),
    ]
    aggregator = PurchaseOrderAggregator(dedupe_lines=True)
    po = aggregator.add_all(normalize_item_rows(rows)).result()[0]

    assert [i.article_code for i in po.items] == ["A", "B"]
    assert po.items[0].is_cancelled
    assert po.qty == 8
    assert po.amount == 800.0
    assert aggregator.replaced == 1
