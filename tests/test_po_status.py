from __future__ import annotations

import itertools

import pytest

from services.models import PoItem, POStatus
from services.po_status import PO_STATUS_RULES, matching_rules, resolve_po_status


def _item(code="A", qty=10, status="New", pushed=False):
    return PoItem(article_code=code, qty=qty, item_status=status, fulfillment_order_ref="EE-1" if pushed else "")


def test_cancelled_line_is_excluded_from_push_checks():
    items = [_item("A", 10), _item("B", 5, status="Cancelled")]
    assert resolve_po_status("New", items) == POStatus.NEW
    assert sum(i.qty for i in items if i.is_active) == 10


def test_all_active_pushed_beats_raw_confirmed():
    items = [_item("A", pushed=True), _item("B", pushed=True)]
    assert resolve_po_status("Confirmed", items) == POStatus.PUSHED


def test_pushed_ignores_cancelled_lines():
    items = [_item("A", pushed=True), _item("B", status="Cancelled")]
    assert resolve_po_status("New", items) == POStatus.PUSHED


def test_some_pushed_is_partially_processed():
    items = [_item("A", pushed=True), _item("B")]
    assert resolve_po_status("Confirmed", items) == POStatus.PARTIALLY_PROCESSED


def test_every_line_cancelled_is_cancelled_regardless_of_raw_status():
    items = [_item("A", status="Cancelled"), _item("B", status="cancelled ")]
    assert resolve_po_status("Confirmed", items) == POStatus.CANCELLED


def test_raw_cancelled_and_below_threshold_outrank_push_progress():
    pushed = [_item("A", pushed=True)]
    assert resolve_po_status("Cancelled", pushed) == POStatus.CANCELLED
    assert resolve_po_status("Below Threshold", pushed) == POStatus.BELOW_THRESHOLD


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Confirmed", POStatus.CONFIRMED_TO_SEND),
        ("  confirmed   to send ", POStatus.CONFIRMED_TO_SEND),
        ("Waiting for Confirmation", POStatus.WAITING_FOR_CONFIRMATION),
        ("", POStatus.NEW),
        (None, POStatus.NEW),
        ("Something Else", POStatus.NEW),
    ],
)
def test_raw_status_fallbacks(raw, expected):
    assert resolve_po_status(raw, [_item()]) == expected


def test_po_without_items_uses_raw_status():
    assert resolve_po_status("Confirmed", []) == POStatus.CONFIRMED_TO_SEND
    assert resolve_po_status("New", []) == POStatus.NEW


def test_resolution_is_idempotent():
    items = [_item("A", pushed=True), _item("B"), _item("C", status="Cancelled")]
    first = resolve_po_status("New", items)
    assert resolve_po_status("New", items) == first
    assert [i.qty for i in items] == [10, 10, 10]


def test_pushed_completeness_over_combinations():
    for flags in itertools.product([False, True], repeat=3):
        items = [_item(str(i), pushed=flag) for i, flag in enumerate(flags)]
        status = resolve_po_status("New", items)
        if all(flags):
            assert status == POStatus.PUSHED
        elif any(flags):
            assert status == POStatus.PARTIALLY_PROCESSED
        else:
            assert status == POStatus.NEW


def test_rule_table_order_and_explanation():
    assert [rule.name for rule in PO_STATUS_RULES][:3] == ["cancelled", "below_threshold", "pushed"]
    names = matching_rules("Confirmed", [_item("A", pushed=True)])
    assert names[0] == "pushed"
    assert "confirmed" in names
