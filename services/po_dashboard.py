"""Summary cards and tab counts for the purchase order list."""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional

from services.models import POStatus, PurchaseOrder

ALL_TAB = "All POs"
NEW_TAB = "New POs"
BELOW_THRESHOLD_TAB = "Below Threshold POs"
PUSHED_TAB = "Pushed POs"
PARTIALLY_PUSHED_TAB = "Partially Pushed POs"
CANCELLED_TAB = "Cancelled POs"

PO_TABS: Dict[str, frozenset] = {
    NEW_TAB: frozenset({POStatus.NEW, POStatus.CONFIRMED_TO_SEND, POStatus.WAITING_FOR_CONFIRMATION}),
    BELOW_THRESHOLD_TAB: frozenset({POStatus.BELOW_THRESHOLD}),
    PUSHED_TAB: frozenset({POStatus.PUSHED}),
    PARTIALLY_PUSHED_TAB: frozenset({POStatus.PARTIALLY_PROCESSED}),
    CANCELLED_TAB: frozenset({POStatus.CANCELLED}),
}

INACTIVE_STATUSES = frozenset({POStatus.CLOSED, POStatus.CANCELLED})


def count_po_tabs(statuses: Mapping[str, POStatus]) -> Dict[str, int]:
    """``statuses`` maps PO number to its resolved status."""
    counts = {ALL_TAB: len(statuses)}
    for tab, members in PO_TABS.items():
        counts[tab] = sum(1 for status in statuses.values() if status in members)
    return counts


def filter_po_tab(
    orders: Iterable[PurchaseOrder],
    statuses: Mapping[str, POStatus],
    tab: Optional[str] = None,
    channel: Optional[str] = None,
) -> List[PurchaseOrder]:
    selected = list(orders)
    if tab and tab != ALL_TAB:
        members = PO_TABS.get(tab)
        if members is None:
            return []
        selected = [po for po in selected if statuses.get(po.po_number) in members]
    if channel:
        selected = [po for po in selected if po.channel == channel]
    return selected


def procurement_shortfall_units(orders: Iterable[PurchaseOrder], statuses: Mapping[str, POStatus]) -> int:
    """Units the open (not yet pushed) lines of new POs still need beyond what stock covers."""
    total = 0
    for po in orders:
        if statuses.get(po.po_number) not in PO_TABS[NEW_TAB]:
            continue
        for item in po.items:
            if item.is_active and not item.is_pushed:
                total += max(0, item.qty - item.fulfillable_qty)
    return total


def build_summary_cards(orders: List[PurchaseOrder], statuses: Mapping[str, POStatus]) -> List[Dict[str, object]]:
    active = sum(1 for status in statuses.values() if status not in INACTIVE_STATUSES)
    pushed = sum(1 for status in statuses.values() if status == POStatus.PUSHED)
    partial = sum(1 for status in statuses.values() if status == POStatus.PARTIALLY_PROCESSED)
    return [
        {"key": "activePos", "title": "Total Active POs", "value": active, "target": ALL_TAB},
        {
            "key": "procurementShortfall",
            "title": "Procurement Shortfall",
            "value": procurement_shortfall_units(orders, statuses),
            "target": "shortfall",
        },
        {"key": "fullyPushed", "title": "Fully Pushed", "value": pushed, "target": PUSHED_TAB},
        {"key": "partiallyPushed", "title": "Partially Pushed", "value": partial, "target": PARTIALLY_PUSHED_TAB},
    ]
