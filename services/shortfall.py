"""Open demand vs. on-hand stock, per master SKU."""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from config import SHORTFALL_ITEM_STATUSES
from services.models import InventoryItem, PoItem, PurchaseOrder, ShortfallRecord

logger = logging.getLogger(__name__)


def _status_set(statuses: Optional[Sequence[str]]) -> frozenset[str]:
    chosen = SHORTFALL_ITEM_STATUSES if statuses is None else statuses
    return frozenset(" ".join(s.split()).lower() for s in chosen)


def is_open_demand(item: PoItem, statuses: frozenset[str]) -> bool:
    """An unpushed, non-cancelled line whose item status still counts as demand."""
    item_status = " ".join(item.item_status.split()).lower()
    return item_status in statuses and item.is_active and not item.is_pushed


def stock_by_sku(inventory: Iterable[InventoryItem]) -> Dict[str, int]:
    """
    On-hand stock keyed by master SKU.

    The mapping sheet repeats a master SKU once per channel listing, all carrying
    the same warehouse figure; the last row read wins.
    """
    stock: Dict[str, int] = {}
    for entry in inventory:
        sku = entry.sku.strip()
        if sku:
            stock[sku] = entry.stock
    return stock


def compute_shortfall(
    purchase_orders: Iterable[PurchaseOrder],
    stock: Mapping[str, int],
    statuses: Optional[Sequence[str]] = None,
) -> List[ShortfallRecord]:
    eligible = _status_set(statuses)
    demand: Dict[str, ShortfallRecord] = {}
    missing_sku = 0

    for po in purchase_orders:
        for item in po.items:
            if not is_open_demand(item, eligible):
                continue
            sku = item.master_sku.strip()
            if not sku:
                missing_sku += 1
                continue
            record = demand.setdefault(sku, ShortfallRecord(master_sku=sku))
            record.total_required += item.qty
            record.channel_demand[po.channel] = record.channel_demand.get(po.channel, 0) + item.qty

    if missing_sku:
        logger.debug("[Shortfall] Skipped %s open lines without a master SKU", missing_sku)

    shortfalls: List[ShortfallRecord] = []
    for sku, record in demand.items():
        # No stock row means nothing on hand.
        record.stock = stock.get(sku, 0)
        record.shortfall = max(0, record.total_required - record.stock)
        if record.shortfall > 0:
            shortfalls.append(record)

    shortfalls.sort(key=lambda r: (-r.shortfall, r.master_sku))
    return shortfalls


def allocate_fulfillable(
    purchase_orders: Iterable[PurchaseOrder],
    stock: Mapping[str, int],
    statuses: Optional[Sequence[str]] = None,
) -> Dict[Tuple[str, str], int]:
    """
    First-in-first-out allocation preview of stock to open lines.

    Lines are served in PO date order (undated POs last, ties in input order); each
    takes ``min(qty, remaining)`` from its master SKU. Returns the fulfillable
    quantity per ``(poNumber, articleCode)``.
    """
    eligible = _status_set(statuses)
    queue: List[Tuple[Optional[date], PurchaseOrder, PoItem]] = [
        (po.order_date, po, item)
        for po in purchase_orders
        for item in po.items
        if is_open_demand(item, eligible)
    ]
    queue.sort(key=lambda entry: (entry[0] is None, entry[0] or date.min))

    remaining: Dict[str, int] = dict(stock)
    allocation: Dict[Tuple[str, str], int] = {}
    for _order_date, po, item in queue:
        sku = item.master_sku.strip()
        available = max(0, remaining.get(sku, 0))
        fulfillable = min(item.qty, available)
        remaining[sku] = available - fulfillable
        key = (po.po_number, item.article_code)
        allocation[key] = allocation.get(key, 0) + fulfillable
    return allocation
