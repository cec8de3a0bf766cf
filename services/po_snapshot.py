"""One consistent read of the row store and everything derived from it.

``load_snapshot`` takes the single full read for a recomputation cycle and
``derive`` turns it into a ``DerivedView``. Derivation is pure and memoized by
the snapshot token, so deriving an identical snapshot twice returns the same
view without recomputing.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from services.action_eligibility import (
    PurchaseOrderActions,
    SalesOrderActions,
    evaluate_po_actions,
    evaluate_sales_order_actions,
)
from services.models import ChannelConfig, InventoryItem, POStatus, PurchaseOrder, SalesOrder, ShortfallRecord
from services.perf import time_block
from services.po_aggregator import PurchaseOrderAggregator
from services.po_dashboard import build_summary_cards, count_po_tabs
from services.po_status import resolve_order_status
from services.row_normalizer import normalize_channel_config_rows, normalize_inventory_rows, normalize_item_rows
from services.sales_orders import build_sales_orders, count_sales_order_tabs, find_sales_order
from services.shortfall import allocate_fulfillable, compute_shortfall, stock_by_sku

logger = logging.getLogger(__name__)

MAX_CACHED_VIEWS = 8

_views: "OrderedDict[str, DerivedView]" = OrderedDict()
_views_lock = threading.Lock()


class StaleSnapshotError(RuntimeError):
    """An action was prepared against a view that no longer matches the store."""

    def __init__(self, expected: str, current: str):
        super().__init__("Data changed since it was loaded; refresh and try again")
        self.expected = expected
        self.current = current


class PoSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_rows: Tuple[Dict[str, Any], ...] = ()
    inventory_rows: Tuple[Dict[str, Any], ...] = ()
    channel_config_rows: Tuple[Dict[str, Any], ...] = ()
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    dedupe_lines: bool = False


def snapshot_token(snapshot: PoSnapshot) -> str:
    """SHA-256 over the canonical JSON of the row sets. ``fetched_at`` is not part of it."""
    canonical = json.dumps(
        {
            "items": list(snapshot.item_rows),
            "inventory": list(snapshot.inventory_rows),
            "channelConfigs": list(snapshot.channel_config_rows),
            "dedupe": snapshot.dedupe_lines,
        },
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class DerivedView(BaseModel):
    token: str
    fetched_at: datetime
    purchase_orders: List[PurchaseOrder] = Field(default_factory=list)
    statuses: Dict[str, POStatus] = Field(default_factory=dict)
    sales_orders: List[SalesOrder] = Field(default_factory=list)
    inventory: List[InventoryItem] = Field(default_factory=list)
    stock: Dict[str, int] = Field(default_factory=dict)
    shortfall: List[ShortfallRecord] = Field(default_factory=list)
    channel_configs: Dict[str, ChannelConfig] = Field(default_factory=dict)
    summary_cards: List[Dict[str, Any]] = Field(default_factory=list)
    po_tab_counts: Dict[str, int] = Field(default_factory=dict)
    sales_order_tab_counts: Dict[str, int] = Field(default_factory=dict)
    dropped_rows: int = 0

    def get_purchase_order(self, po_number: str) -> Optional[PurchaseOrder]:
        wanted = (po_number or "").strip()
        return next((po for po in self.purchase_orders if po.po_number == wanted), None)

    def get_sales_order(self, reference_code: str) -> Optional[SalesOrder]:
        return find_sales_order(self.sales_orders, reference_code)

    def status_of(self, po: PurchaseOrder) -> POStatus:
        return self.statuses.get(po.po_number) or resolve_order_status(po)

    def po_actions(self, po: PurchaseOrder, staged_article_codes: Sequence[str] = ()) -> PurchaseOrderActions:
        return evaluate_po_actions(
            po,
            channel_config=self.channel_configs.get(po.channel),
            staged_article_codes=staged_article_codes,
            status=self.status_of(po),
        )

    def sales_order_actions(self, order: SalesOrder) -> SalesOrderActions:
        return evaluate_sales_order_actions(order)

    def allocation_preview(self) -> List[Dict[str, Any]]:
        allocation = allocate_fulfillable(self.purchase_orders, self.stock)
        return [
            {"poNumber": po_number, "articleCode": article_code, "fulfillableQty": qty}
            for (po_number, article_code), qty in allocation.items()
        ]


def _derive_uncached(snapshot: PoSnapshot, token: str) -> DerivedView:
    with time_block("derive", token=token[:12], item_rows=len(snapshot.item_rows)):
        aggregator = PurchaseOrderAggregator(dedupe_lines=snapshot.dedupe_lines)
        purchase_orders = aggregator.add_all(normalize_item_rows(snapshot.item_rows)).result()
        statuses = {po.po_number: resolve_order_status(po) for po in purchase_orders}

        inventory = normalize_inventory_rows(snapshot.inventory_rows)
        stock = stock_by_sku(inventory)
        sales_orders = build_sales_orders(purchase_orders)

        view = DerivedView(
            token=token,
            fetched_at=snapshot.fetched_at,
            purchase_orders=purchase_orders,
            statuses=statuses,
            sales_orders=sales_orders,
            inventory=inventory,
            stock=stock,
            shortfall=compute_shortfall(purchase_orders, stock),
            channel_configs=normalize_channel_config_rows(snapshot.channel_config_rows),
            summary_cards=build_summary_cards(purchase_orders, statuses),
            po_tab_counts=count_po_tabs(statuses),
            sales_order_tab_counts=count_sales_order_tabs(sales_orders),
            dropped_rows=aggregator.dropped,
        )

    logger.info(
        "[PoSnapshot] Derived %s POs, %s sales orders, %s shortfall SKUs from %s rows",
        len(purchase_orders),
        len(sales_orders),
        len(view.shortfall),
        len(snapshot.item_rows),
    )
    return view


def derive(snapshot: PoSnapshot) -> DerivedView:
    """Derive (or reuse) the view for ``snapshot``. The returned view is shared; treat it as read-only."""
    token = snapshot_token(snapshot)
    with _views_lock:
        cached = _views.get(token)
        if cached is not None:
            _views.move_to_end(token)
            return cached

    view = _derive_uncached(snapshot, token)
    with _views_lock:
        _views[token] = view
        while len(_views) > MAX_CACHED_VIEWS:
            _views.popitem(last=False)
    return view


def clear_derived_views() -> None:
    with _views_lock:
        _views.clear()


def load_snapshot(client: Any, dedupe_lines: bool = False) -> PoSnapshot:
    """
    Read every row set the derivation needs, in one pass.

    ``StoreRequestError`` from any read propagates; a partial snapshot is never
    returned.
    """
    with time_block("load_snapshot") as ctx:
        item_rows = client.fetch_item_rows()
        inventory_rows = client.fetch_inventory_rows()
        channel_config_rows = client.fetch_channel_config_rows()
        ctx["item_rows"] = len(item_rows)
    return PoSnapshot(
        item_rows=tuple(item_rows),
        inventory_rows=tuple(inventory_rows),
        channel_config_rows=tuple(channel_config_rows),
        dedupe_lines=dedupe_lines,
    )


def ensure_current(view: DerivedView, token: Optional[str]) -> None:
    """Raise ``StaleSnapshotError`` when ``token`` names a different snapshot than ``view``."""
    if token and token != view.token:
        logger.warning("[PoSnapshot] Rejecting action from stale view %s (current %s)", token[:12], view.token[:12])
        raise StaleSnapshotError(expected=token, current=view.token)
