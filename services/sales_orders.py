"""Regroup PO line items into sales orders keyed by the fulfillment reference code.

One fulfillment reference can consolidate lines from several POs. Each line gets
a pipeline status from ``ITEM_STATUS_RULES``; the group keeps the most advanced
one according to ``SALES_ORDER_STATUS_RANK``, so merging a less advanced line
never moves a group backwards.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Tuple

from services.models import PoItem, PurchaseOrder, SalesOrder, SalesOrderStatus

logger = logging.getLogger(__name__)

SALES_ORDER_STATUS_RANK: Dict[SalesOrderStatus, int] = {
    SalesOrderStatus.RETURNED: 10,
    SalesOrderStatus.CLOSED: 8,
    SalesOrderStatus.SHIPPED: 7,
    SalesOrderStatus.LABEL_GENERATED: 6,
    SalesOrderStatus.BOX_DATA_PENDING: 5,
    SalesOrderStatus.INVOICED: 4,
    SalesOrderStatus.BATCH_CREATED: 3,
    SalesOrderStatus.CONFIRMED: 2,
    SalesOrderStatus.PROCESSING: 1,
}

RETURNED_ORDER_STATES = {"returned", "rto", "rto initiated", "rto delivered", "rto in transit"}
SHIPPED_ORDER_STATES = {"shipped", "manifested", "in transit", "out for delivery", "delivered"}
BATCHED_ORDER_STATES = {"batch created", "batched", "picking", "picked", "packed"}
OPEN_ORDER_STATES = {"confirmed", "open"}
DEFAULT_ORDER_STATE = "Processing"

# Sales-order scalar field <- line item field. First non-empty value wins.
_SCALAR_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("batch_created_at", "external_batch_created_at"),
    ("manifest_date", "external_manifest_date"),
    ("invoice_id", "invoice_id"),
    ("invoice_status", "invoice_status"),
    ("invoice_number", "invoice_number"),
    ("invoice_total", "invoice_total"),
    ("invoice_url", "invoice_url"),
    ("invoice_pdf_url", "invoice_pdf_url"),
    ("carrier", "carrier"),
    ("awb", "awb"),
    ("tracking_status", "tracking_status"),
    ("edd", "edd"),
    ("latest_status", "latest_status"),
    ("latest_status_date", "latest_status_date"),
    ("current_location", "current_location"),
    ("delivered_date", "delivered_date"),
    ("rto_status", "rto_status"),
    ("rto_awb", "rto_awb"),
)

_PO_SCALAR_FIELDS = ("channel", "store_code", "po_edd", "po_expiry_date", "po_pdf_url")


def _order_state(item: PoItem) -> str:
    return " ".join(item.external_order_status.split()).lower()


def _is_returned(item: PoItem) -> bool:
    return bool(item.rto_status.strip()) or item.returned_quantity > 0 or _order_state(item) in RETURNED_ORDER_STATES


def _is_shipped(item: PoItem) -> bool:
    return (
        _order_state(item) in SHIPPED_ORDER_STATES
        or item.external_manifest_date is not None
        or item.delivered_date is not None
    )


def _is_batched(item: PoItem) -> bool:
    return item.external_batch_created_at is not None or _order_state(item) in BATCHED_ORDER_STATES


class ItemStatusRule(NamedTuple):
    name: str
    applies: Callable[[PoItem], bool]
    status: SalesOrderStatus


ITEM_STATUS_RULES: Tuple[ItemStatusRule, ...] = (
    ItemStatusRule("returned", _is_returned, SalesOrderStatus.RETURNED),
    ItemStatusRule("closed", lambda item: _order_state(item) == "closed", SalesOrderStatus.CLOSED),
    ItemStatusRule("shipped", _is_shipped, SalesOrderStatus.SHIPPED),
    ItemStatusRule("label_generated", lambda item: bool(item.awb.strip()), SalesOrderStatus.LABEL_GENERATED),
    ItemStatusRule(
        "box_data_pending",
        lambda item: bool(item.invoice_number.strip()) and item.box_count == 0,
        SalesOrderStatus.BOX_DATA_PENDING,
    ),
    ItemStatusRule("invoiced", lambda item: bool(item.invoice_number.strip()), SalesOrderStatus.INVOICED),
    ItemStatusRule("batch_created", _is_batched, SalesOrderStatus.BATCH_CREATED),
    ItemStatusRule("confirmed", lambda item: _order_state(item) in OPEN_ORDER_STATES, SalesOrderStatus.CONFIRMED),
)


def item_pipeline_status(item: PoItem) -> SalesOrderStatus:
    for rule in ITEM_STATUS_RULES:
        if rule.applies(item):
            return rule.status
    return SalesOrderStatus.PROCESSING


def status_rank(status: SalesOrderStatus) -> int:
    return SALES_ORDER_STATUS_RANK.get(status, 0)


def more_advanced(current: SalesOrderStatus, candidate: SalesOrderStatus) -> SalesOrderStatus:
    """Keep ``current`` unless ``candidate`` ranks strictly higher."""
    return candidate if status_rank(candidate) > status_rank(current) else current


def effective_quantity(item: PoItem) -> int:
    # Prefer the quantity the fulfillment system reports once it has one.
    return item.item_quantity if item.item_quantity != 0 else item.qty


def _effective_amount(item: PoItem) -> Decimal:
    try:
        return Decimal(str(item.unit_cost)) * effective_quantity(item)
    except (InvalidOperation, ValueError):
        return Decimal("0")


def _is_unset(value: Any) -> bool:
    return value is None or value == "" or value == 0


def _fill_if_unset(order: SalesOrder, field: str, value: Any) -> None:
    if not _is_unset(value) and _is_unset(getattr(order, field)):
        setattr(order, field, value)


class _Group:
    def __init__(self, order: SalesOrder):
        self.order = order
        self.po_numbers: List[str] = []
        self.amount = Decimal("0")


def _new_sales_order(reference_code: str, po: PurchaseOrder, item: PoItem) -> SalesOrder:
    return SalesOrder(
        reference_code=reference_code,
        status=SalesOrderStatus.PROCESSING,
        original_status=item.external_order_status.strip() or DEFAULT_ORDER_STATE,
        order_date=item.external_order_date or po.order_date,
    )


def _merge_line(group: _Group, po: PurchaseOrder, item: PoItem) -> None:
    order = group.order
    if po.po_number not in group.po_numbers:
        group.po_numbers.append(po.po_number)
        order.po_reference = ", ".join(group.po_numbers)

    order.status = more_advanced(order.status, item_pipeline_status(item))

    for field in _PO_SCALAR_FIELDS:
        _fill_if_unset(order, field, getattr(po, field))
    for so_field, item_field in _SCALAR_FIELDS:
        _fill_if_unset(order, so_field, getattr(item, item_field))
    _fill_if_unset(order, "invoice_date", item.invoice_date or item.external_invoice_date)
    _fill_if_unset(order, "order_date", item.external_order_date or po.order_date)

    order.items.append(item)
    order.box_count += item.box_count
    order.qty += effective_quantity(item)
    group.amount += _effective_amount(item)
    order.amount = float(group.amount)


def build_sales_orders(purchase_orders: Iterable[PurchaseOrder]) -> List[SalesOrder]:
    groups: Dict[str, _Group] = {}
    for po in purchase_orders:
        for item in po.items:
            reference_code = item.external_reference_code.strip()
            if not reference_code:
                continue
            group = groups.get(reference_code)
            if group is None:
                group = _Group(_new_sales_order(reference_code, po, item))
                groups[reference_code] = group
            _merge_line(group, po, item)
    logger.debug("[SalesOrders] Built %s sales orders", len(groups))
    return [group.order for group in groups.values()]


# ----------------------------
# Tabs
# ----------------------------
ALL_TAB = "All"
RTO_TAB = "RTO"


def count_sales_order_tabs(orders: Iterable[SalesOrder]) -> Dict[str, int]:
    counts: Dict[str, int] = {ALL_TAB: 0}
    counts.update({status.value: 0 for status in SalesOrderStatus})
    counts[RTO_TAB] = 0
    for order in orders:
        counts[ALL_TAB] += 1
        counts[order.status.value] += 1
        if order.rto_status:
            counts[RTO_TAB] += 1
    return counts


def filter_sales_orders(orders: Iterable[SalesOrder], tab: Optional[str] = None) -> List[SalesOrder]:
    if not tab or tab == ALL_TAB:
        return list(orders)
    if tab == RTO_TAB:
        return [order for order in orders if order.rto_status]
    return [order for order in orders if order.status.value == tab]


def find_sales_order(orders: Iterable[SalesOrder], reference_code: str) -> Optional[SalesOrder]:
    wanted = (reference_code or "").strip()
    return next((order for order in orders if order.reference_code == wanted), None)
