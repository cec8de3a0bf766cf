"""Decide which operations are currently legal on a purchase order or sales order.

Missing identity linkage never raises; it shows up as a disabled or redirected
primary action. The primary-action table is ordered: a push is only offered once
contact and customer linkage are complete, and nothing destructive is offered
once the order has been pushed.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from services.models import ChannelConfig, PoItem, POStatus, PurchaseOrder, SalesOrder, SalesOrderStatus
from services.po_status import resolve_order_status

CANCELLABLE_STATUSES = frozenset({POStatus.NEW, POStatus.BELOW_THRESHOLD, POStatus.WAITING_FOR_CONFIRMATION})
CONFIRMABLE_STATUSES = frozenset({POStatus.NEW, POStatus.WAITING_FOR_CONFIRMATION})
PUSHABLE_STATUSES = frozenset({POStatus.NEW, POStatus.PARTIALLY_PROCESSED})
LINE_CANCEL_BLOCKED_STATUSES = frozenset({POStatus.CANCELLED, POStatus.PUSHED, POStatus.CLOSED})


class ActionKind(str, Enum):
    CANCELLED = "cancelled"
    BELOW_THRESHOLD = "below_threshold"
    TRACK = "track"
    SYNC_CONTACT = "sync_contact"
    MAP_CUSTOMER = "map_customer"
    PUSH = "push"
    VIEW = "view"
    CREATE_INVOICE = "create_invoice"
    SHIP = "ship"
    TRACK_DISPATCH = "track_dispatch"
    TRACK_ORDER = "track_order"


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PrimaryAction(_WireModel):
    kind: ActionKind
    label: str
    disabled: bool = False


class PurchaseOrderActions(_WireModel):
    status: POStatus
    can_mark_below_threshold: bool = False
    can_cancel: bool = False
    can_confirm: bool = False
    can_push: bool = False
    selectable_article_codes: List[str] = Field(default_factory=list)
    stock_shortage_article_codes: List[str] = Field(default_factory=list)
    cancellable_article_codes: List[str] = Field(default_factory=list)
    primary: PrimaryAction


class SalesOrderActions(_WireModel):
    can_create_invoice: bool = False
    can_ship: bool = False
    primary: PrimaryAction


# ----------------------------
# Line selection
# ----------------------------
def is_selectable_for_push(item: PoItem) -> bool:
    return item.is_active and not item.is_pushed and item.is_fully_fulfillable


def selectable_items(po: PurchaseOrder) -> List[PoItem]:
    return [item for item in po.items if is_selectable_for_push(item)]


def stock_shortage_items(po: PurchaseOrder) -> List[PoItem]:
    return [item for item in po.items if item.is_active and not item.is_pushed and not item.is_fully_fulfillable]


def cancellable_items(po: PurchaseOrder, status: Optional[POStatus] = None) -> List[PoItem]:
    status = status or resolve_order_status(po)
    if status in LINE_CANCEL_BLOCKED_STATUSES:
        return []
    return [item for item in po.items if item.is_active and not item.is_pushed]


# ----------------------------
# Purchase order primary action
# ----------------------------
class _PoContext(NamedTuple):
    po: PurchaseOrder
    status: POStatus


class PrimaryRule(NamedTuple):
    applies: Callable[[_PoContext], bool]
    action: PrimaryAction


PO_PRIMARY_RULES: Tuple[PrimaryRule, ...] = (
    PrimaryRule(
        lambda c: c.status == POStatus.CANCELLED,
        PrimaryAction(kind=ActionKind.CANCELLED, label="Cancelled", disabled=True),
    ),
    PrimaryRule(
        lambda c: c.status == POStatus.BELOW_THRESHOLD,
        PrimaryAction(kind=ActionKind.BELOW_THRESHOLD, label="Below Threshold", disabled=True),
    ),
    PrimaryRule(
        lambda c: c.status == POStatus.PUSHED,
        PrimaryAction(kind=ActionKind.TRACK, label="Track in Sales"),
    ),
    PrimaryRule(
        lambda c: not c.po.external_contact_id.strip(),
        PrimaryAction(kind=ActionKind.SYNC_CONTACT, label="Sync Contact"),
    ),
    PrimaryRule(
        lambda c: not c.po.external_customer_id.strip(),
        PrimaryAction(kind=ActionKind.MAP_CUSTOMER, label="Map Customer"),
    ),
    PrimaryRule(
        lambda c: c.status in PUSHABLE_STATUSES,
        PrimaryAction(kind=ActionKind.PUSH, label="Push to Fulfillment"),
    ),
)

PO_FALLBACK_ACTION = PrimaryAction(kind=ActionKind.VIEW, label="View Details")


def primary_po_action(po: PurchaseOrder, status: Optional[POStatus] = None) -> PrimaryAction:
    context = _PoContext(po=po, status=status or resolve_order_status(po))
    for rule in PO_PRIMARY_RULES:
        if rule.applies(context):
            return rule.action.model_copy()
    return PO_FALLBACK_ACTION.model_copy()


def evaluate_po_actions(
    po: PurchaseOrder,
    channel_config: Optional[ChannelConfig] = None,
    staged_article_codes: Sequence[str] = (),
    status: Optional[POStatus] = None,
) -> PurchaseOrderActions:
    """
    Evaluate the legal operations on ``po``.

    ``staged_article_codes`` are the lines the operator has currently selected for
    a push; while anything is staged the PO cannot be cancelled. Without a channel
    config the below-threshold guard is 0, so the PO can never be marked.
    """
    status = status or resolve_order_status(po)
    threshold = channel_config.min_order_threshold if channel_config else 0.0
    primary = primary_po_action(po, status)
    selectable = [item.article_code for item in selectable_items(po)]

    return PurchaseOrderActions(
        status=status,
        can_mark_below_threshold=status == POStatus.NEW and po.amount < threshold,
        can_cancel=status in CANCELLABLE_STATUSES and not list(staged_article_codes),
        can_confirm=status in CONFIRMABLE_STATUSES,
        can_push=primary.kind == ActionKind.PUSH and bool(selectable),
        selectable_article_codes=selectable,
        stock_shortage_article_codes=[item.article_code for item in stock_shortage_items(po)],
        cancellable_article_codes=[item.article_code for item in cancellable_items(po, status)],
        primary=primary,
    )


def push_refusal_reason(actions: PurchaseOrderActions, article_codes: Iterable[str]) -> Optional[str]:
    """Why a push of ``article_codes`` would be refused, or None when it is allowed."""
    codes = [code for code in article_codes if code]
    if actions.primary.kind != ActionKind.PUSH:
        return f"Push not available: {actions.primary.label}"
    if not codes:
        return "No items selected for push"
    blocked = sorted(set(codes) - set(actions.selectable_article_codes))
    if blocked:
        return f"Items not eligible for push: {', '.join(blocked)}"
    return None


# ----------------------------
# Sales order actions
# ----------------------------
def evaluate_sales_order_actions(order: SalesOrder) -> SalesOrderActions:
    can_create_invoice = not order.invoice_number and order.status == SalesOrderStatus.BATCH_CREATED
    can_ship = order.status == SalesOrderStatus.INVOICED and not order.awb and order.box_count > 0

    if can_create_invoice:
        primary = PrimaryAction(kind=ActionKind.CREATE_INVOICE, label="Create Invoice")
    elif can_ship:
        primary = PrimaryAction(kind=ActionKind.SHIP, label="Ship")
    elif order.status == SalesOrderStatus.LABEL_GENERATED:
        primary = PrimaryAction(kind=ActionKind.TRACK_DISPATCH, label="Track Dispatch")
    elif order.awb:
        primary = PrimaryAction(kind=ActionKind.TRACK_ORDER, label="Track Order")
    else:
        primary = PrimaryAction(kind=ActionKind.VIEW, label="Details")

    return SalesOrderActions(can_create_invoice=can_create_invoice, can_ship=can_ship, primary=primary)
