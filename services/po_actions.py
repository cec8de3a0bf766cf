"""Gate operator actions through eligibility before anything reaches the row store.

Every function takes the ``DerivedView`` the operator was looking at. A refused
action returns ``StoreResult.refusal`` without a network call; an accepted one
returns whatever the store answered.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional

from services.action_eligibility import PurchaseOrderActions, push_refusal_reason
from services.models import POStatus, PurchaseOrder, SalesOrder
from services.po_snapshot import DerivedView, ensure_current
from services.store_client import PoStoreClient, StoreResult

logger = logging.getLogger(__name__)


class UnknownOrderError(LookupError):
    pass


# Target status -> guard over the evaluated actions.
STATUS_TRANSITIONS: Dict[POStatus, Callable[[PurchaseOrderActions], bool]] = {
    POStatus.BELOW_THRESHOLD: lambda a: a.can_mark_below_threshold,
    POStatus.CONFIRMED_TO_SEND: lambda a: a.can_confirm,
    POStatus.WAITING_FOR_CONFIRMATION: lambda a: a.status == POStatus.NEW,
    POStatus.CANCELLED: lambda a: a.can_cancel,
}


def _require_po(view: DerivedView, po_number: str) -> PurchaseOrder:
    po = view.get_purchase_order(po_number)
    if po is None:
        raise UnknownOrderError(f"Unknown purchase order: {po_number}")
    return po


def _require_sales_order(view: DerivedView, reference_code: str) -> SalesOrder:
    order = view.get_sales_order(reference_code)
    if order is None:
        raise UnknownOrderError(f"Unknown sales order: {reference_code}")
    return order


def _refuse(action: str, key: str, reason: str) -> StoreResult:
    logger.info("[PoActions] Refused %s for %s: %s", action, key, reason)
    return StoreResult.refusal(reason)


def push_items(
    client: PoStoreClient,
    view: DerivedView,
    po_number: str,
    article_codes: Iterable[str],
    snapshot_token: Optional[str] = None,
) -> StoreResult:
    ensure_current(view, snapshot_token)
    po = _require_po(view, po_number)
    codes: List[str] = [code.strip() for code in article_codes if code and code.strip()]
    reason = push_refusal_reason(view.po_actions(po), codes)
    if reason:
        return _refuse("push", po.po_number, reason)
    return client.push_to_fulfillment(po, codes)


def change_po_status(
    client: PoStoreClient,
    view: DerivedView,
    po_number: str,
    target: POStatus,
    snapshot_token: Optional[str] = None,
) -> StoreResult:
    ensure_current(view, snapshot_token)
    po = _require_po(view, po_number)
    guard = STATUS_TRANSITIONS.get(target)
    if guard is None:
        return _refuse("status", po.po_number, f"Status cannot be set to {target.value}")
    actions = view.po_actions(po)
    if not guard(actions):
        return _refuse("status", po.po_number, f"Cannot move from {actions.status.value} to {target.value}")
    return client.update_po_status(po.po_number, target.value)


def cancel_line(
    client: PoStoreClient,
    view: DerivedView,
    po_number: str,
    article_code: str,
    snapshot_token: Optional[str] = None,
) -> StoreResult:
    ensure_current(view, snapshot_token)
    po = _require_po(view, po_number)
    code = (article_code or "").strip()
    if code not in view.po_actions(po).cancellable_article_codes:
        return _refuse("cancel-line", po.po_number, f"Line {code or '?'} cannot be cancelled")
    return client.cancel_line_item(po.po_number, code)


def map_customer(client: PoStoreClient, view: DerivedView, po_number: str) -> StoreResult:
    """Create the fulfillment-side customer from the PO's accounting contact."""
    po = _require_po(view, po_number)
    contact_id = po.external_contact_id.strip()
    if not contact_id:
        return _refuse("map-customer", po.po_number, "Sync the accounting contact first")
    return client.map_customer(contact_id)


def create_invoice(client: PoStoreClient, view: DerivedView, reference_code: str) -> StoreResult:
    order = _require_sales_order(view, reference_code)
    if not view.sales_order_actions(order).can_create_invoice:
        return _refuse("invoice", order.reference_code, f"Invoice not available in status {order.status.value}")
    return client.create_invoice(order.reference_code)


def ship(client: PoStoreClient, view: DerivedView, reference_code: str) -> StoreResult:
    order = _require_sales_order(view, reference_code)
    if not view.sales_order_actions(order).can_ship:
        return _refuse("ship", order.reference_code, "Shipping needs an invoiced order with box data and no AWB")
    return client.ship_sales_order(order.reference_code)
