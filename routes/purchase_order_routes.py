"""Purchase order list, details and PO-level actions."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from routes import store_access
from services import po_actions
from services.models import POStatus, PurchaseOrder
from services.po_dashboard import ALL_TAB, PO_TABS, filter_po_tab
from services.po_snapshot import DerivedView
from services.po_status import matching_rules

router = APIRouter(prefix="/api/purchase-orders")
logger = logging.getLogger(__name__)

# Status names the operator UI sends that differ from the canonical labels.
STATUS_ALIASES = {"confirmed": POStatus.CONFIRMED_TO_SEND}


class _ActionRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    snapshot_token: Optional[str] = None


class PushRequest(_ActionRequest):
    article_codes: List[str] = Field(default_factory=list)


class StatusRequest(_ActionRequest):
    status: POStatus

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            key = " ".join(value.split()).lower()
            if key in STATUS_ALIASES:
                return STATUS_ALIASES[key]
            for status in POStatus:
                if status.value.lower() == key:
                    return status
        return value


class CancelLineRequest(_ActionRequest):
    article_code: str

    @field_validator("article_code")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("articleCode is required")
        return value.strip()


def po_payload(view: DerivedView, po: PurchaseOrder) -> Dict[str, Any]:
    data = po.model_dump(by_alias=True, mode="json")
    data["resolvedStatus"] = view.status_of(po).value
    data["actions"] = view.po_actions(po).model_dump(by_alias=True, mode="json")
    return data


@router.get("")
def list_purchase_orders(tab: Optional[str] = Query(None), channel: Optional[str] = Query(None)):
    if tab and tab != ALL_TAB and tab not in PO_TABS:
        raise HTTPException(status_code=400, detail=f"Unknown tab: {tab}")
    view = store_access.load_view()
    orders = filter_po_tab(view.purchase_orders, view.statuses, tab, channel)
    logger.info("[po_routes] list tab=%s channel=%s returning=%s", tab, channel, len(orders))
    return {
        "purchaseOrders": [po_payload(view, po) for po in orders],
        "tabCounts": view.po_tab_counts,
        "snapshotToken": view.token,
    }


@router.get("/{po_number}")
def get_purchase_order(po_number: str):
    view = store_access.load_view()
    po = view.get_purchase_order(po_number)
    if po is None:
        raise HTTPException(status_code=404, detail=f"Unknown purchase order: {po_number}")
    data = po_payload(view, po)
    data["statusRules"] = matching_rules(po.status, po.items)
    return {"purchaseOrder": data, "snapshotToken": view.token}


@router.post("/{po_number}/push")
def push_purchase_order(po_number: str, body: PushRequest):
    view = store_access.load_view()
    client = store_access.get_store_client()
    return store_access.run_action(
        po_actions.push_items, client, view, po_number, body.article_codes, body.snapshot_token
    )


@router.post("/{po_number}/status")
def update_purchase_order_status(po_number: str, body: StatusRequest):
    view = store_access.load_view()
    client = store_access.get_store_client()
    return store_access.run_action(
        po_actions.change_po_status, client, view, po_number, body.status, body.snapshot_token
    )


@router.post("/{po_number}/cancel-line")
def cancel_purchase_order_line(po_number: str, body: CancelLineRequest):
    view = store_access.load_view()
    client = store_access.get_store_client()
    return store_access.run_action(
        po_actions.cancel_line, client, view, po_number, body.article_code, body.snapshot_token
    )


@router.post("/{po_number}/sync")
def sync_purchase_order(po_number: str):
    view = store_access.load_view()
    if view.get_purchase_order(po_number) is None:
        raise HTTPException(status_code=404, detail=f"Unknown purchase order: {po_number}")
    return store_access.result_payload(store_access.get_store_client().sync_single_po(po_number.strip()))


@router.post("/{po_number}/map-customer")
def map_purchase_order_customer(po_number: str):
    view = store_access.load_view()
    client = store_access.get_store_client()
    return store_access.run_action(po_actions.map_customer, client, view, po_number)


def register_purchase_order_routes(app: FastAPI) -> None:
    app.include_router(router)
