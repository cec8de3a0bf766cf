"""Sales order list and fulfillment actions."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query

from routes import store_access
from services import po_actions
from services.models import SalesOrder
from services.po_snapshot import DerivedView
from services.sales_orders import filter_sales_orders
from services.store_client import StoreRequestError

router = APIRouter(prefix="/api/sales-orders")
logger = logging.getLogger(__name__)


def _so_payload(view: DerivedView, order: SalesOrder):
    data = order.model_dump(by_alias=True, mode="json")
    data["actions"] = view.sales_order_actions(order).model_dump(by_alias=True, mode="json")
    return data


@router.get("")
def list_sales_orders(tab: Optional[str] = Query(None)):
    view = store_access.load_view()
    orders = filter_sales_orders(view.sales_orders, tab)
    logger.info("[so_routes] list tab=%s returning=%s", tab, len(orders))
    return {
        "salesOrders": [_so_payload(view, order) for order in orders],
        "tabCounts": view.sales_order_tab_counts,
        "snapshotToken": view.token,
    }


@router.post("/sync-shipments")
def sync_shipments():
    return store_access.result_payload(store_access.get_store_client().sync_shipments())


@router.get("/{reference_code}/packing")
def get_packing_data(reference_code: str):
    try:
        rows = store_access.get_store_client().fetch_packing_data(reference_code.strip())
    except StoreRequestError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return {"referenceCode": reference_code.strip(), "boxes": rows}


@router.post("/{reference_code}/invoice")
def create_sales_order_invoice(reference_code: str):
    view = store_access.load_view()
    client = store_access.get_store_client()
    return store_access.run_action(po_actions.create_invoice, client, view, reference_code)


@router.post("/{reference_code}/ship")
def ship_sales_order(reference_code: str):
    view = store_access.load_view()
    client = store_access.get_store_client()
    return store_access.run_action(po_actions.ship, client, view, reference_code)


def register_sales_order_routes(app: FastAPI) -> None:
    app.include_router(router)
