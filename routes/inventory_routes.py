"""Stock shortfall and allocation endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, FastAPI

from routes import store_access

router = APIRouter(prefix="/api/inventory")
logger = logging.getLogger(__name__)


@router.get("/shortfall")
def get_shortfall():
    view = store_access.load_view()
    records = [record.model_dump(by_alias=True, mode="json") for record in view.shortfall]
    logger.info("[inventory_routes] shortfall skus=%s", len(records))
    return {"shortfall": records, "snapshotToken": view.token}


@router.get("/allocation-preview")
def get_allocation_preview():
    view = store_access.load_view()
    return {"allocations": view.allocation_preview(), "snapshotToken": view.token}


@router.post("/sync")
def sync_inventory():
    return store_access.result_payload(store_access.get_store_client().sync_inventory())


@router.post("/allocate")
def allocate_inventory():
    """Ask the store to write the FIFO allocation into the sheet."""
    return store_access.result_payload(store_access.get_store_client().allocate_inventory())


def register_inventory_routes(app: FastAPI) -> None:
    app.include_router(router)
