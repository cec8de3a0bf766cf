"""Dashboard summary and operational endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, FastAPI, Query

from routes import store_access
from services.perf import get_recent_timings

router = APIRouter(prefix="/api")


@router.get("/dashboard/summary")
def get_dashboard_summary():
    view = store_access.load_view()
    return {
        "cards": view.summary_cards,
        "poTabCounts": view.po_tab_counts,
        "salesOrderTabCounts": view.sales_order_tab_counts,
        "droppedRows": view.dropped_rows,
        "fetchedAt": view.fetched_at.isoformat(),
        "snapshotToken": view.token,
    }


@router.post("/contacts/sync")
def sync_contacts():
    return store_access.result_payload(store_access.get_store_client().sync_contacts())


@router.get("/perf-stats")
def perf_stats(label: Optional[str] = Query(None)):
    return {"timings": get_recent_timings(label)}


def register_dashboard_routes(app: FastAPI) -> None:
    app.include_router(router)
