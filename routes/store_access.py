"""Shared plumbing for routers: the store client, one snapshot per request, error mapping."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

from fastapi import HTTPException

from services.po_actions import UnknownOrderError
from services.po_snapshot import DerivedView, StaleSnapshotError, derive, load_snapshot
from services.store_client import PoStoreClient, StoreRequestError, StoreResult

logger = logging.getLogger(__name__)

_client: Optional[PoStoreClient] = None
_client_lock = threading.Lock()


def get_store_client() -> PoStoreClient:
    global _client
    with _client_lock:
        if _client is None:
            _client = PoStoreClient()
        return _client


def load_view() -> DerivedView:
    client = get_store_client()
    try:
        return derive(load_snapshot(client))
    except StoreRequestError as exc:
        logger.error("[routes] Snapshot read failed: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc))


def result_payload(result: StoreResult) -> Dict[str, Any]:
    """Map a store result to a response body, or raise for refusals and remote errors."""
    if result.refused:
        raise HTTPException(status_code=409, detail=result.message)
    if not result.ok:
        raise HTTPException(status_code=502, detail=result.message)
    return result.model_dump(exclude={"refused"})


def run_action(action, *args, **kwargs) -> Dict[str, Any]:
    try:
        result = action(*args, **kwargs)
    except UnknownOrderError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except StaleSnapshotError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return result_payload(result)
