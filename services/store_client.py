"""Client for the spreadsheet-backed row store (a script web app).

Reads are GET requests with an ``action`` query parameter and return
``{"status": "success", "data": [...]}``. Writes are POSTed JSON bodies keyed by
an ``action`` discriminator and answer ``{"status": "success"|"error", ...}``.

Read failures raise ``StoreRequestError`` so a caller never derives from a
partial snapshot. Write failures come back as an error ``StoreResult``; nothing
is retried here, the caller decides whether to submit again.
"""

from __future__ import annotations

import json
import logging
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional

import requests
from pydantic import BaseModel, ConfigDict

from config import PO_STORE_TIMEOUT_SECONDS, PUSH_TAX_RATE, require_store_url
from services.models import PurchaseOrder

logger = logging.getLogger(__name__)

# Plain-text acknowledgements; whole words only, so "token" or "broken" never match.
_PLAIN_SUCCESS = re.compile(r"\b(ok|success)\b", re.IGNORECASE)


class StoreRequestError(RuntimeError):
    """Raised when the row store cannot be reached or answers with something unusable."""


class StoreResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    status: str
    message: str = ""
    # Set when the action was refused locally and never sent.
    refused: bool = False

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @classmethod
    def error(cls, message: str) -> "StoreResult":
        return cls(status="error", message=message)

    @classmethod
    def refusal(cls, message: str) -> "StoreResult":
        return cls(status="error", message=message, refused=True)


def marked_up_cost(unit_cost: float, tax_rate: float = PUSH_TAX_RATE) -> float:
    value = Decimal(str(unit_cost)) * (Decimal("1") + Decimal(str(tax_rate)))
    return float(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def build_push_payload(
    po: PurchaseOrder, article_codes: Iterable[str], tax_rate: float = PUSH_TAX_RATE
) -> Dict[str, Any]:
    """PO fields plus the selected lines, unit costs made tax-inclusive."""
    selected = {code for code in article_codes if code}
    payload = po.model_dump(by_alias=True, mode="json", exclude={"items"})
    items: List[Dict[str, Any]] = []
    for item in po.items:
        if item.article_code not in selected:
            continue
        entry = item.model_dump(by_alias=True, mode="json")
        entry["unitCost"] = marked_up_cost(item.unit_cost, tax_rate)
        items.append(entry)
    payload.update(
        {
            "action": "pushToEasyEcom",
            "items": items,
            "isPartial": len(po.items) != len(items),
        }
    )
    return payload


class PoStoreClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url or require_store_url()
        self.timeout = timeout or PO_STORE_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    # ----------------------------
    # Transport
    # ----------------------------
    def _get(self, action: str, **params: Any) -> Any:
        query = {"action": action, **{k: v for k, v in params.items() if v is not None}}
        try:
            resp = self.session.get(self.base_url, params=query, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            logger.error("[PoStore] GET %s failed: %s", action, exc)
            raise StoreRequestError(f"Cannot reach row store: {exc}") from exc
        if resp.status_code >= 300:
            logger.error("[PoStore] GET %s returned %s: %s", action, resp.status_code, resp.text[:500])
            raise StoreRequestError(f"Row store returned {resp.status_code} for {action}")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise StoreRequestError(f"Invalid JSON from row store for {action}") from exc
        if not isinstance(payload, dict) or payload.get("status") != "success":
            message = payload.get("message") if isinstance(payload, dict) else None
            raise StoreRequestError(message or f"Row store rejected {action}")
        return payload.get("data")

    def _post(self, payload: Dict[str, Any]) -> StoreResult:
        action = payload.get("action")
        try:
            resp = self.session.post(
                self.base_url,
                data=json.dumps(payload),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise StoreRequestError(f"Cannot reach row store: {exc}") from exc
        if resp.status_code >= 300:
            raise StoreRequestError(f"Network Error: Server returned {resp.status_code}")

        text = resp.text or ""
        if not text.strip():
            return StoreResult(status="success", message="Operation completed (No body returned).")
        try:
            result = json.loads(text)
        except ValueError:
            if _PLAIN_SUCCESS.search(text):
                return StoreResult(status="success", message="Action completed successfully.")
            raise StoreRequestError("Invalid response from server.")
        if not isinstance(result, dict):
            raise StoreRequestError(f"Unexpected response shape for {action}")

        extra = {k: v for k, v in result.items() if k not in ("status", "message", "error")}
        return StoreResult(
            status=result.get("status") or "success",
            message=result.get("message") or result.get("error") or "Operation completed.",
            **extra,
        )

    def submit(self, action: str, **fields: Any) -> StoreResult:
        return self.submit_payload({"action": action, **fields})

    def submit_payload(self, payload: Dict[str, Any]) -> StoreResult:
        action = payload.get("action")
        try:
            result = self._post(payload)
        except StoreRequestError as exc:
            logger.warning("[PoStore] %s failed: %s", action, exc)
            return StoreResult.error(str(exc))
        if result.ok:
            logger.info("[PoStore] %s ok: %s", action, result.message)
        else:
            logger.warning("[PoStore] %s rejected: %s", action, result.message)
        return result

    # ----------------------------
    # Reads
    # ----------------------------
    def fetch_item_rows(self, po_number: Optional[str] = None) -> List[Dict[str, Any]]:
        data = self._get("getPurchaseOrders", poNumber=po_number)
        return list(data) if isinstance(data, list) else []

    def fetch_inventory_rows(self) -> List[Dict[str, Any]]:
        data = self._get("getInventory")
        return list(data) if isinstance(data, list) else []

    def fetch_channel_config_rows(self) -> List[Dict[str, Any]]:
        data = self._get("getChannelConfigs")
        return list(data) if isinstance(data, list) else []

    def fetch_packing_data(self, reference_code: str) -> List[Dict[str, Any]]:
        data = self._get("getPackingData", referenceCode=reference_code)
        return list(data) if isinstance(data, list) else []

    # ----------------------------
    # Purchase order actions
    # ----------------------------
    def push_to_fulfillment(self, po: PurchaseOrder, article_codes: Iterable[str]) -> StoreResult:
        payload = build_push_payload(po, article_codes)
        logger.info(
            "[PoStore] Pushing %s/%s lines of PO %s", len(payload["items"]), len(po.items), po.po_number
        )
        return self.submit_payload(payload)

    def update_po_status(self, po_number: str, status: str) -> StoreResult:
        return self.submit("updatePOStatus", poNumber=po_number, status=status)

    def cancel_line_item(self, po_number: str, article_code: str) -> StoreResult:
        return self.submit("cancelLineItem", poNumber=po_number, articleCode=article_code)

    def sync_single_po(self, po_number: str) -> StoreResult:
        return self.submit("syncSinglePO", poNumber=po_number)

    # ----------------------------
    # Identity linkage
    # ----------------------------
    def sync_contacts(self) -> StoreResult:
        return self.submit("syncZohoContacts")

    def map_customer(self, contact_id: str) -> StoreResult:
        return self.submit("syncZohoContactToEasyEcom", contactId=contact_id)

    # ----------------------------
    # Sales order actions
    # ----------------------------
    def create_invoice(self, reference_code: str) -> StoreResult:
        return self.submit("createZohoInvoice", eeReferenceCode=reference_code)

    def ship_sales_order(self, reference_code: str) -> StoreResult:
        return self.submit("pushToNimbus", eeReferenceCode=reference_code)

    # ----------------------------
    # Inventory / feeds
    # ----------------------------
    def sync_inventory(self) -> StoreResult:
        return self.submit("syncInventory")

    def allocate_inventory(self) -> StoreResult:
        return self.submit("manual_sync_inventory_allocation")

    def sync_shipments(self) -> StoreResult:
        return self.submit("fetchEasyEcomShipments")
