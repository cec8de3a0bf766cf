from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import pytest

from services import perf
from services.po_snapshot import clear_derived_views
from services.store_client import StoreResult


def sheet_row(po_number: str = "PO-1", article_code: str = "ART-1", **overrides: Any) -> Dict[str, Any]:
    """A PO database row shaped the way the store serves it (sheet headers as keys)."""
    row: Dict[str, Any] = {
        "PO Number": po_number,
        "Status": "New",
        "Channel Name": "Blinkit",
        "Store Code": "BLR-01",
        "PO Date": "2024-03-01",
        "Item Code": article_code,
        "Master SKU": "SKU-1",
        "Item Name": "Steel Bottle 1L",
        "Qty": 10,
        "Fulfillable qty": 10,
        "Unit Cost (Tax Exclusive)": 100,
        "EE_reference_code": "",
        "EE_item_item_status": "",
        "EE Order Ref ID": "",
        "Box Data": "",
        "EE Customer ID": "CUST-9",
        "Zoho Contact ID": "ZC-9",
    }
    row.update(overrides)
    return row


class FakeStore:
    """Stands in for PoStoreClient: serves fixed rows and records submitted actions."""

    def __init__(self, item_rows=None, inventory_rows=None, channel_config_rows=None):
        self.item_rows: List[Dict[str, Any]] = list(item_rows or [])
        self.inventory_rows: List[Dict[str, Any]] = list(inventory_rows or [])
        self.channel_config_rows: List[Dict[str, Any]] = list(channel_config_rows or [])
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.result = StoreResult(status="success", message="ok")
        self.read_error: Optional[Exception] = None

    def fetch_item_rows(self):
        if self.read_error:
            raise self.read_error
        return list(self.item_rows)

    def fetch_inventory_rows(self):
        return list(self.inventory_rows)

    def fetch_channel_config_rows(self):
        return list(self.channel_config_rows)

    def fetch_packing_data(self, reference_code):
        self.calls.append(("fetch_packing_data", (reference_code,)))
        return [{"boxNumber": 1, "referenceCode": reference_code}]

    def _record(self, name, *args):
        self.calls.append((name, args))
        return self.result

    def push_to_fulfillment(self, po, article_codes):
        return self._record("push_to_fulfillment", po.po_number, list(article_codes))

    def update_po_status(self, po_number, status):
        return self._record("update_po_status", po_number, status)

    def cancel_line_item(self, po_number, article_code):
        return self._record("cancel_line_item", po_number, article_code)

    def sync_single_po(self, po_number):
        return self._record("sync_single_po", po_number)

    def sync_contacts(self):
        return self._record("sync_contacts")

    def map_customer(self, contact_id):
        return self._record("map_customer", contact_id)

    def create_invoice(self, reference_code):
        return self._record("create_invoice", reference_code)

    def ship_sales_order(self, reference_code):
        return self._record("ship_sales_order", reference_code)

    def sync_inventory(self):
        return self._record("sync_inventory")

    def allocate_inventory(self):
        return self._record("allocate_inventory")

    def sync_shipments(self):
        return self._record("sync_shipments")


@pytest.fixture
def make_row():
    return sheet_row


@pytest.fixture
def fake_store():
    """
    PO-1  Blinkit, New, linked; A fully fulfillable, B short on stock.
    PO-2  Zepto, fully pushed into fulfillment order EE-100 (batch created).
    PO-3  Blinkit, New, no accounting contact yet.
    """
    return FakeStore(
        item_rows=[
            sheet_row("PO-1", "A", **{"Master SKU": "SKU-1"}),
            sheet_row("PO-1", "B", **{"Master SKU": "SKU-2", "Qty": 5, "Fulfillable qty": 2}),
            sheet_row(
                "PO-2",
                "A",
                **{
                    "Status": "Confirmed",
                    "Channel Name": "Zepto",
                    "EE Order Ref ID": "ORD-1",
                    "EE_reference_code": "EE-100",
                    "EE_order_status": "Batch Created",
                },
            ),
            sheet_row("PO-3", "C", **{"Master SKU": "SKU-1", "Qty": 4, "Zoho Contact ID": ""}),
        ],
        inventory_rows=[
            {"Channel": "Blinkit", "Channel Item Code": "A", "Master SKU": "SKU-1", "Inventory": 12},
            {"Channel": "Blinkit", "Channel Item Code": "B", "Master SKU": "SKU-2", "Inventory": 2},
        ],
        channel_config_rows=[{"Channel Name": "Blinkit", "Min Order Threshold": 5000}],
    )


@pytest.fixture(autouse=True)
def _fresh_derivation_state():
    clear_derived_views()
    perf.clear_timings()
    yield
    clear_derived_views()
