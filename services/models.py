"""Domain models shared by the derivation core and the HTTP layer.

Field names are snake_case in Python and camelCase on the wire, matching the JSON
the presentation layer already consumes.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CANCELLED_ITEM_STATUS = "Cancelled"


class POStatus(str, Enum):
    NEW = "New"
    WAITING_FOR_CONFIRMATION = "Waiting for Confirmation"
    CONFIRMED_TO_SEND = "Confirmed to send"
    BELOW_THRESHOLD = "Below Threshold"
    PUSHED = "Pushed"
    PARTIALLY_PROCESSED = "Partially Processed"
    CLOSED = "Closed"
    CANCELLED = "Cancelled"


class SalesOrderStatus(str, Enum):
    PROCESSING = "Processing"
    CONFIRMED = "Confirmed"
    BATCH_CREATED = "Batch Created"
    INVOICED = "Invoiced"
    BOX_DATA_PENDING = "Box Data Upload Pending"
    LABEL_GENERATED = "Label Generated"
    SHIPPED = "Shipped"
    CLOSED = "Closed"
    RETURNED = "Returned"


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PoItem(_WireModel):
    article_code: str
    master_sku: str = ""
    item_name: str = ""
    qty: int = 0
    fulfillable_qty: int = 0
    unit_cost: float = 0.0
    mrp: float = 0.0
    price_check_status: str = ""
    item_status: str = ""

    # Fulfillment system linkage
    fulfillment_order_ref: str = ""
    external_reference_code: str = ""
    external_order_date: Optional[date] = None
    external_order_status: str = ""
    external_batch_created_at: Optional[date] = None
    external_invoice_date: Optional[date] = None
    external_manifest_date: Optional[date] = None
    item_quantity: int = 0
    cancelled_quantity: int = 0
    shipped_quantity: int = 0
    returned_quantity: int = 0
    box_count: int = 0

    # Invoicing
    invoice_id: str = ""
    invoice_status: str = ""
    invoice_number: str = ""
    invoice_date: Optional[date] = None
    invoice_total: float = 0.0
    invoice_url: str = ""
    invoice_pdf_url: str = ""
    accounting_item_id: str = ""
    gst: str = ""

    # Shipment / tracking
    carrier: str = ""
    awb: str = ""
    ewb: str = ""
    booked_date: Optional[date] = None
    tracking_url: str = ""
    tracking_status: str = ""
    edd: Optional[date] = None
    latest_status: str = ""
    latest_status_date: Optional[date] = None
    current_location: str = ""
    delivered_date: Optional[date] = None
    rto_status: str = ""
    rto_awb: str = ""
    fba_shipment_id: str = ""
    freight_charged: float = 0.0

    @property
    def is_cancelled(self) -> bool:
        return self.item_status.strip().lower() == CANCELLED_ITEM_STATUS.lower()

    @property
    def is_active(self) -> bool:
        return not self.is_cancelled

    @property
    def is_pushed(self) -> bool:
        return bool(self.fulfillment_order_ref.strip())

    @property
    def is_fully_fulfillable(self) -> bool:
        return self.fulfillable_qty >= self.qty


class PurchaseOrder(_WireModel):
    po_number: str
    status: str = POStatus.NEW.value
    channel: str = "Unknown"
    store_code: str = ""
    qty: int = 0
    amount: float = 0.0
    items: List[PoItem] = Field(default_factory=list)
    source: str = ""

    order_date: Optional[date] = None
    po_edd: Optional[date] = None
    po_expiry_date: Optional[date] = None
    po_pdf_url: str = ""

    external_customer_id: str = ""
    external_contact_id: str = ""
    contact_verified: bool = False

    appointment_date: Optional[date] = None
    appointment_time: str = ""
    appointment_id: str = ""
    qr_code_url: str = ""
    fba_shipment_id: str = ""
    consignment_qty: Optional[int] = None
    consignment_products: Optional[int] = None
    consignment_value: str = ""

    @property
    def active_items(self) -> List[PoItem]:
        return [item for item in self.items if item.is_active]

    @property
    def pushed_items(self) -> List[PoItem]:
        return [item for item in self.active_items if item.is_pushed]

    @property
    def active_qty(self) -> int:
        return sum(item.qty for item in self.active_items)


class SalesOrder(_WireModel):
    reference_code: str
    po_reference: str = ""
    status: SalesOrderStatus = SalesOrderStatus.PROCESSING
    original_status: str = ""
    channel: str = ""
    store_code: str = ""
    order_date: Optional[date] = None
    po_edd: Optional[date] = None
    po_expiry_date: Optional[date] = None
    po_pdf_url: str = ""
    qty: int = 0
    amount: float = 0.0
    box_count: int = 0
    items: List[PoItem] = Field(default_factory=list)

    batch_created_at: Optional[date] = None
    invoice_date: Optional[date] = None
    manifest_date: Optional[date] = None
    invoice_id: str = ""
    invoice_status: str = ""
    invoice_number: str = ""
    invoice_total: float = 0.0
    invoice_url: str = ""
    invoice_pdf_url: str = ""

    carrier: str = ""
    awb: str = ""
    tracking_status: str = ""
    edd: Optional[date] = None
    latest_status: str = ""
    latest_status_date: Optional[date] = None
    current_location: str = ""
    delivered_date: Optional[date] = None
    rto_status: str = ""
    rto_awb: str = ""


class ShortfallRecord(_WireModel):
    master_sku: str
    total_required: int = 0
    channel_demand: Dict[str, int] = Field(default_factory=dict)
    stock: int = 0
    shortfall: int = 0


class ChannelConfig(_WireModel):
    channel_name: str
    status: str = "Active"
    source_email: str = ""
    search_keyword: str = ""
    min_order_threshold: float = 0.0
    poc_name: str = ""
    poc_email: str = ""
    poc_phone: str = ""
    appointment_to: str = ""
    appointment_cc: str = ""


class InventoryItem(_WireModel):
    channel: str = "Unknown"
    article_code: str = ""
    sku: str = ""
    ean: str = ""
    item_name: str = ""
    mrp: float = 0.0
    selling_price: float = 0.0
    stock: int = 0
    size: str = ""
