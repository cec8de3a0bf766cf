"""Turn raw spreadsheet rows into typed records.

Column lookup goes through explicit alias tables (canonical field -> accepted
headers). Header matching ignores case, underscores and runs of whitespace, so
``"EE_reference_code"``, ``"ee reference  code"`` and ``"EE Reference Code"`` all
land on the same field. The alias resolution is computed once per distinct
header set and reused for every row that shares it.

Nothing in here raises on bad cell data: numbers fall back to 0, text to "",
and dates to ``UNKNOWN_DATE``.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime
from functools import lru_cache
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from config import SHEET_TIMEZONE
from services.models import ChannelConfig, InventoryItem, PoItem, POStatus

logger = logging.getLogger(__name__)

UNKNOWN_DATE: Optional[date] = None
SHEET_DATE_FORMATS = ("%d %b %y", "%d %b %Y", "%d %B %Y", "%d-%b-%y", "%d-%b-%Y")
_FALSE_STRINGS = {"", "false", "no", "n", "0"}

_reported_headers: set[str] = set()


# ----------------------------
# Cell coercion
# ----------------------------
def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else ""
    if isinstance(value, float):
        if not math.isfinite(value):
            return ""
        # Sheets hand back numeric codes as floats (12345.0).
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def to_float(value: Any) -> float:
    if _is_blank(value) or isinstance(value, bool):
        return 0.0
    try:
        parsed = float(str(value).replace(",", "").strip())
    except (TypeError, ValueError):
        return 0.0
    return parsed if math.isfinite(parsed) else 0.0


def to_int(value: Any) -> int:
    return int(to_float(value))


def to_quantity(value: Any) -> int:
    return max(0, to_int(value))


def to_optional_int(value: Any) -> Optional[int]:
    if _is_blank(value):
        return None
    return to_int(value)


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return to_text(value).lower() not in _FALSE_STRINGS


def parse_sheet_date(value: Any) -> Optional[date]:
    """
    Parse the date shapes the sheet emits.

    Accepts ``date``/``datetime`` objects, ISO-8601 strings (with or without a
    time part, ``Z`` suffix allowed) and ``"5 Jan 24"`` / ``"5 Jan 2024"`` style
    strings. Timezone-aware timestamps are read in the sheet's timezone, since the
    store serialises sheet-local dates as UTC instants. Anything else is
    ``UNKNOWN_DATE``.
    """
    if _is_blank(value):
        return UNKNOWN_DATE
    if isinstance(value, datetime):
        return _local_date(value)
    if isinstance(value, date):
        return value

    candidate = " ".join(str(value).split())
    iso_candidate = candidate[:-1] + "+00:00" if candidate.endswith("Z") else candidate
    try:
        return _local_date(datetime.fromisoformat(iso_candidate))
    except ValueError:
        pass
    for fmt in SHEET_DATE_FORMATS:
        try:
            return datetime.strptime(candidate, fmt).date()
        except ValueError:
            continue
    logger.debug("[RowNormalizer] Unparseable date %r", value)
    return UNKNOWN_DATE


def _local_date(dt: datetime) -> date:
    if dt.tzinfo is None:
        return dt.date()
    return dt.astimezone(ZoneInfo(SHEET_TIMEZONE)).date()


# ----------------------------
# Schema tables: (canonical field, coercion, accepted headers)
# ----------------------------
FieldSpec = Tuple[str, Callable[[Any], Any], Tuple[str, ...]]

ORDER_FIELDS: Tuple[FieldSpec, ...] = (
    ("po_number", to_text, ("PO Number", "PO No", "PO")),
    ("status", to_text, ("Status", "PO Status")),
    ("channel", to_text, ("Channel Name", "Channel")),
    ("store_code", to_text, ("Store Code",)),
    ("source", to_text, ("Source",)),
    ("order_date", parse_sheet_date, ("PO Date", "Order Date")),
    ("po_edd", parse_sheet_date, ("PO EDD",)),
    ("po_expiry_date", parse_sheet_date, ("PO Expiry Date",)),
    ("po_pdf_url", to_text, ("PO PDF", "PO PDF Url")),
    ("external_customer_id", to_text, ("EE Customer ID",)),
    ("external_contact_id", to_text, ("Zoho Contact ID",)),
    ("contact_verified", to_bool, ("Contact Verified",)),
    ("appointment_date", parse_sheet_date, ("Appointment Date",)),
    ("appointment_time", to_text, ("Appointment Time",)),
    ("appointment_id", to_text, ("Appointment ID",)),
    ("qr_code_url", to_text, ("QR Code URL",)),
    ("fba_shipment_id", to_text, ("FBA Shipment IDs", "FBA Shipment ID")),
    ("consignment_qty", to_optional_int, ("Consignment Qty",)),
    ("consignment_products", to_optional_int, ("Consignment Products",)),
    ("consignment_value", to_text, ("Consignment Value",)),
)

ITEM_FIELDS: Tuple[FieldSpec, ...] = (
    ("article_code", to_text, ("Item Code", "Article Code", "Channel Item Code")),
    ("master_sku", to_text, ("Master SKU",)),
    ("item_name", to_text, ("Item Name", "Itemname")),
    ("qty", to_quantity, ("Qty", "Quantity")),
    ("fulfillable_qty", to_quantity, ("Fulfillable qty", "Fulfillable Quantity")),
    ("unit_cost", to_float, ("Unit Cost (Tax Exclusive)", "Unit Cost")),
    ("mrp", to_float, ("MRP",)),
    ("price_check_status", to_text, ("Price Check",)),
    ("item_status", to_text, ("EE_item_item_status", "Item Status")),
    ("fulfillment_order_ref", to_text, ("EE Order Ref ID",)),
    ("external_reference_code", to_text, ("EE_reference_code",)),
    ("external_order_date", parse_sheet_date, ("EE_order_date",)),
    ("external_order_status", to_text, ("EE_order_status",)),
    ("external_batch_created_at", parse_sheet_date, ("EE_batch_created_at",)),
    ("external_invoice_date", parse_sheet_date, ("EE_invoice_date",)),
    ("external_manifest_date", parse_sheet_date, ("EE_manifest_date",)),
    ("item_quantity", to_quantity, ("EE_item_item_quantity",)),
    ("cancelled_quantity", to_quantity, ("EE_item_cancelled_quantity",)),
    ("shipped_quantity", to_quantity, ("EE_item_shipped_quantity",)),
    ("returned_quantity", to_quantity, ("EE_item_returned_quantity",)),
    ("box_count", to_quantity, ("Box Data", "Box Count")),
    ("invoice_id", to_text, ("Invoice Id",)),
    ("invoice_status", to_text, ("Invoice Status",)),
    ("invoice_number", to_text, ("Invoice Number",)),
    ("invoice_date", parse_sheet_date, ("Invoice Date",)),
    ("invoice_total", to_float, ("Invoice Total",)),
    ("invoice_url", to_text, ("Invoice Url",)),
    ("invoice_pdf_url", to_text, ("Invoice PDF Url",)),
    ("accounting_item_id", to_text, ("Zoho Item ID",)),
    ("gst", to_text, ("GST",)),
    ("carrier", to_text, ("Carrier",)),
    ("awb", to_text, ("AWB",)),
    ("ewb", to_text, ("EWB",)),
    ("booked_date", parse_sheet_date, ("Booked Date",)),
    ("tracking_url", to_text, ("Tracking URL",)),
    ("tracking_status", to_text, ("Tracking Status",)),
    ("edd", parse_sheet_date, ("EDD",)),
    ("latest_status", to_text, ("Latest Status",)),
    ("latest_status_date", parse_sheet_date, ("Latest Status Date",)),
    ("current_location", to_text, ("Current Location",)),
    ("delivered_date", parse_sheet_date, ("Delivered Date",)),
    ("rto_status", to_text, ("RTO Status",)),
    ("rto_awb", to_text, ("RTO AWB",)),
    ("fba_shipment_id", to_text, ("FBA Shipment IDs", "FBA Shipment ID")),
    ("freight_charged", to_float, ("Freight Charged",)),
)

INVENTORY_FIELDS: Tuple[FieldSpec, ...] = (
    ("channel", to_text, ("Channel",)),
    ("article_code", to_text, ("Channel Item Code", "Item Code", "Article Code")),
    ("sku", to_text, ("Master SKU", "SKU")),
    ("ean", to_text, ("EAN",)),
    ("item_name", to_text, ("Itemname", "Item Name")),
    ("mrp", to_float, ("MRP",)),
    ("selling_price", to_float, ("Selling Price",)),
    ("stock", to_int, ("Inventory", "Stock")),
    ("size", to_text, ("Size",)),
)

CHANNEL_CONFIG_FIELDS: Tuple[FieldSpec, ...] = (
    ("channel_name", to_text, ("Channel Name", "Channel")),
    ("status", to_text, ("Status",)),
    ("source_email", to_text, ("Source Email",)),
    ("search_keyword", to_text, ("Search Keyword",)),
    ("min_order_threshold", to_float, ("Min Order Threshold",)),
    ("poc_name", to_text, ("POC Name",)),
    ("poc_email", to_text, ("POC Email",)),
    ("poc_phone", to_text, ("POC Phone",)),
    ("appointment_to", to_text, ("Appointment To",)),
    ("appointment_cc", to_text, ("Appointment Cc",)),
)

_TABLES: Dict[str, Tuple[FieldSpec, ...]] = {
    "order": ORDER_FIELDS,
    "item": ITEM_FIELDS,
    "inventory": INVENTORY_FIELDS,
    "channel_config": CHANNEL_CONFIG_FIELDS,
}


def header_key(name: Any) -> str:
    return " ".join(str(name).replace("_", " ").split()).lower()


@lru_cache(maxsize=128)
def resolve_columns(table: str, headers: Tuple[str, ...]) -> Dict[str, str]:
    """Map each canonical field of ``table`` to the actual header present in ``headers``."""
    by_key: Dict[str, str] = {}
    for header in headers:
        by_key.setdefault(header_key(header), header)

    columns: Dict[str, str] = {}
    for field, _coerce, aliases in _TABLES[table]:
        for alias in aliases:
            actual = by_key.get(header_key(alias))
            if actual is not None:
                columns[field] = actual
                break
    return columns


def _report_unknown_headers(headers: Tuple[str, ...], *tables: str) -> None:
    known = {header_key(alias) for table in tables for _f, _c, aliases in _TABLES[table] for alias in aliases}
    for header in headers:
        key = header_key(header)
        if key and key not in known and key not in _reported_headers:
            _reported_headers.add(key)
            logger.debug("[RowNormalizer] Ignoring unmapped column %r", header)


def _extract(row: Mapping[str, Any], table: str, headers: Tuple[str, ...]) -> Dict[str, Any]:
    columns = resolve_columns(table, headers)
    values: Dict[str, Any] = {}
    for field, coerce, _aliases in _TABLES[table]:
        header = columns.get(field)
        values[field] = coerce(row.get(header) if header is not None else None)
    return values


def _headers(row: Mapping[str, Any]) -> Tuple[str, ...]:
    return tuple(str(key) for key in row.keys())


def is_blank_row(row: Mapping[str, Any]) -> bool:
    return all(_is_blank(value) for value in row.values())


# ----------------------------
# Row -> record
# ----------------------------
class ItemRow(BaseModel):
    """One normalized sheet row: the owning PO's order-level values plus the line item."""

    po_number: str
    order: Dict[str, Any] = Field(default_factory=dict)
    item: PoItem


def normalize_item_row(row: Mapping[str, Any]) -> Optional[ItemRow]:
    if not row or is_blank_row(row):
        return None
    headers = _headers(row)
    _report_unknown_headers(headers, "order", "item")

    order = _extract(row, "order", headers)
    item_values = _extract(row, "item", headers)
    if not item_values["item_status"]:
        # Lines not yet touched by the fulfillment feed carry the PO workflow status.
        item_values["item_status"] = order["status"] or POStatus.NEW.value

    po_number = order.pop("po_number")
    return ItemRow(po_number=po_number, order=order, item=PoItem(**item_values))


def normalize_item_rows(rows: Iterable[Mapping[str, Any]]) -> List[ItemRow]:
    normalized: List[ItemRow] = []
    skipped = 0
    for row in rows:
        item_row = normalize_item_row(row)
        if item_row is None:
            skipped += 1
            continue
        normalized.append(item_row)
    if skipped:
        logger.debug("[RowNormalizer] Discarded %s blank item rows", skipped)
    return normalized


def normalize_inventory_row(row: Mapping[str, Any]) -> Optional[InventoryItem]:
    if not row or is_blank_row(row):
        return None
    values = _extract(row, "inventory", _headers(row))
    values["channel"] = values["channel"] or "Unknown"
    return InventoryItem(**values)


def normalize_inventory_rows(rows: Iterable[Mapping[str, Any]]) -> List[InventoryItem]:
    return [item for item in (normalize_inventory_row(row) for row in rows) if item is not None]


def normalize_channel_config_row(row: Mapping[str, Any]) -> Optional[ChannelConfig]:
    if not row or is_blank_row(row):
        return None
    values = _extract(row, "channel_config", _headers(row))
    if not values["channel_name"]:
        return None
    values["status"] = values["status"] or "Active"
    return ChannelConfig(**values)


def normalize_channel_config_rows(rows: Iterable[Mapping[str, Any]]) -> Dict[str, ChannelConfig]:
    """Channel configs keyed by channel name; the first row for a channel wins."""
    configs: Dict[str, ChannelConfig] = {}
    for row in rows:
        config = normalize_channel_config_row(row)
        if config is not None:
            configs.setdefault(config.channel_name, config)
    return configs
