"""Build PurchaseOrder aggregates from normalized item rows.

One aggregate per distinct PO number. The first row for a PO creates it; later
rows append their line and accumulate ``qty`` and ``amount`` (cancelled lines
included). Order-level fields follow first-non-empty-wins: a value arriving on a
later row only fills a field that is still empty.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from services.models import PoItem, POStatus, PurchaseOrder
from services.row_normalizer import ItemRow

logger = logging.getLogger(__name__)

UNKNOWN_CHANNEL = "Unknown"


def _is_unset(value: Any) -> bool:
    return value is None or value == "" or value is False


def line_amount(item: PoItem) -> Decimal:
    try:
        return Decimal(str(item.unit_cost)) * item.qty
    except (InvalidOperation, ValueError):
        return Decimal("0")


class PurchaseOrderAggregator:
    """
    Incremental PO builder.

    Amounts are accumulated as ``Decimal`` so the total does not depend on the
    order rows arrive in. With ``dedupe_lines`` a repeated ``(poNumber,
    articleCode)`` replaces the earlier line instead of adding a second one.
    """

    def __init__(self, dedupe_lines: bool = False):
        self.dedupe_lines = dedupe_lines
        self.dropped = 0
        self.replaced = 0
        self._orders: Dict[str, PurchaseOrder] = {}
        self._amounts: Dict[str, Decimal] = {}
        self._line_index: Dict[Tuple[str, str], int] = {}

    def add(self, row: ItemRow) -> Optional[PurchaseOrder]:
        po_number = (row.po_number or "").strip()
        if not po_number or not row.item.article_code:
            # Upstream emits blank trailer rows; not an error.
            self.dropped += 1
            return None

        po = self._orders.get(po_number)
        if po is None:
            po = self._create(po_number, row.order)
        else:
            self._merge_order_fields(po, row.order)

        item = row.item.model_copy()
        key = (po_number, item.article_code)
        if self.dedupe_lines and key in self._line_index:
            self._replace_line(po, self._line_index[key], item)
        else:
            self._line_index.setdefault(key, len(po.items))
            self._append_line(po, item)
        return po

    def add_all(self, rows: Iterable[ItemRow]) -> "PurchaseOrderAggregator":
        for row in rows:
            self.add(row)
        return self

    def result(self) -> List[PurchaseOrder]:
        orders = list(self._orders.values())
        for po in orders:
            if not po.channel:
                po.channel = UNKNOWN_CHANNEL
            if not po.status:
                po.status = POStatus.NEW.value
        if self.dropped:
            logger.debug("[PoAggregator] Dropped %s rows without PO number or item code", self.dropped)
        return orders

    # ----------------------------
    # Internals
    # ----------------------------
    def _create(self, po_number: str, order: Mapping[str, Any]) -> PurchaseOrder:
        fields = {key: value for key, value in order.items() if key in PurchaseOrder.model_fields}
        po = PurchaseOrder(po_number=po_number, **fields)
        self._orders[po_number] = po
        self._amounts[po_number] = Decimal("0")
        return po

    @staticmethod
    def _merge_order_fields(po: PurchaseOrder, order: Mapping[str, Any]) -> None:
        for key, value in order.items():
            if key not in PurchaseOrder.model_fields or _is_unset(value):
                continue
            if _is_unset(getattr(po, key)):
                setattr(po, key, value)

    def _append_line(self, po: PurchaseOrder, item: PoItem) -> None:
        po.items.append(item)
        po.qty += item.qty
        self._amounts[po.po_number] += line_amount(item)
        po.amount = float(self._amounts[po.po_number])

    def _replace_line(self, po: PurchaseOrder, index: int, item: PoItem) -> None:
        previous = po.items[index]
        po.items[index] = item
        po.qty += item.qty - previous.qty
        self._amounts[po.po_number] += line_amount(item) - line_amount(previous)
        po.amount = float(self._amounts[po.po_number])
        self.replaced += 1
        logger.debug(
            "[PoAggregator] Replaced duplicate line %s on PO %s (status %s -> %s)",
            item.article_code,
            po.po_number,
            previous.item_status,
            item.item_status,
        )
