"""Resolve the displayed lifecycle status of a purchase order.

The raw workflow status stored upstream is only one input; push progress on the
line items outranks it. Precedence lives in ``PO_STATUS_RULES``: the first rule
whose predicate holds decides the status.
"""

from __future__ import annotations

from typing import Callable, List, NamedTuple, Sequence, Tuple

from services.models import PoItem, POStatus, PurchaseOrder


class StatusFacts(NamedTuple):
    raw_status: str
    item_count: int
    active_count: int
    pushed_count: int


class StatusRule(NamedTuple):
    name: str
    applies: Callable[[StatusFacts], bool]
    status: POStatus


def normalize_raw_status(raw_status: str | None) -> str:
    return " ".join(str(raw_status or "").split()).lower()


def collect_status_facts(raw_status: str | None, items: Sequence[PoItem]) -> StatusFacts:
    active = [item for item in items if item.is_active]
    return StatusFacts(
        raw_status=normalize_raw_status(raw_status),
        item_count=len(items),
        active_count=len(active),
        pushed_count=sum(1 for item in active if item.is_pushed),
    )


PO_STATUS_RULES: Tuple[StatusRule, ...] = (
    StatusRule(
        "cancelled",
        lambda f: f.raw_status == "cancelled" or (f.item_count > 0 and f.active_count == 0),
        POStatus.CANCELLED,
    ),
    StatusRule("below_threshold", lambda f: f.raw_status == "below threshold", POStatus.BELOW_THRESHOLD),
    StatusRule(
        "pushed",
        lambda f: f.active_count > 0 and f.pushed_count == f.active_count,
        POStatus.PUSHED,
    ),
    StatusRule("partially_processed", lambda f: f.pushed_count > 0, POStatus.PARTIALLY_PROCESSED),
    StatusRule(
        "confirmed",
        lambda f: f.raw_status in ("confirmed", "confirmed to send"),
        POStatus.CONFIRMED_TO_SEND,
    ),
    StatusRule(
        "waiting_for_confirmation",
        lambda f: f.raw_status == "waiting for confirmation",
        POStatus.WAITING_FOR_CONFIRMATION,
    ),
)

DEFAULT_PO_STATUS = POStatus.NEW


def resolve_po_status(raw_status: str | None, items: Sequence[PoItem]) -> POStatus:
    facts = collect_status_facts(raw_status, items)
    for rule in PO_STATUS_RULES:
        if rule.applies(facts):
            return rule.status
    return DEFAULT_PO_STATUS


def resolve_order_status(po: PurchaseOrder) -> POStatus:
    return resolve_po_status(po.status, po.items)


def matching_rules(raw_status: str | None, items: Sequence[PoItem]) -> List[str]:
    """Names of every rule that holds, in precedence order. Useful when explaining a status."""
    facts = collect_status_facts(raw_status, items)
    return [rule.name for rule in PO_STATUS_RULES if rule.applies(facts)]
