from __future__ import annotations

import json

import pytest
import requests

from services.models import PoItem, PurchaseOrder
from services.store_client import PoStoreClient, StoreRequestError, build_push_payload, marked_up_cost


class _FakeResponse:
    def __init__(self, status_code=200, text="", payload=None):
        self.status_code = status_code
        self.text = json.dumps(payload) if payload is not None else text

    def json(self):
        return json.loads(self.text)


class _FakeSession:
    def __init__(self, response=None, exc=None):
        self.response = response or _FakeResponse(payload={"status": "success", "data": []})
        self.exc = exc
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append(("GET", url, params, timeout))
        if self.exc:
            raise self.exc
        return self.response

    def post(self, url, data=None, headers=None, timeout=None):
        self.calls.append(("POST", url, json.loads(data), timeout))
        if self.exc:
            raise self.exc
        return self.response


def _client(session):
    return PoStoreClient(base_url="https://store.example/exec", timeout=5, session=session)


def _po():
    return PurchaseOrder(
        po_number="PO-1",
        channel="Blinkit",
        items=[
            PoItem(article_code="A", qty=2, unit_cost=99.99, item_status="New"),
            PoItem(article_code="B", qty=1, unit_cost=10.0, item_status="New"),
        ],
    )


def test_store_url_is_required(monkeypatch):
    monkeypatch.delenv("PO_STORE_API_URL", raising=False)
    with pytest.raises(RuntimeError, match="PO_STORE_API_URL"):
        PoStoreClient(session=_FakeSession())


def test_read_returns_data_rows():
    session = _FakeSession(_FakeResponse(payload={"status": "success", "data": [{"PO Number": "PO-1"}]}))
    rows = _client(session).fetch_item_rows()
    assert rows == [{"PO Number": "PO-1"}]
    method, url, params, timeout = session.calls[0]
    assert (method, params, timeout) == ("GET", {"action": "getPurchaseOrders"}, 5)


def test_read_failures_raise():
    with pytest.raises(StoreRequestError):
        _client(_FakeSession(exc=requests.exceptions.ConnectionError("down"))).fetch_inventory_rows()
    with pytest.raises(StoreRequestError):
        _client(_FakeSession(_FakeResponse(status_code=500, text="boom"))).fetch_inventory_rows()
    with pytest.raises(StoreRequestError, match="Sheet missing"):
        _client(_FakeSession(_FakeResponse(payload={"status": "error", "message": "Sheet missing"}))).fetch_channel_config_rows()


def test_action_success_keeps_extra_fields():
    session = _FakeSession(_FakeResponse(payload={"status": "success", "message": "Shipped", "awb": "AWB-9"}))
    result = _client(session).ship_sales_order("EE-100")

    assert result.ok
    assert result.message == "Shipped"
    assert result.awb == "AWB-9"
    assert session.calls[0][2] == {"action": "pushToNimbus", "eeReferenceCode": "EE-100"}


@pytest.mark.parametrize(
    "response, ok",
    [
        (_FakeResponse(text=""), True),
        (_FakeResponse(text="OK"), True),
        (_FakeResponse(text="Success: row updated"), True),
        (_FakeResponse(text="<html>Script error</html>"), False),
        (_FakeResponse(text="<html><body>Authorization token expired</body></html>"), False),
        (_FakeResponse(text="Update unsuccessful"), False),
        (_FakeResponse(status_code=503, text="unavailable"), False),
        (_FakeResponse(payload={"status": "error", "message": "Invalid action"}), False),
    ],
)
def test_action_response_normalization(response, ok):
    result = _client(_FakeSession(response)).update_po_status("PO-1", "Confirmed to send")
    assert result.ok is ok
    assert result.refused is False
    if not ok:
        assert result.message


def test_network_failure_becomes_error_result():
    session = _FakeSession(exc=requests.exceptions.Timeout("slow"))
    result = _client(session).cancel_line_item("PO-1", "A")
    assert result.status == "error"
    assert "slow" in result.message


def test_push_payload_marks_up_costs_and_flags_partial():
    payload = build_push_payload(_po(), ["A"], tax_rate=0.05)

    assert payload["action"] == "pushToEasyEcom"
    assert payload["poNumber"] == "PO-1"
    assert payload["isPartial"] is True
    assert [item["articleCode"] for item in payload["items"]] == ["A"]
    assert payload["items"][0]["unitCost"] == 104.99
    assert payload["channel"] == "Blinkit"


def test_full_push_is_not_partial():
    payload = build_push_payload(_po(), ["A", "B"], tax_rate=0.05)
    assert payload["isPartial"] is False
    assert payload["items"][1]["unitCost"] == 10.5


def test_marked_up_cost_rounds_half_up():
    assert marked_up_cost(0.1, 0.05) == 0.11
    assert marked_up_cost(100, 0) == 100.0


def test_secondary_actions_use_expected_names():
    session = _FakeSession(_FakeResponse(text=""))
    client = _client(session)
    client.map_customer("ZC-1")
    client.sync_single_po("PO-1")
    client.allocate_inventory()
    client.create_invoice("EE-1")

    sent = [call[2] for call in session.calls]
    assert sent == [
        {"action": "syncZohoContactToEasyEcom", "contactId": "ZC-1"},
        {"action": "syncSinglePO", "poNumber": "PO-1"},
        {"action": "manual_sync_inventory_allocation"},
        {"action": "createZohoInvoice", "eeReferenceCode": "EE-1"},
    ]
