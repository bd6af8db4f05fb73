import asyncio
import json

import httpx
import pytest

from services.hotels.supplier.client import HotelSupplierClient, SupplierError, get_client_from_env
from services.hotels.supplier.normalize import (
    PaginationError,
    flatten_suggestions,
    hotel_list,
    normalize_hotel,
    normalize_paging,
    paginate,
    prebook_amount,
)


def _client(handler):
    return HotelSupplierClient("https://supplier.test/api/", "key-123", transport=httpx.MockTransport(handler))


def test_post_adds_authentication_and_returns_json():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": {"booking_policy_id": "bp-1"}})

    resp = asyncio.run(_client(handler).booking_policy({"room_count": 1}, "bk-9", "h-1", "tx-1"))
    assert resp["data"]["booking_policy_id"] == "bp-1"
    assert seen["url"] == "https://supplier.test/api/bookingpolicy"
    assert seen["body"]["authentication"] == {"authorization_key": "key-123"}
    assert seen["body"]["bookingpolicy"]["package"] == {"booking_key": "bk-9"}
    assert seen["body"]["transaction_identifier"] == "tx-1"


def test_packages_search_targets_one_hotel():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": {"packages": []}})

    asyncio.run(_client(handler).packages({"room_count": 1}, "h-7", "tx-2"))
    assert seen["body"]["search"] == {"room_count": 1, "id": "h-7"}
    assert seen["body"]["transaction_identifier"] == "tx-2"


def test_error_payload_raises():
    def handler(request):
        return httpx.Response(200, json={"errorCode": "E42", "errorMsg": "Rate no longer available"})

    with pytest.raises(SupplierError) as exc:
        asyncio.run(_client(handler).prebook({}, "tx"))
    assert str(exc.value) == "Rate no longer available"
    assert exc.value.code == "E42"


def test_http_error_raises_with_status():
    def handler(request):
        return httpx.Response(500, json={"message": "upstream down"})

    with pytest.raises(SupplierError) as exc:
        asyncio.run(_client(handler).book("BK-1"))
    assert exc.value.status_code == 500
    assert str(exc.value) == "upstream down"


def test_invalid_json_raises():
    def handler(request):
        return httpx.Response(200, text="<html>oops</html>")

    with pytest.raises(SupplierError, match="invalid response"):
        asyncio.run(_client(handler).search({}))


def test_client_from_env(monkeypatch):
    assert get_client_from_env() is None
    monkeypatch.setenv("HOTEL_APIURL", "https://supplier.test")
    monkeypatch.setenv("HOTEL_APIAUTH", "k")
    monkeypatch.setenv("HOTEL_API_TIMEOUT", "5")
    client = get_client_from_env()
    assert client.base_url == "https://supplier.test"
    assert client.timeout == 5.0


# ----- Normalization -----

def test_normalize_paging_bounds():
    assert normalize_paging(0, 3, -1) == {"page": 1, "per_page": 10, "current_items_count": 0}
    assert normalize_paging("2", "50", "10") == {"page": 2, "per_page": 50, "current_items_count": 10}
    with pytest.raises(PaginationError, match="perPage should not be greater than 50"):
        normalize_paging(1, 51)


def test_paginate_windows():
    items = [{"n": i} for i in range(12)]
    page1 = paginate(items, 1, 10, 0)
    assert len(page1["data"]) == 10
    assert page1["current_items_count"] == 10
    page2 = paginate(items, 2, 10, 10)
    assert [i["n"] for i in page2["data"]] == [10, 11]
    assert page2["status"] == "complete"
    assert page2["current_items_count"] == 12
    assert paginate([], 1, 10, 0)["total_pages"] == 0


def test_flatten_suggestions_orders_kinds():
    resp = {
        "data": {
            "transaction_identifier": "tx-9",
            "poi": {"results": [{"name": "Gate", "hotelCount": 2}]},
            "hotel": {"results": [{"name": "Palace"}]},
            "city": {"results": [{"name": "Mumbai", "hotelCount": 900}]},
        }
    }
    rows = flatten_suggestions(resp)
    assert [r["kind"] for r in rows] == ["city", "hotel", "poi"]
    assert [r["display_name"] for r in rows] == ["Mumbai | (900)", "Palace", "Gate | (2)"]
    assert all(r["transaction_identifier"] == "tx-9" for r in rows)
    assert flatten_suggestions({}) == []


def test_hotel_shapes():
    resp = {"data": {"results": [{"hotelId": "h-5", "originalName": "Sea View", "min_rate": "4500", "location": {"city": "Goa"}}]}}
    hotel = normalize_hotel(hotel_list(resp)[0])
    assert hotel["id"] == "h-5"
    assert hotel["name"] == "Sea View"
    assert hotel["rate"] == 4500.0
    assert hotel["city"] == "Goa"
    assert hotel_list({"data": None}) == []


def test_prebook_amount_paths():
    assert prebook_amount({"data": {"package": {"chargeable_rate": "999.5"}}}) == 999.5
    assert prebook_amount({"data": {"chargeable_rate": 10}}) == 10.0
    assert prebook_amount({"data": {}}) is None
