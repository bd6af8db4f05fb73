from __future__ import annotations

from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient

from services.hotels.supplier.client import SupplierError

from tests.helpers import OTP, PASSWORD, auth, register_company


@pytest.fixture(autouse=True)
def portal_env(tmp_path, monkeypatch):
    """Every test gets its own data directory and offline providers."""
    monkeypatch.setenv("PORTAL_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("OTP_FIXED_CODE", OTP)
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    monkeypatch.setenv("WALLET_CURRENCY", "INR")
    for name in (
        "SMS_API_KEY",
        "ADMIN_ALERT_PHONE",
        "HOTEL_APIURL",
        "HOTEL_APIAUTH",
        "PAYMENT_BASE_URL",
        "PAYMENT_CLIENT_ID",
        "PAYMENT_CLIENT_SECRET",
        "CLIENT_URL",
        "BOOKING_SESSION_MINUTES",
    ):
        monkeypatch.delenv(name, raising=False)
    return tmp_path / "data"


class FakeSupplier:
    """Stands in for HotelSupplierClient with canned supplier payloads."""

    def __init__(self) -> None:
        self.calls: List[str] = []
        self.rate = 1000.0
        self.city_count = 3
        self.fail_book = False
        self.booking_id = "BK-1001"

    async def autosuggest(self, query: str, locale: str = "en-US") -> Dict[str, Any]:
        self.calls.append("autosuggest")
        return {
            "transaction_identifier": "txid-1",
            "data": {
                "city": {
                    "results": [
                        {"id": [f"r{i}-{j}" for j in range(80)], "name": f"{query} City {i}", "hotelCount": 10 + i}
                        for i in range(self.city_count)
                    ]
                },
                "hotel": {"results": [{"id": "h-1", "name": "Hotel One"}]},
                "poi": {"results": [{"id": ["p-1"], "name": "Fort", "hotelCount": 4}]},
            },
        }

    async def search(self, search: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append("search")
        return {
            "transaction_identifier": "txid-1",
            "data": {
                "hotels": [
                    {"id": "h-1", "name": "Hotel One", "rate": {"chargeable_rate": self.rate, "currency": "INR"}},
                    {"id": "h-2", "name": "Hotel Two", "rate": {"chargeable_rate": self.rate * 2, "currency": "INR"}},
                    {"id": "h-3", "name": "No Rate Inn"},
                ]
            },
        }

    async def packages(self, search: Dict[str, Any], hotel_id: str, transaction_identifier: str = "") -> Dict[str, Any]:
        self.calls.append("packages")
        return {"data": {"packages": [{"booking_key": "bk-1", "chargeable_rate": self.rate, "currency": "INR"}]}}

    async def booking_policy(self, search, booking_key, hotel_id, transaction_identifier) -> Dict[str, Any]:
        self.calls.append("booking_policy")
        return {
            "data": {
                "booking_policy_id": "bp-1",
                "package": {"booking_key": booking_key, "chargeable_rate": self.rate},
                "hotel": {"id": hotel_id, "name": "Hotel One"},
            }
        }

    async def prebook(self, payload: Dict[str, Any], transaction_identifier: str) -> Dict[str, Any]:
        self.calls.append("prebook")
        return {
            "data": {
                "booking_id": self.booking_id,
                "package": {"chargeable_rate": self.rate, "currency": "INR"},
                "hotel": {"id": "h-1", "name": "Hotel One"},
            }
        }

    async def book(self, booking_id: str) -> Dict[str, Any]:
        self.calls.append("book")
        if self.fail_book:
            raise SupplierError("Booking could not be completed", code="BK500")
        return {"data": {"booking_id": booking_id, "booking_status": "confirmed"}}


@pytest.fixture
def supplier(monkeypatch):
    fake = FakeSupplier()
    monkeypatch.setattr("services.gateway.routers.hotels.get_client_from_env", lambda: fake)
    return fake


@pytest.fixture
def client():
    from services.gateway.app import app

    return TestClient(app)


@pytest.fixture
def admin_token(client) -> str:
    r = client.post(
        "/api/owner/setup-super-admin",
        json={"username": "root", "email": "root@example.com", "password": PASSWORD, "name": "Root"},
    )
    assert r.status_code == 201, r.text
    r = client.post("/api/owner/login", json={"username": "root", "password": PASSWORD})
    assert r.status_code == 200, r.text
    return r.json()["data"]["token"]


@pytest.fixture
def verified_company(client, admin_token) -> Dict[str, Any]:
    """Registered, admin-verified company with a funded wallet."""
    data = register_company(client, "9000000001")
    company_id = data["company"]["id"]
    r = client.put(f"/api/owner/companies/{company_id}/verify", json={"action": "verify"}, headers=auth(admin_token))
    assert r.status_code == 200, r.text
    r = client.post(
        f"/api/owner/companies/{company_id}/wallet",
        json={"action": "add", "amount": 5000, "reason": "Opening balance"},
        headers=auth(admin_token),
    )
    assert r.status_code == 200, r.text
    return {"id": company_id, "token": data["token"], "admin_token": admin_token}
