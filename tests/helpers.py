from __future__ import annotations

from typing import Any, Dict

from fastapi.testclient import TestClient

OTP = "123456"
PASSWORD = "secret123"


def auth(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def register_company(client: TestClient, phone: str, name: str = "Asha Rao", agency: str = "Rao Travels") -> Dict[str, Any]:
    """Walk the OTP signup and return the complete-signup payload (token + company)."""
    r = client.post("/api/auth/send-otp", json={"phone": phone})
    assert r.status_code == 200, r.text
    r = client.post("/api/auth/verify-otp", json={"phone": phone, "otp": OTP})
    assert r.status_code == 200, r.text
    temp_token = r.json()["data"]["temp_token"]
    r = client.post(
        "/api/auth/complete-signup",
        json={"temp_token": temp_token, "name": name, "agency_name": agency, "num_people": 3, "password": PASSWORD},
    )
    assert r.status_code == 200, r.text
    return r.json()["data"]
