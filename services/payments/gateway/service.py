from __future__ import annotations

import logging
import os
import time

import httpx

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "Success"
STATUS_FAILURE = "Failure"
STATUS_PENDING = "Pending"


def get_account_from_env() -> dict:
    base_url = (os.getenv("PAYMENT_BASE_URL") or "").strip()
    client_id = (os.getenv("PAYMENT_CLIENT_ID") or "").strip()
    client_secret = (os.getenv("PAYMENT_CLIENT_SECRET") or "").strip()

    if not base_url:
        raise ValueError("Payment gateway base URL is missing.")
    if not (client_id and client_secret):
        raise ValueError("Payment gateway credentials are missing.")

    return {"base_url": base_url.rstrip("/"), "client_id": client_id, "client_secret": client_secret}


def payment_config_missing() -> bool:
    try:
        get_account_from_env()
    except ValueError:
        return True
    return False


def _get_access_token(account: dict) -> str:
    token_url = account["base_url"] + "/oauth/token"
    data = {
        "grant_type": "client_credentials",
        "client_id": account.get("client_id"),
        "client_secret": account.get("client_secret"),
    }

    resp = httpx.post(token_url, data=data, headers={"Content-Type": "application/x-www-form-urlencoded"}, timeout=20)
    if resp.status_code != 200:
        raise ValueError(f"Token request failed ({resp.status_code}): {resp.text}")
    token = resp.json().get("access_token")
    if not token:
        raise ValueError("Missing access_token in payment gateway response.")
    return token


def create_payment(
    amount: float,
    currency: str = "INR",
    description: str | None = None,
    order_id: str = "",
    customer: dict | None = None,
) -> dict:
    account = get_account_from_env()
    token = _get_access_token(account)

    public_base = (os.getenv("PUBLIC_BASE_URL") or "http://127.0.0.1:8000").rstrip("/")
    callback = public_base + "/api/hotels/payment-response-handler"
    desc = (description or "Hotel booking").strip()
    customer = customer or {}

    payload = {
        "amount": {"value": f"{float(amount):.2f}", "currency": currency},
        "orderId": order_id,
        "description": desc,
        "redirectUri": callback,
        "statusCallbackUrl": callback,
        "expiresIn": "PT20M",
        "customer": {
            "name": customer.get("name") or "",
            "email": customer.get("email") or "",
            "phone": customer.get("mobile") or "",
        },
    }

    resp = httpx.post(
        account["base_url"] + "/v1/payments",
        json=payload,
        headers={
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        },
        timeout=20,
    )
    if resp.status_code not in (200, 201):
        raise ValueError(f"Payment request failed ({resp.status_code}): {resp.text}")

    data = resp.json()
    payment_id = data.get("paymentId") or data.get("id") or ""
    logger.info("Payment %s created for order %s", payment_id, order_id)
    return {
        "reference": data.get("readableCode") or payment_id or f"PAY-{int(time.time())}",
        "payment_id": payment_id,
        "payment_link": data.get("paymentLink") or data.get("checkoutUrl") or "",
        "amount": round(float(amount), 2),
        "currency": currency,
        "description": desc,
        "order_id": order_id,
        "valid_until": data.get("validUntil"),
    }


def _map_status(raw: str) -> str:
    raw = raw.upper()
    if raw in ("PAID", "SUCCESS", "CAPTURED"):
        return STATUS_SUCCESS
    if raw in ("DECLINED", "FAILED", "CANCELLED", "EXPIRED", "REFUNDED"):
        return STATUS_FAILURE
    return STATUS_PENDING


def check_payment_status(payment_id: str) -> dict:
    """Fetch a payment from the gateway.

    Returns the status mapped onto Success / Failure / Pending together with the
    amount and order id the gateway holds, so callers can match them against
    their own records.
    """
    account = get_account_from_env()
    token = _get_access_token(account)
    resp = httpx.get(
        account["base_url"] + f"/v1/payments/{payment_id}/status",
        headers={"Authorization": f"Bearer {token}"},
        timeout=20,
    )
    if resp.status_code != 200:
        raise ValueError(f"Payment status request failed ({resp.status_code}): {resp.text}")
    data = resp.json()
    amount = data.get("amount")
    currency = ""
    if isinstance(amount, dict):
        currency = str(amount.get("currency") or "")
        amount = amount.get("value")
    try:
        amount = round(float(amount), 2)
    except (TypeError, ValueError):
        amount = None
    return {
        "payment_id": payment_id,
        "status": _map_status(str(data.get("status") or "")),
        "amount": amount,
        "currency": currency,
        "order_id": str(data.get("orderId") or ""),
    }
