from __future__ import annotations

import logging
import os
from typing import Any, Dict

import httpx

logger = logging.getLogger(__name__)


def _settings() -> Dict[str, str]:
    return {
        "url": (os.getenv("SMS_API_URL") or "https://api.textlocal.in/send/").strip(),
        "api_key": (os.getenv("SMS_API_KEY") or "").strip(),
        "sender": (os.getenv("SMS_SENDER_ID") or "TXTLCL").strip(),
    }


def send_sms(to: str, message: str) -> tuple[bool, str]:
    """Send one SMS. Never raises; the caller decides whether a failure matters."""
    to = "".join(str(to or "").split()).lstrip("+")
    if not to:
        return False, "Missing recipient number"
    if not message:
        return False, "Missing message"

    cfg = _settings()
    if not cfg["api_key"]:
        logger.info("SMS not configured, skipping message to %s", to)
        return True, "skipped"

    try:
        resp = httpx.post(
            cfg["url"],
            data={"apikey": cfg["api_key"], "numbers": to, "sender": cfg["sender"], "message": message},
            timeout=15,
        )
        body: Any = resp.json() if resp.content else {}
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("SMS to %s failed: %s", to, exc)
        return False, str(exc)

    if resp.status_code >= 400 or (isinstance(body, dict) and body.get("status") == "failure"):
        err = body.get("errors") if isinstance(body, dict) else None
        logger.warning("SMS to %s rejected: %s", to, err or resp.status_code)
        return False, str(err or f"SMS provider error ({resp.status_code})")
    return True, "sent"


def send_otp_sms(phone: str, code: str) -> tuple[bool, str]:
    return send_sms(phone, f"Your verification code is {code}. It is valid for a few minutes. Do not share it.")


def booking_confirmation_messages(tx: Dict[str, Any]) -> Dict[str, str]:
    contact = tx.get("contact_detail") or {}
    hotel = tx.get("hotel") or {}
    pricing = tx.get("pricing") or {}
    hotel_name = hotel.get("originalName") or hotel.get("name") or "your hotel"
    location = hotel.get("location") or {}
    where = ", ".join(x for x in (location.get("address"), location.get("city"), location.get("country")) if x)
    guest = (
        f"Dear {contact.get('name') or 'Guest'}, Your Hotel {hotel_name} has been booked "
        f"and the bookingId is {tx.get('booking_id')}. Thank you !"
    )
    admin = (
        f"Hello Admin, new booking received. bookingId: {tx.get('booking_id')}, "
        f"Guest name: {contact.get('name') or ''} {contact.get('last_name') or ''}, Hotel name: {hotel_name}, "
        f"Amount: {pricing.get('currency')} {pricing.get('total_chargeable_amount')}, "
        f"Payment mode: {tx.get('payment_method')}, Location: {where or 'Location not available'}"
    )
    return {"guest": guest, "admin": admin}


def send_booking_confirmation(tx: Dict[str, Any]) -> None:
    msgs = booking_confirmation_messages(tx)
    mobile = (tx.get("contact_detail") or {}).get("mobile")
    if mobile:
        send_sms(mobile, msgs["guest"])
    admin_phone = (os.getenv("ADMIN_ALERT_PHONE") or "").strip()
    if admin_phone:
        send_sms(admin_phone, msgs["admin"])
