from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from packages.features.docstore import (
    find_one,
    load_collection,
    locked,
    new_id,
    now_iso,
    parse_iso,
    save_collection,
    to_number,
)

logger = logging.getLogger(__name__)

POLICIES = "booking_policies"
TRANSACTIONS = "hotel_transactions"

# ----- Transaction status codes -----
STATUS_PENDING = 0
STATUS_CONFIRMED = 1
STATUS_CANCELLED = 2
STATUS_PAYMENT_PENDING = 3
STATUS_PAYMENT_SUCCESS = 4
STATUS_BOOKING_FAILED = 5
STATUS_PAYMENT_FAILED = 6

STATUS_LABELS = {
    STATUS_PENDING: "pending",
    STATUS_CONFIRMED: "confirmed",
    STATUS_CANCELLED: "cancelled",
    STATUS_PAYMENT_PENDING: "payment_pending",
    STATUS_PAYMENT_SUCCESS: "payment_success",
    STATUS_BOOKING_FAILED: "booking_failed",
    STATUS_PAYMENT_FAILED: "payment_failed",
}


class BookingError(ValueError):
    pass


class BookingNotFound(BookingError):
    pass


class BookingExpired(BookingError):
    pass


def session_minutes() -> int:
    try:
        return max(1, int(os.getenv("BOOKING_SESSION_MINUTES") or 20))
    except ValueError:
        return 20


# ----- Booking policies -----

def save_booking_policy(
    policy_response: Dict[str, Any],
    search: Dict[str, Any],
    transaction_identifier: str,
    hotel_id: str,
    user: Dict[str, Any],
) -> Dict[str, Any]:
    data = policy_response.get("data") if isinstance(policy_response.get("data"), dict) else {}
    policy_id = str(data.get("booking_policy_id") or "").strip()
    if not policy_id:
        raise BookingError("Supplier did not return a booking policy id")
    record = {
        "booking_policy_id": policy_id,
        "booking_policy": data,
        "search": search,
        "transaction_identifier": transaction_identifier,
        "hotel_id": hotel_id,
        "event_id": data.get("event_id") or policy_response.get("event_id"),
        "status_token": data.get("status_token") or policy_response.get("status_token"),
        "session_id": data.get("session_id") or policy_response.get("session_id"),
        "user_type": user.get("type"),
        "company_id": user.get("company_id"),
        "employee_id": user.get("employee_id"),
        "created_at": now_iso(),
    }
    with locked():
        items = [p for p in load_collection(POLICIES) if p.get("booking_policy_id") != policy_id]
        items.append(record)
        save_collection(POLICIES, items)
    return record


def get_booking_policy(policy_id: str) -> Optional[Dict[str, Any]]:
    return find_one(load_collection(POLICIES), booking_policy_id=str(policy_id or ""))


# ----- Transactions -----

def create_transaction(
    policy: Dict[str, Any],
    prebook_response: Dict[str, Any],
    contact_detail: Dict[str, Any],
    guest: List[Dict[str, Any]],
    pricing: Dict[str, Any],
    user: Dict[str, Any],
    coupon: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    data = prebook_response.get("data") if isinstance(prebook_response.get("data"), dict) else {}
    policy_data = policy.get("booking_policy") or {}
    now = now_iso()
    tx = {
        "id": new_id("htx"),
        "user_type": user.get("type"),
        "company_id": user.get("company_id"),
        "employee_id": user.get("employee_id"),
        "transaction_identifier": policy.get("transaction_identifier"),
        "booking_policy_id": policy.get("booking_policy_id"),
        "booking_id": str(data.get("booking_id") or ""),
        "search": policy.get("search") or {},
        "booking_policy": policy_data,
        "hotel": data.get("hotel") or policy_data.get("hotel") or {"id": policy.get("hotel_id")},
        "hotel_package": data.get("package") or policy_data.get("package") or {},
        "contact_detail": contact_detail,
        "guest": guest,
        "coupon": coupon or {},
        "pricing": pricing,
        "status": STATUS_PENDING,
        "payment_method": None,
        "prebook_response": prebook_response,
        "payment_response": None,
        "book_response": None,
        "created_at": now,
        "updated_at": now,
    }
    if not tx["booking_id"]:
        raise BookingError("Supplier did not return a booking id")
    with locked():
        items = load_collection(TRANSACTIONS)
        items.insert(0, tx)
        save_collection(TRANSACTIONS, items)
    logger.info("Transaction %s created for booking %s", tx["id"], tx["booking_id"])
    return tx


def get_transaction(transaction_id: str) -> Optional[Dict[str, Any]]:
    return find_one(load_collection(TRANSACTIONS), id=str(transaction_id or ""))


def find_by_booking_id(booking_id: str) -> Optional[Dict[str, Any]]:
    return find_one(load_collection(TRANSACTIONS), booking_id=str(booking_id or ""))


def update_transaction(transaction_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    with locked():
        items = load_collection(TRANSACTIONS)
        tx = find_one(items, id=transaction_id)
        if not tx:
            raise BookingNotFound("Transaction not found")
        tx.update(changes)
        tx["updated_at"] = now_iso()
        save_collection(TRANSACTIONS, items)
    if "status" in changes:
        logger.info("Transaction %s -> %s", transaction_id, STATUS_LABELS.get(tx["status"], tx["status"]))
    return tx


def is_session_expired(tx: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    created = parse_iso(str(tx.get("created_at") or ""))
    if not created:
        return True
    return (now or datetime.utcnow()) > created + timedelta(minutes=session_minutes())


def ensure_payable(tx: Optional[Dict[str, Any]], company_id: str) -> Dict[str, Any]:
    """Checks shared by wallet and gateway payment before money moves."""
    if not tx:
        raise BookingNotFound("Sorry invalid Booking ID, try another id")
    if tx.get("company_id") != company_id:
        raise BookingNotFound("Sorry invalid Booking ID, try another id")
    if tx.get("status") == STATUS_CONFIRMED:
        raise BookingError("Booking is already confirmed")
    if tx.get("status") in (STATUS_PAYMENT_SUCCESS, STATUS_CANCELLED):
        raise BookingError("Payment is already done for this booking")
    if is_session_expired(tx):
        raise BookingExpired("Booking session expired. Please try again.")
    return tx


def chargeable_amount(tx: Dict[str, Any]) -> float:
    return round(to_number((tx.get("pricing") or {}).get("total_chargeable_amount")), 2)


def list_company_transactions(company_id: str, employee_id: str = "", status: Optional[int] = None) -> List[Dict[str, Any]]:
    out = [t for t in load_collection(TRANSACTIONS) if t.get("company_id") == company_id]
    if employee_id:
        out = [t for t in out if t.get("employee_id") == employee_id]
    if status is not None:
        out = [t for t in out if t.get("status") == status]
    return out


def summarize(tx: Dict[str, Any]) -> Dict[str, Any]:
    pricing = tx.get("pricing") or {}
    hotel = tx.get("hotel") or {}
    contact = tx.get("contact_detail") or {}
    return {
        "id": tx["id"],
        "booking_id": tx.get("booking_id"),
        "hotel_name": hotel.get("originalName") or hotel.get("name") or "",
        "guest_name": f"{contact.get('name') or ''} {contact.get('last_name') or ''}".strip(),
        "amount": pricing.get("total_chargeable_amount"),
        "currency": pricing.get("currency"),
        "status": tx.get("status"),
        "status_label": STATUS_LABELS.get(tx.get("status"), "unknown"),
        "payment_method": tx.get("payment_method"),
        "user_type": tx.get("user_type"),
        "employee_id": tx.get("employee_id"),
        "created_at": tx.get("created_at"),
    }


def company_revenue(company_id: str) -> Dict[str, Any]:
    confirmed = list_company_transactions(company_id, status=STATUS_CONFIRMED)
    total = sum(to_number((t.get("pricing") or {}).get("total_chargeable_amount")) for t in confirmed)
    margin = sum(to_number((t.get("pricing") or {}).get("company_markup_amount")) for t in confirmed)
    by_month: Dict[str, float] = {}
    for t in confirmed:
        month = str(t.get("created_at") or "")[:7]
        by_month[month] = round(by_month.get(month, 0.0) + to_number((t.get("pricing") or {}).get("total_chargeable_amount")), 2)
    return {
        "total_bookings": len(confirmed),
        "total_amount": round(total, 2),
        "company_markup_earned": round(margin, 2),
        "by_month": by_month,
    }
