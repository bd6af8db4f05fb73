from __future__ import annotations

import logging
import math
import os
from typing import Any, Dict, List, Optional, Tuple

from packages.features.accounts.accounts import COMPANIES, AccountNotFound, COMPANY_STATUSES
from packages.features.docstore import find_one, load_collection, locked, new_id, now_iso, save_collection, to_number

logger = logging.getLogger(__name__)

LEDGER = "wallet_ledger"


class WalletError(ValueError):
    pass


class InsufficientBalance(WalletError):
    pass


def _currency() -> str:
    return (os.getenv("WALLET_CURRENCY") or "INR").strip().upper()


def _empty_wallet() -> Dict[str, Any]:
    return {"balance": 0.0, "currency": _currency(), "last_updated": now_iso()}


def _wallet_of(company: Dict[str, Any]) -> Dict[str, Any]:
    wallet = company.get("wallet")
    if not isinstance(wallet, dict):
        wallet = _empty_wallet()
        company["wallet"] = wallet
    return wallet


def _positive_amount(amount: Any) -> float:
    value = to_number(amount)
    if value <= 0 or math.isnan(value) or math.isinf(value):
        raise WalletError("Amount must be greater than 0")
    return round(value, 2)


def get_wallet_balance(company_id: str) -> Dict[str, Any]:
    with locked():
        companies = load_collection(COMPANIES)
        company = find_one(companies, id=company_id)
        if not company:
            raise AccountNotFound("Company not found")
        if not isinstance(company.get("wallet"), dict):
            _wallet_of(company)
            save_collection(COMPANIES, companies)
        wallet = company["wallet"]
    return {
        "company_id": company_id,
        "company_name": company.get("name"),
        "balance": wallet["balance"],
        "currency": wallet["currency"],
        "last_updated": wallet["last_updated"],
    }


def _mutate(company_id: str, amount: Any, kind: str, reason: str, reference: str = "") -> Dict[str, Any]:
    """Credit or debit one company wallet and record it in the ledger.

    The balance check, the write and the ledger entry happen under the store
    lock, so two concurrent debits cannot both pass the same balance check.
    """
    value = _positive_amount(amount)
    with locked():
        companies = load_collection(COMPANIES)
        company = find_one(companies, id=company_id)
        if not company:
            raise AccountNotFound("Company not found")
        wallet = _wallet_of(company)
        old_balance = round(to_number(wallet.get("balance")), 2)
        if kind == "debit":
            if old_balance < value:
                raise InsufficientBalance("Insufficient wallet balance")
            new_balance = round(old_balance - value, 2)
        else:
            new_balance = round(old_balance + value, 2)
        wallet["balance"] = new_balance
        wallet["last_updated"] = now_iso()
        save_collection(COMPANIES, companies)

        entry = {
            "id": new_id("wtx"),
            "company_id": company_id,
            "kind": kind,
            "amount": value,
            "old_balance": old_balance,
            "new_balance": new_balance,
            "currency": wallet["currency"],
            "reason": reason,
            "reference": reference,
            "created_at": wallet["last_updated"],
        }
        ledger = load_collection(LEDGER)
        ledger.insert(0, entry)
        save_collection(LEDGER, ledger)

    logger.info(
        "Wallet %s company=%s amount=%s balance %s -> %s (%s)",
        kind, company_id, value, old_balance, new_balance, reason,
    )
    return {
        "company_id": company_id,
        "company_name": company.get("name"),
        "old_balance": old_balance,
        "new_balance": new_balance,
        "amount": value,
        "reason": reason,
        "currency": wallet["currency"],
        "last_updated": wallet["last_updated"],
        "ledger_id": entry["id"],
    }


def add_to_wallet(company_id: str, amount: Any, reason: str = "Wallet credit", reference: str = "") -> Dict[str, Any]:
    return _mutate(company_id, amount, "credit", reason or "Wallet credit", reference)


def deduct_from_wallet(company_id: str, amount: Any, reason: str = "Wallet debit", reference: str = "") -> Dict[str, Any]:
    return _mutate(company_id, amount, "debit", reason or "Wallet debit", reference)


def has_sufficient_balance(company_id: str, amount: Any) -> bool:
    company = find_one(load_collection(COMPANIES), id=company_id)
    if not company:
        return False
    wallet = company.get("wallet") if isinstance(company.get("wallet"), dict) else {}
    return to_number(wallet.get("balance")) >= to_number(amount)


def process_wallet_payment(company_id: str, amount: Any, booking_ref: str) -> Dict[str, Any]:
    """Debit a booking payment. Business failures come back as success=False."""
    try:
        result = deduct_from_wallet(company_id, amount, f"Booking payment - {booking_ref}", booking_ref)
    except (WalletError, AccountNotFound) as e:
        logger.warning("Wallet payment failed for company %s booking %s: %s", company_id, booking_ref, e)
        return {"success": False, "message": str(e), "data": None}
    return {"success": True, "message": "Wallet payment processed successfully", "data": result}


def refund_wallet_payment(company_id: str, amount: Any, booking_ref: str) -> Dict[str, Any]:
    return add_to_wallet(company_id, amount, f"Refund - {booking_ref}", booking_ref)


def list_ledger(company_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    items = [e for e in load_collection(LEDGER) if e.get("company_id") == company_id]
    return items[: max(1, int(limit or 50))]


def list_wallets(status: str = "", page: int = 1, limit: int = 10) -> Tuple[List[Dict[str, Any]], Dict[str, int]]:
    companies = [c for c in load_collection(COMPANIES) if not c.get("is_temporary")]
    status = (status or "").strip().lower()
    if status:
        if status not in COMPANY_STATUSES:
            raise WalletError("Invalid status filter")
        companies = [c for c in companies if c.get("status") == status]
    companies.sort(key=lambda c: str(c.get("created_at") or ""), reverse=True)
    page = max(1, int(page or 1))
    limit = max(1, min(100, int(limit or 10)))
    total = len(companies)
    rows: List[Dict[str, Any]] = []
    for c in companies[(page - 1) * limit: page * limit]:
        wallet: Optional[Dict[str, Any]] = c.get("wallet") if isinstance(c.get("wallet"), dict) else None
        rows.append(
            {
                "id": c["id"],
                "name": c.get("name"),
                "phone": c.get("phone"),
                "company_number": c.get("company_number"),
                "status": c.get("status"),
                "is_active": c.get("is_active"),
                "wallet": wallet or _empty_wallet(),
                "created_at": c.get("created_at"),
            }
        )
    pagination = {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit) if total else 0}
    return rows, pagination
