from __future__ import annotations

import logging
import os
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse, RedirectResponse
from pydantic import BaseModel, Field

from packages.features.accounts.accounts import get_company
from packages.features.bookings.bookings import (
    STATUS_BOOKING_FAILED,
    STATUS_CONFIRMED,
    STATUS_PAYMENT_FAILED,
    STATUS_PAYMENT_PENDING,
    STATUS_PAYMENT_SUCCESS,
    STATUS_LABELS,
    BookingError,
    chargeable_amount,
    create_transaction,
    ensure_payable,
    find_by_booking_id,
    get_booking_policy,
    get_transaction,
    is_session_expired,
    save_booking_policy,
    session_minutes,
    update_transaction,
)
from packages.features.bookings.invoice import generate_invoice, generate_voucher
from packages.features.docstore import locked, parse_iso
from packages.features.pricing.markups import build_pricing, price_package
from packages.features.pricing.pricing import PricingError
from packages.features.wallet.wallet import (
    get_wallet_balance,
    has_sufficient_balance,
    process_wallet_payment,
    refund_wallet_payment,
)
from services.gateway.auth import require_booker
from services.gateway.errors import http_error, ok
from services.hotels.supplier.client import HotelSupplierClient, SupplierError, get_client_from_env
from services.hotels.supplier.normalize import (
    PaginationError,
    MIN_QUERY_LENGTH,
    empty_page,
    flatten_suggestions,
    hotel_list,
    normalize_hotel,
    normalize_paging,
    package_list,
    paginate,
    prebook_amount,
    price_range,
)
from services.notifications.sms.service import send_booking_confirmation
from services.payments.gateway.service import (
    STATUS_FAILURE,
    STATUS_SUCCESS,
    check_payment_status,
    create_payment,
    payment_config_missing,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/hotels", tags=["hotels"])

BOOKING_FAILED_MSG = (
    "Due to some technical problem the booking is not confirmed. "
    "The amount will be refunded if it is deducted from your account. Kindly book again."
)


class SuggestRequest(BaseModel):
    query: str = ""
    page: int = 1
    per_page: int = 10
    current_items_count: int = 0


class SearchRequest(BaseModel):
    search: Dict[str, Any] = Field(default_factory=dict)
    transaction_identifier: str = ""


class PackagesRequest(BaseModel):
    search: Dict[str, Any] = Field(default_factory=dict)
    hotel_id: str = ""
    transaction_identifier: str = ""


class BookingPolicyRequest(BaseModel):
    transaction_identifier: str = ""
    search: Dict[str, Any] = Field(default_factory=dict)
    booking_key: str = ""
    hotel_id: str = ""


class PrebookRequest(BaseModel):
    booking_policy_id: str = ""
    transaction_identifier: str = ""
    contact_detail: Dict[str, Any] = Field(default_factory=dict)
    guest: List[Dict[str, Any]] = Field(default_factory=list)
    coupon: Optional[Dict[str, Any]] = None


class BookingRef(BaseModel):
    booking_id: str = ""
    transaction_id: str = ""


class EligibilityRequest(BaseModel):
    amount: Optional[float] = None
    booking_id: str = ""
    transaction_id: str = ""


def _client() -> HotelSupplierClient:
    client = get_client_from_env()
    if not client:
        raise HTTPException(status_code=503, detail="Hotel supplier is not configured")
    return client


def _company_for(user: dict) -> Dict[str, Any]:
    return get_company(user["company_id"]) or {}


def _find_tx(ref: BookingRef) -> Optional[Dict[str, Any]]:
    if ref.transaction_id:
        return get_transaction(ref.transaction_id)
    if ref.booking_id:
        return find_by_booking_id(ref.booking_id)
    return None


def _owned_tx(transaction_id: str, user: dict) -> Dict[str, Any]:
    tx = get_transaction(transaction_id) or find_by_booking_id(transaction_id)
    if not tx or tx.get("company_id") != user["company_id"]:
        raise HTTPException(status_code=404, detail="Booking not found")
    return tx


def _expires_at(tx: Dict[str, Any]) -> Optional[str]:
    created = parse_iso(str(tx.get("created_at") or ""))
    if not created:
        return None
    return (created + timedelta(minutes=session_minutes())).isoformat() + "Z"


# ----- Search -----

@router.post("/suggest")
async def suggest(req: SuggestRequest, user: dict = Depends(require_booker)):
    try:
        paging = normalize_paging(req.page, req.per_page, req.current_items_count)
    except PaginationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    term = (req.query or "").strip()
    if len(term) < MIN_QUERY_LENGTH:
        return empty_page(paging["page"], paging["per_page"])

    try:
        resp = await _client().autosuggest(term)
    except SupplierError as e:
        raise http_error(e)
    items = flatten_suggestions(resp)
    return paginate(items, paging["page"], paging["per_page"], paging["current_items_count"])


def _priced_hotels(resp: Dict[str, Any], company: Dict[str, Any]) -> List[Dict[str, Any]]:
    out = []
    for raw in hotel_list(resp):
        hotel = normalize_hotel(raw)
        if hotel["rate"] is not None:
            try:
                pricing = build_pricing(hotel["rate"], hotel["currency"], hotel["id"], company)
                hotel["display_rate"] = pricing["total_chargeable_amount"]
            except PricingError:
                hotel["display_rate"] = None
        else:
            hotel["display_rate"] = None
        out.append(hotel)
    return out


@router.post("/searchHotels")
@router.post("/search")
async def search_hotels(req: SearchRequest, user: dict = Depends(require_booker)):
    if not req.search:
        raise HTTPException(status_code=400, detail="Search criteria are required")
    try:
        resp = await _client().search(req.search)
    except SupplierError as e:
        raise http_error(e)
    hotels = _priced_hotels(resp, _company_for(user))
    return ok(
        "Hotels retrieved successfully",
        {
            "hotels": hotels,
            "total": len(hotels),
            "price_range": price_range([{"rate": {"chargeable_rate": h["display_rate"]}} for h in hotels]),
            "transaction_identifier": resp.get("transaction_identifier")
            or (resp.get("data") or {}).get("transaction_identifier")
            or req.transaction_identifier,
        },
    )


@router.post("/packages")
async def packages(req: PackagesRequest, user: dict = Depends(require_booker)):
    if not req.hotel_id or not req.search:
        raise HTTPException(status_code=400, detail="Hotel id and search criteria are required")
    try:
        resp = await _client().packages(req.search, req.hotel_id, req.transaction_identifier)
    except SupplierError as e:
        raise http_error(e)
    company = _company_for(user)
    priced = [price_package(p, req.hotel_id, company) for p in package_list(resp)]
    return ok("Packages retrieved successfully", {"hotel_id": req.hotel_id, "packages": priced})


@router.get("/transaction-identifier")
def transaction_identifier(user: dict = Depends(require_booker)):
    return ok("Transaction identifier generated", {"transaction_identifier": uuid.uuid4().hex})


# ----- Booking -----

@router.post("/bookingpolicy")
async def booking_policy(req: BookingPolicyRequest, user: dict = Depends(require_booker)):
    if not req.booking_key or not req.hotel_id or not req.search:
        raise HTTPException(status_code=400, detail="Search, booking key and hotel id are required")
    try:
        resp = await _client().booking_policy(req.search, req.booking_key, req.hotel_id, req.transaction_identifier)
        record = save_booking_policy(resp, req.search, req.transaction_identifier, req.hotel_id, user)
    except (SupplierError, BookingError) as e:
        raise http_error(e)
    return ok(
        "Booking policy retrieved successfully",
        {"booking_policy_id": record["booking_policy_id"], "booking_policy": record["booking_policy"]},
    )


_CONTACT_FIELDS = ("name", "last_name", "email", "mobile")


@router.post("/prebook")
async def prebook(req: PrebookRequest, user: dict = Depends(require_booker)):
    if not req.booking_policy_id:
        raise HTTPException(status_code=400, detail="Booking policy id is required")
    missing = [f for f in _CONTACT_FIELDS if not str(req.contact_detail.get(f) or "").strip()]
    if missing:
        raise HTTPException(status_code=400, detail=f"Contact detail is missing: {', '.join(missing)}")
    if not req.guest:
        raise HTTPException(status_code=400, detail="At least one room guest is required")

    policy = get_booking_policy(req.booking_policy_id)
    if not policy or policy.get("company_id") != user["company_id"]:
        raise HTTPException(status_code=404, detail="Booking policy not found")

    tx_ident = req.transaction_identifier or policy.get("transaction_identifier") or ""
    payload = {
        "booking_policy_id": req.booking_policy_id,
        "contactDetail": req.contact_detail,
        "guest": req.guest,
    }
    try:
        resp = await _client().prebook(payload, tx_ident)
        amount = prebook_amount(resp)
        if amount is None:
            amount = ((policy.get("booking_policy") or {}).get("package") or {}).get("chargeable_rate")
        currency = ((resp.get("data") or {}).get("package") or {}).get("currency") or "INR"
        pricing = build_pricing(amount, currency, policy.get("hotel_id"), _company_for(user))
        tx = create_transaction(policy, resp, req.contact_detail, req.guest, pricing, user, coupon=req.coupon)
    except (SupplierError, PricingError, BookingError) as e:
        raise http_error(e)
    return ok(
        "Prebook successful",
        {
            "transaction_id": tx["id"],
            "booking_id": tx["booking_id"],
            "pricing": pricing,
            "expires_at": _expires_at(tx),
        },
    )


# ----- Gateway payment -----

def _payment_url(booking_id: str) -> str:
    public_base = (os.getenv("PUBLIC_BASE_URL") or "http://127.0.0.1:8000").rstrip("/")
    return f"{public_base}/api/hotels/process-payment/{booking_id}"


def _gateway_pending(tx: Dict[str, Any]) -> bool:
    return tx.get("status") == STATUS_PAYMENT_PENDING and tx.get("payment_method") == "gateway"


def _wallet_pending(tx: Dict[str, Any]) -> bool:
    return tx.get("status") == STATUS_PAYMENT_PENDING and tx.get("payment_method") == "wallet"


@router.post("/confirm-booking")
def confirm_booking(req: BookingRef, user: dict = Depends(require_booker)):
    with locked():
        tx = _find_tx(req)
        if not tx or tx.get("company_id") != user["company_id"]:
            raise HTTPException(status_code=404, detail="Sorry invalid Booking ID, try another id")
        if tx.get("status") == STATUS_CONFIRMED:
            return ok("Booking is already confirmed", {"status": "confirmed", "booking_id": tx["booking_id"]})
        if tx.get("status") == STATUS_PAYMENT_SUCCESS:
            return ok("Payment is already done", {"status": "paid", "booking_id": tx["booking_id"]})
        if is_session_expired(tx):
            raise HTTPException(status_code=422, detail="Booking session expired. Please try again.")
        if _wallet_pending(tx):
            raise HTTPException(status_code=400, detail="A wallet payment for this booking is already in progress")
        if not _gateway_pending(tx):
            update_transaction(tx["id"], {"status": STATUS_PAYMENT_PENDING, "payment_method": "gateway", "payment_response": None})
    return ok(
        "Redirect to payment",
        {"status": "payment_pending", "booking_id": tx["booking_id"], "payment_url": _payment_url(tx["booking_id"])},
    )


@router.get("/process-payment/{booking_id}")
def process_payment(booking_id: str):
    with locked():
        tx = find_by_booking_id(booking_id)
        if not tx:
            raise HTTPException(status_code=404, detail="Sorry invalid Booking ID, try another id")
        if not tx.get("prebook_response"):
            raise HTTPException(status_code=500, detail="Transaction is not complete. Please try again.")
        if is_session_expired(tx):
            raise HTTPException(status_code=422, detail="Booking session expired. Please try again.")
        if tx.get("status") in (STATUS_PAYMENT_SUCCESS, STATUS_CONFIRMED):
            raise HTTPException(status_code=422, detail="Booking session expired. Please try again!")
        if _wallet_pending(tx):
            raise HTTPException(status_code=400, detail="A wallet payment for this booking is already in progress")
        if payment_config_missing():
            raise HTTPException(status_code=503, detail="Payment gateway is not configured")
        started = tx.get("payment_response") or {}
        if _gateway_pending(tx) and started.get("payment_link"):
            return RedirectResponse(url=started["payment_link"], status_code=303)
        tx = update_transaction(tx["id"], {"status": STATUS_PAYMENT_PENDING, "payment_method": "gateway"})

    pricing = tx.get("pricing") or {}
    try:
        payment = create_payment(
            chargeable_amount(tx),
            currency=pricing.get("currency") or "INR",
            description=f"Hotel booking {booking_id}",
            order_id=tx["id"],
            customer=tx.get("contact_detail") or {},
        )
    except ValueError as e:
        raise HTTPException(status_code=502, detail=str(e))

    update_transaction(
        tx["id"],
        {
            "payment_response": {
                "payment_id": payment["payment_id"],
                "reference": payment["reference"],
                "payment_link": payment["payment_link"],
                "amount": payment["amount"],
                "order_status": "Pending",
            },
        },
    )
    if not payment["payment_link"]:
        raise HTTPException(status_code=502, detail="Payment gateway did not return a payment link")
    return RedirectResponse(url=payment["payment_link"], status_code=303)


async def _book_with_supplier(tx: Dict[str, Any]) -> Dict[str, Any]:
    """Finalize a paid booking. Returns the updated transaction."""
    try:
        resp = await _client().book(tx["booking_id"])
        if not isinstance(resp.get("data"), dict):
            raise SupplierError("Supplier returned no booking data")
    except (SupplierError, HTTPException) as e:
        logger.error("Book failed for %s: %s", tx["booking_id"], getattr(e, "detail", e))
        return update_transaction(tx["id"], {"status": STATUS_BOOKING_FAILED})
    tx = update_transaction(tx["id"], {"status": STATUS_CONFIRMED, "book_response": resp})
    await run_in_threadpool(send_booking_confirmation, tx)
    return tx


def _payment_matches(tx: Dict[str, Any], payment: Dict[str, Any]) -> bool:
    if payment.get("order_id") != tx["id"]:
        return False
    amount = payment.get("amount")
    return amount is not None and abs(amount - chargeable_amount(tx)) < 0.01


def _record_gateway_result(tx_id: str, payment_id: str, status: str) -> Optional[Dict[str, Any]]:
    """Move a pending gateway payment to its outcome once.

    Returns None when another delivery of the callback already did it.
    """
    with locked():
        tx = get_transaction(tx_id)
        if not tx or not _gateway_pending(tx):
            return None
        payment_response = dict(tx.get("payment_response") or {})
        if payment_response.get("payment_id") != payment_id:
            return None
        payment_response["order_status"] = status
        changes: Dict[str, Any] = {"payment_response": payment_response}
        if status == STATUS_SUCCESS:
            changes["status"] = STATUS_PAYMENT_SUCCESS
        elif status == STATUS_FAILURE:
            changes["status"] = STATUS_PAYMENT_FAILED
        return update_transaction(tx_id, changes)


async def _settle_gateway_payment(order_id: str, payment_id: str) -> Dict[str, Any]:
    tx = get_transaction(order_id)
    if not tx:
        raise HTTPException(status_code=404, detail="Sorry invalid OrderNo, cannot find any transaction with this order no")
    if tx.get("payment_method") != "gateway":
        raise HTTPException(status_code=400, detail="No online payment was started for this order")
    if tx.get("status") in (STATUS_CONFIRMED, STATUS_BOOKING_FAILED, STATUS_PAYMENT_FAILED, STATUS_PAYMENT_SUCCESS):
        return tx
    stored_id = str((tx.get("payment_response") or {}).get("payment_id") or "")
    if not _gateway_pending(tx) or not stored_id:
        raise HTTPException(status_code=400, detail="No online payment was started for this order")
    if payment_id and payment_id != stored_id:
        logger.warning("Callback for %s carried payment %s, expected %s", tx["id"], payment_id, stored_id)
        raise HTTPException(status_code=400, detail="Payment id does not match this order")

    try:
        payment = await run_in_threadpool(check_payment_status, stored_id)
    except ValueError as e:
        raise HTTPException(status_code=502, detail=str(e))
    status = payment["status"]
    if status == STATUS_SUCCESS and not _payment_matches(tx, payment):
        logger.warning(
            "Payment %s does not match %s: order %s amount %s, expected %s",
            stored_id,
            tx["id"],
            payment.get("order_id"),
            payment.get("amount"),
            chargeable_amount(tx),
        )
        raise HTTPException(status_code=400, detail="Payment does not match this booking")

    recorded = _record_gateway_result(tx["id"], stored_id, status)
    if recorded is None:
        return get_transaction(tx["id"]) or tx
    if recorded.get("status") == STATUS_PAYMENT_SUCCESS:
        return await _book_with_supplier(recorded)
    return recorded


async def _callback_params(request: Request) -> Dict[str, str]:
    params: Dict[str, Any] = dict(request.query_params)
    if request.method == "POST":
        ctype = request.headers.get("content-type", "")
        if "application/json" in ctype:
            body = await request.json()
            if isinstance(body, dict):
                params.update(body)
        else:
            form = await request.form()
            params.update({k: v for k, v in form.items() if isinstance(v, str)})
    return {
        "order_id": str(params.get("order_id") or params.get("orderId") or params.get("orderNo") or ""),
        "payment_id": str(params.get("payment_id") or params.get("paymentId") or ""),
    }


@router.api_route("/payment-response-handler", methods=["GET", "POST"])
async def payment_response_handler(request: Request):
    params = await _callback_params(request)
    if not params["order_id"]:
        raise HTTPException(status_code=400, detail="Order id missing from payment response")
    tx = await _settle_gateway_payment(params["order_id"], params["payment_id"])
    label = STATUS_LABELS.get(tx.get("status"), "unknown")

    client_url = (os.getenv("CLIENT_URL") or "").strip().rstrip("/")
    if request.method == "GET" and client_url:
        query = urlencode({"booking_id": tx.get("booking_id"), "status": label})
        return RedirectResponse(url=f"{client_url}/hotels/confirmation?{query}", status_code=303)
    if tx.get("status") == STATUS_BOOKING_FAILED:
        raise HTTPException(status_code=500, detail=BOOKING_FAILED_MSG)
    return ok("Payment processed", {"booking_id": tx.get("booking_id"), "status": label})


# ----- Wallet payment -----

@router.get("/wallet/balance")
def wallet_balance(user: dict = Depends(require_booker)):
    return ok("Wallet balance retrieved successfully", get_wallet_balance(user["company_id"]))


@router.post("/wallet/check-eligibility")
def wallet_check_eligibility(req: EligibilityRequest, user: dict = Depends(require_booker)):
    amount = req.amount
    if amount is None and (req.booking_id or req.transaction_id):
        tx = _find_tx(BookingRef(booking_id=req.booking_id, transaction_id=req.transaction_id))
        if not tx or tx.get("company_id") != user["company_id"]:
            raise HTTPException(status_code=404, detail="Booking not found")
        amount = chargeable_amount(tx)
    if amount is None or amount <= 0:
        raise HTTPException(status_code=400, detail="Valid amount is required")

    wallet = get_wallet_balance(user["company_id"])
    eligible = has_sufficient_balance(user["company_id"], amount)
    return ok(
        "Wallet eligibility checked",
        {
            "eligible": eligible,
            "required_amount": round(amount, 2),
            "current_balance": wallet["balance"],
            "currency": wallet["currency"],
            "insufficient_amount": 0 if eligible else round(amount - wallet["balance"], 2),
        },
    )


def _claim_for_wallet(ref: BookingRef, company_id: str) -> Dict[str, Any]:
    """Mark the transaction as being paid from the wallet so a second request is refused."""
    with locked():
        tx = _find_tx(ref)
        ensure_payable(tx, company_id)
        if _wallet_pending(tx):
            raise BookingError("A wallet payment for this booking is already in progress")
        if _gateway_pending(tx):
            raise BookingError("An online payment for this booking is already in progress")
        return update_transaction(tx["id"], {"status": STATUS_PAYMENT_PENDING, "payment_method": "wallet"})


@router.post("/wallet/payment")
@router.post("/process-wallet-payment")
async def wallet_payment(req: BookingRef, user: dict = Depends(require_booker)):
    if not req.booking_id and not req.transaction_id:
        raise HTTPException(status_code=400, detail="Booking id is required")
    try:
        tx = _claim_for_wallet(req, user["company_id"])
    except BookingError as e:
        raise http_error(e)

    amount = chargeable_amount(tx)
    result = process_wallet_payment(user["company_id"], amount, tx["booking_id"])
    if not result["success"]:
        update_transaction(tx["id"], {"status": STATUS_PAYMENT_FAILED})
        raise HTTPException(status_code=400, detail=result["message"])

    paid = result["data"]
    tx = update_transaction(
        tx["id"],
        {
            "status": STATUS_PAYMENT_SUCCESS,
            "payment_response": {"order_status": "Success", "method": "wallet", "ledger_id": paid["ledger_id"]},
        },
    )
    tx = await _book_with_supplier(tx)
    if tx["status"] != STATUS_CONFIRMED:
        refund = refund_wallet_payment(user["company_id"], amount, tx["booking_id"])
        logger.warning("Refunded %s to company %s after failed booking %s", amount, user["company_id"], tx["booking_id"])
        raise HTTPException(
            status_code=502,
            detail=f"{BOOKING_FAILED_MSG} Refunded balance: {refund['currency']} {refund['new_balance']}",
        )

    return ok(
        "Wallet payment processed successfully",
        {
            "transaction_id": tx["id"],
            "booking_id": tx["booking_id"],
            "status": "confirmed",
            "amount": amount,
            "wallet": {"balance": paid["new_balance"], "currency": paid["currency"]},
            "voucher_url": f"/api/hotels/bookings/{tx['id']}/voucher",
        },
    )


# ----- Documents -----

@router.get("/bookings/{transaction_id}")
def booking_detail(transaction_id: str, user: dict = Depends(require_booker)):
    tx = _owned_tx(transaction_id, user)
    data = {k: v for k, v in tx.items() if k not in ("prebook_response", "book_response")}
    data["status_label"] = STATUS_LABELS.get(tx.get("status"), "unknown")
    return ok("Booking retrieved successfully", {"booking": data})


@router.get("/bookings/{transaction_id}/voucher", response_class=PlainTextResponse)
def booking_voucher(transaction_id: str, user: dict = Depends(require_booker)):
    tx = _owned_tx(transaction_id, user)
    if tx.get("status") != STATUS_CONFIRMED:
        raise HTTPException(status_code=409, detail="Voucher is available once the booking is confirmed")
    return PlainTextResponse(generate_voucher(tx).decode("utf-8"))


@router.get("/bookings/{transaction_id}/invoice", response_class=PlainTextResponse)
def booking_invoice(transaction_id: str, user: dict = Depends(require_booker)):
    tx = _owned_tx(transaction_id, user)
    if tx.get("status") != STATUS_CONFIRMED:
        raise HTTPException(status_code=409, detail="Invoice is available once the booking is confirmed")
    return PlainTextResponse(generate_invoice(tx).decode("utf-8"))
