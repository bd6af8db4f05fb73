from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from packages.features.accounts.accounts import (
    AccountError,
    get_company,
    list_employees,
    public_view,
    update_company_profile,
)
from packages.features.bookings.bookings import (
    STATUS_CONFIRMED,
    STATUS_PENDING,
    company_revenue,
    list_company_transactions,
    summarize,
)
from packages.features.pricing.pricing import (
    PricingError,
    get_company_markup,
    set_company_markup,
    toggle_company_markup,
)
from packages.features.wallet.wallet import get_wallet_balance, list_ledger
from services.gateway.auth import require_company
from services.gateway.errors import http_error, ok

router = APIRouter(prefix="/api/company", tags=["company"])


class CompanyProfileRequest(BaseModel):
    name: Optional[str] = None
    agency_name: Optional[str] = None
    num_people: Optional[int] = None
    gst: Optional[str] = None
    docs: Optional[List[str]] = None


class MarkupRequest(BaseModel):
    type: str = ""
    value: Optional[float] = None
    is_active: Optional[bool] = None


class MarkupToggleRequest(BaseModel):
    is_active: bool


@router.get("/dashboard")
def dashboard(user: dict = Depends(require_company)):
    company = get_company(user["company_id"])
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")
    employees = list_employees(user["company_id"])
    txs = list_company_transactions(user["company_id"])
    wallet = get_wallet_balance(user["company_id"])
    return ok(
        "Dashboard data retrieved successfully",
        {
            "company": public_view(company),
            "stats": {
                "total_employees": len(employees),
                "active_employees": sum(1 for e in employees if e.get("is_active")),
                "total_bookings": len(txs),
                "confirmed_bookings": sum(1 for t in txs if t.get("status") == STATUS_CONFIRMED),
                "pending_bookings": sum(1 for t in txs if t.get("status") == STATUS_PENDING),
            },
            "wallet": wallet,
            "recent_bookings": [summarize(t) for t in txs[:5]],
        },
    )


@router.get("/profile")
def get_profile(user: dict = Depends(require_company)):
    company = get_company(user["company_id"])
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")
    return ok("Profile retrieved successfully", {"company": public_view(company)})


@router.put("/profile")
def update_profile(req: CompanyProfileRequest, user: dict = Depends(require_company)):
    try:
        company = update_company_profile(user["company_id"], req.model_dump(exclude_none=True))
    except AccountError as e:
        raise http_error(e)
    return ok("Profile updated successfully", {"company": public_view(company)})


@router.get("/bookings")
def bookings(status: Optional[int] = None, employee_id: str = "", user: dict = Depends(require_company)):
    txs = list_company_transactions(user["company_id"], employee_id=employee_id, status=status)
    return ok("Bookings retrieved successfully", {"bookings": [summarize(t) for t in txs], "count": len(txs)})


@router.get("/revenue")
def revenue(user: dict = Depends(require_company)):
    return ok("Revenue retrieved successfully", company_revenue(user["company_id"]))


@router.get("/markup")
def get_markup(user: dict = Depends(require_company)):
    try:
        data = get_company_markup(user["company_id"])
    except AccountError as e:
        raise http_error(e)
    return ok("Markup retrieved successfully", {"company": data})


@router.put("/markup")
def put_markup(req: MarkupRequest, user: dict = Depends(require_company)):
    try:
        data = set_company_markup(user["company_id"], req.model_dump())
    except (PricingError, AccountError) as e:
        raise http_error(e)
    return ok("Markup updated successfully", {"company": data})


@router.put("/markup/toggle")
def toggle_markup(req: MarkupToggleRequest, user: dict = Depends(require_company)):
    try:
        data = toggle_company_markup(user["company_id"], req.is_active)
    except AccountError as e:
        raise http_error(e)
    state = "activated" if req.is_active else "deactivated"
    return ok(f"Markup {state} successfully", {"company": data})


@router.get("/wallet/ledger")
def wallet_ledger(limit: int = 50, user: dict = Depends(require_company)):
    return ok(
        "Wallet ledger retrieved successfully",
        {"wallet": get_wallet_balance(user["company_id"]), "entries": list_ledger(user["company_id"], limit)},
    )
