from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from packages.features.accounts.accounts import (
    AccountError,
    authenticate_admin,
    create_super_admin,
    dashboard_stats,
    get_company,
    list_companies,
    list_employees,
    public_view,
    verify_company,
)
from packages.features.pricing.markups import (
    calculate_markup,
    create_markup,
    delete_markup,
    get_markup,
    list_markups,
    update_markup,
)
from packages.features.pricing.pricing import PricingError, create_config, get_config, update_config
from packages.features.wallet.wallet import (
    WalletError,
    add_to_wallet,
    deduct_from_wallet,
    get_wallet_balance,
    list_ledger,
    list_wallets,
)
from services.gateway.auth import issue_token, require_admin, require_super_admin
from services.gateway.errors import http_error, ok

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/owner", tags=["owner"])


class AdminLoginRequest(BaseModel):
    username: str = ""
    password: str = ""


class SuperAdminRequest(BaseModel):
    username: str = ""
    email: str = ""
    password: str = ""
    name: str = ""


class VerifyRequest(BaseModel):
    action: str = ""


class ConfigRequest(BaseModel):
    markup: Optional[Dict[str, Any]] = None
    service_charge: Optional[Dict[str, Any]] = None
    processing_fee: Optional[float] = None
    cancellation_charge: Optional[Dict[str, Any]] = None


class MarkupRuleRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    value: Optional[float] = None
    hotel_id: Optional[str] = None
    is_active: Optional[bool] = None


class CalculateRequest(BaseModel):
    amount: Optional[float] = None
    hotel_id: Optional[str] = None


class WalletUpdateRequest(BaseModel):
    amount: Optional[float] = None
    action: str = ""
    reason: str = ""


# ----- Login / setup -----

@router.post("/login")
def owner_login(req: AdminLoginRequest):
    try:
        admin = authenticate_admin(req.username, req.password)
    except AccountError as e:
        raise http_error(e)
    return ok("Login successful", {"token": issue_token(admin["id"], "admin"), "admin": public_view(admin)})


@router.post("/setup-super-admin", status_code=201)
def setup_super_admin(req: SuperAdminRequest):
    try:
        admin = create_super_admin(req.username, req.email, req.password, req.name)
    except AccountError as e:
        raise http_error(e)
    return ok("Super admin created successfully", {"admin": public_view(admin)})


# ----- Companies -----

@router.get("/dashboard/stats")
def stats(admin: dict = Depends(require_admin)):
    return ok("Dashboard statistics retrieved successfully", dashboard_stats())


@router.get("/companies")
def companies(status: str = "", page: int = 1, limit: int = 10, admin: dict = Depends(require_admin)):
    try:
        items, pagination = list_companies(status, page, limit)
    except AccountError as e:
        raise http_error(e)
    return ok("Companies retrieved successfully", {"companies": items, "pagination": pagination})


@router.get("/companies/{company_id}")
def company_detail(company_id: str, admin: dict = Depends(require_admin)):
    company = get_company(company_id)
    if not company or company.get("is_temporary"):
        raise HTTPException(status_code=404, detail="Company not found")
    return ok(
        "Company details retrieved successfully",
        {"company": public_view(company), "employee_count": len(list_employees(company_id))},
    )


@router.get("/companies/{company_id}/employees")
def company_employees(company_id: str, admin: dict = Depends(require_admin)):
    if not get_company(company_id):
        raise HTTPException(status_code=404, detail="Company not found")
    employees = [public_view(e) for e in list_employees(company_id)]
    return ok("Employees retrieved successfully", {"employees": employees, "count": len(employees)})


@router.put("/companies/{company_id}/verify")
def company_verify(company_id: str, req: VerifyRequest, admin: dict = Depends(require_admin)):
    try:
        company, message = verify_company(company_id, req.action)
    except AccountError as e:
        raise http_error(e)
    logger.info("Admin %s applied %s to company %s", admin["id"], req.action, company_id)
    return ok(message, {"company": public_view(company)})


# ----- Global config -----

@router.get("/config")
def config_get(admin: dict = Depends(require_admin)):
    config = get_config()
    if config is None:
        raise HTTPException(status_code=404, detail="Configuration not found")
    return ok("Configuration retrieved successfully", {"config": config})


@router.post("/config")
def config_create(req: ConfigRequest, admin: dict = Depends(require_super_admin)):
    try:
        config = create_config(req.model_dump(), created_by=admin["id"])
    except PricingError as e:
        raise http_error(e)
    return ok("Configuration updated successfully", {"config": config})


@router.put("/config")
def config_update(req: ConfigRequest, admin: dict = Depends(require_super_admin)):
    try:
        config = update_config(req.model_dump(exclude_none=True), updated_by=admin["id"])
    except PricingError as e:
        raise http_error(e)
    return ok("Configuration updated successfully", {"config": config})


@router.delete("/config")
def config_delete(admin: dict = Depends(require_admin)):
    raise HTTPException(status_code=403, detail="Configuration cannot be deleted. You can only update the values.")


# ----- Markup rules -----

@router.get("/markups")
def markups_list(active_only: bool = False, admin: dict = Depends(require_admin)):
    items = list_markups(active_only=active_only)
    return ok("Markups retrieved successfully", {"markups": items, "count": len(items)})


@router.post("/markups", status_code=201)
def markups_create(req: MarkupRuleRequest, admin: dict = Depends(require_admin)):
    try:
        markup = create_markup(req.model_dump(exclude_none=True), created_by=admin["id"])
    except PricingError as e:
        raise http_error(e)
    return ok("Markup created successfully", {"markup": markup})


@router.post("/markups/calculate")
def markups_calculate(req: CalculateRequest, admin: dict = Depends(require_admin)):
    if not req.amount or req.amount <= 0:
        raise HTTPException(status_code=400, detail="Valid amount is required")
    try:
        result = calculate_markup(req.amount, hotel_id=req.hotel_id)
    except PricingError as e:
        raise http_error(e)
    return ok("Markup calculated successfully", result)


@router.get("/markups/{markup_id}")
def markups_get(markup_id: str, admin: dict = Depends(require_admin)):
    try:
        markup = get_markup(markup_id)
    except PricingError as e:
        raise http_error(e)
    return ok("Markup retrieved successfully", {"markup": markup})


@router.put("/markups/{markup_id}")
def markups_update(markup_id: str, req: MarkupRuleRequest, admin: dict = Depends(require_admin)):
    changes = req.model_dump(exclude_unset=True)
    try:
        markup = update_markup(markup_id, changes)
    except PricingError as e:
        raise http_error(e)
    return ok("Markup updated successfully", {"markup": markup})


@router.delete("/markups/{markup_id}")
def markups_delete(markup_id: str, admin: dict = Depends(require_admin)):
    try:
        delete_markup(markup_id)
    except PricingError as e:
        raise http_error(e)
    return ok("Markup deleted successfully")


# ----- Wallets -----

@router.get("/wallets")
def wallets(status: str = "", page: int = 1, limit: int = 10, admin: dict = Depends(require_admin)):
    try:
        rows, pagination = list_wallets(status, page, limit)
    except WalletError as e:
        raise http_error(e)
    return ok("Companies with wallet balances retrieved successfully", {"companies": rows, "pagination": pagination})


@router.get("/companies/{company_id}/wallet")
def company_wallet(company_id: str, admin: dict = Depends(require_admin)):
    try:
        wallet = get_wallet_balance(company_id)
    except AccountError as e:
        raise http_error(e)
    return ok(
        "Wallet balance retrieved successfully",
        {"wallet": wallet, "entries": list_ledger(company_id, 20)},
    )


@router.post("/companies/{company_id}/wallet")
def company_wallet_update(company_id: str, req: WalletUpdateRequest, admin: dict = Depends(require_admin)):
    action = req.action.strip().lower()
    if req.amount is None or action not in ("add", "deduct"):
        raise HTTPException(status_code=400, detail="Amount and action (add/deduct) are required")
    reason = req.reason.strip() or f"Admin {action} by {admin.get('username') or admin['id']}"
    try:
        if action == "add":
            result = add_to_wallet(company_id, req.amount, reason, reference=admin["id"])
        else:
            result = deduct_from_wallet(company_id, req.amount, reason, reference=admin["id"])
    except (WalletError, AccountError) as e:
        raise http_error(e)
    return ok(f"Wallet {'credited' if action == 'add' else 'debited'} successfully", result)
