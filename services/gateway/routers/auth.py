from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from packages.features.accounts.accounts import (
    AccountError,
    account_exists,
    add_employee,
    authenticate,
    complete_company_signup,
    create_temp_company,
    deactivate_employee,
    get_company,
    list_employees,
    public_view,
    reset_password,
    save_business_details,
    set_company_logo,
)
from packages.features.otp.otp import issue_otp, verify_otp
from services.gateway.auth import decode_temp_token, issue_temp_token, issue_token, require_company
from services.gateway.errors import http_error, ok
from services.notifications.sms.service import send_otp_sms

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class PhoneRequest(BaseModel):
    phone: str = ""


class VerifyOtpRequest(BaseModel):
    phone: str = ""
    otp: str = ""


class CompleteSignupRequest(BaseModel):
    temp_token: str = ""
    name: str = ""
    agency_name: str = ""
    num_people: int = 0
    password: str = ""


class LoginRequest(BaseModel):
    phone: str = ""
    password: str = ""


class ResetPasswordRequest(BaseModel):
    phone: str = ""
    otp: str = ""
    new_password: str = ""


class EmployeeRequest(BaseModel):
    name: str = ""
    phone: str = ""
    password: str = ""


class BusinessDetailsRequest(BaseModel):
    gst_number: str = ""
    pan_number: str = ""
    address: str = ""
    billing_address: str = ""
    email: str = ""
    phone: str = ""


class LogoRequest(BaseModel):
    logo_url: str = Field("", max_length=2048)


def _user_payload(record: Dict[str, Any], user_type: str) -> Dict[str, Any]:
    data: Dict[str, Any] = {"id": record["id"], "phone": record.get("phone"), "name": record.get("name")}
    if user_type == "company":
        data.update(
            {
                "agency_name": record.get("agency_name"),
                "num_people": record.get("num_people"),
                "company_number": record.get("company_number"),
                "status": record.get("status"),
                "is_active": record.get("is_active"),
            }
        )
    else:
        data.update(
            {
                "employee_id": record.get("employee_id"),
                "employee_number": record.get("employee_number"),
                "company_number": record.get("company_number"),
                "company_id": record.get("company_id"),
            }
        )
    return data


# ----- Signup -----

@router.post("/send-otp")
def send_otp(req: PhoneRequest):
    phone = req.phone.strip()
    if not phone:
        raise HTTPException(status_code=400, detail="Phone number is required")
    if account_exists(phone):
        raise HTTPException(status_code=400, detail="Company already exists with this phone number")
    code = issue_otp(phone, "signup")
    sent, info = send_otp_sms(phone, code)
    if not sent:
        logger.warning("Signup OTP for %s not delivered: %s", phone, info)
    return ok("OTP sent successfully", {"phone": phone})


@router.post("/verify-otp")
def verify_signup_otp(req: VerifyOtpRequest):
    phone = req.phone.strip()
    if not phone or not req.otp.strip():
        raise HTTPException(status_code=400, detail="Phone number and OTP are required")
    if not verify_otp(phone, "signup", req.otp):
        raise HTTPException(status_code=400, detail="Invalid OTP")
    try:
        company = create_temp_company(phone)
    except AccountError as e:
        raise http_error(e)
    return ok("OTP verified successfully", {"temp_token": issue_temp_token(company["id"])})


@router.post("/complete-signup")
def complete_signup(req: CompleteSignupRequest):
    if not req.temp_token or not req.name or not req.agency_name or not req.num_people or not req.password:
        raise HTTPException(status_code=400, detail="All fields are required")
    company_id = decode_temp_token(req.temp_token)
    try:
        company = complete_company_signup(company_id, req.name, req.agency_name, req.num_people, req.password)
    except AccountError as e:
        raise http_error(e)
    return ok(
        "Company signup completed successfully",
        {"token": issue_token(company["id"], "company"), "company": _user_payload(company, "company")},
    )


# ----- Login / password reset -----

@router.post("/login")
def login(req: LoginRequest):
    try:
        record, user_type = authenticate(req.phone, req.password)
    except AccountError as e:
        raise http_error(e)
    return ok(
        "Login successful",
        {"token": issue_token(record["id"], user_type), "user": _user_payload(record, user_type), "user_type": user_type},
    )


@router.post("/send-password-reset-otp")
def send_password_reset_otp(req: PhoneRequest):
    phone = req.phone.strip()
    if not phone:
        raise HTTPException(status_code=400, detail="Phone number is required")
    if not account_exists(phone):
        raise HTTPException(status_code=404, detail="No account found with this phone number")
    code = issue_otp(phone, "reset_password")
    send_otp_sms(phone, code)
    return ok("Password reset OTP sent successfully", {"phone": phone})


@router.post("/reset-password")
def reset_password_endpoint(req: ResetPasswordRequest):
    phone = req.phone.strip()
    if not phone or not req.otp.strip() or not req.new_password:
        raise HTTPException(status_code=400, detail="Phone, OTP and new password are required")
    if not verify_otp(phone, "reset_password", req.otp):
        raise HTTPException(status_code=400, detail="Invalid or expired OTP")
    try:
        user_type = reset_password(phone, req.new_password)
    except AccountError as e:
        raise http_error(e)
    return ok("Password reset successfully", {"user_type": user_type})


# ----- Employees (company only) -----

@router.post("/employees", status_code=201)
def create_employee(req: EmployeeRequest, user: dict = Depends(require_company)):
    try:
        employee = add_employee(user["company_id"], req.name, req.phone, req.password)
    except AccountError as e:
        raise http_error(e)
    return ok("Employee added successfully", {"employee": public_view(employee)})


@router.get("/employees")
def get_employees(active_only: bool = False, user: dict = Depends(require_company)):
    employees = [public_view(e) for e in list_employees(user["company_id"], active_only=active_only)]
    return ok("Employees retrieved successfully", {"employees": employees, "count": len(employees)})


@router.put("/employees/{employee_id}/deactivate")
def deactivate_employee_endpoint(employee_id: str, user: dict = Depends(require_company)):
    try:
        employee = deactivate_employee(user["company_id"], employee_id)
    except AccountError as e:
        raise http_error(e)
    return ok("Employee deactivated successfully", {"employee": public_view(employee)})


# ----- Business details / logo -----

def _company_or_404(company_id: str) -> Dict[str, Any]:
    company = get_company(company_id)
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")
    return company


@router.get("/business-details")
def get_business_details(user: dict = Depends(require_company)):
    company = _company_or_404(user["company_id"])
    details: Optional[Dict[str, Any]] = company.get("business_details") or None
    return ok("Business details retrieved successfully", {"business_details": details})


@router.post("/save-business-details")
def save_business_details_endpoint(req: BusinessDetailsRequest, user: dict = Depends(require_company)):
    try:
        company = save_business_details(user["company_id"], req.model_dump())
    except AccountError as e:
        raise http_error(e)
    return ok("Business details saved successfully", {"business_details": company["business_details"]})


@router.get("/logo")
def get_logo(user: dict = Depends(require_company)):
    company = _company_or_404(user["company_id"])
    return ok("Logo retrieved successfully", {"logo": company.get("logo") or ""})


@router.post("/upload-logo")
def upload_logo(req: LogoRequest, user: dict = Depends(require_company)):
    try:
        company = set_company_logo(user["company_id"], req.logo_url)
    except AccountError as e:
        raise http_error(e)
    return ok("Logo updated successfully", {"logo": company["logo"]})
