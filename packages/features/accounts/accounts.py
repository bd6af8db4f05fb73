from __future__ import annotations

import logging
import math
import os
from typing import Any, Dict, List, Optional, Tuple

import bcrypt

from packages.features.docstore import (
    find_one,
    load_collection,
    locked,
    new_id,
    now_iso,
    save_collection,
)

logger = logging.getLogger(__name__)

COMPANIES = "companies"
EMPLOYEES = "employees"
ADMINS = "admins"

FIRST_COMPANY_NUMBER = 1001
COMPANY_STATUSES = ("pending", "verified", "deactivated")
ADMIN_ROLES = ("super_admin", "admin")

_PRIVATE_FIELDS = ("password_hash",)


class AccountError(ValueError):
    pass


class AccountNotFound(AccountError):
    pass


class AccountInactive(AccountError):
    pass


class AuthenticationFailed(AccountError):
    pass


# ----- Passwords -----

def _bcrypt_rounds() -> int:
    try:
        return max(4, int(os.getenv("BCRYPT_ROUNDS") or 10))
    except ValueError:
        return 10


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=_bcrypt_rounds())
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Hash written by something other than bcrypt.
        return False


def public_view(record: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if record is None:
        return None
    return {k: v for k, v in record.items() if k not in _PRIVATE_FIELDS}


def _normalize_phone(phone: str) -> str:
    return "".join(str(phone or "").split())


# ----- Companies -----

def get_company(company_id: str) -> Optional[Dict[str, Any]]:
    return find_one(load_collection(COMPANIES), id=str(company_id or ""))


def find_company_by_phone(phone: str) -> Optional[Dict[str, Any]]:
    return find_one(load_collection(COMPANIES), phone=_normalize_phone(phone))


def _next_company_number(companies: List[Dict[str, Any]]) -> int:
    numbers = [
        int(c["company_number"])
        for c in companies
        if not c.get("is_temporary") and isinstance(c.get("company_number"), int)
    ]
    return max(numbers) + 1 if numbers else FIRST_COMPANY_NUMBER


def create_temp_company(phone: str) -> Dict[str, Any]:
    """Placeholder company created once the signup OTP is verified.

    It has no password and no company number until signup is completed.
    """
    phone = _normalize_phone(phone)
    if not phone:
        raise AccountError("Phone number is required")
    with locked():
        companies = load_collection(COMPANIES)
        existing = find_one(companies, phone=phone)
        if existing and not existing.get("is_temporary"):
            raise AccountError("Company already exists with this phone number")
        if existing:
            return existing
        now = now_iso()
        company = {
            "id": new_id("cmp"),
            "phone": phone,
            "name": "Temporary Company",
            "agency_name": "",
            "num_people": 0,
            "password_hash": "",
            "company_number": None,
            "is_temporary": True,
            "is_active": False,
            "status": "pending",
            "logo": "",
            "gst": "",
            "docs": [],
            "business_details": {},
            "markup": {"type": "percentage", "value": 0, "is_active": False},
            "wallet": None,
            "created_at": now,
            "updated_at": now,
        }
        companies.append(company)
        save_collection(COMPANIES, companies)
    logger.info("Temporary company %s created for phone %s", company["id"], phone)
    return company


def complete_company_signup(
    company_id: str,
    name: str,
    agency_name: str,
    num_people: int,
    password: str,
) -> Dict[str, Any]:
    name = str(name or "").strip()
    agency_name = str(agency_name or "").strip()
    if not name or not agency_name or not password or not num_people:
        raise AccountError("All fields are required")
    if int(num_people) < 1:
        raise AccountError("Number of people must be at least 1")

    password_hash = hash_password(password)
    with locked():
        companies = load_collection(COMPANIES)
        company = find_one(companies, id=company_id)
        if not company:
            raise AccountNotFound("Company not found")
        if not company.get("is_temporary"):
            raise AccountError("Company signup already completed")
        company.update(
            {
                "name": name,
                "agency_name": agency_name,
                "num_people": int(num_people),
                "password_hash": password_hash,
                "company_number": _next_company_number(companies),
                "is_temporary": False,
                "updated_at": now_iso(),
            }
        )
        save_collection(COMPANIES, companies)
    logger.info("Company %s completed signup as #%s", company_id, company["company_number"])
    return company


def update_company(company_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    with locked():
        companies = load_collection(COMPANIES)
        company = find_one(companies, id=company_id)
        if not company:
            raise AccountNotFound("Company not found")
        company.update(changes)
        company["updated_at"] = now_iso()
        save_collection(COMPANIES, companies)
    return company


def update_company_profile(company_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    changes: Dict[str, Any] = {}
    for key in ("name", "agency_name", "gst"):
        if key in data and data[key] is not None:
            val = str(data[key]).strip()
            if key != "gst" and not val:
                raise AccountError(f"{key.replace('_', ' ').capitalize()} cannot be empty")
            changes[key] = val
    if data.get("num_people") is not None:
        n = int(data["num_people"])
        if n < 1:
            raise AccountError("Number of people must be at least 1")
        changes["num_people"] = n
    if isinstance(data.get("docs"), list):
        changes["docs"] = [str(d) for d in data["docs"] if str(d).strip()]
    return update_company(company_id, changes)


def save_business_details(company_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    details = {
        "gst_number": str(data.get("gst_number") or "").strip().upper(),
        "pan_number": str(data.get("pan_number") or "").strip().upper(),
        "address": str(data.get("address") or "").strip(),
        "billing_address": str(data.get("billing_address") or data.get("address") or "").strip(),
        "email": str(data.get("email") or "").strip().lower(),
        "phone": _normalize_phone(data.get("phone") or ""),
    }
    if not details["address"]:
        raise AccountError("Address is required")
    if details["email"] and "@" not in details["email"]:
        raise AccountError("Invalid email address")
    details["submitted_at"] = now_iso()
    return update_company(company_id, {"business_details": details, "gst": details["gst_number"]})


def set_company_logo(company_id: str, logo_url: str) -> Dict[str, Any]:
    logo_url = str(logo_url or "").strip()
    if not logo_url:
        raise AccountError("Logo URL is required")
    return update_company(company_id, {"logo": logo_url})


def list_companies(status: str = "", page: int = 1, limit: int = 10) -> Tuple[List[Dict[str, Any]], Dict[str, int]]:
    companies = [c for c in load_collection(COMPANIES) if not c.get("is_temporary")]
    status = (status or "").strip().lower()
    if status:
        if status not in COMPANY_STATUSES:
            raise AccountError("Invalid status filter")
        companies = [c for c in companies if c.get("status") == status]
    companies.sort(key=lambda c: str(c.get("created_at") or ""), reverse=True)

    page = max(1, int(page or 1))
    limit = max(1, min(100, int(limit or 10)))
    total = len(companies)
    start = (page - 1) * limit
    items = [public_view(c) for c in companies[start:start + limit]]
    pagination = {
        "current_page": page,
        "total_pages": math.ceil(total / limit) if total else 0,
        "total_items": total,
        "items_per_page": limit,
    }
    return items, pagination


def verify_company(company_id: str, action: str) -> Tuple[Dict[str, Any], str]:
    """Apply an admin decision to a company and return (company, message)."""
    action = (action or "").strip().lower()
    if action not in ("verify", "deactivate"):
        raise AccountError("Action must be either 'verify' or 'deactivate'")
    with locked():
        companies = load_collection(COMPANIES)
        company = find_one(companies, id=company_id)
        if not company or company.get("is_temporary"):
            raise AccountNotFound("Company not found")
        previous = company.get("status")
        if action == "verify":
            company["is_active"] = True
            company["status"] = "verified"
            msg = "Company reactivated successfully" if previous == "deactivated" else "Company verified successfully"
        else:
            company["is_active"] = False
            company["status"] = "deactivated"
            msg = "Company deactivated successfully"
        company["updated_at"] = now_iso()
        save_collection(COMPANIES, companies)
    logger.info("Company %s: %s -> %s", company_id, previous, company["status"])
    return company, msg


def ensure_company_active(company: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not company:
        raise AccountNotFound("Company not found")
    if company.get("status") == "deactivated":
        raise AccountInactive("Account is deactivated")
    if not company.get("is_active"):
        raise AccountInactive(
            "Your account is pending verification. Please wait for admin approval."
        )
    return company


# ----- Employees -----

def get_employee(employee_db_id: str) -> Optional[Dict[str, Any]]:
    return find_one(load_collection(EMPLOYEES), id=str(employee_db_id or ""))


def find_employee_by_phone(phone: str) -> Optional[Dict[str, Any]]:
    return find_one(load_collection(EMPLOYEES), phone=_normalize_phone(phone))


def format_employee_id(company_number: int, employee_number: int) -> str:
    return f"EMP{company_number}{employee_number:03d}"


def add_employee(company_id: str, name: str, phone: str, password: str) -> Dict[str, Any]:
    name = str(name or "").strip()
    phone = _normalize_phone(phone)
    if not name or not phone or not password:
        raise AccountError("Name, phone, and password are required")

    company = ensure_company_active(get_company(company_id))
    if find_company_by_phone(phone):
        raise AccountError("This phone number is already registered to a company")

    password_hash = hash_password(password)
    with locked():
        employees = load_collection(EMPLOYEES)
        if find_one(employees, phone=phone):
            raise AccountError("Employee with this phone number already exists")
        numbers = [int(e.get("employee_number") or 0) for e in employees if e.get("company_id") == company_id]
        employee_number = (max(numbers) if numbers else 0) + 1
        employee_id = format_employee_id(int(company["company_number"]), employee_number)
        if find_one(employees, employee_id=employee_id):
            raise AccountError("Failed to generate a unique employee ID")
        now = now_iso()
        employee = {
            "id": new_id("emp"),
            "employee_id": employee_id,
            "employee_number": employee_number,
            "name": name,
            "phone": phone,
            "password_hash": password_hash,
            "company_id": company_id,
            "company_number": company["company_number"],
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }
        employees.append(employee)
        save_collection(EMPLOYEES, employees)
    logger.info("Employee %s added to company %s", employee_id, company_id)
    return employee


def list_employees(company_id: str, active_only: bool = False) -> List[Dict[str, Any]]:
    out = [e for e in load_collection(EMPLOYEES) if e.get("company_id") == company_id]
    if active_only:
        out = [e for e in out if e.get("is_active")]
    out.sort(key=lambda e: int(e.get("employee_number") or 0))
    return out


def deactivate_employee(company_id: str, employee_id: str) -> Dict[str, Any]:
    """Deactivate by employee code (EMP...) or record id, scoped to the company."""
    with locked():
        employees = load_collection(EMPLOYEES)
        employee = next(
            (
                e
                for e in employees
                if e.get("company_id") == company_id and employee_id in (e.get("employee_id"), e.get("id"))
            ),
            None,
        )
        if not employee:
            raise AccountNotFound("Employee not found")
        employee["is_active"] = False
        employee["updated_at"] = now_iso()
        save_collection(EMPLOYEES, employees)
    logger.info("Employee %s deactivated", employee["employee_id"])
    return employee


def update_employee_profile(employee_db_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    name = data.get("name")
    phone = data.get("phone")
    with locked():
        employees = load_collection(EMPLOYEES)
        employee = find_one(employees, id=employee_db_id)
        if not employee:
            raise AccountNotFound("Employee not found")
        if name is not None:
            name = str(name).strip()
            if not name:
                raise AccountError("Name cannot be empty")
            employee["name"] = name
        if phone is not None:
            phone = _normalize_phone(phone)
            if not phone:
                raise AccountError("Phone cannot be empty")
            clash = find_one(employees, phone=phone)
            if (clash and clash["id"] != employee_db_id) or find_company_by_phone(phone):
                raise AccountError("Phone number already in use")
            employee["phone"] = phone
        employee["updated_at"] = now_iso()
        save_collection(EMPLOYEES, employees)
    return employee


# ----- Login / passwords -----

def authenticate(phone: str, password: str) -> Tuple[Dict[str, Any], str]:
    """Look the phone up as a company first, then as an employee."""
    phone = _normalize_phone(phone)
    if not phone or not password:
        raise AccountError("Phone and password are required")

    user: Optional[Dict[str, Any]] = find_company_by_phone(phone)
    user_type = "company"
    if user and user.get("is_temporary"):
        user = None
    if not user:
        user = find_employee_by_phone(phone)
        user_type = "employee"
    if not user:
        raise AuthenticationFailed("Invalid phone number or password")

    if user_type == "company" and user.get("status") == "deactivated":
        raise AuthenticationFailed("Account is deactivated")
    if user_type == "employee" and not user.get("is_active"):
        raise AuthenticationFailed("Account is deactivated")
    if not check_password(password, user.get("password_hash") or ""):
        raise AuthenticationFailed("Invalid phone number or password")
    return user, user_type


def reset_password(phone: str, new_password: str) -> str:
    """Set a new password for whichever account owns the phone. Returns the account type."""
    phone = _normalize_phone(phone)
    if not new_password or len(new_password) < 6:
        raise AccountError("Password must be at least 6 characters")
    password_hash = hash_password(new_password)
    with locked():
        for collection, user_type in ((COMPANIES, "company"), (EMPLOYEES, "employee")):
            items = load_collection(collection)
            record = find_one(items, phone=phone)
            if record and not record.get("is_temporary"):
                record["password_hash"] = password_hash
                record["updated_at"] = now_iso()
                save_collection(collection, items)
                logger.info("Password reset for %s %s", user_type, record["id"])
                return user_type
    raise AccountNotFound("No account found with this phone number")


def account_exists(phone: str) -> bool:
    company = find_company_by_phone(phone)
    if company and not company.get("is_temporary"):
        return True
    return find_employee_by_phone(phone) is not None


# ----- Admins -----

def get_admin(admin_id: str) -> Optional[Dict[str, Any]]:
    return find_one(load_collection(ADMINS), id=str(admin_id or ""))


def find_admin(login: str) -> Optional[Dict[str, Any]]:
    """Look an admin up by username, falling back to email."""
    login = str(login or "").strip()
    if not login:
        return None
    admins = load_collection(ADMINS)
    return find_one(admins, username=login) or find_one(admins, email=login.lower())


def create_super_admin(username: str, email: str, password: str, name: str) -> Dict[str, Any]:
    username = str(username or "").strip()
    email = str(email or "").strip().lower()
    name = str(name or "").strip()
    if not username or not email or not password or not name:
        raise AccountError("All fields are required")
    password_hash = hash_password(password)
    with locked():
        admins = load_collection(ADMINS)
        if any(a.get("role") == "super_admin" for a in admins):
            raise AccountError("Super admin already exists")
        if find_one(admins, username=username) or find_one(admins, email=email):
            raise AccountError("Username or email already in use")
        now = now_iso()
        admin = {
            "id": new_id("adm"),
            "username": username,
            "email": email,
            "name": name,
            "password_hash": password_hash,
            "role": "super_admin",
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }
        admins.append(admin)
        save_collection(ADMINS, admins)
    logger.info("Super admin %s created", username)
    return admin


def authenticate_admin(username: str, password: str) -> Dict[str, Any]:
    username = str(username or "").strip()
    if not username or not password:
        raise AccountError("Username and password are required")
    admin = find_admin(username)
    if not admin or not check_password(password, admin.get("password_hash") or ""):
        raise AuthenticationFailed("Invalid credentials")
    if not admin.get("is_active", True):
        raise AuthenticationFailed("Account is deactivated")
    return admin


# ----- Stats -----

def dashboard_stats() -> Dict[str, int]:
    companies = [c for c in load_collection(COMPANIES) if not c.get("is_temporary")]
    return {
        "total_companies": len(companies),
        "pending_companies": sum(1 for c in companies if c.get("status") == "pending"),
        "verified_companies": sum(1 for c in companies if c.get("status") == "verified"),
        "deactivated_companies": sum(1 for c in companies if c.get("status") == "deactivated"),
        "total_employees": len(load_collection(EMPLOYEES)),
    }
