from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Header, HTTPException

from packages.features.accounts.accounts import (
    AccountInactive,
    ensure_company_active,
    get_admin,
    get_company,
    get_employee,
)

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
TEMP_TOKEN_MINUTES = 10
USER_TYPES = ("company", "employee", "admin")


def _secret() -> str:
    secret = (os.getenv("JWT_SECRET") or "").strip()
    if not secret:
        logger.warning("JWT_SECRET is not set; using an insecure development secret")
        secret = "dev-secret-change-me"
    return secret


def _expires_days() -> int:
    try:
        return max(1, int(os.getenv("JWT_EXPIRES_DAYS") or 7))
    except ValueError:
        return 7


def issue_token(subject_id: str, user_type: str) -> str:
    if user_type not in USER_TYPES:
        raise ValueError(f"Unknown user type: {user_type}")
    payload = {
        "id": subject_id,
        "type": user_type,
        "exp": datetime.utcnow() + timedelta(days=_expires_days()),
    }
    return jwt.encode(payload, _secret(), algorithm=ALGORITHM)


def issue_temp_token(company_id: str) -> str:
    payload = {
        "id": company_id,
        "temp": True,
        "exp": datetime.utcnow() + timedelta(minutes=TEMP_TOKEN_MINUTES),
    }
    return jwt.encode(payload, _secret(), algorithm=ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, _secret(), algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def decode_temp_token(token: str) -> str:
    """Company id carried by a signup token; rejects regular session tokens."""
    try:
        decoded = jwt.decode(token or "", _secret(), algorithms=[ALGORITHM])
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=400, detail="Invalid temporary token")
    if not decoded.get("temp") or not decoded.get("id"):
        raise HTTPException(status_code=400, detail="Invalid temporary token")
    return str(decoded["id"])


def _bearer(authorization: Optional[str]) -> str:
    parts = (authorization or "").split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return ""


def current_user(authorization: Optional[str] = Header(None)) -> Dict[str, Any]:
    token = _bearer(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Access token required")
    decoded = decode_token(token)
    if decoded.get("temp"):
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user_type = decoded.get("type")
    subject = str(decoded.get("id") or "")
    if user_type == "company":
        record = get_company(subject)
        if record and record.get("is_temporary"):
            record = None
    elif user_type == "employee":
        record = get_employee(subject)
    elif user_type == "admin":
        record = get_admin(subject)
    else:
        record = None
    if not record:
        raise HTTPException(status_code=401, detail="User not found")

    user: Dict[str, Any] = {
        "id": record["id"],
        "type": user_type,
        "name": record.get("name"),
        "phone": record.get("phone"),
        "company_id": None,
        "employee_id": None,
    }
    if user_type == "company":
        user["company_id"] = record["id"]
        user["company_number"] = record.get("company_number")
        user["is_active"] = bool(record.get("is_active"))
    elif user_type == "employee":
        user["company_id"] = record.get("company_id")
        user["employee_id"] = record["id"]
        user["employee_code"] = record.get("employee_id")
        user["company_number"] = record.get("company_number")
        user["is_active"] = bool(record.get("is_active"))
    else:
        user["username"] = record.get("username")
        user["email"] = record.get("email")
        user["role"] = record.get("role")
        user["is_active"] = bool(record.get("is_active", True))
    return user


def require_company(user: Dict[str, Any] = Depends(current_user)) -> Dict[str, Any]:
    if user["type"] != "company":
        raise HTTPException(status_code=403, detail="Access denied. Company role required.")
    return user


def require_employee(user: Dict[str, Any] = Depends(current_user)) -> Dict[str, Any]:
    if user["type"] != "employee":
        raise HTTPException(status_code=403, detail="Access denied. Employee role required.")
    return user


def require_admin(user: Dict[str, Any] = Depends(current_user)) -> Dict[str, Any]:
    if user["type"] != "admin":
        raise HTTPException(status_code=403, detail="Access denied. Admin role required.")
    if not user.get("is_active"):
        raise HTTPException(status_code=403, detail="Admin account is deactivated.")
    return user


def require_super_admin(user: Dict[str, Any] = Depends(require_admin)) -> Dict[str, Any]:
    if user.get("role") != "super_admin":
        raise HTTPException(status_code=403, detail="Access denied. Super admin role required.")
    return user


def require_active_company(user: Dict[str, Any] = Depends(require_company)) -> Dict[str, Any]:
    try:
        ensure_company_active(get_company(user["company_id"]))
    except AccountInactive as e:
        raise HTTPException(status_code=403, detail=str(e))
    return user


def require_booker(user: Dict[str, Any] = Depends(current_user)) -> Dict[str, Any]:
    """Company or employee whose account and company are both active."""
    if user["type"] not in ("company", "employee"):
        raise HTTPException(status_code=403, detail="Access denied. Company or Employee role required.")
    if user["type"] == "employee":
        if not user.get("company_id"):
            raise HTTPException(status_code=403, detail="Employee must be associated with a company.")
        if not user.get("is_active"):
            raise HTTPException(status_code=403, detail="Employee not found or inactive.")
    company = get_company(user["company_id"])
    if not company:
        raise HTTPException(status_code=403, detail="Company not found.")
    try:
        ensure_company_active(company)
    except AccountInactive as e:
        raise HTTPException(status_code=403, detail=str(e))
    return user
