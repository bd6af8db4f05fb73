from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from packages.features.accounts.accounts import (
    AccountError,
    get_company,
    get_employee,
    public_view,
    update_employee_profile,
)
from services.gateway.auth import require_employee
from services.gateway.errors import http_error, ok

router = APIRouter(prefix="/api/employees", tags=["employees"])


class EmployeeProfileRequest(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None


@router.get("/profile")
def get_profile(user: dict = Depends(require_employee)):
    employee = get_employee(user["employee_id"])
    if not employee:
        raise HTTPException(status_code=404, detail="Employee not found")
    company = get_company(employee.get("company_id")) or {}
    return ok(
        "Profile retrieved successfully",
        {
            "employee": public_view(employee),
            "company": {
                "id": company.get("id"),
                "name": company.get("name"),
                "agency_name": company.get("agency_name"),
                "company_number": company.get("company_number"),
                "logo": company.get("logo"),
            },
        },
    )


@router.put("/profile")
def update_profile(req: EmployeeProfileRequest, user: dict = Depends(require_employee)):
    try:
        employee = update_employee_profile(user["employee_id"], req.model_dump(exclude_none=True))
    except AccountError as e:
        raise http_error(e)
    return ok("Profile updated successfully", {"employee": public_view(employee)})
