from datetime import datetime, timedelta

import pytest

from packages.features.accounts.accounts import (
    AccountError,
    AccountInactive,
    AuthenticationFailed,
    add_employee,
    authenticate,
    complete_company_signup,
    create_super_admin,
    create_temp_company,
    dashboard_stats,
    find_admin,
    deactivate_employee,
    ensure_company_active,
    get_company,
    list_companies,
    reset_password,
    verify_company,
)
from packages.features.otp.otp import issue_otp, verify_otp


def _signup(phone, name="Owner"):
    temp = create_temp_company(phone)
    return complete_company_signup(temp["id"], name, f"{name} Travels", 4, "secret123")


def test_company_numbers_are_sequential():
    first = _signup("9000000011")
    second = _signup("9000000012")
    assert first["company_number"] == 1001
    assert second["company_number"] == 1002
    assert first["status"] == "pending"
    assert not first["is_active"]


def test_signup_cannot_complete_twice():
    company = _signup("9000000013")
    with pytest.raises(AccountError, match="already completed"):
        complete_company_signup(company["id"], "X", "Y", 1, "secret123")


def test_temp_company_is_reused_until_signup_completes():
    first = create_temp_company("9000000014")
    assert create_temp_company("9000000014")["id"] == first["id"]
    complete_company_signup(first["id"], "A", "B", 1, "secret123")
    with pytest.raises(AccountError, match="already exists"):
        create_temp_company("9000000014")


def test_pending_company_can_log_in_but_is_not_active():
    company = _signup("9000000015")
    record, user_type = authenticate("9000000015", "secret123")
    assert (record["id"], user_type) == (company["id"], "company")
    with pytest.raises(AccountInactive, match="pending verification"):
        ensure_company_active(get_company(company["id"]))


def test_deactivated_company_cannot_log_in():
    company = _signup("9000000016")
    verify_company(company["id"], "deactivate")
    with pytest.raises(AuthenticationFailed, match="deactivated"):
        authenticate("9000000016", "secret123")
    _, msg = verify_company(company["id"], "verify")
    assert msg == "Company reactivated successfully"


def test_wrong_password():
    _signup("9000000017")
    with pytest.raises(AuthenticationFailed, match="Invalid phone number or password"):
        authenticate("9000000017", "nope")


def test_employee_ids_and_uniqueness():
    company = _signup("9000000018")
    with pytest.raises(AccountInactive):
        add_employee(company["id"], "Ravi", "9000000100", "secret123")
    verify_company(company["id"], "verify")

    first = add_employee(company["id"], "Ravi", "9000000100", "secret123")
    second = add_employee(company["id"], "Meena", "9000000101", "secret123")
    assert first["employee_id"] == "EMP1001001"
    assert second["employee_id"] == "EMP1001002"

    with pytest.raises(AccountError, match="already exists"):
        add_employee(company["id"], "Dup", "9000000100", "secret123")
    with pytest.raises(AccountError, match="registered to a company"):
        add_employee(company["id"], "Dup", "9000000018", "secret123")


def test_inactive_employee_cannot_log_in():
    company = _signup("9000000019")
    verify_company(company["id"], "verify")
    add_employee(company["id"], "Ravi", "9000000102", "secret123")
    record, user_type = authenticate("9000000102", "secret123")
    assert user_type == "employee"
    deactivate_employee(company["id"], record["employee_id"])
    with pytest.raises(AuthenticationFailed):
        authenticate("9000000102", "secret123")


def test_reset_password():
    _signup("9000000020")
    with pytest.raises(AccountError, match="at least 6"):
        reset_password("9000000020", "123")
    assert reset_password("9000000020", "newpass1") == "company"
    authenticate("9000000020", "newpass1")


def test_single_super_admin():
    create_super_admin("root", "root@example.com", "secret123", "Root")
    with pytest.raises(AccountError, match="Super admin already exists"):
        create_super_admin("root2", "r2@example.com", "secret123", "Root 2")
    assert find_admin("ROOT@example.com")["username"] == "root"
    assert find_admin("nobody") is None


def test_listing_and_stats():
    a = _signup("9000000021")
    _signup("9000000022")
    create_temp_company("9000000023")
    verify_company(a["id"], "verify")

    items, pagination = list_companies(status="verified")
    assert [c["id"] for c in items] == [a["id"]]
    assert "password_hash" not in items[0]
    assert pagination["total_items"] == 1

    stats = dashboard_stats()
    assert stats["total_companies"] == 2
    assert stats["pending_companies"] == 1
    assert stats["verified_companies"] == 1

    with pytest.raises(AccountError):
        verify_company(a["id"], "approve")


def test_otp_is_single_use():
    code = issue_otp("9000000030", "signup")
    assert code == "123456"
    assert not verify_otp("9000000030", "signup", "000000")
    assert verify_otp("9000000030", "signup", code)
    assert not verify_otp("9000000030", "signup", code)


def test_otp_expires_and_purposes_are_separate():
    issue_otp("9000000031", "signup")
    assert not verify_otp("9000000031", "reset_password", "123456")
    later = datetime.utcnow() + timedelta(hours=1)
    assert not verify_otp("9000000031", "signup", "123456", now=later)
    assert not verify_otp("9000000031", "signup", "123456")
