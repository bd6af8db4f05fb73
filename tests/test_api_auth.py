from tests.helpers import OTP, PASSWORD, auth, register_company


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["supplier_configured"] is False
    assert body["payments_configured"] is False


def test_signup_flow_returns_company_token(client):
    data = register_company(client, "9100000001")
    assert data["company"]["company_number"] == 1001
    assert data["company"]["status"] == "pending"

    r = client.get("/api/company/profile", headers=auth(data["token"]))
    assert r.status_code == 200
    assert r.json()["data"]["company"]["agency_name"] == "Rao Travels"
    assert "password_hash" not in r.json()["data"]["company"]


def test_send_otp_rejects_registered_phone(client):
    register_company(client, "9100000002")
    r = client.post("/api/auth/send-otp", json={"phone": "9100000002"})
    assert r.status_code == 400
    assert r.json() == {"success": False, "message": "Company already exists with this phone number"}


def test_wrong_otp(client):
    client.post("/api/auth/send-otp", json={"phone": "9100000003"})
    r = client.post("/api/auth/verify-otp", json={"phone": "9100000003", "otp": "999999"})
    assert r.status_code == 400
    assert r.json()["message"] == "Invalid OTP"


def test_complete_signup_rejects_session_token(client):
    data = register_company(client, "9100000004")
    r = client.post(
        "/api/auth/complete-signup",
        json={"temp_token": data["token"], "name": "A", "agency_name": "B", "num_people": 1, "password": PASSWORD},
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Invalid temporary token"


def test_login_and_bad_credentials(client):
    register_company(client, "9100000005")
    r = client.post("/api/auth/login", json={"phone": "9100000005", "password": PASSWORD})
    assert r.status_code == 200
    assert r.json()["data"]["user_type"] == "company"

    r = client.post("/api/auth/login", json={"phone": "9100000005", "password": "wrong"})
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid phone number or password"


def test_password_reset(client):
    register_company(client, "9100000006")
    r = client.post("/api/auth/send-password-reset-otp", json={"phone": "9100000006"})
    assert r.status_code == 200
    r = client.post("/api/auth/reset-password", json={"phone": "9100000006", "otp": OTP, "new_password": "another1"})
    assert r.status_code == 200
    assert r.json()["data"]["user_type"] == "company"
    r = client.post("/api/auth/login", json={"phone": "9100000006", "password": "another1"})
    assert r.status_code == 200

    r = client.post("/api/auth/send-password-reset-otp", json={"phone": "9199999999"})
    assert r.status_code == 404


def test_protected_routes_need_a_token(client):
    r = client.get("/api/company/dashboard")
    assert r.status_code == 401
    assert r.json()["message"] == "Access token required"
    r = client.get("/api/company/dashboard", headers=auth("garbage"))
    assert r.status_code == 401


def test_pending_company_cannot_add_employees(client):
    data = register_company(client, "9100000007")
    r = client.post(
        "/api/auth/employees",
        json={"name": "Ravi", "phone": "9100000107", "password": PASSWORD},
        headers=auth(data["token"]),
    )
    assert r.status_code == 403
    assert "pending verification" in r.json()["message"]


def test_employee_lifecycle(client, verified_company):
    token = verified_company["token"]
    r = client.post(
        "/api/auth/employees",
        json={"name": "Ravi", "phone": "9100000108", "password": PASSWORD},
        headers=auth(token),
    )
    assert r.status_code == 201
    employee = r.json()["data"]["employee"]
    assert employee["employee_id"] == "EMP1001001"

    r = client.post("/api/auth/login", json={"phone": "9100000108", "password": PASSWORD})
    assert r.status_code == 200
    emp_token = r.json()["data"]["token"]
    r = client.get("/api/employees/profile", headers=auth(emp_token))
    assert r.status_code == 200
    assert r.json()["data"]["company"]["company_number"] == 1001

    # Employees cannot manage other employees.
    r = client.get("/api/auth/employees", headers=auth(emp_token))
    assert r.status_code == 403

    r = client.put(f"/api/auth/employees/{employee['employee_id']}/deactivate", headers=auth(token))
    assert r.status_code == 200
    r = client.get("/api/auth/employees", params={"active_only": True}, headers=auth(token))
    assert r.json()["data"]["count"] == 0
    r = client.get("/api/hotels/wallet/balance", headers=auth(emp_token))
    assert r.status_code == 403
    assert r.json()["message"] == "Employee not found or inactive."
    r = client.post("/api/auth/login", json={"phone": "9100000108", "password": PASSWORD})
    assert r.status_code == 401


def test_business_details_and_logo(client):
    data = register_company(client, "9100000009")
    headers = auth(data["token"])
    r = client.post("/api/auth/save-business-details", json={"email": "bad"}, headers=headers)
    assert r.status_code == 400
    assert r.json()["message"] == "Address is required"
    r = client.post(
        "/api/auth/save-business-details",
        json={"address": "12 MG Road", "email": "ops@rao.example", "gst_number": "29ABCDE1234F1Z5"},
        headers=headers,
    )
    assert r.status_code == 200
    r = client.get("/api/auth/business-details", headers=headers)
    assert r.json()["data"]["business_details"]["address"] == "12 MG Road"

    r = client.post("/api/auth/upload-logo", json={"logo_url": "https://cdn.example/logo.png"}, headers=headers)
    assert r.status_code == 200
    r = client.get("/api/auth/logo", headers=headers)
    assert r.json()["data"]["logo"] == "https://cdn.example/logo.png"


def test_company_markup_routes(client):
    data = register_company(client, "9100000010")
    headers = auth(data["token"])
    r = client.put("/api/company/markup", json={"type": "percentage", "value": 150}, headers=headers)
    assert r.status_code == 400
    r = client.put("/api/company/markup", json={"type": "fixed", "value": 25, "is_active": True}, headers=headers)
    assert r.status_code == 200
    r = client.put("/api/company/markup/toggle", json={"is_active": False}, headers=headers)
    assert r.json()["message"] == "Markup deactivated successfully"
    r = client.get("/api/company/markup", headers=headers)
    assert r.json()["data"]["company"]["markup"] == {"type": "fixed", "value": 25.0, "is_active": False}
