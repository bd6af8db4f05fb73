from packages.features.accounts.accounts import ADMINS
from packages.features.docstore import load_collection, save_collection

from tests.helpers import PASSWORD, auth, register_company

CONFIG = {
    "markup": {"type": "percentage", "value": 10},
    "service_charge": {"type": "fixed", "value": 50},
    "processing_fee": 20,
    "cancellation_charge": {"type": "percentage", "value": 5},
}


def test_super_admin_setup_only_once(client, admin_token):
    r = client.post(
        "/api/owner/setup-super-admin",
        json={"username": "other", "email": "o@example.com", "password": PASSWORD, "name": "Other"},
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Super admin already exists"


def test_admin_login_rejects_bad_password(client, admin_token):
    r = client.post("/api/owner/login", json={"username": "root", "password": "bad"})
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid credentials"


def test_owner_routes_reject_company_tokens(client):
    data = register_company(client, "9300000001")
    r = client.get("/api/owner/dashboard/stats", headers=auth(data["token"]))
    assert r.status_code == 403


def test_verify_and_deactivate_company(client, admin_token):
    data = register_company(client, "9300000002")
    company_id = data["company"]["id"]
    headers = auth(admin_token)

    r = client.get("/api/owner/companies", params={"status": "pending"}, headers=headers)
    assert [c["id"] for c in r.json()["data"]["companies"]] == [company_id]

    r = client.put(f"/api/owner/companies/{company_id}/verify", json={"action": "verify"}, headers=headers)
    assert r.json()["message"] == "Company verified successfully"
    assert r.json()["data"]["company"]["is_active"] is True

    r = client.put(f"/api/owner/companies/{company_id}/verify", json={"action": "deactivate"}, headers=headers)
    assert r.json()["message"] == "Company deactivated successfully"
    r = client.post("/api/auth/login", json={"phone": "9300000002", "password": PASSWORD})
    assert r.status_code == 401

    r = client.put(f"/api/owner/companies/{company_id}/verify", json={"action": "promote"}, headers=headers)
    assert r.status_code == 400

    r = client.get("/api/owner/companies/cmp_missing", headers=headers)
    assert r.status_code == 404

    r = client.get("/api/owner/dashboard/stats", headers=headers)
    assert r.json()["data"]["deactivated_companies"] == 1


def test_config_lifecycle(client, admin_token):
    headers = auth(admin_token)
    r = client.get("/api/owner/config", headers=headers)
    assert r.status_code == 404

    r = client.post("/api/owner/config", json={"markup": CONFIG["markup"]}, headers=headers)
    assert r.status_code == 400

    r = client.post("/api/owner/config", json=CONFIG, headers=headers)
    assert r.status_code == 200
    r = client.put("/api/owner/config", json={"processing_fee": 35}, headers=headers)
    assert r.json()["data"]["config"]["processing_fee"] == 35

    r = client.delete("/api/owner/config", headers=headers)
    assert r.status_code == 403
    assert r.json()["message"].startswith("Configuration cannot be deleted")


def test_markup_rules_and_calculator(client, admin_token):
    headers = auth(admin_token)
    r = client.post("/api/owner/markups/calculate", json={"amount": 1000}, headers=headers)
    assert r.status_code == 404
    assert r.json()["message"] == "No markup configuration found"

    r = client.post("/api/owner/markups", json={"name": "Default", "type": "fixed", "value": 75}, headers=headers)
    assert r.status_code == 201
    markup_id = r.json()["data"]["markup"]["id"]

    r = client.post("/api/owner/markups/calculate", json={"amount": 1000}, headers=headers)
    assert r.json()["data"]["final_amount"] == 1075
    r = client.post("/api/owner/markups/calculate", json={"amount": 0}, headers=headers)
    assert r.status_code == 400
    assert r.json()["message"] == "Valid amount is required"

    r = client.put(f"/api/owner/markups/{markup_id}", json={"value": 90}, headers=headers)
    assert r.json()["data"]["markup"]["value"] == 90
    r = client.delete(f"/api/owner/markups/{markup_id}", headers=headers)
    assert r.status_code == 200
    r = client.get(f"/api/owner/markups/{markup_id}", headers=headers)
    assert r.status_code == 404


def test_admin_wallet_adjustments(client, admin_token):
    data = register_company(client, "9300000003")
    company_id = data["company"]["id"]
    headers = auth(admin_token)

    r = client.post(f"/api/owner/companies/{company_id}/wallet", json={"action": "add", "amount": 300}, headers=headers)
    assert r.json()["message"] == "Wallet credited successfully"
    r = client.post(f"/api/owner/companies/{company_id}/wallet", json={"action": "deduct", "amount": 500}, headers=headers)
    assert r.status_code == 400
    assert r.json()["message"] == "Insufficient wallet balance"
    r = client.post(f"/api/owner/companies/{company_id}/wallet", json={"action": "deduct", "amount": 100}, headers=headers)
    assert r.json()["data"]["new_balance"] == 200
    r = client.post(f"/api/owner/companies/{company_id}/wallet", json={"action": "steal", "amount": 1}, headers=headers)
    assert r.status_code == 400

    r = client.get(f"/api/owner/companies/{company_id}/wallet", headers=headers)
    body = r.json()["data"]
    assert body["wallet"]["balance"] == 200
    assert [e["kind"] for e in body["entries"]] == ["debit", "credit"]

    r = client.get("/api/company/wallet/ledger", headers=auth(data["token"]))
    assert r.json()["data"]["wallet"]["balance"] == 200


def test_wallet_listing_rejects_unknown_status(client, admin_token):
    r = client.get("/api/owner/wallets", params={"status": "archived"}, headers=auth(admin_token))
    assert r.status_code == 400
    assert r.json()["message"] == "Invalid status filter"


def test_deactivated_admin_token_stops_working(client, admin_token):
    headers = auth(admin_token)
    assert client.get("/api/owner/dashboard/stats", headers=headers).status_code == 200

    admins = load_collection(ADMINS)
    for a in admins:
        a["is_active"] = False
    save_collection(ADMINS, admins)

    r = client.get("/api/owner/dashboard/stats", headers=headers)
    assert r.status_code == 403
    assert r.json()["message"] == "Admin account is deactivated."
