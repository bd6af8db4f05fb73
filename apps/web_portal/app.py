import json
import logging
import os
from datetime import date, timedelta
from pathlib import Path
from urllib.parse import quote

import requests
from fastapi import FastAPI, Form, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.templating import Jinja2Templates

APP_DIR = Path(__file__).resolve().parent

logger = logging.getLogger(__name__)

BUILD_ID = "hotel-portal-web-v1"

app = FastAPI(title="B2B Hotel Portal (Web)")
templates = Jinja2Templates(directory=str(APP_DIR / "templates"))

AUTH_ALLOWLIST = {
    "/login",
    "/signup",
    "/signup/verify",
    "/signup/complete",
    "/forgot-password",
    "/forgot-password/reset",
    "/admin/login",
    "/health",
}


def _backend_url(path: str) -> str:
    base = (os.getenv("PORTAL_API_URL") or "http://127.0.0.1:8000").strip().rstrip("/")
    return base + path


def _api(request: Request, method: str, path: str, payload: dict | None = None, params: dict | None = None):
    """Call the REST API with the session token. Returns (status_code, body)."""
    headers = {"Accept": "application/json"}
    token = request.session.get("token") if "session" in request.scope else None
    if token:
        headers["Authorization"] = f"Bearer {token}"
    try:
        r = requests.request(method, _backend_url(path), json=payload, params=params, headers=headers, timeout=60)
    except requests.RequestException as exc:
        logger.warning("Backend call %s %s failed: %s", method, path, exc)
        return 503, {"success": False, "message": "Backend is unavailable. Please try again."}
    try:
        body = r.json()
    except ValueError:
        body = {"success": r.ok, "message": r.text}
    if r.status_code == 401 and token:
        # Expired or revoked token.
        request.session.clear()
    return r.status_code, body if isinstance(body, dict) else {"data": body}


def _data(body: dict) -> dict:
    data = body.get("data")
    return data if isinstance(data, dict) else {}


def _current_user(request: Request) -> dict | None:
    if not request.session.get("token"):
        return None
    return {
        "type": request.session.get("user_type"),
        "name": request.session.get("user_name"),
        "id": request.session.get("user_id"),
    }


def _render(request: Request, template_name: str, context: dict | None = None, status_code: int = 200):
    ctx = {
        "request": request,
        "title": "Hotel Portal",
        "build_id": BUILD_ID,
        "current_user": _current_user(request),
    }
    if context:
        ctx.update(context)
    return templates.TemplateResponse(request, template_name, ctx, status_code=status_code)


def _to_int(v, default: int = 0) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return default


def _to_number(v, default: float = 0.0) -> float:
    try:
        if v is None or v == "":
            return default
        return float(v)
    except (TypeError, ValueError):
        return default


def _default_search() -> dict:
    today = date.today()
    return {
        "check_in_date": (today + timedelta(days=7)).isoformat(),
        "check_out_date": (today + timedelta(days=8)).isoformat(),
        "adult_count": 2,
        "child_count": 0,
        "room_count": 1,
    }


def _build_search(check_in: str, check_out: str, adults: int, children: int, rooms: int, region_id: str = "") -> dict:
    search = {
        "check_in_date": check_in,
        "check_out_date": check_out,
        "adult_count": max(1, adults),
        "child_count": max(0, children),
        "room_count": max(1, rooms),
        "source_market": "IN",
        "currency": "INR",
        "locale": "en-US",
    }
    if region_id:
        ids = [x for x in region_id.split(",") if x.strip()]
        search["id"] = ids if len(ids) > 1 else ids[0]
    return search


class _AuthMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        if path.startswith("/assets") or path in AUTH_ALLOWLIST:
            return await call_next(request)

        u = _current_user(request)
        if path.startswith("/admin"):
            if not u or u.get("type") != "admin":
                return RedirectResponse(url=f"/admin/login?next={quote(path)}", status_code=303)
            return await call_next(request)

        if not u:
            return RedirectResponse(url=f"/login?next={quote(path)}", status_code=303)
        if u.get("type") == "admin":
            return RedirectResponse(url="/admin", status_code=303)
        return await call_next(request)


app.add_middleware(_AuthMiddleware)

# Session cookies - MUST be added after auth middleware so sessions are available there
app.add_middleware(
    SessionMiddleware,
    secret_key=os.getenv("APP_SESSION_SECRET", "change-me-in-prod"),
    same_site="lax",
    https_only=False,
)


def _safe_next(nxt: str, fallback: str = "/") -> str:
    dest = (nxt or "").strip() or fallback
    # Never allow open redirects.
    if not dest.startswith("/") or dest.startswith("//"):
        dest = fallback
    return dest


@app.get("/health")
def health():
    return {"ok": True, "build": BUILD_ID}


# ------------------------------
# Auth routes
# ------------------------------

@app.get("/login", response_class=HTMLResponse)
def login_get(request: Request, next: str | None = None, msg: str | None = None):
    if _current_user(request):
        return RedirectResponse(url="/", status_code=303)
    return _render(request, "auth/login.html", {"next": next or "", "msg": msg or "", "err": ""})


@app.post("/login")
def login_post(request: Request, phone: str = Form(""), password: str = Form(""), next: str = Form("")):
    status, body = _api(request, "POST", "/api/auth/login", {"phone": phone.strip(), "password": password})
    if status != 200:
        return _render(request, "auth/login.html", {"next": next, "err": body.get("message") or "Login failed."})
    data = _data(body)
    request.session["token"] = data.get("token")
    request.session["user_type"] = data.get("user_type")
    request.session["user_name"] = (data.get("user") or {}).get("name")
    request.session["user_id"] = (data.get("user") or {}).get("id")
    return RedirectResponse(url=_safe_next(next), status_code=303)


@app.get("/logout")
def logout(request: Request):
    request.session.clear()
    return RedirectResponse(url="/login?msg=Logged%20out", status_code=303)


@app.get("/signup", response_class=HTMLResponse)
def signup_get(request: Request):
    return _render(request, "auth/signup.html", {"step": "phone", "err": ""})


@app.post("/signup", response_class=HTMLResponse)
def signup_post(request: Request, phone: str = Form("")):
    status, body = _api(request, "POST", "/api/auth/send-otp", {"phone": phone.strip()})
    if status != 200:
        return _render(request, "auth/signup.html", {"step": "phone", "phone": phone, "err": body.get("message")})
    return _render(request, "auth/signup.html", {"step": "otp", "phone": phone.strip(), "msg": body.get("message")})


@app.post("/signup/verify", response_class=HTMLResponse)
def signup_verify(request: Request, phone: str = Form(""), otp: str = Form("")):
    status, body = _api(request, "POST", "/api/auth/verify-otp", {"phone": phone.strip(), "otp": otp.strip()})
    if status != 200:
        return _render(request, "auth/signup.html", {"step": "otp", "phone": phone, "err": body.get("message")})
    return _render(
        request,
        "auth/signup.html",
        {"step": "details", "phone": phone, "temp_token": _data(body).get("temp_token")},
    )


@app.post("/signup/complete")
def signup_complete(
    request: Request,
    temp_token: str = Form(""),
    name: str = Form(""),
    agency_name: str = Form(""),
    num_people: int = Form(1),
    password: str = Form(""),
):
    payload = {
        "temp_token": temp_token,
        "name": name.strip(),
        "agency_name": agency_name.strip(),
        "num_people": num_people,
        "password": password,
    }
    status, body = _api(request, "POST", "/api/auth/complete-signup", payload)
    if status != 200:
        return _render(
            request,
            "auth/signup.html",
            {"step": "details", "temp_token": temp_token, "err": body.get("message")},
        )
    data = _data(body)
    request.session["token"] = data.get("token")
    request.session["user_type"] = "company"
    request.session["user_name"] = (data.get("company") or {}).get("name")
    request.session["user_id"] = (data.get("company") or {}).get("id")
    return RedirectResponse(url="/", status_code=303)


@app.get("/forgot-password", response_class=HTMLResponse)
def forgot_get(request: Request):
    return _render(request, "auth/forgot.html", {"step": "phone"})


@app.post("/forgot-password", response_class=HTMLResponse)
def forgot_post(request: Request, phone: str = Form("")):
    status, body = _api(request, "POST", "/api/auth/send-password-reset-otp", {"phone": phone.strip()})
    step = "reset" if status == 200 else "phone"
    return _render(request, "auth/forgot.html", {"step": step, "phone": phone, "err": "" if status == 200 else body.get("message")})


@app.post("/forgot-password/reset")
def forgot_reset(request: Request, phone: str = Form(""), otp: str = Form(""), new_password: str = Form("")):
    payload = {"phone": phone.strip(), "otp": otp.strip(), "new_password": new_password}
    status, body = _api(request, "POST", "/api/auth/reset-password", payload)
    if status != 200:
        return _render(request, "auth/forgot.html", {"step": "reset", "phone": phone, "err": body.get("message")})
    return RedirectResponse(url="/login?msg=Password%20updated.%20Please%20log%20in.", status_code=303)


# ------------------------------
# Dashboard
# ------------------------------

@app.get("/", response_class=HTMLResponse)
def dashboard(request: Request, msg: str = "", err: str = ""):
    u = _current_user(request) or {}
    ctx = {"msg": msg, "err": err}
    if u.get("type") == "company":
        status, body = _api(request, "GET", "/api/company/dashboard")
        if status != 200:
            ctx["err"] = body.get("message")
        ctx.update(_data(body))
        _, emp_body = _api(request, "GET", "/api/auth/employees")
        ctx["employees"] = _data(emp_body).get("employees") or []
        _, mk_body = _api(request, "GET", "/api/company/markup")
        ctx["markup"] = (_data(mk_body).get("company") or {}).get("markup") or {}
    else:
        _, prof = _api(request, "GET", "/api/employees/profile")
        ctx.update(_data(prof))
        _, wallet = _api(request, "GET", "/api/hotels/wallet/balance")
        ctx["wallet"] = _data(wallet)
    return _render(request, "dashboard.html", ctx)


@app.post("/employees")
def add_employee(request: Request, name: str = Form(""), phone: str = Form(""), password: str = Form("")):
    status, body = _api(request, "POST", "/api/auth/employees", {"name": name, "phone": phone, "password": password})
    key = "msg" if status in (200, 201) else "err"
    return RedirectResponse(url=f"/?{key}={quote(body.get('message') or '')}", status_code=303)


@app.post("/employees/{employee_id}/deactivate")
def deactivate_employee(request: Request, employee_id: str):
    status, body = _api(request, "PUT", f"/api/auth/employees/{quote(employee_id)}/deactivate")
    key = "msg" if status == 200 else "err"
    return RedirectResponse(url=f"/?{key}={quote(body.get('message') or '')}", status_code=303)


@app.post("/markup")
def save_markup(request: Request, type: str = Form("percentage"), value: str = Form("0"), is_active: str = Form("")):
    payload = {"type": type, "value": _to_number(value), "is_active": bool(is_active)}
    status, body = _api(request, "PUT", "/api/company/markup", payload)
    key = "msg" if status == 200 else "err"
    return RedirectResponse(url=f"/?{key}={quote(body.get('message') or '')}", status_code=303)


# ------------------------------
# Hotels
# ------------------------------

@app.get("/hotels", response_class=HTMLResponse)
def hotels_search(
    request: Request,
    q: str = "",
    region_id: str = "",
    region_name: str = "",
    transaction_identifier: str = "",
    check_in: str = "",
    check_out: str = "",
    adults: int = 2,
    children: int = 0,
    rooms: int = 1,
):
    defaults = _default_search()
    form = {
        "q": q,
        "region_id": region_id,
        "region_name": region_name,
        "transaction_identifier": transaction_identifier,
        "check_in": check_in or defaults["check_in_date"],
        "check_out": check_out or defaults["check_out_date"],
        "adults": adults,
        "children": children,
        "rooms": rooms,
    }
    ctx: dict = {"form": form, "suggestions": [], "hotels": [], "err": ""}

    if q and not region_id:
        status, body = _api(request, "POST", "/api/hotels/suggest", {"query": q, "page": 1, "per_page": 20})
        if status != 200:
            ctx["err"] = body.get("message")
        else:
            ctx["suggestions"] = body.get("data") or []

    if region_id:
        search = _build_search(form["check_in"], form["check_out"], adults, children, rooms, region_id)
        status, body = _api(
            request,
            "POST",
            "/api/hotels/searchHotels",
            {"search": search, "transaction_identifier": transaction_identifier},
        )
        if status != 200:
            ctx["err"] = body.get("message")
        else:
            data = _data(body)
            ctx["hotels"] = data.get("hotels") or []
            ctx["price_range"] = data.get("price_range") or {}
            form["transaction_identifier"] = data.get("transaction_identifier") or transaction_identifier
    return _render(request, "hotels/search.html", ctx)


@app.get("/hotels/{hotel_id}", response_class=HTMLResponse)
def hotel_packages(
    request: Request,
    hotel_id: str,
    check_in: str = "",
    check_out: str = "",
    adults: int = 2,
    children: int = 0,
    rooms: int = 1,
    transaction_identifier: str = "",
):
    search = _build_search(check_in, check_out, adults, children, rooms)
    payload = {"search": search, "hotel_id": hotel_id, "transaction_identifier": transaction_identifier}
    status, body = _api(request, "POST", "/api/hotels/packages", payload)
    ctx = {
        "hotel_id": hotel_id,
        "packages": _data(body).get("packages") or [],
        "search": search,
        "search_json": json.dumps(search),
        "transaction_identifier": transaction_identifier,
        "err": "" if status == 200 else body.get("message"),
    }
    return _render(request, "hotels/packages.html", ctx)


@app.post("/hotels/book/policy", response_class=HTMLResponse)
def book_policy(
    request: Request,
    hotel_id: str = Form(""),
    booking_key: str = Form(""),
    search_json: str = Form("{}"),
    transaction_identifier: str = Form(""),
):
    try:
        search = json.loads(search_json or "{}")
    except ValueError:
        search = {}
    payload = {
        "hotel_id": hotel_id,
        "booking_key": booking_key,
        "search": search,
        "transaction_identifier": transaction_identifier,
    }
    status, body = _api(request, "POST", "/api/hotels/bookingpolicy", payload)
    ctx = {
        "policy": _data(body),
        "rooms": max(1, _to_int(search.get("room_count"), 1)),
        "transaction_identifier": transaction_identifier,
        "err": "" if status == 200 else body.get("message"),
    }
    return _render(request, "hotels/guests.html", ctx)


@app.post("/hotels/book/prebook", response_class=HTMLResponse)
async def book_prebook(request: Request):
    form = await request.form()
    rooms = max(1, _to_int(form.get("rooms"), 1))
    contact = {
        "name": str(form.get("name") or "").strip(),
        "last_name": str(form.get("last_name") or "").strip(),
        "email": str(form.get("email") or "").strip(),
        "mobile": str(form.get("mobile") or "").strip(),
    }
    guests = []
    for i in range(rooms):
        guests.append(
            {
                "room_guest": [
                    {
                        "firstname": str(form.get(f"guest_{i}_firstname") or contact["name"]).strip(),
                        "lastname": str(form.get(f"guest_{i}_lastname") or contact["last_name"]).strip(),
                        "mobile": str(form.get(f"guest_{i}_mobile") or contact["mobile"]).strip(),
                        "nationality": "IN",
                    }
                ]
            }
        )
    payload = {
        "booking_policy_id": str(form.get("booking_policy_id") or ""),
        "transaction_identifier": str(form.get("transaction_identifier") or ""),
        "contact_detail": contact,
        "guest": guests,
    }
    status, body = _api(request, "POST", "/api/hotels/prebook", payload)
    if status != 200:
        ctx = {
            "policy": {"booking_policy_id": payload["booking_policy_id"]},
            "rooms": rooms,
            "transaction_identifier": payload["transaction_identifier"],
            "contact": contact,
            "err": body.get("message"),
        }
        return _render(request, "hotels/guests.html", ctx)

    prebook = _data(body)
    _, elig = _api(request, "POST", "/api/hotels/wallet/check-eligibility", {"transaction_id": prebook.get("transaction_id")})
    return _render(request, "hotels/payment.html", {"prebook": prebook, "eligibility": _data(elig), "err": ""})


@app.post("/hotels/book/pay-wallet", response_class=HTMLResponse)
def book_pay_wallet(request: Request, transaction_id: str = Form("")):
    status, body = _api(request, "POST", "/api/hotels/wallet/payment", {"transaction_id": transaction_id})
    return _render(
        request,
        "hotels/confirmation.html",
        {"ok": status == 200, "result": _data(body), "message": body.get("message")},
    )


@app.post("/hotels/book/pay-gateway")
def book_pay_gateway(request: Request, transaction_id: str = Form("")):
    status, body = _api(request, "POST", "/api/hotels/confirm-booking", {"transaction_id": transaction_id})
    url = _data(body).get("payment_url")
    if status == 200 and url:
        return RedirectResponse(url=url, status_code=303)
    return _render(request, "hotels/confirmation.html", {"ok": False, "result": _data(body), "message": body.get("message")})


@app.get("/hotels/confirmation", response_class=HTMLResponse)
def hotels_confirmation(request: Request, booking_id: str = "", status: str = ""):
    return _render(
        request,
        "hotels/confirmation.html",
        {"ok": status == "confirmed", "result": {"booking_id": booking_id, "status": status}, "message": ""},
    )


@app.get("/bookings", response_class=HTMLResponse)
def bookings(request: Request):
    u = _current_user(request) or {}
    if u.get("type") != "company":
        return RedirectResponse(url="/", status_code=303)
    _, body = _api(request, "GET", "/api/company/bookings")
    _, rev = _api(request, "GET", "/api/company/revenue")
    return _render(request, "bookings.html", {"bookings": _data(body).get("bookings") or [], "revenue": _data(rev)})


@app.get("/bookings/{transaction_id}/voucher", response_class=PlainTextResponse)
def booking_voucher(request: Request, transaction_id: str):
    headers = {"Authorization": f"Bearer {request.session.get('token')}"}
    try:
        r = requests.get(_backend_url(f"/api/hotels/bookings/{quote(transaction_id)}/voucher"), headers=headers, timeout=30)
    except requests.RequestException:
        return PlainTextResponse("Backend is unavailable.", status_code=503)
    return PlainTextResponse(r.text, status_code=r.status_code)


# ------------------------------
# Admin
# ------------------------------

@app.get("/admin/login", response_class=HTMLResponse)
def admin_login_get(request: Request, next: str | None = None):
    return _render(request, "admin/login.html", {"next": next or "", "err": ""})


@app.post("/admin/login")
def admin_login_post(request: Request, username: str = Form(""), password: str = Form(""), next: str = Form("")):
    status, body = _api(request, "POST", "/api/owner/login", {"username": username.strip(), "password": password})
    if status != 200:
        return _render(request, "admin/login.html", {"next": next, "err": body.get("message") or "Login failed."})
    data = _data(body)
    admin = data.get("admin") or {}
    request.session["token"] = data.get("token")
    request.session["user_type"] = "admin"
    request.session["user_name"] = admin.get("name") or admin.get("username")
    request.session["user_id"] = admin.get("id")
    return RedirectResponse(url=_safe_next(next, "/admin"), status_code=303)


@app.get("/admin", response_class=HTMLResponse)
def admin_home(request: Request, status: str = "", page: int = 1, msg: str = "", err: str = ""):
    _, stats = _api(request, "GET", "/api/owner/dashboard/stats")
    _, companies = _api(request, "GET", "/api/owner/wallets", params={"status": status, "page": page, "limit": 20})
    data = _data(companies)
    return _render(
        request,
        "admin/companies.html",
        {
            "stats": _data(stats),
            "companies": data.get("companies") or [],
            "pagination": data.get("pagination") or {},
            "status": status,
            "msg": msg,
            "err": err,
        },
    )


@app.post("/admin/companies/{company_id}/verify")
def admin_verify(request: Request, company_id: str, action: str = Form("verify")):
    status, body = _api(request, "PUT", f"/api/owner/companies/{quote(company_id)}/verify", {"action": action})
    key = "msg" if status == 200 else "err"
    return RedirectResponse(url=f"/admin?{key}={quote(body.get('message') or '')}", status_code=303)


@app.post("/admin/companies/{company_id}/wallet")
def admin_wallet(request: Request, company_id: str, action: str = Form("add"), amount: str = Form("0"), reason: str = Form("")):
    payload = {"action": action, "amount": _to_number(amount), "reason": reason}
    status, body = _api(request, "POST", f"/api/owner/companies/{quote(company_id)}/wallet", payload)
    key = "msg" if status == 200 else "err"
    return RedirectResponse(url=f"/admin?{key}={quote(body.get('message') or '')}", status_code=303)


@app.get("/admin/config", response_class=HTMLResponse)
def admin_config(request: Request, msg: str = "", err: str = ""):
    _, cfg = _api(request, "GET", "/api/owner/config")
    _, mk = _api(request, "GET", "/api/owner/markups")
    return _render(
        request,
        "admin/config.html",
        {"config": _data(cfg).get("config") or {}, "markups": _data(mk).get("markups") or [], "msg": msg, "err": err},
    )


@app.post("/admin/config")
def admin_config_save(
    request: Request,
    markup_type: str = Form("percentage"),
    markup_value: str = Form("0"),
    service_type: str = Form("percentage"),
    service_value: str = Form("0"),
    processing_fee: str = Form("0"),
    cancel_type: str = Form("percentage"),
    cancel_value: str = Form("0"),
):
    payload = {
        "markup": {"type": markup_type, "value": _to_number(markup_value)},
        "service_charge": {"type": service_type, "value": _to_number(service_value)},
        "processing_fee": _to_number(processing_fee),
        "cancellation_charge": {"type": cancel_type, "value": _to_number(cancel_value)},
    }
    status, body = _api(request, "POST", "/api/owner/config", payload)
    key = "msg" if status == 200 else "err"
    return RedirectResponse(url=f"/admin/config?{key}={quote(body.get('message') or '')}", status_code=303)


@app.post("/admin/markups")
def admin_markup_create(
    request: Request,
    name: str = Form(""),
    type: str = Form("percentage"),
    value: str = Form("0"),
    hotel_id: str = Form(""),
    description: str = Form(""),
):
    payload = {
        "name": name,
        "type": type,
        "value": _to_number(value),
        "hotel_id": hotel_id.strip() or None,
        "description": description,
    }
    status, body = _api(request, "POST", "/api/owner/markups", payload)
    key = "msg" if status in (200, 201) else "err"
    return RedirectResponse(url=f"/admin/config?{key}={quote(body.get('message') or '')}", status_code=303)


@app.post("/admin/markups/{markup_id}/delete")
def admin_markup_delete(request: Request, markup_id: str):
    status, body = _api(request, "DELETE", f"/api/owner/markups/{quote(markup_id)}")
    key = "msg" if status == 200 else "err"
    return RedirectResponse(url=f"/admin/config?{key}={quote(body.get('message') or '')}", status_code=303)
