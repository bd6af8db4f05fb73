from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# ------------------------------------------------------------
# Load .env from PROJECT ROOT
# ------------------------------------------------------------
load_dotenv(dotenv_path=Path(__file__).resolve().parents[2] / ".env")

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from packages.features.docstore import data_dir
from services.gateway.errors import install_error_handlers
from services.gateway.routers import (
    auth_router,
    company_router,
    employee_router,
    hotels_router,
    owner_router,
)
from services.hotels.supplier.client import supplier_config_missing
from services.payments.gateway.service import payment_config_missing

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

BUILD_ID = "hotel-portal-api-v1"

app = FastAPI(title="B2B Hotel Portal (API)", version="1.0.0")

_origins = [o.strip() for o in (os.getenv("CLIENT_URL") or "http://localhost:3000").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)

# Routers
app.include_router(auth_router)
app.include_router(company_router)
app.include_router(employee_router)
app.include_router(owner_router)
app.include_router(hotels_router)


@app.on_event("startup")
async def _startup_check():
    # Missing credentials are reported, not fatal; /health shows the same state.
    if supplier_config_missing():
        logger.warning("Hotel supplier not configured. Set HOTEL_APIURL and HOTEL_APIAUTH.")
    if payment_config_missing():
        logger.warning(
            "Payment gateway not configured. Set PAYMENT_BASE_URL, PAYMENT_CLIENT_ID and PAYMENT_CLIENT_SECRET."
        )
    if not (os.getenv("JWT_SECRET") or "").strip():
        logger.warning("JWT_SECRET is not set; tokens are signed with a development secret.")
    logger.info("Data directory: %s", data_dir())


@app.get("/__build")
async def build():
    return {"build": BUILD_ID}


@app.get("/health")
async def health():
    supplier_ok = not supplier_config_missing()
    return {
        "ok": supplier_ok,
        "build": BUILD_ID,
        "supplier_configured": supplier_ok,
        "payments_configured": not payment_config_missing(),
    }
