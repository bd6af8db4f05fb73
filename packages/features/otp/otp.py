from __future__ import annotations

import hmac
import logging
import os
import secrets
from datetime import datetime, timedelta
from typing import Optional

from packages.features.docstore import load_collection, locked, now_iso, parse_iso, save_collection

logger = logging.getLogger(__name__)

OTPS = "otps"
PURPOSES = ("signup", "reset_password")


def _ttl_seconds() -> int:
    try:
        return max(30, int(os.getenv("OTP_TTL_SECONDS") or 300))
    except ValueError:
        return 300


def _generate_code() -> str:
    # Fixed code for demo/staging environments without an SMS provider.
    fixed = (os.getenv("OTP_FIXED_CODE") or "").strip()
    if fixed:
        return fixed
    return f"{secrets.randbelow(1_000_000):06d}"


def issue_otp(phone: str, purpose: str) -> str:
    if purpose not in PURPOSES:
        raise ValueError(f"Unknown OTP purpose: {purpose}")
    code = _generate_code()
    expires_at = (datetime.utcnow() + timedelta(seconds=_ttl_seconds())).isoformat() + "Z"
    with locked():
        items = [o for o in load_collection(OTPS) if not (o.get("phone") == phone and o.get("purpose") == purpose)]
        items.append({"phone": phone, "purpose": purpose, "code": code, "expires_at": expires_at, "created_at": now_iso()})
        save_collection(OTPS, items)
    logger.info("OTP issued for %s (%s)", phone, purpose)
    return code


def verify_otp(phone: str, purpose: str, code: str, consume: bool = True, now: Optional[datetime] = None) -> bool:
    code = str(code or "").strip()
    if not phone or not code:
        return False
    now = now or datetime.utcnow()
    with locked():
        items = load_collection(OTPS)
        entry = next((o for o in items if o.get("phone") == phone and o.get("purpose") == purpose), None)
        if not entry:
            return False
        expires = parse_iso(str(entry.get("expires_at") or ""))
        if not expires or expires < now:
            items.remove(entry)
            save_collection(OTPS, items)
            return False
        if not hmac.compare_digest(str(entry.get("code") or ""), code):
            return False
        if consume:
            items.remove(entry)
            save_collection(OTPS, items)
    return True
