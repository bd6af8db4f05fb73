from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from packages.features.accounts.accounts import AccountNotFound, get_company, update_company
from packages.features.docstore import load_document, locked, now_iso, save_document, to_number

logger = logging.getLogger(__name__)

CONFIG_DOC = "pricing_config"
CHARGE_TYPES = ("percentage", "fixed")
CHARGE_FIELDS = ("markup", "service_charge", "cancellation_charge")


class PricingError(ValueError):
    pass


# ----- Arithmetic -----

def apply_charge(amount: float, charge_type: str, value: float) -> float:
    """Charge added on top of `amount`: a percentage of it, or a flat value."""
    if charge_type == "percentage":
        return amount * value / 100
    if charge_type == "fixed":
        return value
    raise PricingError(f"Unknown charge type: {charge_type}")


def validate_charge(rule: Any, label: str = "markup") -> Dict[str, Any]:
    if not isinstance(rule, dict):
        raise PricingError(f"{label} must be an object with type and value")
    charge_type = str(rule.get("type") or "").strip().lower()
    if charge_type not in CHARGE_TYPES:
        raise PricingError(f'{label} type must be either "percentage" or "fixed"')
    raw = rule.get("value")
    if raw is None or raw == "" or isinstance(raw, bool):
        raise PricingError(f"{label} value is required")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise PricingError(f"{label} value must be a number")
    if charge_type == "percentage" and not 0 <= value <= 100:
        raise PricingError(f"{label} percentage must be between 0 and 100")
    if charge_type == "fixed" and value < 0:
        raise PricingError(f"{label} fixed value must be greater than or equal to 0")
    return {"type": charge_type, "value": value}


def _validate_fee(raw: Any) -> float:
    if raw is None or raw == "" or isinstance(raw, bool):
        raise PricingError("processing_fee is required")
    try:
        fee = float(raw)
    except (TypeError, ValueError):
        raise PricingError("processing_fee must be a number")
    if fee < 0:
        raise PricingError("processing_fee must be greater than or equal to 0")
    return fee


# ----- Global config -----

def get_config() -> Optional[Dict[str, Any]]:
    return load_document(CONFIG_DOC)


def create_config(data: Dict[str, Any], created_by: str = "") -> Dict[str, Any]:
    missing = [f for f in CHARGE_FIELDS + ("processing_fee",) if data.get(f) is None]
    if missing:
        raise PricingError("All fields are required: markup, service_charge, processing_fee, cancellation_charge")
    config = {f: validate_charge(data[f], f) for f in CHARGE_FIELDS}
    config["processing_fee"] = _validate_fee(data["processing_fee"])
    # A second create replaces the values of the single config document.
    with locked():
        existing = get_config() or {}
        now = now_iso()
        config.update(
            {
                "created_by": existing.get("created_by") or created_by,
                "created_at": existing.get("created_at") or now,
                "updated_by": created_by,
                "updated_at": now,
            }
        )
        save_document(CONFIG_DOC, config)
    logger.info("Pricing config written by %s", created_by or "unknown")
    return config


def update_config(data: Dict[str, Any], updated_by: str = "") -> Dict[str, Any]:
    with locked():
        config = get_config()
        if config is None:
            raise PricingError("Configuration not found. Create it first.")
        changed = False
        for f in CHARGE_FIELDS:
            if data.get(f) is not None:
                merged = dict(config.get(f) or {})
                merged.update({k: v for k, v in data[f].items() if v is not None} if isinstance(data[f], dict) else {})
                config[f] = validate_charge(merged, f)
                changed = True
        if data.get("processing_fee") is not None:
            config["processing_fee"] = _validate_fee(data["processing_fee"])
            changed = True
        if not changed:
            raise PricingError("No configuration fields to update")
        config["updated_by"] = updated_by
        config["updated_at"] = now_iso()
        save_document(CONFIG_DOC, config)
    logger.info("Pricing config updated by %s", updated_by or "unknown")
    return config


# ----- Company markup -----

def validate_company_markup(data: Dict[str, Any]) -> Dict[str, Any]:
    rule = validate_charge(data, "Markup")
    is_active = data.get("is_active")
    rule["is_active"] = True if is_active is None else bool(is_active)
    return rule


def set_company_markup(company_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    rule = validate_company_markup(data)
    company = update_company(company_id, {"markup": rule})
    logger.info("Company %s markup set to %s %s", company_id, rule["type"], rule["value"])
    return {"id": company["id"], "name": company.get("name"), "markup": company["markup"]}


def get_company_markup(company_id: str) -> Dict[str, Any]:
    company = get_company(company_id)
    if not company:
        raise AccountNotFound("Company not found")
    markup = company.get("markup") or {"type": "percentage", "value": 0, "is_active": False}
    return {"id": company["id"], "name": company.get("name"), "markup": markup}


def toggle_company_markup(company_id: str, is_active: bool) -> Dict[str, Any]:
    current = get_company_markup(company_id)["markup"]
    current = dict(current)
    current["is_active"] = bool(is_active)
    company = update_company(company_id, {"markup": current})
    return {"id": company["id"], "name": company.get("name"), "markup": company["markup"]}


def company_markup_amount(company: Optional[Dict[str, Any]], amount: float) -> float:
    markup = (company or {}).get("markup") or {}
    if not markup.get("is_active"):
        return 0.0
    try:
        return apply_charge(amount, str(markup.get("type") or ""), to_number(markup.get("value")))
    except PricingError:
        return 0.0
