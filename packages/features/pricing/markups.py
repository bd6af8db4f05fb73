from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from packages.features.docstore import find_one, load_collection, locked, new_id, now_iso, save_collection, to_number
from packages.features.pricing.pricing import (
    PricingError,
    apply_charge,
    company_markup_amount,
    get_config,
    validate_charge,
)

logger = logging.getLogger(__name__)

MARKUPS = "markups"


class MarkupNotFound(PricingError):
    pass


def _clean_hotel_id(hotel_id: Any) -> Optional[str]:
    hid = str(hotel_id or "").strip()
    return hid or None


# ----- Markup rules -----

def list_markups(active_only: bool = False) -> List[Dict[str, Any]]:
    items = load_collection(MARKUPS)
    if active_only:
        items = [m for m in items if m.get("is_active")]
    items.sort(key=lambda m: str(m.get("created_at") or ""), reverse=True)
    return items


def get_markup(markup_id: str) -> Dict[str, Any]:
    markup = find_one(load_collection(MARKUPS), id=markup_id)
    if not markup:
        raise MarkupNotFound("Markup not found")
    return markup


def create_markup(data: Dict[str, Any], created_by: str) -> Dict[str, Any]:
    name = str(data.get("name") or "").strip()
    if not name:
        raise PricingError("Markup name is required")
    rule = validate_charge(data, "Markup")
    hotel_id = _clean_hotel_id(data.get("hotel_id"))
    with locked():
        items = load_collection(MARKUPS)
        if find_one(items, hotel_id=hotel_id):
            target = f"hotel {hotel_id}" if hotel_id else "global default"
            raise PricingError(f"A markup already exists for {target}")
        now = now_iso()
        markup = {
            "id": new_id("mkp"),
            "name": name,
            "description": str(data.get("description") or "").strip(),
            "type": rule["type"],
            "value": rule["value"],
            "hotel_id": hotel_id,
            "is_active": bool(data.get("is_active", True)),
            "created_by": created_by,
            "created_at": now,
            "updated_at": now,
        }
        items.append(markup)
        save_collection(MARKUPS, items)
    logger.info("Markup %s created for %s", markup["id"], hotel_id or "all hotels")
    return markup


def update_markup(markup_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    with locked():
        items = load_collection(MARKUPS)
        markup = find_one(items, id=markup_id)
        if not markup:
            raise MarkupNotFound("Markup not found")
        if data.get("type") is not None or data.get("value") is not None:
            rule = validate_charge(
                {"type": data.get("type") or markup["type"], "value": data.get("value", markup["value"])},
                "Markup",
            )
            markup.update(rule)
        if data.get("name") is not None:
            name = str(data["name"]).strip()
            if not name:
                raise PricingError("Markup name cannot be empty")
            markup["name"] = name
        if data.get("description") is not None:
            markup["description"] = str(data["description"]).strip()
        if data.get("is_active") is not None:
            markup["is_active"] = bool(data["is_active"])
        if "hotel_id" in data:
            hotel_id = _clean_hotel_id(data.get("hotel_id"))
            clash = find_one(items, hotel_id=hotel_id)
            if clash and clash["id"] != markup_id:
                raise PricingError("A markup already exists for this hotel")
            markup["hotel_id"] = hotel_id
        markup["updated_at"] = now_iso()
        save_collection(MARKUPS, items)
    return markup


def delete_markup(markup_id: str) -> None:
    with locked():
        items = load_collection(MARKUPS)
        markup = find_one(items, id=markup_id)
        if not markup:
            raise MarkupNotFound("Markup not found")
        items.remove(markup)
        save_collection(MARKUPS, items)
    logger.info("Markup %s deleted", markup_id)


def markup_for_hotel(hotel_id: Any = None) -> Optional[Dict[str, Any]]:
    """Active rule for the hotel, else the active global rule."""
    active = [m for m in load_collection(MARKUPS) if m.get("is_active")]
    hid = _clean_hotel_id(hotel_id)
    if hid:
        rule = find_one(active, hotel_id=hid)
        if rule:
            return rule
    return find_one(active, hotel_id=None)


def _effective_markup(hotel_id: Any = None) -> Optional[Dict[str, Any]]:
    rule = markup_for_hotel(hotel_id)
    if rule:
        return {"id": rule["id"], "name": rule["name"], "type": rule["type"], "value": rule["value"]}
    config = get_config() or {}
    if config.get("markup"):
        return {"id": "config", "name": "Global configuration", **config["markup"]}
    return None


def calculate_markup(amount: Any, hotel_id: Any = None, strict: bool = True) -> Dict[str, Any]:
    amount = to_number(amount)
    if amount <= 0:
        raise PricingError("Valid amount is required")
    markup = _effective_markup(hotel_id)
    if markup is None:
        if strict:
            raise MarkupNotFound("No markup configuration found")
        markup = {"id": None, "name": None, "type": "fixed", "value": 0.0}
    markup_amount = round(apply_charge(amount, markup["type"], to_number(markup["value"])), 2)
    return {
        "original_amount": amount,
        "markup": {**markup, "amount": markup_amount},
        "final_amount": round(amount + markup_amount, 2),
    }


# ----- Booking pricing -----

def build_pricing(
    base_amount: Any,
    currency: str = "INR",
    hotel_id: Any = None,
    company: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Total an agent pays for a package: supplier rate + markup + fees + agency margin."""
    base = round(to_number(base_amount), 2)
    if base <= 0:
        raise PricingError("Package price is missing from the supplier response")
    config = get_config() or {}
    calc = calculate_markup(base, hotel_id=hotel_id, strict=False)
    service = config.get("service_charge") or {}
    service_amount = (
        round(apply_charge(base, service["type"], to_number(service["value"])), 2) if service else 0.0
    )
    processing_fee = round(to_number(config.get("processing_fee")), 2)
    agency_amount = round(company_markup_amount(company, base), 2)
    total = round(base + calc["markup"]["amount"] + service_amount + processing_fee + agency_amount, 2)
    return {
        "currency": currency or "INR",
        "base_amount": base,
        "markup_amount": calc["markup"]["amount"],
        "markup_details": calc["markup"],
        "service_component": service_amount,
        "processing_fee": processing_fee,
        "company_markup_amount": agency_amount,
        "total_chargeable_amount": total,
    }


def cancellation_charge(amount: Any) -> float:
    config = get_config() or {}
    rule = config.get("cancellation_charge")
    if not rule:
        return 0.0
    return round(apply_charge(to_number(amount), rule["type"], to_number(rule["value"])), 2)


def price_package(package: Dict[str, Any], hotel_id: Any, company: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Annotate one supplier package with the agent-facing price."""
    rate = package.get("chargeable_rate")
    if rate is None:
        rate = package.get("base_amount") or package.get("room_rate")
    out = dict(package)
    try:
        pricing = build_pricing(rate, package.get("currency") or "INR", hotel_id, company)
    except PricingError:
        return out
    out["supplier_rate"] = pricing["base_amount"]
    out["pricing"] = pricing
    out["chargeable_rate"] = pricing["total_chargeable_amount"]
    return out
