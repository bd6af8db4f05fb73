from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

MIN_PER_PAGE = 10
MAX_PER_PAGE = 50
MAX_REGION_IDS = 50
MIN_QUERY_LENGTH = 3


class PaginationError(ValueError):
    pass


def _safe_get(obj: Any, path: List[Any], default=None):
    cur = obj
    for p in path:
        try:
            if isinstance(p, int):
                cur = cur[p]
            else:
                cur = cur.get(p)
        except (AttributeError, IndexError, KeyError, TypeError):
            return default
        if cur is None:
            return default
    return cur


def _to_float(v: Any) -> Optional[float]:
    try:
        if v is None or v == "":
            return None
        return float(v)
    except (TypeError, ValueError):
        return None


# ----- Autosuggest -----

def flatten_suggestions(resp: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Cities, then hotels, then points of interest, each with a display name."""
    data = _safe_get(resp, ["data"], {}) or {}
    tx_ident = resp.get("transaction_identifier") or data.get("transaction_identifier")
    out: List[Dict[str, Any]] = []

    for item in _safe_get(data, ["city", "results"], []) or []:
        row = dict(item)
        row["kind"] = "city"
        row["transaction_identifier"] = tx_ident
        row["display_name"] = f"{row.get('name')} | ({row.get('hotelCount', 0)})"
        if isinstance(row.get("id"), list):
            # Large regions carry hundreds of ids; the supplier rejects long lists.
            row["id"] = row["id"][:MAX_REGION_IDS]
        out.append(row)

    for item in _safe_get(data, ["hotel", "results"], []) or []:
        row = dict(item)
        row["kind"] = "hotel"
        row["transaction_identifier"] = tx_ident
        row["display_name"] = str(row.get("name") or "")
        out.append(row)

    for item in _safe_get(data, ["poi", "results"], []) or []:
        row = dict(item)
        row["kind"] = "poi"
        row["transaction_identifier"] = tx_ident
        row["display_name"] = f"{row.get('name')} | ({row.get('hotelCount', 0)})"
        out.append(row)

    return out


def normalize_paging(page: Any = 1, per_page: Any = MIN_PER_PAGE, current_items_count: Any = 0) -> Dict[str, int]:
    try:
        page = int(page or 1)
    except (TypeError, ValueError):
        page = 1
    try:
        per_page = int(per_page or 0)
    except (TypeError, ValueError):
        per_page = 0
    try:
        current_items_count = int(current_items_count or 0)
    except (TypeError, ValueError):
        current_items_count = 0

    if page < 1:
        page = 1
    if per_page < MIN_PER_PAGE:
        per_page = MIN_PER_PAGE
    if per_page > MAX_PER_PAGE:
        raise PaginationError(f"perPage should not be greater than {MAX_PER_PAGE}")
    if current_items_count < 0:
        current_items_count = 0
    return {"page": page, "per_page": per_page, "current_items_count": current_items_count}


def empty_page(page: int, per_page: int) -> Dict[str, Any]:
    return {
        "data": [],
        "status": "complete",
        "current_items_count": 0,
        "total_items_count": 0,
        "page": page,
        "per_page": per_page,
        "total_pages": 0,
    }


def paginate(items: List[Dict[str, Any]], page: int, per_page: int, current_items_count: int) -> Dict[str, Any]:
    """Window over the suggestion list.

    `current_items_count` is how many rows the caller already holds; the
    window starts there. A page past the end yields an empty, complete page.
    """
    total = len(items)
    total_pages = math.ceil(total / per_page) if total else 0
    if page > total_pages:
        return empty_page(page, per_page)

    upper = min(current_items_count + per_page, total + 1)
    return {
        "data": items[current_items_count:upper],
        "status": "complete" if page == total_pages else "in-progress",
        "current_items_count": min(page * per_page, total),
        "total_items_count": total,
        "page": page,
        "per_page": per_page,
        "total_pages": total_pages,
    }


# ----- Search -----

def hotel_list(resp: Dict[str, Any]) -> List[Dict[str, Any]]:
    for path in (["data", "hotels"], ["data", "results"], ["hotels"]):
        rows = _safe_get(resp, path)
        if isinstance(rows, list):
            return [r for r in rows if isinstance(r, dict)]
    return []


def hotel_rate(hotel: Dict[str, Any]) -> Optional[float]:
    for path in (["rate", "chargeable_rate"], ["chargeable_rate"], ["min_rate"], ["price"]):
        v = _to_float(_safe_get(hotel, path))
        if v is not None:
            return v
    return None


def normalize_hotel(hotel: Dict[str, Any]) -> Dict[str, Any]:
    location = _safe_get(hotel, ["location"], {}) or {}
    return {
        "id": hotel.get("id") or hotel.get("hotelId"),
        "name": hotel.get("originalName") or hotel.get("name") or "",
        "rating": _to_float(hotel.get("starRating") or hotel.get("rating")),
        "address": location.get("address") or "",
        "city": location.get("city") or "",
        "image": _safe_get(hotel, ["images", 0, "url"]) or hotel.get("heroImage") or "",
        "rate": hotel_rate(hotel),
        "currency": _safe_get(hotel, ["rate", "currency"]) or hotel.get("currency") or "INR",
    }


def price_range(hotels: List[Dict[str, Any]]) -> Dict[str, Optional[float]]:
    rates = [r for r in (hotel_rate(h) for h in hotels) if r is not None]
    if not rates:
        return {"min": None, "max": None}
    return {"min": min(rates), "max": max(rates)}


def package_list(resp: Dict[str, Any]) -> List[Dict[str, Any]]:
    for path in (["data", "packages"], ["data", "hotel", "packages"], ["packages"]):
        rows = _safe_get(resp, path)
        if isinstance(rows, list):
            return [r for r in rows if isinstance(r, dict)]
    return []


def prebook_amount(resp: Dict[str, Any]) -> Optional[float]:
    for path in (
        ["data", "package", "chargeable_rate"],
        ["data", "pricing", "total_chargeable_amount"],
        ["data", "chargeable_rate"],
    ):
        v = _to_float(_safe_get(resp, path))
        if v is not None:
            return v
    return None
