from __future__ import annotations

from typing import Any, Dict

from packages.features.docstore import now_iso

from packages.features.bookings.bookings import STATUS_LABELS


def _hotel_name(tx: Dict[str, Any]) -> str:
    hotel = tx.get("hotel") or {}
    return hotel.get("originalName") or hotel.get("name") or "N/A"


def _guest_name(tx: Dict[str, Any]) -> str:
    contact = tx.get("contact_detail") or {}
    name = f"{contact.get('name') or ''} {contact.get('last_name') or ''}".strip()
    return name or "N/A"


def generate_invoice(tx: Dict[str, Any]) -> bytes:
    pricing = tx.get("pricing") or {}
    currency = pricing.get("currency") or "INR"
    lines = [
        "INVOICE",
        "",
        f"Invoice for booking: {tx.get('booking_id') or tx.get('id')}",
        f"Transaction: {tx.get('id')}",
        f"Hotel: {_hotel_name(tx)}",
        f"Guest: {_guest_name(tx)}",
        "",
        f"Room rate:       {currency} {pricing.get('base_amount', 0)}",
        f"Markup:          {currency} {pricing.get('markup_amount', 0)}",
        f"Service charge:  {currency} {pricing.get('service_component', 0)}",
        f"Processing fee:  {currency} {pricing.get('processing_fee', 0)}",
        f"Agency margin:   {currency} {pricing.get('company_markup_amount', 0)}",
        f"Amount:          {currency} {pricing.get('total_chargeable_amount', 0)}",
        f"Paid via:        {tx.get('payment_method') or 'N/A'}",
        "",
        f"Generated on: {now_iso()}",
    ]
    return ("\n".join(lines) + "\n").encode("utf-8")


def generate_voucher(tx: Dict[str, Any]) -> bytes:
    search = tx.get("search") or {}
    contact = tx.get("contact_detail") or {}
    hotel = tx.get("hotel") or {}
    location = hotel.get("location") or {}
    address = ", ".join(
        x for x in (location.get("address"), location.get("city"), location.get("country")) if x
    )
    lines = [
        "HOTEL VOUCHER",
        "",
        f"Booking ID: {tx.get('booking_id')}",
        f"Status: {STATUS_LABELS.get(tx.get('status'), 'unknown')}",
        f"Hotel: {_hotel_name(tx)}",
        f"Address: {address or 'Location not available'}",
        f"Check-in: {search.get('check_in_date') or 'N/A'}",
        f"Check-out: {search.get('check_out_date') or 'N/A'}",
        f"Lead guest: {_guest_name(tx)}",
        f"Contact: {contact.get('mobile') or 'N/A'} / {contact.get('email') or 'N/A'}",
        f"Rooms: {len(tx.get('guest') or []) or 1}",
        "",
        f"Generated on: {now_iso()}",
    ]
    return ("\n".join(lines) + "\n").encode("utf-8")
