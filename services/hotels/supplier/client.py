from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class SupplierError(ValueError):
    def __init__(self, message: str, code: Any = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class HotelSupplierClient:
    def __init__(
        self,
        base_url: str,
        auth_key: str,
        timeout_s: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.auth_key = auth_key
        self.timeout = timeout_s
        self.transport = transport

    async def post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        body = dict(payload or {})
        body["authentication"] = {"authorization_key": self.auth_key}
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        started = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                r = await client.post(url, headers=headers, json=body)
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPStatusError as e:
            logger.warning("Supplier %s returned HTTP %s", endpoint, e.response.status_code)
            raise SupplierError(
                _error_message(e.response) or f"Supplier request failed ({e.response.status_code})",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Supplier %s unreachable: %s", endpoint, e)
            raise SupplierError(f"Supplier request failed: {e}") from e
        except ValueError as e:
            raise SupplierError("Supplier returned an invalid response") from e
        finally:
            logger.info("Supplier %s took %.0f ms", endpoint, (time.monotonic() - started) * 1000)

        if not isinstance(data, dict):
            raise SupplierError("Supplier returned an invalid response")
        if data.get("errorCode") or data.get("errorMsg"):
            raise SupplierError(str(data.get("errorMsg") or "Supplier error"), code=data.get("errorCode"))
        return data

    async def autosuggest(self, query: str, locale: str = "en-US") -> Dict[str, Any]:
        return await self.post("/autosuggest", {"autosuggest": {"query": query, "locale": locale}})

    async def search(self, search: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post("/search", {"search": search})

    async def packages(self, search: Dict[str, Any], hotel_id: str, transaction_identifier: str = "") -> Dict[str, Any]:
        body: Dict[str, Any] = {"search": dict(search, id=hotel_id)}
        if transaction_identifier:
            body["transaction_identifier"] = transaction_identifier
        return await self.post("/search", body)

    async def booking_policy(
        self,
        search: Dict[str, Any],
        booking_key: str,
        hotel_id: str,
        transaction_identifier: str,
    ) -> Dict[str, Any]:
        return await self.post(
            "/bookingpolicy",
            {
                "bookingpolicy": {
                    "search": search,
                    "package": {"booking_key": booking_key},
                    "hotel_id": hotel_id,
                },
                "transaction_identifier": transaction_identifier,
            },
        )

    async def prebook(self, payload: Dict[str, Any], transaction_identifier: str) -> Dict[str, Any]:
        return await self.post("/prebook", {"prebook": payload, "transaction_identifier": transaction_identifier})

    async def book(self, booking_id: str) -> Dict[str, Any]:
        return await self.post("/book", {"book": {"booking_id": booking_id}})


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return ""
    if isinstance(data, dict):
        return str(data.get("errorMsg") or data.get("message") or "")
    return ""


def supplier_config_missing() -> bool:
    return not (os.getenv("HOTEL_APIURL") or "").strip() or not (os.getenv("HOTEL_APIAUTH") or "").strip()


def get_client_from_env() -> Optional[HotelSupplierClient]:
    """Create a HotelSupplierClient from HOTEL_APIURL / HOTEL_APIAUTH.

    Returns None when either is missing so callers can answer 503 instead of
    failing on the first request.
    """
    base = (os.getenv("HOTEL_APIURL") or "").strip()
    key = (os.getenv("HOTEL_APIAUTH") or "").strip()
    if not base or not key:
        return None
    try:
        timeout = float(os.getenv("HOTEL_API_TIMEOUT") or 30)
    except ValueError:
        timeout = 30.0
    return HotelSupplierClient(base_url=base, auth_key=key, timeout_s=timeout)
