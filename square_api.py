"""
Square REST client

Thin wrapper over the Square Connect v2 endpoints the store uses: payment
links, orders, payments, catalog, inventory and locations.
"""
import os
import time
import uuid
from typing import Any, Dict, List, Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)

SQUARE_VERSION = "2024-01-18"
PAYMENTS_SQUARE_VERSION = "2025-01-23"
PRODUCTION_URL = "https://connect.squareup.com"
SANDBOX_URL = "https://connect.squareupsandbox.com"
DEFAULT_LOCATION_ID = "L09Y3ZCB23S11"

# payment verification and direct charges
VERIFY_TIMEOUT = 20.0
DEFAULT_TIMEOUT = 30.0
INVENTORY_BATCH_SIZE = 100


class SquareError(Exception):
    def __init__(self, detail: str, status_code: int = 400):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class SquareTimeout(SquareError):
    def __init__(self, seconds: float):
        super().__init__(f"Square API request timed out after {int(seconds)} seconds", status_code=504)


def api_url(environment: str) -> str:
    return PRODUCTION_URL if environment == "production" else SANDBOX_URL


def to_cents(amount: Any) -> int:
    return int(round(float(amount) * 100))


def first_error_detail(payload: Dict[str, Any], default: str) -> str:
    errors = payload.get("errors") or []
    if errors and errors[0].get("detail"):
        return errors[0]["detail"]
    return default


class SquareClient:
    def __init__(self, access_token: str, environment: str = "sandbox", transport: Optional[httpx.BaseTransport] = None):
        if not access_token or not access_token.strip():
            raise SquareError("Square Access Token is not configured.", status_code=500)
        self.access_token = access_token.strip()
        self.environment = environment
        self.base_url = api_url(environment)
        self._transport = transport

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None,
                 timeout: float = DEFAULT_TIMEOUT, square_version: str = SQUARE_VERSION,
                 error_message: str = "Square request failed") -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
            "Square-Version": square_version,
        }
        started = time.monotonic()
        try:
            with httpx.Client(base_url=self.base_url, timeout=timeout, transport=self._transport) as client:
                response = client.request(method, path, json=json, headers=headers)
        except httpx.TimeoutException:
            logger.error("square.timeout", path=path, timeout=timeout)
            raise SquareTimeout(timeout)

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info("square.response", method=method, path=path, status_code=response.status_code,
                    duration_ms=duration_ms, environment=self.environment)

        try:
            payload = response.json()
        except ValueError:
            payload = {"errors": [{"detail": response.text[:200]}]}

        if response.is_error:
            logger.error("square.error", path=path, status_code=response.status_code, errors=payload.get("errors"))
            raise SquareError(first_error_detail(payload, error_message), status_code=400)
        return payload

    # Checkout

    def create_payment_link(self, line_items: List[Dict[str, Any]], location_id: str, redirect_url: str) -> Dict[str, Any]:
        body = {
            "idempotency_key": str(uuid.uuid4()),
            "checkout_options": {
                "redirect_url": redirect_url,
                "ask_for_shipping_address": False,
            },
            "order": {
                "location_id": location_id,
                "line_items": line_items,
            },
        }
        result = self._request("POST", "/v2/online-checkout/payment-links", json=body,
                               error_message="Failed to create checkout")
        return result["payment_link"]

    def retrieve_order(self, square_order_id: str) -> Dict[str, Any]:
        result = self._request("GET", f"/v2/orders/{square_order_id}", timeout=VERIFY_TIMEOUT,
                               error_message="Failed to fetch order from Square")
        return result["order"]

    def create_payment(self, source_id: str, amount: Any, currency: str, location_id: str) -> Dict[str, Any]:
        body = {
            "idempotency_key": str(uuid.uuid4()),
            "source_id": source_id,
            "amount_money": {"amount": to_cents(amount), "currency": currency or "USD"},
            "location_id": location_id,
        }
        result = self._request("POST", "/v2/payments", json=body, timeout=VERIFY_TIMEOUT,
                               square_version=PAYMENTS_SQUARE_VERSION, error_message="Payment failed")
        return result["payment"]

    # Inventory

    def list_catalog_items(self) -> List[Dict[str, Any]]:
        result = self._request("GET", "/v2/catalog/list?types=ITEM", error_message="Square catalog API error")
        return result.get("objects") or []

    def batch_retrieve_counts(self, catalog_object_ids: List[str]) -> List[Dict[str, Any]]:
        if not catalog_object_ids:
            return []
        try:
            result = self._request("POST", "/v2/inventory/counts/batch-retrieve",
                                   json={"catalog_object_ids": catalog_object_ids})
        except SquareError as e:
            # Missing counts are treated as zero stock
            logger.warning("square.counts_unavailable", detail=e.detail)
            return []
        return result.get("counts") or []

    def first_location_id(self) -> str:
        result = self._request("GET", "/v2/locations", error_message="Square locations API error")
        locations = result.get("locations") or []
        if not locations or not locations[0].get("id"):
            raise SquareError("No Square location found", status_code=500)
        return locations[0]["id"]

    def batch_change_inventory(self, changes: List[Dict[str, Any]]) -> int:
        """Send inventory changes in batches; returns how many changes Square accepted"""
        synced = 0
        for start in range(0, len(changes), INVENTORY_BATCH_SIZE):
            batch = changes[start:start + INVENTORY_BATCH_SIZE]
            try:
                self._request("POST", "/v2/inventory/changes/batch-create",
                              json={"idempotency_key": str(uuid.uuid4()), "changes": batch})
            except SquareError as e:
                logger.error("square.batch_failed", start=start, size=len(batch), detail=e.detail)
                continue
            synced += len(batch)
        return synced


def resolve_access_token(settings: Optional[Dict[str, Any]] = None) -> Optional[str]:
    token = os.getenv("SQUARE_ACCESS_TOKEN")
    if not token and settings:
        token = settings.get("square_api_key")
    return token.strip() if token else None


def resolve_location_id(requested: Optional[str] = None, settings: Optional[Dict[str, Any]] = None,
                        prefer_configured: bool = False) -> str:
    """Hosted checkout honours the requested location; direct charges pin SQUARE_LOCATION_ID when set"""
    configured = os.getenv("SQUARE_LOCATION_ID")
    if prefer_configured and configured:
        return configured
    return (
        requested
        or configured
        or (settings or {}).get("square_location_id")
        or DEFAULT_LOCATION_ID
    )


def get_client(settings: Optional[Dict[str, Any]] = None) -> SquareClient:
    token = resolve_access_token(settings)
    if not token:
        raise SquareError("Square Access Token is not configured.", status_code=500)
    return SquareClient(token, os.getenv("SQUARE_ENVIRONMENT", "sandbox"))
