"""
Checkout, payment verification and inventory reconciliation

Flow for hosted checkout:
  create_checkout  -> Pending order + Square payment link
  finalize_order   -> verify the Square order is paid, move to Processing,
                      decrement per-size inventory, update customer aggregates,
                      email the order confirmation

process_payment is the direct card flow: check the amount, charge, then record
the order.
"""
import random
import re
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import structlog

import mailer
import square_api
from database import db, create_document, now_iso
from schemas import Order, OrderDetails
from store_settings import load_settings

logger = structlog.get_logger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PAID_STATES = ("OPEN", "COMPLETED")
PRICE_TOLERANCE = 0.01


class CheckoutError(Exception):
    def __init__(self, detail: str, status_code: int = 400):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


def new_order_id() -> str:
    return f"#ORD-{int(time.time() * 1000)}-{random.randint(0, 999)}"


def today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def validate_contact(details: OrderDetails) -> None:
    if not details.customer_email or not EMAIL_RE.match(details.customer_email):
        raise CheckoutError("Please enter a valid email address")
    if not details.customer_name or not details.customer_name.strip():
        raise CheckoutError("Please enter your full name")


def validate_prices(details: OrderDetails) -> None:
    """Reject the order when a submitted price differs from the catalog price"""
    product_ids = [item.product_id for item in details.items]
    products = {
        p["id"]: p
        for p in db["product"].find({"id": {"$in": product_ids}, "is_deleted": {"$ne": True}})
    }
    for item in details.items:
        product = products.get(item.product_id)
        if product is None:
            raise CheckoutError(f"Product {item.product_id} not found", status_code=404)
        db_price = float(product.get("price", 0))
        if abs(item.price - db_price) > PRICE_TOLERANCE:
            logger.error("checkout.price_mismatch", title=item.title, client_price=item.price, db_price=db_price)
            raise CheckoutError(f'Price mismatch detected for "{item.title}". Please refresh and try again.')


def order_total(details: OrderDetails) -> float:
    subtotal = sum(item.price * item.quantity for item in details.items)
    return round(subtotal + details.shipping_cost + details.tax_amount, 2)


def validate_amount(details: OrderDetails, amount: Optional[float]) -> None:
    """Reject a submitted total that does not match items plus shipping and tax"""
    if amount is None:
        return
    expected = order_total(details)
    if abs(float(amount) - expected) > PRICE_TOLERANCE:
        logger.error("checkout.total_mismatch", client_total=amount, expected=expected)
        raise CheckoutError(f"Order total mismatch: expected {expected:.2f}. Please refresh and try again.")


def claim_order_id(details: OrderDetails) -> str:
    """Server-generated id unless the client supplied one that is not taken yet"""
    if not details.id:
        return new_order_id()
    if db["order"].find_one({"id": details.id}, {"_id": 1}):
        raise CheckoutError(f"Order {details.id} already exists", status_code=409)
    return details.id


def build_order(details: OrderDetails, order_id: str, square_order_id: Optional[str] = None) -> Order:
    return Order(
        id=order_id,
        customer_name=details.customer_name.strip(),
        customer_email=details.customer_email.strip().lower(),
        date=today(),
        items=[item.model_dump(exclude={"variant_id"}) for item in details.items],
        total=order_total(details),
        shipping_cost=details.shipping_cost,
        item_cost=details.item_cost,
        tax_amount=details.tax_amount,
        status="Pending",
        tracking_number="Pending",
        square_order_id=square_order_id,
    )


def square_line_items(details: OrderDetails) -> List[Dict[str, Any]]:
    return [
        {
            "name": f"{item.title} ({item.size})" if item.size else item.title,
            "quantity": str(item.quantity),
            "base_price_money": {"amount": square_api.to_cents(item.price), "currency": "USD"},
        }
        for item in details.items
    ]


def create_checkout(details: OrderDetails, origin: str, location_id: Optional[str] = None) -> Dict[str, Any]:
    validate_contact(details)
    if not details.items:
        raise CheckoutError("Cart is empty")
    validate_prices(details)
    validate_amount(details, details.total)
    order_id = claim_order_id(details)

    settings = load_settings()
    client = square_api.get_client(settings)
    location = square_api.resolve_location_id(location_id, settings)
    redirect_url = f"{origin.rstrip('/')}/checkout/success?{urlencode({'orderId': order_id})}"

    logger.info("checkout.create", order_id=order_id, environment=client.environment, location_id=location)
    link = client.create_payment_link(square_line_items(details), location, redirect_url)

    order = build_order(details, order_id, square_order_id=link.get("order_id"))
    create_document("order", {**order.model_dump(), "payment_link_url": link.get("url")})
    return {"success": True, "url": link["url"], "order_id": order_id}


def shipping_address_from(square_order: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    for fulfillment in (square_order.get("fulfillments") or [])[:1]:
        recipient = (fulfillment.get("shipment_details") or {}).get("recipient") or {}
        return recipient.get("address")
    return None


def finalize_order(order_id: str) -> Dict[str, Any]:
    """Verify payment with Square and reconcile inventory for a Pending order"""
    order = db["order"].find_one({"id": order_id})
    if not order:
        raise CheckoutError(f"Order {order_id} not found", status_code=404)

    if order.get("status") != "Pending":
        return {"success": True, "message": "Order already processed", "order_id": order_id}

    square_order_id = order.get("square_order_id")
    if not square_order_id:
        raise CheckoutError(f"Square Order ID not found for order {order_id}")

    client = square_api.get_client(load_settings())
    logger.info("finalize.verify", order_id=order_id, square_order_id=square_order_id, environment=client.environment)
    square_order = client.retrieve_order(square_order_id)

    state = square_order.get("state")
    if state not in PAID_STATES:
        raise CheckoutError(f"Order {order_id} is not paid (Square state: {state})", status_code=402)

    result = db["order"].update_one(
        {"id": order_id, "status": "Pending"},
        {"$set": {
            "status": "Processing",
            "shipping_address": shipping_address_from(square_order),
            "updated_at": now_iso(),
        }},
    )
    if result.modified_count == 0:
        # Another request moved it out of Pending first
        return {"success": True, "message": "Order already processed", "order_id": order_id}

    decrement_inventory(order.get("items") or [])
    record_customer_order(order.get("customer_name", ""), order.get("customer_email", ""), order.get("total", 0))
    mailer.send_order_confirmation(order)
    logger.info("finalize.done", order_id=order_id)
    return {"success": True, "order_id": order_id}


def process_payment(source_id: str, amount: float, currency: Optional[str] = None,
                    location_id: Optional[str] = None, details: Optional[OrderDetails] = None) -> Dict[str, Any]:
    order_id = None
    if details is not None:
        if details.items:
            validate_prices(details)
        validate_amount(details, amount)
        order_id = claim_order_id(details)

    settings = load_settings()
    client = square_api.get_client(settings)
    location = square_api.resolve_location_id(location_id, settings, prefer_configured=True)
    logger.info("payment.create", environment=client.environment, location_id=location, amount=amount)
    payment = client.create_payment(source_id, amount, currency or "USD", location)

    if details is not None:
        order = build_order(details, order_id)
        try:
            create_document("order", {**order.model_dump(), "square_payment_id": payment.get("id")})
        except Exception as e:
            logger.error("payment.order_insert_failed", order_id=order.id, error=str(e))
        decrement_inventory([item.model_dump() for item in order.items])
        record_customer_order(order.customer_name, order.customer_email, order.total)
        mailer.send_order_confirmation(order.model_dump())

    return {"success": True, "payment": payment}


def decrement_inventory(items: List[Dict[str, Any]]) -> None:
    """Subtract sold quantities from total and per-size stock, never below zero"""
    for item in items:
        product_id = item.get("product_id")
        try:
            product = db["product"].find_one({"id": product_id})
            if not product:
                logger.warning("inventory.product_missing", product_id=product_id)
                continue

            quantity = int(item.get("quantity") or 0)
            update: Dict[str, Any] = {
                "inventory": max(0, int(product.get("inventory") or 0) - quantity),
                "updated_at": now_iso(),
            }
            size = item.get("size") or ""
            if size:
                size_inventory = dict(product.get("size_inventory") or {})
                key = next((k for k in size_inventory if k.lower() == size.lower()), size)
                size_inventory[key] = max(0, int(size_inventory.get(key) or 0) - quantity)
                update["size_inventory"] = size_inventory

            db["product"].update_one({"id": product_id}, {"$set": update})
        except Exception as e:
            logger.error("inventory.update_failed", product_id=product_id, error=str(e))


def record_customer_order(name: str, email: str, total: Any) -> None:
    """Bump order_count and total_spent for the customer, creating them on first order"""
    email = (email or "").strip().lower()
    if not email:
        return
    try:
        db["customer"].update_one(
            {"email": email},
            {
                "$inc": {"order_count": 1, "total_spent": round(float(total or 0), 2)},
                "$set": {"name": name, "updated_at": now_iso()},
                "$setOnInsert": {"id": uuid.uuid4().hex, "join_date": today(), "created_at": now_iso()},
            },
            upsert=True,
        )
    except Exception as e:
        logger.error("customer.aggregate_failed", email=email, error=str(e))
