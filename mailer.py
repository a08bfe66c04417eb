"""
Transactional email through the Resend API

Order confirmations, shipping updates and the monthly birthday batch. Sends
never raise: a missing RESEND_API_KEY or a provider error is logged and the
send reports False.
"""
import os
from datetime import datetime, timezone
from html import escape
from typing import Any, Dict, List, Optional, Tuple

import httpx
import structlog

from database import db

logger = structlog.get_logger(__name__)

RESEND_URL = "https://api.resend.com/emails"
DEFAULT_SENDER = "Nina Armend <support@ninaarmend.co>"
SITE_URL = "https://ninaarmend.co"

STATUS_MESSAGES = {
    "Shipped": "Your order has been shipped and is on its way to you!",
    "Delivered": "Your order has been delivered. We hope you love it!",
}


def http_client() -> httpx.Client:
    return httpx.Client(timeout=httpx.Timeout(15.0, connect=5.0))


def wrap(content: str) -> str:
    year = datetime.now(timezone.utc).year
    return (
        '<!DOCTYPE html><html lang="en"><head><meta charset="UTF-8"></head>'
        '<body style="margin:0;padding:0;font-family:Georgia,serif;">'
        '<div style="max-width:600px;margin:0 auto;background:#000;color:#fff;padding:40px 32px;">'
        '<div style="text-align:center;font-size:36px;color:#C9A96E;">Nina Armend</div>'
        f"{content}"
        f'<p style="color:#999;font-size:12px;text-align:center;">&copy; {year} Nina Armend. All rights reserved.</p>'
        "</div></body></html>"
    )


def order_confirmation(order: Dict[str, Any]) -> Tuple[str, str]:
    order_id = escape(str(order.get("id", "")))
    rows = []
    for item in order.get("items") or []:
        size = f" ({escape(item['size'])})" if item.get("size") else ""
        rows.append(
            f"<tr><td>{escape(str(item.get('title', '')))}{size} &times; {int(item.get('quantity') or 0)}</td>"
            f'<td style="text-align:right;">${float(item.get("price") or 0):.2f}</td></tr>'
        )
    html = wrap(
        "<h1>Order Confirmed</h1>"
        f"<p>Thank you, {escape(order.get('customer_name') or '')}. "
        "Your order has been received and is being prepared with care.</p>"
        f"<p>Order Reference: <strong>{order_id}</strong></p>"
        f'<table style="width:100%;">{"".join(rows)}'
        f'<tr><td><strong>Total</strong></td><td style="text-align:right;">${float(order.get("total") or 0):.2f}</td></tr>'
        "</table>"
        "<p>You'll receive a shipping confirmation with tracking details once your order ships.</p>"
        f'<p><a href="{SITE_URL}/account">View Your Orders</a></p>'
    )
    return f"Order Confirmed: {order_id}", html


def shipping_update(customer_name: str, order_id: str, status: str, tracking_number: Optional[str] = None) -> Tuple[str, str]:
    message = STATUS_MESSAGES.get(status, f"Your order status has been updated to: {escape(status)}")
    tracking = f"<p>Tracking Number: <strong>{escape(tracking_number)}</strong></p>" if tracking_number else ""
    html = wrap(
        f"<h1>Order {escape(status)}</h1>"
        f"<p>Hi {escape(customer_name or '')}, {message}</p>"
        f"<p>Order Reference: <strong>{escape(order_id)}</strong></p>"
        f"{tracking}"
    )
    return f"Order Update: {status}", html


def birthday_month(name: str) -> Tuple[str, str]:
    name = escape(name or "there")
    html = wrap(
        f"<h1>Happy Birthday Month, {name}!</h1>"
        "<p>To celebrate, enjoy a little something from us on your next order this month.</p>"
        f'<p><a href="{SITE_URL}/shop">Shop Now</a></p>'
    )
    return f"Happy Birthday Month, {name}!", html


def send_email(to: str, subject: str, html: str, reply_to: Optional[str] = None) -> bool:
    api_key = os.getenv("RESEND_API_KEY")
    if not api_key:
        logger.warning("email.not_configured", to=to, subject=subject)
        return False

    body: Dict[str, Any] = {
        "from": os.getenv("EMAIL_FROM", DEFAULT_SENDER),
        "to": [to],
        "subject": subject,
        "html": html,
    }
    if reply_to:
        body["reply_to"] = reply_to

    try:
        with http_client() as client:
            res = client.post(RESEND_URL, json=body,
                              headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"})
    except httpx.HTTPError as e:
        logger.error("email.send_failed", to=to, subject=subject, error=str(e))
        return False

    if res.status_code >= 400:
        logger.error("email.rejected", to=to, subject=subject, status_code=res.status_code, body=res.text[:300])
        return False
    logger.info("email.sent", to=to, subject=subject)
    return True


def send_order_confirmation(order: Dict[str, Any]) -> bool:
    email = order.get("customer_email")
    if not email:
        return False
    subject, html = order_confirmation(order)
    return send_email(email, subject, html)


def send_shipping_update(order: Dict[str, Any], status: str, tracking_number: Optional[str] = None) -> bool:
    email = order.get("customer_email")
    if not email:
        return False
    subject, html = shipping_update(order.get("customer_name", ""), str(order.get("id", "")), status, tracking_number)
    return send_email(email, subject, html)


def send_birthday_emails(month: Optional[int] = None) -> Dict[str, Any]:
    """Email every profile whose birth_month is the given (default: current) month"""
    month = month or datetime.now(timezone.utc).month
    profiles: List[Dict[str, Any]] = list(db["profile"].find({"birth_month": month}, {"email": 1, "name": 1}))
    logger.info("email.birthday_batch", month=month, recipients=len(profiles))

    sent = failed = 0
    for profile in profiles:
        if not profile.get("email"):
            failed += 1
            continue
        subject, html = birthday_month(profile.get("name") or "")
        if send_email(profile["email"], subject, html):
            sent += 1
        else:
            failed += 1
    return {
        "success": True,
        "month": month,
        "sent": sent,
        "failed": failed,
        "message": f"Processed birthdays for month {month}. Sent: {sent}, Failed: {failed}",
    }
