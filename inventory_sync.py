"""Pull catalog/stock from Square into the product collection, or push local stock back"""
from typing import Any, Dict, List, Optional

import structlog

import square_api
from database import db, get_documents, now_iso

logger = structlog.get_logger(__name__)


def pull(client: square_api.SquareClient) -> Dict[str, Any]:
    items = client.list_catalog_items()
    variation_ids = [
        v["id"]
        for item in items
        for v in (item.get("item_data") or {}).get("variations") or []
    ]
    counts = client.batch_retrieve_counts(variation_ids)

    stock: Dict[str, int] = {}
    for count in counts:
        if count.get("state") == "IN_STOCK":
            try:
                stock[count["catalog_object_id"]] = int(float(count.get("quantity") or 0))
            except (TypeError, ValueError):
                stock[count["catalog_object_id"]] = 0

    synced = 0
    for item in items:
        data = item.get("item_data") or {}
        variations = data.get("variations") or []
        variation = variations[0] if variations else {}
        variation_data = variation.get("item_variation_data") or {}
        inventory = stock.get(variation.get("id") or item["id"], 0)
        price_cents = (variation_data.get("price_money") or {}).get("amount") or 0

        db["product"].update_one(
            {"id": item["id"]},
            {
                "$set": {
                    "title": data.get("name") or "Unknown Product",
                    "item_number": variation_data.get("sku"),
                    "price": round(price_cents / 100, 2),
                    "inventory": inventory,
                    "status": "Active" if inventory > 0 else "Inactive",
                    "updated_at": now_iso(),
                },
                "$setOnInsert": {"is_deleted": False, "created_at": now_iso()},
            },
            upsert=True,
        )
        synced += 1

    logger.info("square_sync.pulled", synced=synced)
    return {"success": True, "action": "pull", "synced": synced,
            "message": f"Synced {synced} products from Square"}


def push(client: square_api.SquareClient, products: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    if products is None:
        products = get_documents("product", {"is_deleted": {"$ne": True}})
    if not products:
        return {"success": True, "action": "push", "synced": 0, "message": "No products to push"}

    location_id = client.first_location_id()
    occurred_at = now_iso()
    changes = [
        {
            "type": "ADJUSTMENT",
            "adjustment": {
                "catalog_object_id": p["id"],
                "location_id": location_id,
                "quantity": str(int(p.get("inventory") or 0)),
                "from_state": "NONE",
                "to_state": "IN_STOCK",
                "occurred_at": occurred_at,
            },
        }
        for p in products
    ]
    synced = client.batch_change_inventory(changes)
    logger.info("square_sync.pushed", synced=synced, total=len(changes))
    return {"success": True, "action": "push", "synced": synced,
            "message": f"Pushed {synced} inventory updates to Square"}


def run(action: str, client: square_api.SquareClient) -> Dict[str, Any]:
    if action == "pull":
        return pull(client)
    if action == "push":
        return push(client)
    raise ValueError('Invalid action. Use "pull" or "push"')
