"""Stripe webhook handling.

Only ``checkout.session.completed`` mutates anything: the order named in the
session metadata is overwritten to ``paid``. The previous status is not
checked, so a replayed event simply writes the same values again.
"""
import json
import logging
from typing import Any, Dict

from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import ORDERS, parse_object_id, utcnow
from errors import ExternalServiceError, NotFoundError

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"


def mark_order_paid(db: Database, session: Dict[str, Any]) -> str:
    metadata = session.get("metadata") or {}
    order_id = metadata.get("orderId")
    _id = parse_object_id(order_id) if order_id else None
    if _id is None:
        logger.error("Webhook session %s carries no usable order id: %r", session.get("id"), order_id)
        raise NotFoundError("Order not found")

    shipping = session.get("shipping_details") or session.get("shipping")
    try:
        result = db[ORDERS].update_one(
            {"_id": _id},
            {
                "$set": {
                    "status": "paid",
                    "payment_intent": session.get("payment_intent"),
                    "shipping_details": json.dumps(shipping) if shipping else None,
                    "payment_status": session.get("payment_status"),
                    "updated_at": utcnow(),
                }
            },
        )
    except PyMongoError as e:
        logger.error("Error updating order status: %s", e)
        raise ExternalServiceError("Failed to update order status") from e

    if result.matched_count == 0:
        logger.error("Webhook for unknown order %s", order_id)
        raise NotFoundError("Order not found")
    logger.info("Order %s has been paid successfully", order_id)
    return order_id


def handle_event(db: Database, event: Dict[str, Any]) -> Dict[str, Any]:
    event_type = event.get("type")
    if event_type == CHECKOUT_COMPLETED:
        session = (event.get("data") or {}).get("object") or {}
        mark_order_paid(db, session)
    else:
        logger.debug("Ignoring webhook event %s", event_type)
    return {"received": True}
