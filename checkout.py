"""Checkout orchestration.

Turns a reconciled cart into a pending order, opens a Stripe Checkout session
for it and hands back the payment URL. None of the steps are transactional:
if the payment session cannot be created the pending order stays behind
without a session id. Stock is read but never decremented or reserved.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pymongo.database import Database
from pymongo.errors import PyMongoError

from cart import get_cart_total, get_item_count
from catalog import get_products_by_ids, reconcile_cart
from database import ORDERS, create_document, parse_object_id, to_str_id, utcnow
from errors import CheckoutValidationError, ExternalServiceError, NotFoundError, StoreError
from payments import (
    FLAT_SHIPPING_FEE,
    FREE_SHIPPING_THRESHOLD,
    PaymentSession,
    build_line_items,
    to_minor_units,
)
from schemas import (
    CartEntry,
    CheckoutForm,
    Order,
    OrderItem,
    PaymentSessionRequest,
    ReconciledCartItem,
    SessionLineItem,
)

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    shipping: Decimal
    total: Decimal
    item_count: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "subtotal": float(self.subtotal),
            "shipping": float(self.shipping),
            "total": float(self.total),
            "item_count": self.item_count,
        }


@dataclass(frozen=True)
class CheckoutResult:
    order_id: str
    session: PaymentSession


def compute_totals(items: List[ReconciledCartItem]) -> OrderTotals:
    subtotal = get_cart_total(items).quantize(CENTS)
    if subtotal == 0 or subtotal > FREE_SHIPPING_THRESHOLD:
        shipping = Decimal("0.00")
    else:
        shipping = FLAT_SHIPPING_FEE
    return OrderTotals(
        subtotal=subtotal,
        shipping=shipping,
        total=(subtotal + shipping).quantize(CENTS),
        item_count=get_item_count(items),
    )


def build_order(items: List[ReconciledCartItem], form: CheckoutForm, totals: OrderTotals) -> Order:
    return Order(
        customer_email=str(form.email),
        customer_name=f"{form.first_name} {form.last_name}",
        customer_address=f"{form.address}, {form.city}, {form.postal_code}, {form.country}",
        customer_phone=form.phone,
        items=[
            OrderItem(product_id=item.id, name=item.name, price=item.price, quantity=item.quantity)
            for item in items
        ],
        total_amount=float(totals.total),
        status="pending",
    )


def checkout_urls(base_url: str, order_id: str) -> Dict[str, str]:
    base = base_url.rstrip("/")
    return {
        "success_url": f"{base}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}&order_id={order_id}",
        "cancel_url": f"{base}/checkout?canceled=true&order_id={order_id}",
    }


def create_payment_session(db: Database, gateway, request: PaymentSessionRequest, base_url: str = "") -> PaymentSession:
    """Open a payment session for an existing order and record its id on the order."""
    order_id = parse_object_id(request.order_id)
    if order_id is None:
        raise NotFoundError("Order not found")

    urls = checkout_urls(base_url, request.order_id)
    subtotal = sum(Decimal(str(i.price)) * i.quantity for i in request.items)
    session = gateway.create_session(
        order_id=request.order_id,
        line_items=build_line_items(request.items, getattr(gateway, "currency", "gbp")),
        customer_email=str(request.customer_email),
        success_url=request.success_url or urls["success_url"],
        cancel_url=request.cancel_url or urls["cancel_url"],
        subtotal_minor=to_minor_units(subtotal),
    )

    try:
        result = db[ORDERS].update_one(
            {"_id": order_id},
            {"$set": {"stripe_session_id": session.id, "updated_at": utcnow()}},
        )
    except PyMongoError as e:
        logger.error("Error updating order %s with session ID: %s", request.order_id, e)
        raise ExternalServiceError("Failed to update order") from e
    if result.matched_count == 0:
        logger.error("Order %s not found while storing session ID %s", request.order_id, session.id)
        raise NotFoundError("Order not found")
    return session


def place_order(
    db: Database,
    gateway,
    entries: List[CartEntry],
    form: CheckoutForm,
    base_url: str,
) -> CheckoutResult:
    if not entries:
        raise CheckoutValidationError("Your cart is empty. Please add items before checkout.")

    items = reconcile_cart(db, entries)
    if not items:
        raise CheckoutValidationError("Your cart is empty. Please add items before checkout.")

    totals = compute_totals(items)
    order = build_order(items, form, totals)
    try:
        order_id = create_document(db, ORDERS, order)
    except PyMongoError as e:
        logger.error("Error saving order: %s", e)
        raise ExternalServiceError("Failed to process your order. Please try again.") from e
    logger.info("Created pending order %s (total %s)", order_id, totals.total)

    request = PaymentSessionRequest(
        order_id=order_id,
        items=[
            SessionLineItem(id=i.id, name=i.name, price=i.price, quantity=i.quantity, images=i.images)
            for i in items
        ],
        customer_email=form.email,
    )
    try:
        session = create_payment_session(db, gateway, request, base_url=base_url)
    except StoreError as e:
        # the pending order is left in place without a session id
        logger.error("Checkout error for order %s: %s", order_id, e.message)
        raise ExternalServiceError("Failed to process your order. Please try again.") from e
    return CheckoutResult(order_id=order_id, session=session)


def get_order_by_session(db: Database, session_id: str) -> Dict[str, Any]:
    try:
        doc = db[ORDERS].find_one({"stripe_session_id": session_id})
    except PyMongoError as e:
        logger.error("Error fetching order for session %s: %s", session_id, e)
        raise ExternalServiceError("Failed to load order details. Please try again.") from e
    if not doc:
        raise NotFoundError("Order not found. Please contact customer support.")

    order = to_str_id(doc)
    items = order.get("items") or []
    try:
        products = get_products_by_ids(db, [i.get("product_id") for i in items])
    except PyMongoError as e:
        logger.error("Error fetching products for order %s: %s", order["id"], e)
        products = {}

    enriched = []
    for item in items:
        product: Optional[Dict[str, Any]] = products.get(item.get("product_id"))
        images = (product or {}).get("images") or []
        enriched.append(
            {
                **item,
                "product_name": product.get("name") if product else item.get("name") or "Unknown Product",
                "product_image": images[0] if images else None,
                "product_price": product.get("price") if product else item.get("price"),
            }
        )
    order["items"] = enriched
    return order
