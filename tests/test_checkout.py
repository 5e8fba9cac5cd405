"""Tests for totals, order placement and payment session creation."""

from decimal import Decimal

import pytest

from checkout import compute_totals
from database import ORDERS, PRODUCTS, create_document, parse_object_id
from payments import build_line_items, shipping_option, to_minor_units
from schemas import ReconciledCartItem, SessionLineItem

FORM = {
    "email": "ada@example.com",
    "first_name": "Ada",
    "last_name": "Lovelace",
    "address": "12 St James's Square",
    "city": "London",
    "postal_code": "SW1Y 4JH",
    "country": "United Kingdom",
    "phone": "+44 20 7946 0000",
}


def item(price, quantity=1, id_="p1"):
    return ReconciledCartItem(id=id_, name="Item", price=price, quantity=quantity, quantity_available=10)


class TestComputeTotals:
    def test_below_threshold_pays_flat_fee(self):
        totals = compute_totals([item(45.0), item(25.0, 2, "p2")])
        assert (totals.subtotal, totals.shipping, totals.total) == (Decimal("95.00"), Decimal("10.00"), Decimal("105.00"))
        assert totals.item_count == 3

    def test_above_threshold_ships_free(self):
        totals = compute_totals([item(60.0, 2)])
        assert (totals.subtotal, totals.shipping, totals.total) == (Decimal("120.00"), Decimal("0.00"), Decimal("120.00"))

    def test_exactly_threshold_still_pays(self):
        assert compute_totals([item(100.0)]).shipping == Decimal("10.00")

    def test_empty_cart_has_no_shipping(self):
        assert compute_totals([]).total == Decimal("0.00")

    @pytest.mark.parametrize("prices", [[0.1, 0.2], [19.99, 0.01, 80.0], [33.33, 33.33, 33.34]])
    def test_total_is_subtotal_plus_shipping(self, prices):
        totals = compute_totals([item(p, 1, f"p{n}") for n, p in enumerate(prices)])
        assert totals.total == totals.subtotal + totals.shipping


class TestPaymentPayloads:
    def test_line_items_in_minor_units_with_first_image(self):
        lines = build_line_items([SessionLineItem(id="p1", name="Ring", price=19.99, quantity=2, images=["a", "b"])])
        assert lines == [
            {
                "price_data": {
                    "currency": "gbp",
                    "product_data": {"name": "Ring", "images": ["a"], "metadata": {"productId": "p1"}},
                    "unit_amount": 1999,
                },
                "quantity": 2,
            }
        ]

    def test_minor_units_round_half_up(self):
        assert to_minor_units(0.125) == 13
        assert to_minor_units("10") == 1000

    def test_shipping_option_free_over_threshold(self):
        assert shipping_option(12000)["shipping_rate_data"]["fixed_amount"]["amount"] == 0
        standard = shipping_option(9500)["shipping_rate_data"]
        assert standard["fixed_amount"]["amount"] == 1000
        assert standard["display_name"] == "Standard Shipping"


class TestCheckoutRoute:
    def _fill_cart(self, client, make_product, price=45.0, quantity=2):
        pid = make_product(name="Halo Ring", price=price, quantity=5)
        client.post("/api/cart/items", json={"product_id": pid, "quantity": quantity})
        return pid

    def test_places_pending_order_and_redirects(self, client, db, gateway, make_product):
        pid = self._fill_cart(client, make_product)

        r = client.post("/api/checkout", json=FORM, follow_redirects=False)

        assert r.status_code == 303
        assert r.headers["location"] == "https://checkout.stripe.test/pay/cs_test_1"

        order = db[ORDERS].find_one()
        assert order["status"] == "pending"
        assert order["stripe_session_id"] == "cs_test_1"
        assert order["total_amount"] == 100.0
        assert order["customer_name"] == "Ada Lovelace"
        assert order["customer_address"] == "12 St James's Square, London, SW1Y 4JH, United Kingdom"
        assert order["items"] == [{"product_id": pid, "name": "Halo Ring", "price": 45.0, "quantity": 2}]

        sent = gateway.sessions[0]
        assert sent["order_id"] == str(order["_id"])
        assert sent["customer_email"] == "ada@example.com"
        assert sent["subtotal_minor"] == 9000
        assert "session_id={CHECKOUT_SESSION_ID}" in sent["success_url"]

    def test_stock_is_not_decremented(self, client, db, make_product):
        pid = self._fill_cart(client, make_product)
        client.post("/api/checkout", json=FORM, follow_redirects=False)
        assert db[PRODUCTS].find_one({"_id": parse_object_id(pid)})["quantity"] == 5

    def test_price_snapshot_is_taken_at_submission(self, client, db, make_product):
        pid = self._fill_cart(client, make_product, price=45.0)
        db[PRODUCTS].update_one({"_id": parse_object_id(pid)}, {"$set": {"price": 50.0}})
        client.post("/api/checkout", json=FORM, follow_redirects=False)
        assert db[ORDERS].find_one()["items"][0]["price"] == 50.0

    def test_payment_failure_leaves_orphaned_pending_order(self, client, db, gateway, make_product):
        self._fill_cart(client, make_product)
        gateway.fail = True

        r = client.post("/api/checkout", json=FORM, follow_redirects=False)

        assert r.status_code == 500
        assert r.json() == {"detail": "Failed to process your order. Please try again."}
        orders = list(db[ORDERS].find())
        assert len(orders) == 1
        assert orders[0]["status"] == "pending"
        assert orders[0]["stripe_session_id"] is None

    def test_empty_cart_is_rejected(self, client, db):
        r = client.post("/api/checkout", json=FORM, follow_redirects=False)
        assert r.status_code == 400
        assert r.json()["detail"] == "Your cart is empty. Please add items before checkout."
        assert db[ORDERS].count_documents({}) == 0

    def test_cart_of_only_deleted_products_is_rejected(self, client, db, make_product):
        pid = self._fill_cart(client, make_product)
        db[PRODUCTS].delete_one({"_id": parse_object_id(pid)})
        r = client.post("/api/checkout", json=FORM, follow_redirects=False)
        assert r.status_code == 400

    @pytest.mark.parametrize("field,value", [("email", "not-an-email"), ("city", "   "), ("country", "Narnia")])
    def test_invalid_form_creates_nothing(self, client, db, gateway, make_product, field, value):
        self._fill_cart(client, make_product)
        r = client.post("/api/checkout", json={**FORM, field: value}, follow_redirects=False)
        assert r.status_code == 422
        assert db[ORDERS].count_documents({}) == 0
        assert gateway.sessions == []


class TestCreateCheckoutSession:
    def _order(self, db):
        return create_document(db, ORDERS, {"status": "pending", "items": [], "total_amount": 120.0})

    def test_stores_session_id_on_order(self, client, db, gateway):
        order_id = self._order(db)
        body = {
            "order_id": order_id,
            "items": [{"id": "p1", "name": "Ring", "price": 60.0, "quantity": 2, "images": []}],
            "customer_email": "ada@example.com",
            "success_url": "https://shop.test/checkout/success?session_id={CHECKOUT_SESSION_ID}",
            "cancel_url": "https://shop.test/cart",
        }

        r = client.post("/api/create-checkout-session", json=body)

        assert r.json() == {"id": "cs_test_1", "url": "https://checkout.stripe.test/pay/cs_test_1"}
        assert db[ORDERS].find_one({"_id": parse_object_id(order_id)})["stripe_session_id"] == "cs_test_1"
        assert gateway.sessions[0]["cancel_url"] == "https://shop.test/cart"
        assert gateway.sessions[0]["subtotal_minor"] == 12000

    def test_gateway_failure_is_500(self, client, db, gateway):
        gateway.fail = True
        body = {
            "order_id": self._order(db),
            "items": [{"id": "p1", "name": "Ring", "price": 10.0, "quantity": 1}],
            "customer_email": "ada@example.com",
        }
        r = client.post("/api/create-checkout-session", json=body)
        assert r.status_code == 500
        assert r.json() == {"detail": "Failed to create checkout session"}


class TestOrderBySession:
    def test_returns_enriched_order_and_clears_cart(self, client, db, make_product):
        pid = make_product(name="Live Name", images=["http://testserver/media/products/live.png"])
        create_document(db, ORDERS, {
            "status": "paid",
            "stripe_session_id": "cs_test_9",
            "total_amount": 35.0,
            "items": [
                {"product_id": pid, "name": "Old Name", "price": 25.0, "quantity": 1},
                {"product_id": "000000000000000000000000", "name": "Retired", "price": 9.0, "quantity": 1},
            ],
        })

        r = client.get("/api/orders/by-session/cs_test_9")

        assert r.status_code == 200
        items = r.json()["items"]
        assert items[0]["product_name"] == "Live Name"
        assert items[0]["product_image"] == "http://testserver/media/products/live.png"
        assert items[1]["product_name"] == "Retired"
        assert items[1]["product_price"] == 9.0
        assert "cart=%5B%5D" in r.headers["set-cookie"]

    def test_unknown_session_is_404(self, client):
        assert client.get("/api/orders/by-session/cs_missing").status_code == 404


class TestStripeGateway:
    def test_session_request_shape(self):
        from unittest import mock

        from payments import StripeGateway

        gateway = StripeGateway("sk_test_key", "whsec_x")
        fake_session = mock.Mock(id="cs_live_1", url="https://checkout.stripe.com/c/pay/cs_live_1")
        with mock.patch("stripe.checkout.Session.create", return_value=fake_session) as create:
            session = gateway.create_session(
                order_id="ord1",
                line_items=[],
                customer_email="ada@example.com",
                success_url="https://shop.test/ok",
                cancel_url="https://shop.test/cart",
                subtotal_minor=15000,
            )

        assert (session.id, session.url) == ("cs_live_1", "https://checkout.stripe.com/c/pay/cs_live_1")
        kwargs = create.call_args.kwargs
        assert kwargs["api_key"] == "sk_test_key"
        assert kwargs["metadata"] == {"orderId": "ord1"}
        assert kwargs["mode"] == "payment"
        assert "GB" in kwargs["shipping_address_collection"]["allowed_countries"]
        assert kwargs["shipping_options"][0]["shipping_rate_data"]["display_name"] == "Free Shipping"

    def test_missing_secret_key(self):
        from errors import ConfigurationError
        from payments import StripeGateway

        with pytest.raises(ConfigurationError):
            StripeGateway("", "whsec_x").create_session("o", [], "a@b.co", "s", "c", 100)
