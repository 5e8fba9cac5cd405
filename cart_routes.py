import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pymongo.database import Database

from cart import CartStore, CookieStorage, get_item_count
from catalog import get_product, reconcile_cart
from checkout import compute_totals
from database import get_db
from schemas import AddToCartRequest, CartEntry, UpdateQuantityRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cart", tags=["cart"])


def _log_cart_change(entries: List[CartEntry]) -> None:
    logger.debug("Cart updated: %d lines, %d items", len(entries), get_item_count(entries))


def get_cart_store(request: Request, response: Response) -> CartStore:
    store = CartStore(CookieStorage(request, response))
    store.subscribe(_log_cart_change)
    return store


def _cart_view(entries: List[CartEntry]) -> dict:
    return {
        "items": [e.model_dump(exclude_none=True) for e in entries],
        "count": get_item_count(entries),
    }


def _check_stock(product: dict, quantity: int) -> None:
    stock = int(product.get("quantity") or 0)
    if stock <= 0:
        raise HTTPException(status_code=400, detail="This product is out of stock")
    if quantity > stock:
        raise HTTPException(status_code=400, detail=f"Sorry, only {stock} items available in stock")


@router.get("")
def cart_get(store: CartStore = Depends(get_cart_store), db: Database = Depends(get_db)):
    entries = store.get_cart()
    items = reconcile_cart(db, entries)
    return {
        "items": [i.model_dump() for i in items],
        "totals": compute_totals(items).as_dict(),
    }


@router.post("/items", status_code=201)
def cart_add(payload: AddToCartRequest,
             store: CartStore = Depends(get_cart_store),
             db: Database = Depends(get_db)):
    product = get_product(db, payload.product_id)
    _check_stock(product, payload.quantity)
    images = product.get("images") or []
    entry = CartEntry(
        id=product["id"],
        quantity=payload.quantity,
        name=product.get("name"),
        price=product.get("price"),
        image=images[0] if images else None,
    )
    return _cart_view(store.add_item(entry))


@router.patch("/items/{product_id}")
def cart_update(product_id: str,
                payload: UpdateQuantityRequest,
                store: CartStore = Depends(get_cart_store),
                db: Database = Depends(get_db)):
    current = next((e.quantity for e in store.get_cart() if e.id == product_id), 0)
    # lowering a line is always allowed, even when stock has since dropped
    if payload.quantity > current:
        _check_stock(get_product(db, product_id), payload.quantity)
    return _cart_view(store.update_quantity(product_id, payload.quantity))


@router.delete("/items/{product_id}")
def cart_remove(product_id: str, store: CartStore = Depends(get_cart_store)):
    return _cart_view(store.remove_item(product_id))


@router.delete("")
def cart_clear(store: CartStore = Depends(get_cart_store)):
    store.clear()
    return _cart_view([])
