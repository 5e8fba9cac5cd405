"""Product browsing and cart reconciliation."""
import logging
from typing import Any, Dict, Iterable, List, Optional

from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import PRODUCTS, get_documents, parse_object_id, parse_object_ids, to_str_id
from errors import ExternalServiceError, NotFoundError
from schemas import CartEntry, ReconciledCartItem

logger = logging.getLogger(__name__)

SORT_OPTIONS = {
    "newest": [("created_at", DESCENDING)],
    "price_asc": [("price", ASCENDING)],
    "price_desc": [("price", DESCENDING)],
    "name": [("name", ASCENDING)],
}


def list_products(
    db: Database,
    category: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    sort: str = "newest",
    limit: Optional[int] = None,
    featured: bool = False,
) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {}
    if category and category != "all":
        query["category"] = category
    price: Dict[str, float] = {}
    if min_price is not None:
        price["$gte"] = min_price
    if max_price is not None:
        price["$lte"] = max_price
    if price:
        query["price"] = price
    if featured:
        query["featured"] = True

    order = SORT_OPTIONS.get(sort, SORT_OPTIONS["newest"])
    try:
        docs = get_documents(db, PRODUCTS, query, sort=order, limit=limit)
    except PyMongoError as e:
        logger.error("Error fetching products: %s", e)
        raise ExternalServiceError("Failed to load products. Please try again.") from e
    return [to_str_id(d) for d in docs]


def get_product(db: Database, product_id: str) -> Dict[str, Any]:
    _id = parse_object_id(product_id)
    if _id is None:
        raise NotFoundError("Product not found")
    try:
        doc = db[PRODUCTS].find_one({"_id": _id})
    except PyMongoError as e:
        logger.error("Error fetching product %s: %s", product_id, e)
        raise ExternalServiceError("Failed to load product. Please try again.") from e
    if not doc:
        raise NotFoundError("Product not found")
    return to_str_id(doc)


def get_products_by_ids(db: Database, ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    object_ids = parse_object_ids(ids)
    if not object_ids:
        return {}
    docs = db[PRODUCTS].find({"_id": {"$in": object_ids}})
    return {str(d["_id"]): to_str_id(d) for d in docs}


def reconcile_cart(db: Database, entries: List[CartEntry]) -> List[ReconciledCartItem]:
    """Join cart entries against live products, keeping cart order.

    Entries whose product no longer exists are dropped without notice.
    """
    if not entries:
        return []
    try:
        products = get_products_by_ids(db, [e.id for e in entries])
    except PyMongoError as e:
        logger.error("Error fetching cart items: %s", e)
        raise ExternalServiceError("Failed to load cart items. Please try again.") from e

    items: List[ReconciledCartItem] = []
    for entry in entries:
        product = products.get(entry.id)
        if product is None:
            continue
        items.append(
            ReconciledCartItem(
                id=product["id"],
                name=product.get("name", "Product"),
                description=product.get("description") or "",
                price=float(product.get("price") or 0),
                quantity=entry.quantity,
                quantity_available=int(product.get("quantity") or 0),
                category=product.get("category"),
                images=list(product.get("images") or []),
            )
        )
    return items
