"""Client-held cart.

The cart lives in a single key-value slot owned by the client (a cookie when
served over HTTP). ``CartStore`` reads and writes that slot and notifies
subscribers after every write. There is no lock or version check: two
writers racing on the same slot silently lose one update.
"""
import json
import logging
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Protocol
from urllib.parse import quote, unquote

from fastapi import Request, Response
from pydantic import TypeAdapter, ValidationError

from errors import CartFullError
from schemas import CartEntry

logger = logging.getLogger(__name__)

CART_KEY = "cart"
CART_COOKIE_MAX_AGE = 60 * 60 * 24 * 30
# browsers drop cookies over ~4KB, leave room for the name and attributes
MAX_COOKIE_BYTES = 4000

_entries_adapter = TypeAdapter(List[CartEntry])

CartListener = Callable[[List[CartEntry]], None]


# ----- pure list helpers -----

def add_item_to_cart(entries: List[CartEntry], new_entry: CartEntry) -> List[CartEntry]:
    if any(e.id == new_entry.id for e in entries):
        return [
            e.model_copy(update={"quantity": e.quantity + new_entry.quantity}) if e.id == new_entry.id else e
            for e in entries
        ]
    return [*entries, new_entry]


def remove_item_from_cart(entries: List[CartEntry], item_id: str) -> List[CartEntry]:
    return [e for e in entries if e.id != item_id]


def update_item_quantity(entries: List[CartEntry], item_id: str, quantity: int) -> List[CartEntry]:
    return [e.model_copy(update={"quantity": quantity}) if e.id == item_id else e for e in entries]


def get_cart_total(items: Iterable) -> Decimal:
    total = Decimal("0")
    for item in items:
        total += Decimal(str(item.price or 0)) * item.quantity
    return total


def get_item_count(entries: Iterable) -> int:
    return sum(e.quantity for e in entries)


def _serialize(entries: List[CartEntry], compact: bool = False) -> str:
    fields = {"id", "quantity"} if compact else None
    return json.dumps(
        [e.model_dump(include=fields, exclude_none=True) for e in entries],
        separators=(",", ":"),
    )


# ----- storage backends -----

class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> Optional[str]:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def fits(self, value: str) -> bool:
        ...


class MemoryStorage:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def fits(self, value: str) -> bool:
        return True


class CookieStorage:
    """Reads from the incoming request's cookies, writes onto the outgoing response.

    Values written during the request are remembered so that a read after a
    write in the same request sees the new value.
    """

    def __init__(
        self,
        request: Request,
        response: Response,
        max_age: int = CART_COOKIE_MAX_AGE,
        max_bytes: int = MAX_COOKIE_BYTES,
    ):
        self.request = request
        self.response = response
        self.max_age = max_age
        self.max_bytes = max_bytes
        self._written: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        if key in self._written:
            return self._written[key]
        raw = self.request.cookies.get(key)
        return unquote(raw) if raw is not None else None

    def set_item(self, key: str, value: str) -> None:
        self._written[key] = value
        self.response.set_cookie(key, quote(value, safe=""), max_age=self.max_age, httponly=True, samesite="lax")

    def fits(self, value: str) -> bool:
        return len(quote(value, safe="")) <= self.max_bytes


# ----- store -----

class CartStore:
    def __init__(self, storage: KeyValueStorage, key: str = CART_KEY):
        self.storage = storage
        self.key = key
        self._listeners: List[CartListener] = []

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get_cart(self) -> List[CartEntry]:
        raw = self.storage.get_item(self.key)
        if not raw:
            return []
        try:
            return _entries_adapter.validate_python(json.loads(raw))
        except (ValueError, ValidationError):
            logger.warning("Discarding malformed cart value")
            return []

    def set_cart(self, entries: List[CartEntry]) -> None:
        payload = _serialize(entries)
        if not self.storage.fits(payload):
            # display fields are rebuilt on reconciliation, ids and quantities are not
            payload = _serialize(entries, compact=True)
            if not self.storage.fits(payload):
                logger.warning("Cart of %d lines does not fit its storage slot", len(entries))
                raise CartFullError("Your cart is full. Please remove some items before adding more.")
        self.storage.set_item(self.key, payload)
        for listener in list(self._listeners):
            listener(list(entries))

    def add_item(self, entry: CartEntry) -> List[CartEntry]:
        entries = add_item_to_cart(self.get_cart(), entry)
        self.set_cart(entries)
        return entries

    def remove_item(self, item_id: str) -> List[CartEntry]:
        entries = remove_item_from_cart(self.get_cart(), item_id)
        self.set_cart(entries)
        return entries

    def update_quantity(self, item_id: str, quantity: int) -> List[CartEntry]:
        if quantity < 1:
            return self.get_cart()
        entries = update_item_quantity(self.get_cart(), item_id, quantity)
        self.set_cart(entries)
        return entries

    def clear(self) -> None:
        self.set_cart([])
