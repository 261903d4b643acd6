"""Session-scoped shopping cart.

The cart lives with the shopper (Flask session by default) and never touches
the database until checkout. Storage failures are logged and swallowed: the
in-memory item list stays authoritative for the lifetime of the ``Cart``.
"""
import logging
from dataclasses import dataclass, asdict, field
from typing import Optional
from flask import session

logger = logging.getLogger(__name__)

CART_SESSION_KEY = "shopping_cart"


@dataclass
class CartItem:
    product_id: int
    product_name: str
    price: float
    quantity: int = 1
    option: Optional[str] = None
    image_url: Optional[str] = None
    delivery_method: Optional[str] = None
    variant_id: Optional[int] = None

    @property
    def key(self):
        return (self.product_id, self.option)

    @property
    def subtotal(self):
        return self.price * self.quantity

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        return cls(
            product_id=data["product_id"],
            product_name=data.get("product_name", ""),
            price=data["price"],
            quantity=data.get("quantity") or 1,
            option=data.get("option"),
            image_url=data.get("image_url"),
            delivery_method=data.get("delivery_method"),
            variant_id=data.get("variant_id"),
        )


class MemoryCartStorage:
    """Process-local storage, used by tests and scripts."""

    def __init__(self, initial=None):
        self.data = list(initial or [])

    def load(self):
        return list(self.data)

    def save(self, items):
        self.data = list(items)


class SessionCartStorage:
    def __init__(self, key=CART_SESSION_KEY):
        self.key = key

    def load(self):
        return list(session.get(self.key, []))

    def save(self, items):
        session[self.key] = list(items)
        session.modified = True


@dataclass
class Cart:
    storage: object = field(default_factory=MemoryCartStorage)
    items: list = field(default_factory=list)

    def __post_init__(self):
        if not self.items:
            self.items = self._load()

    def _load(self):
        try:
            return [CartItem.from_dict(raw) for raw in self.storage.load()]
        except Exception:
            logger.exception("Error reading cart from storage, starting empty")
            return []

    def _save(self):
        try:
            self.storage.save([item.to_dict() for item in self.items])
        except Exception:
            logger.exception("Error saving cart to storage")

    def _find(self, product_id, option):
        for index, item in enumerate(self.items):
            if item.key == (product_id, option):
                return index
        return -1

    def add(self, item):
        """Merge by (product_id, option); quantity defaults to 1."""
        quantity = item.quantity or 1
        index = self._find(item.product_id, item.option)
        if index > -1:
            self.items[index].quantity += quantity
        else:
            item.quantity = quantity
            self.items.append(item)
        self._save()

    def remove(self, product_id, option=None):
        self.items = [i for i in self.items if i.key != (product_id, option)]
        self._save()

    def set_quantity(self, product_id, option, quantity):
        index = self._find(product_id, option)
        if index == -1:
            return
        if quantity <= 0:
            del self.items[index]
        else:
            self.items[index].quantity = quantity
        self._save()

    def set_delivery_method(self, delivery_method):
        for item in self.items:
            item.delivery_method = delivery_method
        self._save()

    def clear(self):
        self.items = []
        self._save()

    def total(self):
        return sum(item.price * item.quantity for item in self.items)

    def item_count(self):
        return sum(item.quantity for item in self.items)

    def to_order_items(self):
        """Cart lines in the shape order creation expects."""
        return [
            {
                "variantId": item.variant_id,
                "productId": item.product_id,
                "quantity": item.quantity,
                "price": item.price,
                "option": item.option,
                "productName": item.product_name,
            }
            for item in self.items
        ]

    def to_dict(self):
        return {
            "items": [item.to_dict() for item in self.items],
            "total": self.total(),
            "count": self.item_count(),
        }


def session_cart():
    return Cart(storage=SessionCartStorage())
