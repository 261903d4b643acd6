from types import SimpleNamespace
import httpx
import pytest
from storefront import create_app
from storefront.cli import seed_delivery_methods
from storefront.extensions import db as _db
from storefront.models import (
    InventoryStock,
    OptionType,
    OptionValue,
    Product,
    ProductVariant,
)
from storefront.models.delivery import DOMESTIC_ID, ONSITE_ID
from storefront.services import paypal_service


@pytest.fixture
def app():
    """Fresh application and in-memory database per test."""
    app = create_app("testing")
    with app.app_context():
        _db.create_all()
        seed_delivery_methods()
        paypal_service.clear_token_cache()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def shop(db):
    """A T-shirt in M/L plus a single-variant photo card set.

    Stock: M has 1 onsite / 5 domestic, L has 0 onsite, cards have 10 onsite.
    """
    color = OptionType(name="color")
    size = OptionType(name="size")
    black = OptionValue(option_type=color, value="Black")
    medium = OptionValue(option_type=size, value="M")
    large = OptionValue(option_type=size, value="L")

    shirt = Product(name="Tour T-Shirt", description="Cotton tour shirt", base_price=35000)
    shirt_m = ProductVariant(product=shirt, sku="TS-BLK-M", price_adjustment=0)
    shirt_m.options = [black, medium]
    shirt_l = ProductVariant(product=shirt, sku="TS-BLK-L", price_adjustment=2000)
    shirt_l.options = [black, large]

    cards = Product(name="Photo Card Set", base_price=12000)
    card_set = ProductVariant(product=cards, sku="PC-SET", price_adjustment=0)

    db.session.add_all([shirt, cards])
    db.session.flush()
    db.session.add_all(
        [
            InventoryStock(variant_id=shirt_m.id, method_id=ONSITE_ID, quantity_available=1),
            InventoryStock(variant_id=shirt_m.id, method_id=DOMESTIC_ID, quantity_available=5),
            InventoryStock(variant_id=shirt_l.id, method_id=ONSITE_ID, quantity_available=0),
            InventoryStock(variant_id=card_set.id, method_id=ONSITE_ID, quantity_available=10),
        ]
    )
    db.session.commit()

    return SimpleNamespace(
        shirt=shirt.id,
        shirt_m=shirt_m.id,
        shirt_l=shirt_l.id,
        cards=cards.id,
        card_set=card_set.id,
        color=color.id,
        size=size.id,
        black=black.id,
        medium=medium.id,
        large=large.id,
    )


class FakeGateway:
    """Stands in for httpx.post/httpx.get, routing by URL suffix.

    Each route holds a queue of ``(status, body)`` tuples or exceptions; the
    last entry is repeated once the queue is down to one.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def on(self, path, *responses):
        self.routes.setdefault(path, []).extend(responses)
        return self

    def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        for path, responses in self.routes.items():
            if url.endswith(path):
                response = responses.pop(0) if len(responses) > 1 else responses[0]
                if isinstance(response, Exception):
                    raise response
                status, body = response
                return httpx.Response(status, json=body, request=httpx.Request("POST", url))
        raise AssertionError(f"Unexpected gateway call to {url}")

    def called(self, path):
        return [kwargs for url, kwargs in self.calls if url.endswith(path)]


@pytest.fixture
def gateway(monkeypatch):
    fake = FakeGateway()
    monkeypatch.setattr(httpx, "post", fake)
    monkeypatch.setattr(httpx, "get", fake)
    return fake


@pytest.fixture
def order_fields():
    def make(**overrides):
        fields = {
            "name": "Kim Minji",
            "email": "minji@example.com",
            "phone_num": "010-1234-5678",
            "address": "Seoul",
            "delivery_method": "onsite",
            "total_amount": 35000,
        }
        fields.update(overrides)
        return fields

    return make
