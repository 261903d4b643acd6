"""Tests for order reconciliation and stock compare-and-swap."""
import pytest
from sqlalchemy.exc import OperationalError
from storefront.errors import (
    InvalidDeliveryMethod,
    PaymentRejected,
    PersistenceError,
    ValidationError,
)
from storefront.models import InventoryStock, Order, PaymentRecord, Product, ProductVariant
from storefront.models.delivery import DOMESTIC_ID, INTERNATIONAL_ID, ONSITE_ID
from storefront.services import order_service


def _stock(db, variant_id, method_id):
    return db.session.execute(
        db.select(InventoryStock.quantity_available).where(
            InventoryStock.variant_id == variant_id,
            InventoryStock.method_id == method_id,
        )
    ).scalar_one()


def _item(variant_id, quantity=1, price=35000):
    return {"variantId": variant_id, "quantity": quantity, "price": price}


def _paid(db, reference="20261019000000001", status="APPROVED", amount=35000):
    record = PaymentRecord(provider="easypay", reference=reference, amount=amount, status=status)
    db.session.add(record)
    db.session.commit()
    return record


# ---------------------------------------------------------------------------
# Delivery methods
# ---------------------------------------------------------------------------

def test_resolve_delivery_method_aliases():
    assert order_service.resolve_delivery_method("onsite") == ONSITE_ID
    assert order_service.resolve_delivery_method("팬미팅현장수령") == ONSITE_ID
    assert order_service.resolve_delivery_method("국내배송") == DOMESTIC_ID
    assert order_service.resolve_delivery_method("local") == DOMESTIC_ID
    assert order_service.resolve_delivery_method(" International ") == INTERNATIONAL_ID
    assert order_service.resolve_delivery_method(ONSITE_ID) == ONSITE_ID


def test_unknown_delivery_method_is_rejected(app, db, shop, order_fields):
    with pytest.raises(InvalidDeliveryMethod):
        order_service.create_order(order_fields(delivery_method="drone"), [_item(shop.shirt_m)])
    assert Order.query.count() == 0
    assert _stock(db, shop.shirt_m, ONSITE_ID) == 1


def test_korean_delivery_name_accepted(app, db, shop, order_fields):
    result = order_service.create_order(
        order_fields(delivery_method="팬미팅현장수령"), [_item(shop.shirt_m)]
    )
    order = db.session.get(Order, result.order_id)
    assert order.delivery_method_id == ONSITE_ID


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "overrides, items",
    [
        ({"name": ""}, [{"variantId": 1, "quantity": 1, "price": 1}]),
        ({"email": ""}, [{"variantId": 1, "quantity": 1, "price": 1}]),
        ({"total_amount": 0}, [{"variantId": 1, "quantity": 1, "price": 1}]),
        ({"payment_status": "Refunded"}, [{"variantId": 1, "quantity": 1, "price": 1}]),
        ({}, []),
        ({}, [{"quantity": 1, "price": 1}]),
        ({}, [{"variantId": 1, "quantity": 0, "price": 1}]),
        ({}, [{"variantId": 1, "quantity": 1.5, "price": 1}]),
        ({}, [{"variantId": 1, "quantity": 1, "price": -1}]),
    ],
)
def test_validation_errors(app, order_fields, overrides, items):
    with pytest.raises(ValidationError):
        order_service.create_order(order_fields(**overrides), items)
    assert Order.query.count() == 0


@pytest.mark.parametrize(
    "fields, items",
    [
        (None, [1]),
        (None, {"a": 1}),
        (None, "TS-BLK-M"),
        (["Kim Minji"], [{"variantId": 1, "quantity": 1, "price": 1}]),
    ],
)
def test_malformed_input_is_a_validation_error(app, order_fields, fields, items):
    with pytest.raises(ValidationError):
        order_service.create_order(fields if fields is not None else order_fields(), items)


def test_unknown_variant(app, shop, order_fields):
    with pytest.raises(ValidationError):
        order_service.create_order(order_fields(), [_item(99999)])
    assert Order.query.count() == 0


def test_product_id_resolves_single_variant(app, db, shop, order_fields):
    result = order_service.create_order(
        order_fields(total_amount=12000),
        [{"productId": shop.cards, "quantity": 2, "price": 12000}],
    )
    order = db.session.get(Order, result.order_id)
    assert order.items[0].variant_id == shop.card_set
    assert order.items[0].sku_snapshot == "PC-SET"
    assert _stock(db, shop.card_set, ONSITE_ID) == 8


def test_product_id_with_several_variants_needs_variant_id(app, shop, order_fields):
    with pytest.raises(ValidationError):
        order_service.create_order(
            order_fields(), [{"productId": shop.shirt, "quantity": 1, "price": 35000}]
        )


def test_negative_price_variant_cannot_be_ordered(app, db, order_fields):
    product = Product(name="Clearance", base_price=1000)
    variant = ProductVariant(product=product, sku="CLR-1", price_adjustment=-2000)
    db.session.add(product)
    db.session.commit()

    with pytest.raises(ValidationError):
        order_service.create_order(order_fields(), [_item(variant.id, price=0)])


# ---------------------------------------------------------------------------
# Stock
# ---------------------------------------------------------------------------

def test_order_reduces_stock(app, db, shop, order_fields):
    result = order_service.create_order(
        order_fields(delivery_method="domestic", total_amount=70000),
        [_item(shop.shirt_m, quantity=2)],
    )

    assert result.created
    assert result.inventory_warnings is None
    assert "inventoryWarnings" not in result.to_dict()
    assert _stock(db, shop.shirt_m, DOMESTIC_ID) == 3
    assert _stock(db, shop.shirt_m, ONSITE_ID) == 1

    order = db.session.get(Order, result.order_id)
    assert order.status == "Pending"
    assert order.payment_status == "Paid"
    assert order.total_amount == 70000
    assert [(i.quantity, i.subtotal, i.sku_snapshot) for i in order.items] == [(2, 70000, "TS-BLK-M")]


def test_short_item_is_a_warning_not_a_failure(app, db, shop, order_fields):
    result = order_service.create_order(
        order_fields(total_amount=72000),
        [_item(shop.shirt_m), _item(shop.shirt_l, price=37000)],
    )

    assert result.inventory_warnings == [
        {"variantId": shop.shirt_l, "reason": "Insufficient stock", "requested": 1, "available": 0}
    ]
    assert result.to_dict()["inventoryWarnings"] == result.inventory_warnings
    order = db.session.get(Order, result.order_id)
    assert len(order.items) == 2
    assert _stock(db, shop.shirt_m, ONSITE_ID) == 0
    assert _stock(db, shop.shirt_l, ONSITE_ID) == 0


def test_missing_stock_record_is_a_warning(app, db, shop, order_fields):
    result = order_service.create_order(
        order_fields(delivery_method="domestic", total_amount=12000),
        [_item(shop.card_set, price=12000)],
    )
    assert result.inventory_warnings == [
        {"variantId": shop.card_set, "reason": "Stock record not found", "requested": 1}
    ]


def test_last_unit_goes_to_one_order(app, db, shop, order_fields):
    first = order_service.create_order(order_fields(), [_item(shop.shirt_m)])
    second = order_service.create_order(order_fields(), [_item(shop.shirt_m)])

    assert first.inventory_warnings is None
    assert second.inventory_warnings == [
        {"variantId": shop.shirt_m, "reason": "Insufficient stock", "requested": 1, "available": 0}
    ]
    assert _stock(db, shop.shirt_m, ONSITE_ID) == 0
    assert Order.query.count() == 2


def _concurrent_writer(db, monkeypatch, new_quantities):
    """Let another checkout change the row between our read and our write."""
    real_read = order_service._read_quantity
    pending = list(new_quantities)
    reads = []

    def read(variant_id, method_id):
        value = real_read(variant_id, method_id)
        reads.append(value)
        if pending:
            db.session.execute(
                db.update(InventoryStock)
                .where(
                    InventoryStock.variant_id == variant_id,
                    InventoryStock.method_id == method_id,
                )
                .values(quantity_available=pending.pop(0))
            )
        return value

    monkeypatch.setattr(order_service, "_read_quantity", read)
    return reads


def test_lost_race_is_retried(app, db, shop, order_fields, monkeypatch):
    reads = _concurrent_writer(db, monkeypatch, [4])

    result = order_service.create_order(
        order_fields(delivery_method="domestic"), [_item(shop.shirt_m)]
    )

    assert result.inventory_warnings is None
    assert reads == [5, 4]
    assert _stock(db, shop.shirt_m, DOMESTIC_ID) == 3


def test_concurrent_buyer_takes_last_unit(app, db, shop, order_fields, monkeypatch):
    reads = _concurrent_writer(db, monkeypatch, [0])

    result = order_service.create_order(order_fields(), [_item(shop.shirt_m)])

    assert reads == [1, 0]
    assert result.inventory_warnings == [
        {"variantId": shop.shirt_m, "reason": "Insufficient stock", "requested": 1, "available": 0}
    ]
    assert _stock(db, shop.shirt_m, ONSITE_ID) == 0


def test_retry_budget_exhausted(app, db, shop, order_fields, monkeypatch):
    attempts = []

    def always_lose(variant_id, method_id, expected, new):
        attempts.append(expected)
        return False

    monkeypatch.setattr(order_service, "_compare_and_swap", always_lose)

    result = order_service.create_order(
        order_fields(delivery_method="domestic"), [_item(shop.shirt_m)]
    )

    assert len(attempts) == app.config["STOCK_RESERVE_ATTEMPTS"]
    assert result.inventory_warnings == [
        {"variantId": shop.shirt_m, "reason": "Failed to update inventory", "requested": 1}
    ]
    assert Order.query.count() == 1
    assert _stock(db, shop.shirt_m, DOMESTIC_ID) == 5


def test_stock_never_goes_negative(app, db, shop, order_fields):
    result = order_service.create_order(
        order_fields(total_amount=350000), [_item(shop.shirt_m, quantity=10)]
    )
    assert result.inventory_warnings[0]["available"] == 1
    assert _stock(db, shop.shirt_m, ONSITE_ID) == 1


# ---------------------------------------------------------------------------
# Atomicity and payment linkage
# ---------------------------------------------------------------------------

def test_failed_item_insert_leaves_no_order(app, db, shop, order_fields, monkeypatch):
    def disk_full(*args, **kwargs):
        raise OperationalError("INSERT INTO order_items", {}, Exception("disk full"))

    monkeypatch.setattr(db.session, "add_all", disk_full)

    with pytest.raises(PersistenceError):
        order_service.create_order(order_fields(), [_item(shop.shirt_m)])

    monkeypatch.undo()
    assert Order.query.count() == 0
    assert _stock(db, shop.shirt_m, ONSITE_ID) == 1


def test_one_order_per_payment(app, db, shop, order_fields):
    record = _paid(db)

    first = order_service.create_order(order_fields(), [_item(shop.card_set, price=12000)], payment=record)
    second = order_service.create_order(order_fields(), [_item(shop.card_set, price=12000)], payment=record)

    assert first.created
    assert not second.created
    assert second.order_id == first.order_id
    assert second.to_dict()["message"] == "Order already exists"
    assert Order.query.count() == 1
    assert _stock(db, shop.card_set, ONSITE_ID) == 9

    order = db.session.get(Order, first.order_id)
    assert order.payment_reference == "20261019000000001"
    assert db.session.get(PaymentRecord, record.id).order_id == first.order_id


def test_unverified_payment_creates_nothing(app, db, shop, order_fields):
    record = _paid(db, status="REGISTERED")

    with pytest.raises(PaymentRejected):
        order_service.create_order(order_fields(), [_item(shop.shirt_m)], payment=record)

    assert Order.query.count() == 0
    assert _stock(db, shop.shirt_m, ONSITE_ID) == 1


def test_payment_must_cover_order_total(app, db, shop, order_fields):
    record = _paid(db, amount=1000)

    with pytest.raises(PaymentRejected) as exc:
        order_service.create_order(order_fields(total_amount=35000), [_item(shop.shirt_m)], payment=record)

    assert exc.value.code == "AMOUNT_MISMATCH"
    assert Order.query.count() == 0
    assert db.session.get(PaymentRecord, record.id).order_id is None


def test_repeat_call_releases_payment_lock(app, db, shop, order_fields):
    record = _paid(db, amount=12000)
    fields = order_fields(total_amount=12000)
    first = order_service.create_order(fields, [_item(shop.card_set, price=12000)], payment=record)

    second = order_service.create_order(fields, [_item(shop.card_set, price=12000)], payment=record)

    assert second.order_id == first.order_id
    assert not db.session.in_transaction()


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

def test_create_endpoint_requires_verified_payment(client, shop, order_fields):
    resp = client.post(
        "/api/orders/create",
        json={"order": order_fields(), "items": [_item(shop.shirt_m)]},
    )
    assert resp.status_code == 402
    assert resp.get_json()["kind"] == "PaymentRejected"


def test_create_endpoint_with_verified_payment(client, db, shop, order_fields):
    _paid(db)

    body = {
        "order": order_fields(shop_order_no="20261019000000001"),
        "items": [_item(shop.shirt_m)],
    }
    resp = client.post("/api/orders/create", json=body)
    assert resp.status_code == 201
    data = resp.get_json()
    assert data["success"] is True
    assert data["message"] == "Order created successfully"

    again = client.post("/api/orders/create", json=body)
    assert again.status_code == 200
    assert again.get_json()["orderId"] == data["orderId"]


def test_create_endpoint_for_pending_payment(client, shop, order_fields):
    resp = client.post(
        "/api/orders/create",
        json={"order": order_fields(payment_status="Pending"), "items": [_item(shop.shirt_m)]},
    )
    assert resp.status_code == 201


@pytest.mark.parametrize(
    "body",
    [
        {"order": {}, "items": []},
        {"order": {"name": "Kim Minji"}, "items": [1]},
        {"order": {"name": "Kim Minji"}, "items": {"a": 1}},
        {"order": ["Kim Minji"], "items": [{"variantId": 1, "quantity": 1, "price": 1}]},
        [{"order": {}}],
    ],
)
def test_create_endpoint_rejects_bad_input(client, shop, body):
    resp = client.post("/api/orders/create", json=body)
    assert resp.status_code == 400
    assert resp.get_json()["kind"] == "ValidationError"


def test_create_endpoint_unknown_delivery_method(client, shop, order_fields):
    resp = client.post(
        "/api/orders/create",
        json={
            "order": order_fields(delivery_method="teleport", payment_status="Pending"),
            "items": [_item(shop.shirt_m)],
        },
    )
    assert resp.status_code == 400
    assert resp.get_json()["kind"] == "InvalidDeliveryMethod"


def test_create_endpoint_rejects_payment_for_another_amount(client, db, shop, order_fields):
    _paid(db, amount=1000)

    resp = client.post(
        "/api/orders/create",
        json={
            "order": order_fields(total_amount=500000, shop_order_no="20261019000000001"),
            "items": [_item(shop.shirt_m)],
        },
    )

    assert resp.status_code == 402
    assert resp.get_json()["code"] == "AMOUNT_MISMATCH"
    assert Order.query.count() == 0
    assert _stock(db, shop.shirt_m, ONSITE_ID) == 1


# ---------------------------------------------------------------------------
# Concurrent checkouts on a shared database
# ---------------------------------------------------------------------------

@pytest.fixture
def file_app(tmp_path, monkeypatch):
    """App on a file-backed SQLite database so threads get real connections."""
    from storefront import create_app
    from storefront.cli import seed_delivery_methods
    from storefront.config import TestingConfig
    from storefront.extensions import db as _db

    monkeypatch.setattr(
        TestingConfig, "SQLALCHEMY_DATABASE_URI", f"sqlite:///{tmp_path / 'shop.db'}"
    )
    monkeypatch.setattr(
        TestingConfig,
        "SQLALCHEMY_ENGINE_OPTIONS",
        {"connect_args": {"check_same_thread": False, "timeout": 30}},
    )
    app = create_app("testing")
    with app.app_context():
        _db.create_all()
        seed_delivery_methods()
        product = Product(name="Tour T-Shirt", base_price=35000)
        variant = ProductVariant(product=product, sku="TS-BLK-M", price_adjustment=0)
        _db.session.add(product)
        _db.session.flush()
        _db.session.add(
            InventoryStock(variant_id=variant.id, method_id=ONSITE_ID, quantity_available=1)
        )
        _db.session.commit()
        app.config["LAST_UNIT_VARIANT"] = variant.id
    yield app
    with app.app_context():
        _db.drop_all()
        _db.engine.dispose()


def test_two_threads_race_for_last_unit(file_app, order_fields):
    import threading
    from storefront.extensions import db as _db

    variant_id = file_app.config["LAST_UNIT_VARIANT"]
    barrier = threading.Barrier(2)
    results, errors = [], []

    def checkout():
        with file_app.app_context():
            barrier.wait(timeout=10)
            try:
                result = order_service.create_order(order_fields(), [_item(variant_id)])
                results.append(result.inventory_warnings)
            except Exception as e:
                errors.append(e)

    threads = [threading.Thread(target=checkout) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert errors == []
    assert sorted(results, key=lambda w: w is not None) == [
        None,
        [{"variantId": variant_id, "reason": "Insufficient stock", "requested": 1, "available": 0}],
    ]
    with file_app.app_context():
        assert _stock(_db, variant_id, ONSITE_ID) == 0
        assert Order.query.count() == 2
