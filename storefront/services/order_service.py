"""Order reconciliation: persist a paid order and take its stock.

The order row, its items, the stock decrements and the link back to the
payment record are written in one database transaction. Stock shortfalls do
not abort the order; they come back as ``inventory_warnings`` for the back
office to reconcile.
"""
import logging
import time
from dataclasses import dataclass
from typing import Optional
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from storefront.extensions import db
from storefront.errors import (
    InsufficientStock,
    InvalidDeliveryMethod,
    InventoryConflict,
    PaymentRejected,
    PersistenceError,
    StockRecordMissing,
    ValidationError,
)
from storefront.models import (
    InventoryStock,
    Order,
    OrderItem,
    PaymentRecord,
    Product,
    ProductVariant,
)
from storefront.models.delivery import DELIVERY_METHODS

logger = logging.getLogger(__name__)

REQUIRED_ORDER_FIELDS = ("name", "email", "phone_num", "delivery_method", "total_amount")


def _delivery_aliases():
    aliases = {"local": DELIVERY_METHODS["domestic"][0]}
    for code, (method_id, name, _description) in DELIVERY_METHODS.items():
        aliases[code] = method_id
        aliases[name] = method_id
        aliases[method_id] = method_id
    return aliases


DELIVERY_ALIASES = _delivery_aliases()


def resolve_delivery_method(name):
    """Map a delivery method code, display name or id to its fixed id."""
    key = (name or "").strip()
    method_id = DELIVERY_ALIASES.get(key) or DELIVERY_ALIASES.get(key.lower())
    if method_id is None:
        raise InvalidDeliveryMethod(f"Unknown delivery method: {name!r}")
    return method_id


@dataclass
class OrderResult:
    order_id: int
    inventory_warnings: Optional[list] = None
    created: bool = True

    def to_dict(self):
        data = {
            "success": True,
            "orderId": self.order_id,
            "message": "Order created successfully" if self.created else "Order already exists",
        }
        if self.inventory_warnings:
            data["inventoryWarnings"] = self.inventory_warnings
        return data


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_id(value, label):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label}: {value!r}")


def check_shape(order_fields, items):
    """Order fields must be an object and items a list of objects."""
    if order_fields is not None and not isinstance(order_fields, dict):
        raise ValidationError("Order data must be an object")
    if items is not None and not isinstance(items, list):
        raise ValidationError("Items must be a list")
    if any(not isinstance(item, dict) for item in items or []):
        raise ValidationError("Each item must be an object")


def validate_order(order_fields, items):
    """Fail fast on bad input, before anything is written."""
    check_shape(order_fields, items)
    if not order_fields or not items:
        raise ValidationError("Order data and items are required")

    missing = [f for f in REQUIRED_ORDER_FIELDS if not order_fields.get(f)]
    if missing:
        raise ValidationError(f"Missing required order fields ({', '.join(missing)})")
    if not _is_number(order_fields["total_amount"]) or order_fields["total_amount"] <= 0:
        raise ValidationError("total_amount must be greater than 0")

    payment_status = order_fields.get("payment_status")
    if payment_status is not None and payment_status not in Order.PAYMENT_STATUSES:
        raise ValidationError(f"Invalid payment_status: {payment_status!r}")

    for item in items:
        if item.get("variantId") is None and item.get("productId") is None:
            raise ValidationError("Each item must have either variantId or productId")
        quantity = item.get("quantity")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError("Each item must have a valid quantity > 0")
        price = item.get("price")
        if not _is_number(price) or price < 0:
            raise ValidationError("Each item must have a valid price >= 0")

    items_total = sum(item["price"] * item["quantity"] for item in items)
    if abs(items_total - order_fields["total_amount"]) > 0.005:
        # Shipping and fees are added client-side
        logger.info(
            "Order total %s differs from item total %s",
            order_fields["total_amount"], items_total,
        )


def _resolve_variant(item):
    if item.get("variantId") is not None:
        variant_id = _as_id(item["variantId"], "variantId")
        variant = db.session.get(ProductVariant, variant_id)
        if variant is None:
            raise ValidationError(f"Unknown variant {variant_id}")
    else:
        product_id = _as_id(item["productId"], "productId")
        product = db.session.get(Product, product_id)
        if product is None:
            raise ValidationError(f"Unknown product {product_id}")
        if len(product.variants) != 1:
            raise ValidationError(
                f"Product {product_id} has {len(product.variants)} variants; "
                f"variantId is required"
            )
        variant = product.variants[0]

    if not variant.is_purchasable:
        raise ValidationError(f"Variant {variant.sku} has a negative price")
    return variant


# ---------------------------------------------------------------------------
# Stock
# ---------------------------------------------------------------------------

def _read_quantity(variant_id, method_id):
    return db.session.execute(
        db.select(InventoryStock.quantity_available).where(
            InventoryStock.variant_id == variant_id,
            InventoryStock.method_id == method_id,
        )
    ).scalar_one_or_none()


def _compare_and_swap(variant_id, method_id, expected, new):
    """UPDATE only if nobody changed the row since we read ``expected``."""
    result = db.session.execute(
        db.update(InventoryStock)
        .where(
            InventoryStock.variant_id == variant_id,
            InventoryStock.method_id == method_id,
            InventoryStock.quantity_available == expected,
        )
        .values(quantity_available=new)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def reserve_stock(variant_id, method_id, quantity):
    """Atomically take ``quantity`` units. Returns the remaining quantity.

    Raises StockRecordMissing, InsufficientStock, or InventoryConflict when
    the compare-and-swap keeps losing to concurrent checkouts.
    """
    attempts = current_app.config["STOCK_RESERVE_ATTEMPTS"]
    backoff = current_app.config["STOCK_RESERVE_BACKOFF"]

    for attempt in range(1, attempts + 1):
        current = _read_quantity(variant_id, method_id)
        if current is None:
            raise StockRecordMissing(
                f"No inventory record for variant {variant_id} / {method_id}",
                variant_id=variant_id,
                requested=quantity,
            )
        if current < quantity:
            raise InsufficientStock(
                f"Insufficient stock for variant {variant_id}",
                variant_id=variant_id,
                requested=quantity,
                available=current,
            )
        if _compare_and_swap(variant_id, method_id, current, current - quantity):
            logger.info(
                "Stock reduced for variant %s: %d -> %d",
                variant_id, current, current - quantity,
            )
            return current - quantity

        logger.info(
            "Stock for variant %s changed concurrently (attempt %d/%d)",
            variant_id, attempt, attempts,
        )
        if backoff:
            time.sleep(backoff * attempt)

    raise InventoryConflict(
        f"Could not update inventory for variant {variant_id}",
        variant_id=variant_id,
        requested=quantity,
    )


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

def _lock_payment(payment):
    return db.session.execute(
        db.select(PaymentRecord)
        .where(PaymentRecord.id == payment.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one()


def create_order(order_fields, items, payment=None):
    """Persist an order for a verified payment.

    ``order_fields``: name, email, phone_num, address, customs_code,
    delivery_method, total_amount, payment_status (default Paid),
    shop_order_no.
    ``items``: ``[{"variantId"|"productId", "quantity", "price", "sku"?}]``.

    When ``payment`` is given it must be settled and cover exactly
    ``total_amount``. At most one order is ever created for it; a repeat call
    returns the existing order id.
    """
    validate_order(order_fields, items)
    method_id = resolve_delivery_method(order_fields["delivery_method"])

    try:
        if payment is not None:
            payment = _lock_payment(payment)
            if float(payment.amount) != float(order_fields["total_amount"]):
                logger.error(
                    "Payment %s is for %s but the order totals %s",
                    payment.reference, payment.amount, order_fields["total_amount"],
                )
                raise PaymentRejected(
                    "Payment amount does not match the order total", code="AMOUNT_MISMATCH"
                )
            if payment.order_id is not None:
                order_id = payment.order_id
                logger.info("Payment %s already has order %s", payment.reference, order_id)
                # release the row lock
                db.session.rollback()
                return OrderResult(order_id=order_id, created=False)
            if not payment.is_settled:
                raise PaymentRejected(
                    "Payment has not been verified", code=payment.status
                )

        lines = [(item, _resolve_variant(item)) for item in items]

        order = Order(
            customer_name=order_fields["name"],
            customer_email=order_fields["email"],
            customer_phone=order_fields["phone_num"],
            customer_address=order_fields.get("address") or "",
            customs_code=order_fields.get("customs_code") or "",
            total_amount=order_fields["total_amount"],
            status="Pending",
            payment_status=order_fields.get("payment_status") or "Paid",
            delivery_method_id=method_id,
            payment_reference=(
                payment.reference if payment is not None
                else order_fields.get("shop_order_no") or ""
            ),
        )
        db.session.add(order)
        db.session.flush()

        db.session.add_all(
            [
                OrderItem(
                    order_id=order.id,
                    variant_id=variant.id,
                    quantity=item["quantity"],
                    price_at_purchase=item["price"],
                    subtotal=item["price"] * item["quantity"],
                    sku_snapshot=item.get("sku") or variant.sku,
                )
                for item, variant in lines
            ]
        )
        db.session.flush()

        warnings = []
        for item, variant in lines:
            try:
                reserve_stock(variant.id, method_id, item["quantity"])
            except InsufficientStock as e:
                logger.warning("Order %s: %s", order.id, e.message)
                warnings.append(e.to_warning())

        if payment is not None:
            payment.order_id = order.id
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("Order creation failed")
        raise PersistenceError("Failed to create order") from e
    except Exception:
        db.session.rollback()
        raise

    logger.info("Order %s created with %d items", order.id, len(lines))
    return OrderResult(order_id=order.id, inventory_warnings=warnings or None)
