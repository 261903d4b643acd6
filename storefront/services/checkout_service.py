"""Checkout orchestration across the two payment providers.

The pending order travels in a ``CheckoutContext`` stored in the shopper's
session, so the callback leg (popup or redirect) picks up exactly what the
shopper confirmed. An order is only written after the provider has confirmed
the payment.
"""
import logging
from dataclasses import dataclass, asdict, field
from typing import Optional
from flask import session
from storefront.errors import PaymentRejected, ValidationError
from storefront.services import easypay_service, order_service, paypal_service

logger = logging.getLogger(__name__)

CONTEXT_SESSION_KEY = "checkout"
PROVIDERS = ("easypay", "paypal")


@dataclass
class CheckoutContext:
    provider: str
    order: dict
    items: list
    amount: float
    currency: str = "KRW"
    reference: Optional[str] = None
    auth_page_url: Optional[str] = None
    extra: dict = field(default_factory=dict)

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        return cls(**data)


def save_context(context):
    session[CONTEXT_SESSION_KEY] = context.to_dict()
    session.modified = True


def load_context():
    data = session.get(CONTEXT_SESSION_KEY)
    if not data:
        return None
    return CheckoutContext.from_dict(data)


def clear_context():
    session.pop(CONTEXT_SESSION_KEY, None)


def _items_total(items):
    total = 0
    for item in items or []:
        price, quantity = item.get("price"), item.get("quantity")
        if isinstance(price, (int, float)) and isinstance(quantity, int):
            total += price * quantity
    return total


def begin_checkout(order_fields, items, provider, currency=None, device_type="pc"):
    """Register the payment with ``provider`` and return the context."""
    if provider not in PROVIDERS:
        raise ValidationError(f"Unknown payment provider: {provider!r}")

    order_service.check_shape(order_fields, items)
    order_fields = dict(order_fields or {})
    if not order_fields.get("total_amount"):
        order_fields["total_amount"] = _items_total(items)
    order_service.validate_order(order_fields, items)
    order_service.resolve_delivery_method(order_fields["delivery_method"])
    amount = order_fields["total_amount"]

    if provider == "easypay":
        goods_name = items[0].get("productName") or "상품"
        if len(items) > 1:
            goods_name = f"{goods_name} 외 {len(items) - 1}건"
        registration = easypay_service.register(
            amount, {"goodsName": goods_name}, device_type=device_type
        )
        order_fields["shop_order_no"] = registration["shopOrderNo"]
        context = CheckoutContext(
            provider=provider,
            order=order_fields,
            items=items,
            amount=amount,
            currency=currency or "KRW",
            reference=registration["shopOrderNo"],
            auth_page_url=registration["authPageUrl"],
        )
    else:
        intent = paypal_service.create_intent(
            amount,
            currency or "USD",
            {"goodsName": items[0].get("productName"), "userId": order_fields.get("email")},
        )
        context = CheckoutContext(
            provider=provider,
            order=order_fields,
            items=items,
            amount=amount,
            currency=currency or "USD",
            reference=intent["id"],
        )

    logger.info("Checkout started: %s %s for %s", provider, context.reference, amount)
    return context


@dataclass
class CheckoutResult:
    order: order_service.OrderResult
    payment: dict

    def to_dict(self):
        data = self.order.to_dict()
        data["payment"] = self.payment
        return data


def complete_easypay(context, callback):
    """Verify an EasyPay callback and create the order."""
    if context is None or context.provider != "easypay":
        raise ValidationError("No pending EasyPay checkout")
    if not callback.is_success:
        raise PaymentRejected(
            callback.res_msg or "Payment was not completed", code=callback.res_cd
        )
    if callback.shop_order_no and callback.shop_order_no != context.reference:
        raise ValidationError("Callback does not belong to the pending checkout")

    payment = easypay_service.verify(
        context.reference, context.amount, callback.authorization_id
    )
    record = easypay_service.get_record(context.reference)
    result = order_service.create_order(context.order, context.items, payment=record)
    return CheckoutResult(order=result, payment=payment)


def complete_paypal(context, intent_id):
    """Capture a PayPal order and create the order."""
    if context is None or context.provider != "paypal":
        raise ValidationError("No pending PayPal checkout")
    if intent_id != context.reference:
        raise ValidationError("PayPal order does not belong to the pending checkout")

    payment = paypal_service.capture(intent_id)
    record = paypal_service.get_record(intent_id)
    result = order_service.create_order(context.order, context.items, payment=record)
    return CheckoutResult(order=result, payment=payment)
