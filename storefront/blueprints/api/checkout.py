"""Checkout endpoints: start a payment, then complete it from the callback."""
import logging
from flask import request
from storefront.blueprints.api import api_bp
from storefront.errors import ValidationError
from storefront.services import checkout_service, easypay_service, order_service
from storefront.services.cart_service import session_cart
from storefront.services.easypay_service import PaymentCallback

logger = logging.getLogger(__name__)


@api_bp.route("/checkout", methods=["POST"])
def begin_checkout():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    items = data.get("items")
    order_service.check_shape(data.get("order"), items)
    if not items:
        items = session_cart().to_order_items()
    if not items:
        raise ValidationError("Cart is empty")

    context = checkout_service.begin_checkout(
        data.get("order"),
        items,
        data.get("provider"),
        currency=data.get("currency"),
        device_type=easypay_service.detect_device_type(request.headers.get("User-Agent")),
    )
    checkout_service.save_context(context)

    response = {
        "success": True,
        "provider": context.provider,
        "reference": context.reference,
        "amount": context.amount,
        "currency": context.currency,
    }
    if context.auth_page_url:
        response["authPageUrl"] = context.auth_page_url
    return response


@api_bp.route("/checkout/complete", methods=["POST"])
def complete_checkout():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    context = checkout_service.load_context()
    if context is None:
        raise ValidationError("No pending checkout")

    if context.provider == "easypay":
        payload = data.get("callback")
        callback = PaymentCallback.from_payload(payload if isinstance(payload, dict) else data)
        result = checkout_service.complete_easypay(context, callback)
    else:
        result = checkout_service.complete_paypal(context, data.get("orderId"))

    checkout_service.clear_context()
    session_cart().clear()
    logger.info("Checkout %s completed as order %s", context.reference, result.order.order_id)
    return result.to_dict()
