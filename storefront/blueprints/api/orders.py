"""Order creation endpoint."""
from flask import request
from storefront.blueprints.api import api_bp
from storefront.errors import PaymentRejected, ValidationError
from storefront.services import easypay_service, order_service, paypal_service


def _payment_for(order_fields):
    """The settled payment an order claims, or None for unpaid orders."""
    if (order_fields.get("payment_status") or "Paid") != "Paid":
        return None

    if order_fields.get("shop_order_no"):
        record = easypay_service.get_record(order_fields["shop_order_no"])
    elif order_fields.get("paypal_order_id"):
        record = paypal_service.get_record(order_fields["paypal_order_id"])
    else:
        record = None
    if record is None or not record.is_settled:
        raise PaymentRejected("No verified payment for this order")
    return record


@api_bp.route("/orders/create", methods=["POST"])
def create_order():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    order_fields, items = data.get("order"), data.get("items")

    order_service.validate_order(order_fields, items)
    result = order_service.create_order(order_fields, items, payment=_payment_for(order_fields))
    return result.to_dict(), 201 if result.created else 200
