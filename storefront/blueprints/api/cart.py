"""Session cart endpoints."""
from flask import request
from storefront.blueprints.api import api_bp
from storefront.errors import ValidationError
from storefront.services.cart_service import CartItem, session_cart
from storefront.services.order_service import resolve_delivery_method


def _json():
    return request.get_json(silent=True) or {}


@api_bp.route("/cart", methods=["GET"])
def get_cart():
    return session_cart().to_dict()


@api_bp.route("/cart/items", methods=["POST"])
def add_cart_item():
    data = _json()
    if data.get("product_id") is None or not isinstance(data.get("price"), (int, float)):
        raise ValidationError("product_id and price are required")
    quantity = data.get("quantity") or 1
    if not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")

    cart = session_cart()
    cart.add(CartItem.from_dict({**data, "quantity": quantity}))
    return cart.to_dict(), 201


@api_bp.route("/cart/items", methods=["PATCH"])
def update_cart_item():
    data = _json()
    quantity = data.get("quantity")
    if data.get("product_id") is None or not isinstance(quantity, int):
        raise ValidationError("product_id and quantity are required")

    cart = session_cart()
    cart.set_quantity(data["product_id"], data.get("option"), quantity)
    return cart.to_dict()


@api_bp.route("/cart/items", methods=["DELETE"])
def remove_cart_item():
    data = _json()
    if data.get("product_id") is None:
        raise ValidationError("product_id is required")

    cart = session_cart()
    cart.remove(data["product_id"], data.get("option"))
    return cart.to_dict()


@api_bp.route("/cart/delivery-method", methods=["PUT"])
def set_cart_delivery_method():
    method = _json().get("delivery_method")
    resolve_delivery_method(method)

    cart = session_cart()
    cart.set_delivery_method(method)
    return cart.to_dict()


@api_bp.route("/cart", methods=["DELETE"])
def clear_cart():
    cart = session_cart()
    cart.clear()
    return cart.to_dict()
