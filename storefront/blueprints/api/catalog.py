"""Catalog read endpoints."""
from flask import jsonify, request
from storefront.blueprints.api import api_bp
from storefront.errors import NotFound, ValidationError
from storefront.services import catalog_service
from storefront.services.order_service import resolve_delivery_method


@api_bp.route("/all-products")
def all_products():
    return jsonify(catalog_service.list_products())


@api_bp.route("/product/<int:product_id>")
def product_detail(product_id):
    product = catalog_service.get_product(product_id)
    product["option_axes"] = catalog_service.option_axes(product)
    product["delivery_methods"] = catalog_service.available_delivery_methods(product)
    return jsonify(product)


@api_bp.route("/product/<int:product_id>/variant", methods=["POST"])
def select_variant(product_id):
    """Resolve an option selection to a variant and its stock."""
    data = request.get_json(silent=True) or {}
    try:
        selected = {int(k): int(v) for k, v in (data.get("options") or {}).items()}
    except (TypeError, ValueError):
        raise ValidationError("options must map option type ids to option value ids")

    product = catalog_service.get_product(product_id)
    variant = catalog_service.find_variant(product, selected)
    if variant is None:
        raise NotFound("No variant matches the selected options")

    method = data.get("delivery_method")
    stock = None
    if method:
        stock = catalog_service.stock_for(variant, resolve_delivery_method(method))
    return {"success": True, "variant": variant, "stock": stock}
