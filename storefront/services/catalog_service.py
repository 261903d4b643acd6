"""Catalog reads: product → variants → options/images/stock trees.

Each table is read once per call and joined in Python, so a catalog page
costs a fixed number of queries regardless of how many variants it shows.
"""
import logging
from collections import defaultdict
from storefront.extensions import db
from storefront.errors import NotFound, ValidationError
from storefront.models import (
    Product,
    ProductVariant,
    OptionType,
    OptionValue,
    VariantImage,
    InventoryStock,
    variant_option_map,
)

logger = logging.getLogger(__name__)


def list_products():
    """All products with their variants. Empty list for an empty catalog."""
    products = Product.query.order_by(Product.id).all()
    if not products:
        return []
    return _build_trees(products)


def get_product(product_id):
    """A single product tree, or NotFound."""
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound(f"Product {product_id} not found")
    return _build_trees([product])[0]


def _build_trees(products):
    product_ids = [p.id for p in products]

    variants = (
        ProductVariant.query.filter(ProductVariant.product_id.in_(product_ids))
        .order_by(ProductVariant.id)
        .all()
    )
    variant_ids = [v.id for v in variants]

    options_by_variant = defaultdict(list)
    images_by_variant = defaultdict(list)
    stock_by_variant = defaultdict(list)

    if variant_ids:
        option_types = {ot.id: ot for ot in OptionType.query.all()}
        rows = db.session.execute(
            db.select(variant_option_map.c.variant_id, OptionValue)
            .join(OptionValue, OptionValue.id == variant_option_map.c.option_value_id)
            .where(variant_option_map.c.variant_id.in_(variant_ids))
            .order_by(OptionValue.option_type_id, OptionValue.id)
        ).all()
        for variant_id, value in rows:
            options_by_variant[variant_id].append(
                _option_dict(value, option_types.get(value.option_type_id))
            )

        images = (
            VariantImage.query.filter(VariantImage.variant_id.in_(variant_ids))
            .order_by(VariantImage.sort_order.asc(), VariantImage.id.asc())
            .all()
        )
        for image in images:
            images_by_variant[image.variant_id].append(_image_dict(image))

        stock_rows = (
            InventoryStock.query.filter(InventoryStock.variant_id.in_(variant_ids))
            .order_by(InventoryStock.method_id)
            .all()
        )
        for stock in stock_rows:
            stock_by_variant[stock.variant_id].append(
                {
                    "quantity_available": stock.quantity_available,
                    "delivery_method": stock.delivery_method.to_dict(),
                }
            )

    base_prices = {p.id: p.base_price or 0 for p in products}
    variants_by_product = defaultdict(list)
    for variant in variants:
        effective_price = base_prices[variant.product_id] + (variant.price_adjustment or 0)
        if effective_price < 0:
            logger.warning(
                "Variant %s has negative effective price %s", variant.sku, effective_price
            )
        variants_by_product[variant.product_id].append(
            {
                "id": variant.id,
                "product_id": variant.product_id,
                "sku": variant.sku,
                "price_adjustment": variant.price_adjustment,
                "effective_price": effective_price,
                "is_purchasable": effective_price >= 0,
                "options": options_by_variant[variant.id],
                "images": images_by_variant[variant.id],
                "inventory_stock": stock_by_variant[variant.id],
            }
        )

    return [
        {
            "id": p.id,
            "name": p.name,
            "description": p.description or "",
            "base_price": p.base_price,
            "variants": variants_by_product[p.id],
        }
        for p in products
    ]


def _option_dict(value, option_type):
    return {
        "id": value.id,
        "option_type_id": value.option_type_id,
        "value": value.value,
        "option_type": (
            {"id": option_type.id, "name": option_type.name} if option_type else None
        ),
    }


def _image_dict(image):
    return {
        "id": image.id,
        "variant_id": image.variant_id,
        "image_url": image.image_url,
        "sort_order": image.sort_order,
        "is_main": image.is_main,
    }


# ---------------------------------------------------------------------------
# Variant selection helpers (operate on trees, no queries)
# ---------------------------------------------------------------------------

def option_axes(product_tree):
    """Unique option types across a product's variants, each with its values.

    Returns ``[{"id", "name", "values": [{"id", "value"}]}]`` in first-seen order.
    """
    axes = {}
    for variant in product_tree["variants"]:
        for option in variant["options"]:
            option_type = option.get("option_type")
            if not option_type:
                continue
            axis = axes.setdefault(
                option_type["id"],
                {"id": option_type["id"], "name": option_type["name"], "values": []},
            )
            if not any(v["id"] == option["id"] for v in axis["values"]):
                axis["values"].append({"id": option["id"], "value": option["value"]})
    return list(axes.values())


def find_variant(product_tree, selected):
    """Find the variant matching ``{option_type_id: option_value_id}``.

    Returns None when nothing matches or the selection is incomplete. Two
    variants sharing the same option set is a catalog data error.
    """
    axes = option_axes(product_tree)
    if not axes or any(axis["id"] not in selected for axis in axes):
        return None

    wanted = {selected[axis["id"]] for axis in axes}
    matches = [
        v
        for v in product_tree["variants"]
        if v["options"] and {o["id"] for o in v["options"]} == wanted
    ]
    if len(matches) > 1:
        raise ValidationError(
            f"Product {product_tree['id']} has {len(matches)} variants "
            f"with the same options"
        )
    return matches[0] if matches else None


def available_delivery_methods(product_tree):
    """Delivery methods with stock on at least one variant."""
    methods = {}
    for variant in product_tree["variants"]:
        for stock in variant["inventory_stock"]:
            if stock["quantity_available"] > 0:
                method = stock["delivery_method"]
                methods.setdefault(method["id"], method)
    return list(methods.values())


def stock_for(variant_tree, method_id):
    for stock in variant_tree["inventory_stock"]:
        if stock["delivery_method"]["id"] == method_id:
            return stock["quantity_available"]
    return 0
