"""Flask CLI commands for admin operations."""
import click


def seed_delivery_methods():
    """Insert the fixed delivery methods if missing. Returns how many were added."""
    from storefront.extensions import db
    from storefront.models.delivery import DELIVERY_METHODS, DeliveryMethod

    added = 0
    for code, (method_id, name, description) in DELIVERY_METHODS.items():
        if not db.session.get(DeliveryMethod, method_id):
            db.session.add(
                DeliveryMethod(id=method_id, code=code, name=name, description=description)
            )
            added += 1
    db.session.commit()
    return added


def check_unique_option_sets(variants):
    """Raise if two variants of one product share the same option values."""
    seen = {}
    for variant in variants:
        key = frozenset(value.id for value in variant.options)
        if key in seen:
            raise click.ClickException(
                f"Variants {seen[key]} and {variant.sku} have the same options"
            )
        seen[key] = variant.sku


DEMO_PRODUCTS = [
    {
        "name": "Official Light Stick",
        "description": "Bluetooth light stick with concert sync.",
        "base_price": 45000,
        "variants": [
            ("LS-BLK", 0, {"color": "Black"}, 30),
            ("LS-WHT", 0, {"color": "White"}, 30),
        ],
    },
    {
        "name": "Tour T-Shirt",
        "description": "Cotton tour shirt.",
        "base_price": 35000,
        "variants": [
            ("TS-BLK-M", 0, {"color": "Black", "size": "M"}, 20),
            ("TS-BLK-L", 0, {"color": "Black", "size": "L"}, 20),
            ("TS-BLK-XL", 2000, {"color": "Black", "size": "XL"}, 10),
        ],
    },
    {
        "name": "Photo Card Set",
        "description": "Set of 8 random photo cards.",
        "base_price": 12000,
        "variants": [("PC-SET", 0, {}, 100)],
    },
]


def register_cli(app):
    @app.cli.command("init-db")
    def init_db():
        """Create all tables and seed the delivery methods."""
        from storefront.extensions import db

        db.create_all()
        added = seed_delivery_methods()
        click.echo(f"Database initialized ({added} delivery methods added).")

    @app.cli.command("seed-demo")
    def seed_demo():
        """Seed demo products, variants, images and stock (idempotent)."""
        from storefront.extensions import db
        from storefront.models import (
            InventoryStock,
            OptionType,
            OptionValue,
            Product,
            ProductVariant,
            VariantImage,
        )
        from storefront.models.delivery import DELIVERY_METHODS

        # Only seed if no products exist yet
        if Product.query.first():
            click.echo("Products already exist, skipping demo seed.")
            return

        seed_delivery_methods()
        option_types = {}
        option_values = {}

        def option_value(type_name, value):
            if type_name not in option_types:
                option_types[type_name] = OptionType(name=type_name)
                db.session.add(option_types[type_name])
            key = (type_name, value)
            if key not in option_values:
                option_values[key] = OptionValue(
                    option_type=option_types[type_name], value=value
                )
                db.session.add(option_values[key])
            return option_values[key]

        for demo in DEMO_PRODUCTS:
            product = Product(
                name=demo["name"],
                description=demo["description"],
                base_price=demo["base_price"],
            )
            db.session.add(product)
            for sku, adjustment, options, quantity in demo["variants"]:
                variant = ProductVariant(
                    product=product, sku=sku, price_adjustment=adjustment
                )
                variant.options = [option_value(t, v) for t, v in options.items()]
                variant.images = [
                    VariantImage(
                        image_url=f"/static/img/{sku.lower()}-{n}.jpg",
                        sort_order=n,
                        is_main=(n == 0),
                    )
                    for n in range(2)
                ]
                for method_id, _name, _description in DELIVERY_METHODS.values():
                    variant.stock.append(
                        InventoryStock(method_id=method_id, quantity_available=quantity)
                    )
            db.session.flush()
            check_unique_option_sets(product.variants)

        db.session.commit()
        click.echo(f"Seeded {len(DEMO_PRODUCTS)} demo products.")

    @app.cli.command("set-stock")
    @click.argument("sku")
    @click.argument("method")
    @click.argument("quantity", type=int)
    def set_stock(sku, method, quantity):
        """Set available stock for a variant and delivery method."""
        from storefront.extensions import db
        from storefront.models import InventoryStock, ProductVariant
        from storefront.errors import InvalidDeliveryMethod
        from storefront.services.order_service import resolve_delivery_method

        if quantity < 0:
            raise click.ClickException("Quantity cannot be negative")
        variant = ProductVariant.query.filter_by(sku=sku).first()
        if not variant:
            raise click.ClickException(f"Unknown SKU {sku}")
        try:
            method_id = resolve_delivery_method(method)
        except InvalidDeliveryMethod as e:
            raise click.ClickException(e.message)

        stock = InventoryStock.query.filter_by(
            variant_id=variant.id, method_id=method_id
        ).first()
        if stock is None:
            stock = InventoryStock(variant_id=variant.id, method_id=method_id)
            db.session.add(stock)
        stock.quantity_available = quantity
        db.session.commit()
        click.echo(f"{sku} / {method}: {quantity}")

    @app.cli.command("stats")
    def stats():
        """Show order statistics."""
        from storefront.extensions import db
        from storefront.models import Order

        rows = (
            db.session.query(Order.status, db.func.count(Order.id))
            .group_by(Order.status)
            .all()
        )
        counts = dict(rows)
        click.echo(f"Total orders: {sum(counts.values())}")
        for status, count in sorted(counts.items()):
            click.echo(f"  {status}: {count}")
