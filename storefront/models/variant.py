from storefront.extensions import db


variant_option_map = db.Table(
    "variant_option_map",
    db.Column(
        "variant_id",
        db.Integer,
        db.ForeignKey("product_variants.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    db.Column(
        "option_value_id",
        db.Integer,
        db.ForeignKey("option_values.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class ProductVariant(db.Model):
    __tablename__ = "product_variants"

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sku = db.Column(db.String(64), unique=True, nullable=False)
    # Added to (or subtracted from) the product's base price
    price_adjustment = db.Column(
        db.Numeric(12, 2, asdecimal=False), nullable=False, default=0
    )

    options = db.relationship(
        "OptionValue", secondary=variant_option_map, lazy="select"
    )
    images = db.relationship(
        "VariantImage",
        backref="variant",
        lazy="select",
        cascade="all, delete-orphan",
        order_by="VariantImage.sort_order",
    )
    stock = db.relationship(
        "InventoryStock",
        backref="variant",
        lazy="select",
        cascade="all, delete-orphan",
    )

    @property
    def effective_price(self):
        return (self.product.base_price or 0) + (self.price_adjustment or 0)

    @property
    def is_purchasable(self):
        return self.effective_price >= 0

    def __repr__(self):
        return f"<Variant {self.sku}>"
