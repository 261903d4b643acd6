from storefront.extensions import db


class InventoryStock(db.Model):
    __tablename__ = "inventory_stock"

    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(
        db.Integer,
        db.ForeignKey("product_variants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    method_id = db.Column(
        db.String(36), db.ForeignKey("delivery_methods.id"), nullable=False
    )
    quantity_available = db.Column(db.Integer, nullable=False, default=0)

    delivery_method = db.relationship("DeliveryMethod", lazy="joined")

    __table_args__ = (
        db.UniqueConstraint("variant_id", "method_id", name="uq_stock_variant_method"),
        db.CheckConstraint("quantity_available >= 0", name="ck_stock_non_negative"),
    )

    def __repr__(self):
        return f"<Stock variant={self.variant_id} {self.method_id}: {self.quantity_available}>"
