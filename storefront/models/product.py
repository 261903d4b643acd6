from datetime import datetime, timezone
from storefront.extensions import db


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    base_price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    variants = db.relationship(
        "ProductVariant",
        backref="product",
        lazy="select",
        cascade="all, delete-orphan",
        order_by="ProductVariant.id",
    )

    def __repr__(self):
        return f"<Product {self.id}: {self.name}>"
