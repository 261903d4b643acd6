from storefront.extensions import db


class VariantImage(db.Model):
    __tablename__ = "variant_images"

    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(
        db.Integer,
        db.ForeignKey("product_variants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    image_url = db.Column(db.String(1024), nullable=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    is_main = db.Column(db.Boolean, nullable=False, default=False)

    def __repr__(self):
        return f"<VariantImage {self.variant_id}#{self.sort_order}>"
