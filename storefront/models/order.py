from datetime import datetime, timezone
from storefront.extensions import db


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    customer_name = db.Column(db.String(100), nullable=False)
    customer_email = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(50), nullable=False)
    customer_address = db.Column(db.Text, default="")
    customs_code = db.Column(db.String(50), default="")  # personal customs clearance code
    order_date = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    total_amount = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="Pending", index=True)
    payment_status = db.Column(db.String(20), nullable=False, default="Paid")
    delivery_method_id = db.Column(
        db.String(36), db.ForeignKey("delivery_methods.id"), nullable=False
    )
    # Shop order number (EasyPay) or order id (PayPal) that paid for this order
    payment_reference = db.Column(db.String(64), default="", index=True)

    items = db.relationship(
        "OrderItem", backref="order", lazy="select", cascade="all, delete-orphan"
    )
    delivery_method = db.relationship("DeliveryMethod", lazy="joined")

    STATUSES = {"Pending", "Processing", "Shipped", "Delivered", "Canceled"}
    PAYMENT_STATUSES = {"Paid", "Pending", "Failed"}

    def __repr__(self):
        return f"<Order {self.id} [{self.status}/{self.payment_status}]>"


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer,
        db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    variant_id = db.Column(
        db.Integer, db.ForeignKey("product_variants.id"), nullable=False
    )
    quantity = db.Column(db.Integer, nullable=False)
    price_at_purchase = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False)
    subtotal = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False)
    sku_snapshot = db.Column(db.String(255), default="")

    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_item_quantity"),
    )

    def __repr__(self):
        return f"<OrderItem {self.sku_snapshot} x{self.quantity}>"
