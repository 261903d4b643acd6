from datetime import datetime, timezone
from storefront.extensions import db


class PaymentRecord(db.Model):
    """One row per gateway transaction attempt.

    Doubles as the idempotency ledger: once a record is APPROVED/CAPTURED its
    stored ``result`` is returned for repeat verify/capture calls, and
    ``order_id`` is set exactly once when the order for this payment is created.
    """

    __tablename__ = "payment_records"

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(20), nullable=False)  # easypay, paypal
    reference = db.Column(db.String(64), nullable=False)
    amount = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="KRW")
    status = db.Column(db.String(20), nullable=False, default="REGISTERED")
    payment_id = db.Column(db.String(64))
    auth_date = db.Column(db.String(20))
    method = db.Column(db.String(50))
    result = db.Column(db.JSON)
    order_id = db.Column(
        db.Integer, db.ForeignKey("orders.id", ondelete="SET NULL"), nullable=True
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("provider", "reference", name="uq_payment_reference"),
    )

    PROVIDERS = {"easypay", "paypal"}
    # REGISTERED/APPROVED for EasyPay, CREATED/CAPTURED for PayPal
    STATUSES = {"REGISTERED", "APPROVED", "CREATED", "CAPTURED", "FAILED"}
    SETTLED = {"APPROVED", "CAPTURED"}

    @property
    def is_settled(self):
        return self.status in self.SETTLED

    def __repr__(self):
        return f"<PaymentRecord {self.provider}:{self.reference} [{self.status}]>"
