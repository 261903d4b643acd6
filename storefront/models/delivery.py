from storefront.extensions import db


# Fixed ids so orders and stock rows can reference them before any lookup.
DOMESTIC_ID = "00000000-0000-0000-0000-000000000001"
INTERNATIONAL_ID = "00000000-0000-0000-0000-000000000002"
ONSITE_ID = "00000000-0000-0000-0000-000000000003"

# code -> (id, display name, description)
DELIVERY_METHODS = {
    "domestic": (DOMESTIC_ID, "국내배송", "Domestic shipping"),
    "international": (INTERNATIONAL_ID, "해외배송", "International shipping"),
    "onsite": (ONSITE_ID, "팬미팅현장수령", "Pick up on site at the fan meeting"),
}


class DeliveryMethod(db.Model):
    __tablename__ = "delivery_methods"

    id = db.Column(db.String(36), primary_key=True)
    code = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(50), nullable=False)
    description = db.Column(db.String(255))

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
        }

    def __repr__(self):
        return f"<DeliveryMethod {self.code}>"
