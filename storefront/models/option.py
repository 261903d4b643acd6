from storefront.extensions import db


class OptionType(db.Model):
    __tablename__ = "option_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)  # "color", "size"

    values = db.relationship(
        "OptionValue", backref="option_type", lazy="select", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<OptionType {self.name}>"


class OptionValue(db.Model):
    __tablename__ = "option_values"

    id = db.Column(db.Integer, primary_key=True)
    option_type_id = db.Column(
        db.Integer,
        db.ForeignKey("option_types.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    value = db.Column(db.String(100), nullable=False)  # "Large", "#000000"

    __table_args__ = (
        db.UniqueConstraint("option_type_id", "value", name="uq_option_value"),
    )

    def __repr__(self):
        return f"<OptionValue {self.value}>"
