"""Product model.

product_line keeps the human-readable line name as submitted;
product_line_id is resolved from it on every create/update.
"""

from productdb.extensions import db
from productdb.models.mixins import RecordMixin


class Product(RecordMixin, db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)
    product_name = db.Column(db.String(255), nullable=False)
    product_line = db.Column(db.String(255))
    product_line_id = db.Column(
        db.Integer,
        db.ForeignKey("product_lines.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    description = db.Column(db.Text)
    product_definition = db.Column(db.Text)
    operating_environment = db.Column(db.Text)
    technical_parameters = db.Column(db.Text)
    machines_and_tooling = db.Column(db.Text)
    manufacturing_strategy = db.Column(db.Text)
    purchasing_strategy = db.Column(db.Text)
    prototypes_ppap_and_sop = db.Column(db.Text)
    engineering_and_testing = db.Column(db.Text)
    capacity = db.Column(db.Text)
    our_advantages = db.Column(db.Text)
    gmdc_pct = db.Column(db.Text)
    customers_in_production = db.Column(db.Text)
    customer_in_development = db.Column(db.Text)
    level_of_interest_and_why = db.Column(db.Text)
    estimated_price_per_product = db.Column(db.Text)
    prod_if_customer_in_china = db.Column(db.Text)
    costing_data = db.Column(db.Text)
    product_pictures = db.Column(db.Text)  # JSON array of upload references

    def __repr__(self):
        return f"<Product {self.product_name}>"
