"""Product line model.

A family of products. attachments_raw holds a JSON array of upload
references (e.g. '["uploads/attachments_raw-3f2c....pdf"]').
"""

from productdb.extensions import db
from productdb.models.mixins import RecordMixin


class ProductLine(RecordMixin, db.Model):
    __tablename__ = "product_lines"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), unique=True, nullable=False)
    type_of_products = db.Column(db.Text)
    manufacturing_locations = db.Column(db.Text)
    design_center = db.Column(db.Text)
    product_line_manager = db.Column(db.String(255))
    history = db.Column(db.Text)
    type_of_customers = db.Column(db.Text)
    metiers = db.Column(db.Text)
    strength = db.Column(db.Text)
    weakness = db.Column(db.Text)
    perspectives = db.Column(db.Text)
    compliance_resource_id = db.Column(db.String(255))
    attachments_raw = db.Column(db.Text)  # JSON array of upload references

    def __repr__(self):
        return f"<ProductLine {self.name}>"
