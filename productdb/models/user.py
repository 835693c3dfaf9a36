"""User model.

Stores credentials and the display name used for audit attribution.
"""

from productdb.extensions import db
from productdb.models.mixins import RecordMixin


class User(RecordMixin, db.Model):
    __tablename__ = "users"

    ROLES = ["user", "admin"]
    PRIVATE_COLUMNS = ("password_hash",)

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    display_name = db.Column(db.String(255), nullable=False)
    user_role = db.Column(db.String(50), nullable=False, default="user")

    def __repr__(self):
        return f"<User {self.email}>"
