"""Shared column helpers for catalog tables."""

from datetime import date, datetime
from decimal import Decimal

from productdb.extensions import db


class RecordMixin:
    """Server-managed audit columns and a JSON-safe serializer.

    created_by / updated_by hold the acting user's id. They are plain
    integers (no FK) so deleting a user never cascades into the catalog.
    """

    # Never serialized back to API clients
    PRIVATE_COLUMNS = ()

    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now(), index=True
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    created_by = db.Column(db.Integer, nullable=True)
    updated_by = db.Column(db.Integer, nullable=True)

    def to_dict(self):
        """Serialize every column (minus PRIVATE_COLUMNS) to JSON-safe values."""
        result = {}
        for column in self.__table__.columns:
            if column.key in self.PRIVATE_COLUMNS:
                continue
            result[column.key] = _json_safe(getattr(self, column.key))
        return result


def _json_safe(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value
