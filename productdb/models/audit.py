"""Audit log model.

Append-only record of every mutation and session event (SIGNUP, LOGIN,
LOGOUT, CREATE, UPDATE, DELETE). Rows are never updated or deleted by the
application.
"""

from productdb.extensions import db


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    ACTIONS = ["SIGNUP", "LOGIN", "LOGOUT", "CREATE", "UPDATE", "DELETE"]
    SESSION_ACTIONS = ("LOGIN", "LOGOUT")

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(50), nullable=False, index=True)
    table_name = db.Column(db.String(100), nullable=False)
    document_id = db.Column(db.String(64), nullable=True)
    user_id = db.Column(db.Integer, nullable=True)
    user_name = db.Column(db.String(255), nullable=True)
    details = db.Column(db.JSON, default=dict)
    logged_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now(), index=True
    )

    def to_dict(self):
        return {
            "id": self.id,
            "action": self.action,
            "table_name": self.table_name,
            "document_id": self.document_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "details": self.details or {},
            "logged_at": self.logged_at.isoformat() if self.logged_at else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.action} {self.table_name}/{self.document_id}>"
