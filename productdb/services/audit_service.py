"""Audit service — best-effort append to audit_logs.

record() hands the write to the deferred dispatcher and returns at once.
A failed write is logged and rolled back; it never reaches the caller and
never changes the outcome of the operation being audited.
"""

import logging

from productdb.extensions import db
from productdb.models.audit import AuditLog
from productdb.services.tasks import defer

logger = logging.getLogger(__name__)


def _write(action, table_name, document_id, user_id, user_name, details):
    try:
        db.session.add(AuditLog(
            action=action,
            table_name=table_name,
            document_id=str(document_id) if document_id is not None else None,
            user_id=user_id,
            user_name=user_name,
            details=details or {},
        ))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(
            f"CRITICAL: Failed to write audit log for {action} on "
            f"{table_name}/{document_id}: {e}"
        )


def record(action, table_name, document_id, user_id, user_name, details=None):
    """Queue an audit entry. Never raises."""
    try:
        defer(_write, action, table_name, document_id, user_id, user_name, details)
    except Exception as e:
        logger.error(f"Failed to dispatch audit log for {action} on {table_name}: {e}")
