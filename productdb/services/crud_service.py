"""CRUD service — create, update, delete and list for any registered table.

Every mutation runs in one unit of work (commit on success, rollback on
any exception) and keeps uploaded files in step with the table's file
column:

- create: fresh uploads become the file column; if anything fails they
  are deleted again.
- update: file column becomes retained + uploaded; references dropped
  from it are deleted only after commit. On failure only the fresh
  uploads are deleted.
- delete: every referenced file is deleted only after the row delete
  commits.

Audit entries and post-commit deletions go through the deferred
dispatcher once the transaction outcome is known. Neither can change the
result returned to the caller.

Payloads move through small pure stages (with_files, resolve_references,
filter_payload, coerce_values), each returning a new dict.
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError

from productdb.errors import (
    Conflict,
    CrudError,
    EmptyUpdate,
    Internal,
    NotFound,
    ReferenceNotFound,
    ValidationFailed,
)
from productdb.extensions import db
from productdb.registry import SERVER_MANAGED_FIELDS
from productdb.services import audit_service, storage_service
from productdb.services.tasks import defer

logger = logging.getLogger(__name__)


# ─── Payload stages ──────────────────────────────────────────────

def normalize_references(value):
    """Coerce a retained-references value to a list of strings.

    Multipart forms send one string per file, JSON clients may send a
    list, a single string, or a JSON-encoded array string.
    """
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text.startswith("["):
            try:
                value = json.loads(text)
            except ValueError:
                return [value]
        else:
            return [value]
    if isinstance(value, (list, tuple)):
        return [ref for ref in value if isinstance(ref, str) and ref]
    return []


def parse_references(raw, table_name=None, record_id=None):
    """Decode a stored file column. Malformed values count as no files."""
    if raw is None or raw == "":
        return []
    try:
        value = json.loads(raw) if isinstance(raw, str) else raw
    except ValueError:
        logger.warning(
            f"Malformed file column on {table_name}/{record_id}: {raw!r}. "
            f"Treating as no files."
        )
        return []
    if not isinstance(value, list):
        logger.warning(
            f"File column on {table_name}/{record_id} is not a JSON array: {raw!r}. "
            f"Treating as no files."
        )
        return []
    return [ref for ref in value if isinstance(ref, str)]


def merge_references(existing, retained, uploaded):
    """Retained references (only those the record already owns), then uploads.

    Order is preserved and duplicates removed.
    """
    kept = []
    for ref in retained:
        if ref in existing:
            kept.append(ref)
        else:
            logger.warning(f"Ignoring retained reference not owned by record: {ref!r}")

    final = []
    for ref in kept + list(uploaded):
        if ref not in final:
            final.append(ref)
    return final


def with_files(spec, payload, references):
    """Set the file column to the JSON array of references."""
    result = dict(payload)
    if spec.file_column is not None:
        result[spec.file_column] = json.dumps(list(references))
    return result


def strip_server_fields(payload):
    return {k: v for k, v in payload.items() if k not in SERVER_MANAGED_FIELDS}


def filter_payload(spec, payload):
    """Keep only allow-listed columns. Unknown fields are dropped silently."""
    return {
        k: v
        for k, v in payload.items()
        if k in spec.allowed_columns and k not in SERVER_MANAGED_FIELDS
    }


def coerce_values(spec, payload):
    """Convert form strings for integer columns; JSON structures to text."""
    integer_columns = spec.integer_columns
    result = {}
    for key, value in payload.items():
        if key in integer_columns:
            value = _to_int(key, value)
        elif isinstance(value, (dict, list)):
            value = json.dumps(value)
        result[key] = value
    return result


def check_required(spec, payload, partial=False):
    """Raise ValidationFailed for a missing or blank required field.

    With partial=True (updates) only fields present in the payload are
    checked.
    """
    for field in spec.required:
        if partial and field not in payload:
            continue
        value = payload.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationFailed(f"Field '{field}' is required.")


def resolve_references(spec, payload):
    """Resolve the table's name lookup (e.g. product line name -> id).

    Raises ReferenceNotFound when the name matches no row.
    """
    lookup = spec.name_lookup
    if lookup is None or not payload.get(lookup.field):
        return dict(payload)

    value = payload[lookup.field]
    column = getattr(lookup.target, lookup.column)
    row = (
        lookup.target.query
        .with_entities(lookup.target.id)
        .filter(column == value)
        .first()
    )
    if row is None:
        raise ReferenceNotFound(lookup.not_found_message(value))

    result = dict(payload)
    result[lookup.id_field] = row[0]
    return result


def _to_int(key, value):
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValidationFailed(f"Field '{key}' must be a whole number.")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"Field '{key}' must be a whole number.")


# ─── Transaction + error helpers ─────────────────────────────────

@contextmanager
def unit_of_work():
    """Scoped transaction: commit on success, roll back on any exception."""
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def _is_unique_violation(exc):
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code == "23505":
        return True
    return "unique" in str(orig).lower()


def _as_crud_error(spec, verb, exc):
    """Map any failure to the error taxonomy. Driver text is never exposed."""
    if isinstance(exc, CrudError):
        return exc
    if isinstance(exc, IntegrityError):
        if _is_unique_violation(exc):
            return Conflict()
        logger.warning(f"Constraint violation {verb} {spec.name}: {exc.orig}")
        return ValidationFailed("The record violates a database constraint.")
    if isinstance(exc, DataError):
        logger.warning(f"Invalid data {verb} {spec.name}: {exc.orig}")
        return ValidationFailed("One or more fields have an invalid value.")
    logger.error(f"Error {verb} {spec.name}: {exc}", exc_info=exc)
    return Internal(f"Error {verb} {spec.name}.")


def _raise_failure(spec, verb, exc):
    error = _as_crud_error(spec, verb, exc)
    if error is exc:
        raise exc
    raise error from exc


def _require_writable(spec):
    if not spec.writable:
        raise ValidationFailed(f"{spec.name} is read-only.")


def _discard_uploads(references):
    """Delete uploads that belong to a failed operation."""
    if references:
        defer(storage_service.delete_files, list(references))


# ─── Operations ──────────────────────────────────────────────────

def create(spec, payload, principal, uploaded=()):
    """Insert a record. Returns the stored record as a dict.

    Raises:
        ValidationFailed, ReferenceNotFound, Conflict, Internal.
    """
    _require_writable(spec)
    uploaded = list(uploaded)

    try:
        staged = dict(payload)
        if spec.file_column is not None:
            # File references only ever come from this request's uploads
            staged.pop(spec.file_column, None)
            if uploaded:
                staged = with_files(spec, staged, uploaded)
        elif uploaded:
            raise ValidationFailed(f"{spec.name} does not accept file uploads.")
        check_required(spec, staged)

        with unit_of_work():
            staged = resolve_references(spec, staged)
            values = coerce_values(spec, filter_payload(spec, staged))
            record = spec.model(**values)
            record.created_by = principal.id
            record.updated_by = principal.id
            db.session.add(record)
            db.session.flush()
            # Before commit: nothing after commit may discard uploads
            result = record.to_dict()
    except Exception as e:
        _discard_uploads(uploaded)
        _raise_failure(spec, "creating", e)

    logger.info(f"Created {spec.name}/{result['id']} by user {principal.id}")
    audit_service.record(
        "CREATE", spec.name, result["id"], principal.id, principal.display_name, values
    )
    return result


def update(spec, record_id, payload, principal, uploaded=(), retained=None):
    """Update a record and reconcile its file column.

    retained: references the caller keeps; a single string or a list.
    None means the caller sent none (payload[<file column>_retained] is
    consulted as well).

    Raises:
        NotFound, ValidationFailed, ReferenceNotFound, EmptyUpdate,
        Conflict, Internal.
    """
    _require_writable(spec)
    uploaded = list(uploaded)

    if retained is None and spec.retained_field:
        retained = payload.get(spec.retained_field)

    fields = filter_payload(spec, strip_server_fields(payload))
    if spec.file_column is not None:
        fields.pop(spec.file_column, None)
    elif uploaded:
        _discard_uploads(uploaded)
        raise ValidationFailed(f"{spec.name} does not accept file uploads.")

    if not fields and not uploaded and retained is None:
        raise EmptyUpdate()

    retained = normalize_references(retained)
    files_to_delete = []

    try:
        check_required(spec, fields, partial=True)

        with unit_of_work():
            staged = resolve_references(spec, fields)
            values = coerce_values(spec, staged)

            record = db.session.get(spec.model, record_id)
            if record is None:
                raise NotFound(f"{spec.name} with ID {record_id} not found.")
            old_data = record.to_dict()

            if spec.file_column is not None:
                existing = parse_references(
                    getattr(record, spec.file_column), spec.name, record_id
                )
                final = merge_references(existing, retained, uploaded)
                values[spec.file_column] = json.dumps(final)
                files_to_delete = [ref for ref in existing if ref not in final]

            for key, value in values.items():
                setattr(record, key, value)
            record.updated_by = principal.id
            record.updated_at = datetime.now(timezone.utc)
            db.session.flush()
            # Before commit: nothing after commit may discard uploads
            result = record.to_dict()
    except Exception as e:
        _discard_uploads(uploaded)
        _raise_failure(spec, "updating", e)

    if files_to_delete:
        defer(storage_service.delete_files, files_to_delete)

    logger.info(f"Updated {spec.name}/{record_id} by user {principal.id}")
    audit_service.record(
        "UPDATE", spec.name, record_id, principal.id, principal.display_name,
        {"old_data": old_data, "new_data": values},
    )
    return result


def delete(spec, record_id, principal):
    """Delete a record, then its files once the delete has committed.

    Raises:
        NotFound, Internal.
    """
    _require_writable(spec)
    files_to_delete = []

    try:
        with unit_of_work():
            record = db.session.get(spec.model, record_id)
            if record is None:
                raise NotFound(f"{spec.name} with ID {record_id} not found.")

            if spec.file_column is not None:
                files_to_delete = parse_references(
                    getattr(record, spec.file_column), spec.name, record_id
                )

            db.session.delete(record)
            db.session.flush()
    except Exception as e:
        _raise_failure(spec, "deleting", e)

    if files_to_delete:
        defer(storage_service.delete_files, files_to_delete)

    logger.info(f"Deleted {spec.name}/{record_id} by user {principal.id}")
    audit_service.record(
        "DELETE", spec.name, record_id, principal.id, principal.display_name,
        {"status": "Record permanently deleted."},
    )


def list_records(spec):
    """All records of a table in its configured order (and cap)."""
    model = spec.model
    try:
        query = model.query
        if spec.excluded_actions:
            query = query.filter(model.action.notin_(spec.excluded_actions))
        query = query.order_by(*spec.order_by())
        if spec.limit_config_key:
            query = query.limit(current_app.config[spec.limit_config_key])
        return [row.to_dict() for row in query.all()]
    except SQLAlchemyError as e:
        logger.error(f"Error fetching {spec.name}: {e}")
        raise Internal(f"Error fetching data for {spec.name}.") from e


def referenced_files():
    """Every reference held by any record's file column."""
    from productdb.registry import TABLES

    references = set()
    for spec in TABLES.values():
        if spec.file_column is None:
            continue
        column = getattr(spec.model, spec.file_column)
        rows = spec.model.query.with_entities(spec.model.id, column).all()
        for record_id, raw in rows:
            references.update(parse_references(raw, spec.name, record_id))
    return references


def find_orphan_uploads():
    """Stored files that no record references (left by a crash after commit)."""
    referenced = referenced_files()
    stored = storage_service.get_file_store().list_references()
    return [ref for ref in stored if ref not in referenced]
