"""Data blueprint — /api/<table>

One set of routes per registered table; every route requires a token.

Route Map:
  GET    /api/audit_logs           — Audit trail (no LOGIN/LOGOUT, newest 500)
  GET    /api/users                — Users (no password hashes)
  GET    /api/product_lines        — List product lines
  POST   /api/product_lines        — Create (JSON or multipart with attachments_raw files)
  PUT    /api/product_lines/<id>   — Update (attachments_raw_retained + new files)
  DELETE /api/product_lines/<id>   — Delete record and its files
  GET    /api/products             — List products
  POST   /api/products             — Create (JSON or multipart with product_pictures files)
  PUT    /api/products/<id>        — Update (product_pictures_retained + new files)
  DELETE /api/products/<id>        — Delete record and its files

Files are stored before the record operation runs; crud_service removes
them again if the operation fails.
"""

from flask import Blueprint, g, jsonify, request

from productdb.decorators import token_required
from productdb.errors import ValidationFailed
from productdb.registry import AUDIT_LOGS, PRODUCT_LINES, PRODUCTS, USERS
from productdb.services import crud_service, storage_service

data_bp = Blueprint("data", __name__, url_prefix="/api")


def _request_payload(spec):
    """Return (fields, retained) from a JSON or multipart body.

    retained is None when the caller did not send the retained field.
    """
    retained_field = spec.retained_field

    if request.is_json:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationFailed("Request body must be a JSON object.")
        data = dict(data)
        retained = data.pop(retained_field, None) if retained_field else None
        return data, retained

    data = request.form.to_dict()
    retained = None
    if retained_field and retained_field in request.form:
        retained = request.form.getlist(retained_field)
        data.pop(retained_field, None)
    return data, retained


def _store_request_files(spec):
    """Store this request's files for the table's file column."""
    if not request.files:
        return []

    for field in request.files:
        if field != spec.file_column:
            raise ValidationFailed(f"Invalid fieldname: {field}. File rejected.")

    return storage_service.store_uploads(
        spec.file_column, request.files.getlist(spec.file_column)
    )


def _register_list(spec):
    def list_records():
        return jsonify(crud_service.list_records(spec)), 200

    data_bp.add_url_rule(
        f"/{spec.name}",
        endpoint=f"list_{spec.name}",
        view_func=token_required(list_records),
        methods=["GET"],
    )


def _register_mutations(spec):
    def create_record():
        payload, _ = _request_payload(spec)
        uploaded = _store_request_files(spec)
        record = crud_service.create(spec, payload, g.principal, uploaded)
        return jsonify(record), 201

    def update_record(record_id):
        payload, retained = _request_payload(spec)
        uploaded = _store_request_files(spec)
        record = crud_service.update(
            spec, record_id, payload, g.principal, uploaded, retained
        )
        return jsonify(record), 200

    def delete_record(record_id):
        crud_service.delete(spec, record_id, g.principal)
        return "", 204

    data_bp.add_url_rule(
        f"/{spec.name}",
        endpoint=f"create_{spec.name}",
        view_func=token_required(create_record),
        methods=["POST"],
    )
    data_bp.add_url_rule(
        f"/{spec.name}/<int:record_id>",
        endpoint=f"update_{spec.name}",
        view_func=token_required(update_record),
        methods=["PUT"],
    )
    data_bp.add_url_rule(
        f"/{spec.name}/<int:record_id>",
        endpoint=f"delete_{spec.name}",
        view_func=token_required(delete_record),
        methods=["DELETE"],
    )


for _spec in (AUDIT_LOGS, USERS, PRODUCT_LINES, PRODUCTS):
    _register_list(_spec)

for _spec in (PRODUCT_LINES, PRODUCTS):
    _register_mutations(_spec)
