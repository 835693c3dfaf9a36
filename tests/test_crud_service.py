"""Tests for the CRUD service — record operations and file reconciliation.

Covers:
- Create: allow-list filtering, server-managed fields, uploads -> file column
- Create: product line name resolution, unknown name, duplicate name
- Create: uploads removed again on every failure
- Update: retained + uploaded reconciliation, dropped files deleted
- Update: EmptyUpdate, NotFound, malformed file column
- Delete: row removed before its files, NotFound
- Audit entries written and audit failures swallowed
- Listing order, audit filtering and cap
"""

import json
from contextlib import contextmanager
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from productdb.errors import (
    Conflict,
    EmptyUpdate,
    Internal,
    NotFound,
    ReferenceNotFound,
    ValidationFailed,
)
from productdb.extensions import db
from productdb.models.audit import AuditLog
from productdb.models.mixins import RecordMixin
from productdb.models.product import Product
from productdb.models.product_line import ProductLine
from productdb.registry import AUDIT_LOGS, PRODUCT_LINES, PRODUCTS, USERS
from productdb.services import crud_service
from productdb.services.auth_service import Principal


def _line_with_files(name, references):
    line = ProductLine(name=name, attachments_raw=json.dumps(references))
    db.session.add(line)
    db.session.commit()
    return line.id


@contextmanager
def _reads_fail_after_commit():
    """Make RecordMixin.to_dict raise once any commit has gone through."""
    state = {"committed": False}
    real_commit = db.session.commit
    real_to_dict = RecordMixin.to_dict

    def _commit():
        real_commit()
        state["committed"] = True

    def _to_dict(record):
        if state["committed"]:
            raise OperationalError("SELECT", {}, Exception("connection lost"))
        return real_to_dict(record)

    with patch.object(db.session, "commit", _commit), \
            patch.object(RecordMixin, "to_dict", _to_dict):
        yield


class TestCreate:

    def test_unknown_and_server_fields_are_dropped(self, principal):
        record = crud_service.create(
            PRODUCT_LINES,
            {"name": "Pumps", "bogus": "x", "id": 999, "created_by": 42},
            principal,
        )
        assert record["name"] == "Pumps"
        assert "bogus" not in record
        assert record["id"] != 999
        assert record["created_by"] == principal.id
        assert record["updated_by"] == principal.id

    def test_uploads_become_file_column(self, principal, make_upload):
        ref = make_upload("attachments_raw-a.pdf")
        record = crud_service.create(PRODUCT_LINES, {"name": "Pumps"}, principal, [ref])
        assert json.loads(record["attachments_raw"]) == [ref]

    def test_caller_supplied_file_column_is_ignored(self, principal):
        record = crud_service.create(
            PRODUCT_LINES,
            {"name": "Pumps", "attachments_raw": '["uploads/someone-else.pdf"]'},
            principal,
        )
        assert record["attachments_raw"] is None

    def test_product_line_name_is_resolved(self, principal, seed_data):
        record = crud_service.create(
            PRODUCTS, {"product_name": "Servo", "product_line": "Drives"}, principal
        )
        assert record["product_line_id"] == seed_data["product_line_id"]
        assert record["product_line"] == "Drives"

    def test_unknown_product_line_rejected_and_uploads_removed(
        self, principal, make_upload, upload_dir
    ):
        ref = make_upload("product_pictures-x.png")
        with pytest.raises(ReferenceNotFound) as exc:
            crud_service.create(
                PRODUCTS,
                {"product_name": "X", "product_line": "Alpha"},
                principal,
                [ref],
            )
        assert exc.value.message == (
            'Product line with name "Alpha" not found. '
            "Please create the Product line first."
        )
        assert Product.query.count() == 0
        assert not (upload_dir / "product_pictures-x.png").exists()

    def test_duplicate_name_conflict_removes_uploads(
        self, principal, make_upload, upload_dir
    ):
        ref = make_upload("attachments_raw-dup.pdf")
        with pytest.raises(Conflict) as exc:
            crud_service.create(PRODUCT_LINES, {"name": "Drives"}, principal, [ref])
        assert exc.value.status_code == 409
        assert ProductLine.query.count() == 1
        assert not (upload_dir / "attachments_raw-dup.pdf").exists()

    def test_missing_required_field(self, principal, make_upload, upload_dir):
        ref = make_upload("attachments_raw-b.pdf")
        with pytest.raises(ValidationFailed):
            crud_service.create(PRODUCT_LINES, {"name": "   "}, principal, [ref])
        assert not (upload_dir / "attachments_raw-b.pdf").exists()

    def test_non_integer_for_integer_column(self, principal):
        with pytest.raises(ValidationFailed) as exc:
            crud_service.create(
                PRODUCTS, {"product_name": "X", "product_line_id": "abc"}, principal
            )
        assert "product_line_id" in exc.value.message

    def test_database_failure_maps_to_internal(
        self, principal, make_upload, upload_dir
    ):
        ref = make_upload("attachments_raw-c.pdf")
        failure = OperationalError("INSERT", {}, Exception("disk I/O error"))
        with patch.object(db.session, "flush", side_effect=failure):
            with pytest.raises(Internal) as exc:
                crud_service.create(PRODUCT_LINES, {"name": "Pumps"}, principal, [ref])
        assert exc.value.message == "Error creating product_lines."
        assert "disk" not in exc.value.message
        assert not (upload_dir / "attachments_raw-c.pdf").exists()

    def test_post_commit_read_failure_keeps_uploads(
        self, principal, make_upload, upload_dir
    ):
        ref = make_upload("attachments_raw-p.pdf")
        with _reads_fail_after_commit():
            record = crud_service.create(
                PRODUCT_LINES, {"name": "Pumps"}, principal, [ref]
            )
        assert json.loads(record["attachments_raw"]) == [ref]
        assert (upload_dir / "attachments_raw-p.pdf").exists()
        db.session.expire_all()
        stored = db.session.get(ProductLine, record["id"])
        assert json.loads(stored.attachments_raw) == [ref]

    def test_read_only_table_rejected(self, principal):
        with pytest.raises(ValidationFailed):
            crud_service.create(USERS, {"email": "x@example.com"}, principal)

    def test_create_writes_audit_entry(self, principal):
        record = crud_service.create(PRODUCT_LINES, {"name": "Pumps"}, principal)
        entry = AuditLog.query.filter_by(action="CREATE").one()
        assert entry.table_name == "product_lines"
        assert entry.document_id == str(record["id"])
        assert entry.user_id == principal.id
        assert entry.user_name == "Test User"
        assert entry.details["name"] == "Pumps"

    def test_audit_failure_does_not_fail_create(self, principal):
        with patch(
            "productdb.services.audit_service.AuditLog",
            side_effect=RuntimeError("audit store down"),
        ):
            record = crud_service.create(PRODUCT_LINES, {"name": "Pumps"}, principal)
        assert record["name"] == "Pumps"
        assert db.session.get(ProductLine, record["id"]) is not None
        assert AuditLog.query.count() == 0


class TestUpdate:

    def test_retained_and_uploaded_reconciled(
        self, principal, make_upload, upload_dir
    ):
        a = make_upload("a.pdf")
        c = make_upload("c.pdf")
        line_id = _line_with_files("Pumps", [a, c])
        b = make_upload("b.pdf")

        record = crud_service.update(
            PRODUCT_LINES, line_id, {}, principal, uploaded=[b], retained=[a]
        )

        assert json.loads(record["attachments_raw"]) == [a, b]
        assert (upload_dir / "a.pdf").exists()
        assert (upload_dir / "b.pdf").exists()
        assert not (upload_dir / "c.pdf").exists()

    def test_retained_as_single_string(self, principal, make_upload, upload_dir):
        a = make_upload("a.pdf")
        c = make_upload("c.pdf")
        line_id = _line_with_files("Pumps", [a, c])

        record = crud_service.update(
            PRODUCT_LINES, line_id, {"history": "h"}, principal, retained=a
        )

        assert json.loads(record["attachments_raw"]) == [a]
        assert not (upload_dir / "c.pdf").exists()

    def test_retained_read_from_payload(self, principal, make_upload):
        a = make_upload("a.pdf")
        c = make_upload("c.pdf")
        line_id = _line_with_files("Pumps", [a, c])

        record = crud_service.update(
            PRODUCT_LINES, line_id, {"attachments_raw_retained": [c]}, principal
        )

        assert json.loads(record["attachments_raw"]) == [c]

    def test_foreign_retained_reference_ignored(
        self, principal, make_upload, upload_dir
    ):
        a = make_upload("a.pdf")
        other = make_upload("other.pdf")
        _line_with_files("Other", [other])
        line_id = _line_with_files("Pumps", [a])

        record = crud_service.update(
            PRODUCT_LINES, line_id, {}, principal, retained=[a, other]
        )

        assert json.loads(record["attachments_raw"]) == [a]
        assert (upload_dir / "other.pdf").exists()

    def test_fields_only_update_drops_unretained_files(
        self, principal, make_upload, upload_dir
    ):
        a = make_upload("a.pdf")
        line_id = _line_with_files("Pumps", [a])

        record = crud_service.update(PRODUCT_LINES, line_id, {"history": "h"}, principal)

        assert record["history"] == "h"
        assert json.loads(record["attachments_raw"]) == []
        assert not (upload_dir / "a.pdf").exists()

    def test_empty_update(self, principal, seed_data):
        with patch("productdb.services.storage_service.delete_files") as mock_delete:
            with pytest.raises(EmptyUpdate) as exc:
                crud_service.update(
                    PRODUCT_LINES,
                    seed_data["product_line_id"],
                    {"id": 5, "created_at": "x", "bogus": 1},
                    principal,
                )
        assert exc.value.message == "No valid fields or new files provided for update."
        mock_delete.assert_not_called()

    def test_missing_record_removes_only_new_uploads(
        self, principal, make_upload, upload_dir
    ):
        a = make_upload("a.pdf")
        _line_with_files("Pumps", [a])
        b = make_upload("b.pdf")

        with pytest.raises(NotFound) as exc:
            crud_service.update(
                PRODUCT_LINES, 9999, {"name": "Z"}, principal, uploaded=[b]
            )

        assert exc.value.message == "product_lines with ID 9999 not found."
        assert not (upload_dir / "b.pdf").exists()
        assert (upload_dir / "a.pdf").exists()

    def test_unknown_product_line_aborts_update(
        self, principal, make_upload, upload_dir
    ):
        product = crud_service.create(
            PRODUCTS, {"product_name": "Servo", "product_line": "Drives"}, principal
        )
        ref = make_upload("product_pictures-w.png")

        with pytest.raises(ReferenceNotFound):
            crud_service.update(
                PRODUCTS, product["id"], {"product_line": "Widgets"}, principal,
                uploaded=[ref],
            )

        assert not (upload_dir / "product_pictures-w.png").exists()
        db.session.expire_all()
        stored = db.session.get(Product, product["id"])
        assert stored.product_line == "Drives"
        assert stored.product_line_id == product["product_line_id"]
        assert stored.product_pictures is None

    def test_post_commit_read_failure_keeps_uploads(
        self, principal, make_upload, upload_dir
    ):
        line_id = _line_with_files("Pumps", [])
        ref = make_upload("attachments_raw-q.pdf")

        with _reads_fail_after_commit():
            record = crud_service.update(
                PRODUCT_LINES, line_id, {}, principal, uploaded=[ref]
            )

        assert json.loads(record["attachments_raw"]) == [ref]
        assert (upload_dir / "attachments_raw-q.pdf").exists()
        db.session.expire_all()
        stored = db.session.get(ProductLine, line_id)
        assert json.loads(stored.attachments_raw) == [ref]

    def test_conflict_keeps_existing_files(self, principal, make_upload, upload_dir):
        a = make_upload("a.pdf")
        line_id = _line_with_files("Pumps", [a])
        b = make_upload("b.pdf")

        with pytest.raises(Conflict):
            crud_service.update(
                PRODUCT_LINES, line_id, {"name": "Drives"}, principal,
                uploaded=[b], retained=[],
            )

        assert (upload_dir / "a.pdf").exists()
        assert not (upload_dir / "b.pdf").exists()
        db.session.expire_all()
        line = db.session.get(ProductLine, line_id)
        assert line.name == "Pumps"
        assert json.loads(line.attachments_raw) == [a]

    def test_malformed_file_column_treated_as_empty(self, principal, caplog):
        line = ProductLine(name="Pumps", attachments_raw="not-json")
        db.session.add(line)
        db.session.commit()

        with patch("productdb.services.storage_service.delete_files") as mock_delete:
            record = crud_service.update(
                PRODUCT_LINES, line.id, {"history": "h"}, principal
            )

        assert record["attachments_raw"] == "[]"
        mock_delete.assert_not_called()
        assert "Malformed file column" in caplog.text

    def test_server_fields_ignored_and_updated_by_set(self, seed_data):
        editor = Principal(id=77, display_name="Editor")
        record = crud_service.update(
            PRODUCT_LINES,
            seed_data["product_line_id"],
            {"created_by": 1234, "history": "h"},
            editor,
        )
        assert record["created_by"] == seed_data["user_id"]
        assert record["updated_by"] == 77

    def test_blank_required_field_rejected(self, principal, seed_data):
        with pytest.raises(ValidationFailed):
            crud_service.update(
                PRODUCT_LINES, seed_data["product_line_id"], {"name": "  "}, principal
            )

    def test_update_audit_has_old_and_new_data(self, principal, seed_data):
        crud_service.update(
            PRODUCT_LINES, seed_data["product_line_id"], {"history": "since 1990"},
            principal,
        )
        entry = AuditLog.query.filter_by(action="UPDATE").one()
        assert entry.details["old_data"]["history"] is None
        assert entry.details["new_data"]["history"] == "since 1990"

    def test_product_line_change_resolves_id(self, principal, seed_data):
        product = crud_service.create(PRODUCTS, {"product_name": "Servo"}, principal)
        record = crud_service.update(
            PRODUCTS, product["id"], {"product_line": "Drives"}, principal
        )
        assert record["product_line_id"] == seed_data["product_line_id"]


class TestDelete:

    def test_delete_removes_row_then_files(self, principal, make_upload, upload_dir):
        a = make_upload("a.pdf")
        c = make_upload("c.pdf")
        line_id = _line_with_files("Pumps", [a, c])

        seen = []

        def _check_row(references):
            seen.append((db.session.get(ProductLine, line_id), list(references)))

        with patch(
            "productdb.services.storage_service.delete_files",
            side_effect=_check_row,
        ):
            crud_service.delete(PRODUCT_LINES, line_id, principal)

        assert seen == [(None, [a, c])]

    def test_delete_removes_files(self, principal, make_upload, upload_dir):
        a = make_upload("a.pdf")
        line_id = _line_with_files("Pumps", [a])

        crud_service.delete(PRODUCT_LINES, line_id, principal)

        assert db.session.get(ProductLine, line_id) is None
        assert not (upload_dir / "a.pdf").exists()
        entry = AuditLog.query.filter_by(action="DELETE").one()
        assert entry.details == {"status": "Record permanently deleted."}

    def test_delete_missing_record(self, principal):
        with patch("productdb.services.storage_service.delete_files") as mock_delete:
            with pytest.raises(NotFound):
                crud_service.delete(PRODUCTS, 424242, principal)
        mock_delete.assert_not_called()
        assert AuditLog.query.count() == 0

    def test_file_deletion_failure_does_not_fail_delete(
        self, principal, make_upload
    ):
        a = make_upload("a.pdf")
        line_id = _line_with_files("Pumps", [a])

        with patch(
            "productdb.services.storage_service.LocalFileStore.delete",
            side_effect=OSError("permission denied"),
        ):
            crud_service.delete(PRODUCT_LINES, line_id, principal)

        assert db.session.get(ProductLine, line_id) is None


class TestListRecords:

    def test_product_lines_newest_first(self, principal, seed_data):
        crud_service.create(PRODUCT_LINES, {"name": "Pumps"}, principal)
        records = crud_service.list_records(PRODUCT_LINES)
        assert [r["name"] for r in records] == ["Pumps", "Drives"]

    def test_users_never_expose_password_hash(self, seed_data):
        records = crud_service.list_records(USERS)
        assert records[0]["email"] == "tester@example.com"
        assert "password_hash" not in records[0]

    def test_audit_excludes_session_events(self, app):
        for action in ("LOGIN", "CREATE", "LOGOUT", "UPDATE"):
            db.session.add(AuditLog(action=action, table_name="users"))
        db.session.commit()

        records = crud_service.list_records(AUDIT_LOGS)
        assert [r["action"] for r in records] == ["UPDATE", "CREATE"]

    def test_audit_listing_capped(self, app):
        for _ in range(5):
            db.session.add(AuditLog(action="CREATE", table_name="products"))
        db.session.commit()

        original = app.config["AUDIT_LOG_LIMIT"]
        app.config["AUDIT_LOG_LIMIT"] = 3
        try:
            records = crud_service.list_records(AUDIT_LOGS)
        finally:
            app.config["AUDIT_LOG_LIMIT"] = original
        assert len(records) == 3


class TestOrphanUploads:

    def test_unreferenced_files_reported(self, principal, make_upload):
        a = make_upload("a.pdf")
        orphan = make_upload("orphan.pdf")
        _line_with_files("Pumps", [a])

        assert crud_service.find_orphan_uploads() == [orphan]
