"""Tests for the OFX ingestion service."""

from datetime import date
from decimal import Decimal
from unittest.mock import patch

import pytest

from conciliacao.constants import OfxImportStatus, OfxLineStatus, SourceType
from conciliacao.core.exceptions import AuditLogError, ConciliacaoError, ImportStateError
from conciliacao.crud.crud import crud_ofx_import, crud_ofx_line
from conciliacao.models import AuditLog, OfxImport, OfxLine
from conciliacao.schemas.ofx_schemas import OfxImportCreate, OfxTransaction
from conciliacao.services.ofx_import_service import ofx_import_service

SINGLE_B_OFX = """<OFX>
<BANKTRANLIST>
<STMTTRN>
<TRNTYPE>CREDIT
<DTPOSTED>20240310
<TRNAMT>2500,50
<FITID>B
<NAME>VENDAS CARTAO
</STMTTRN>
</BANKTRANLIST>
</OFX>
"""

NO_BLOCK_OFX = "<OFX>\n<CURDEF>BRL\n<ACCTID>12345-6\n</OFX>\n"

DUPLICATE_B_OFX = SINGLE_B_OFX.replace(
    "</BANKTRANLIST>",
    "<STMTTRN>\n<DTPOSTED>20240311\n<TRNAMT>10.00\n<FITID>B\n</STMTTRN>\n</BANKTRANLIST>",
)


def _import(db, context, seed, content, bank_account_id=None, store_id=None, file_name="extrato.ofx"):
    return ofx_import_service.import_ofx_file(
        db,
        context,
        store_id=store_id or seed.store_id,
        bank_account_id=bank_account_id or seed.bank_account_id,
        file_name=file_name,
        file_content=content,
    )


class TestImportOfxFile:
    """Tests for staging a parsed statement."""

    def test_valid_file_stages_every_transaction(self, db_session, seed, context, sample_ofx):
        """A statement with three valid transactions stages three pending lines."""
        # Act
        result = _import(db_session, context, seed, sample_ofx)

        # Assert
        assert result.success is True
        assert result.error is None
        assert result.data.total_parsed == 3
        assert result.data.inserted == 3
        assert result.data.skipped_duplicates == 0
        assert result.data.errors == []

        record = result.data.import_record
        assert record.status == OfxImportStatus.IMPORTED
        assert record.total_lines == 3
        assert record.pending_lines == 3
        assert record.matched_lines == 0
        assert record.ignored_lines == 0
        assert record.imported_at is not None
        assert record.period_start == date(2024, 3, 1)
        assert record.period_end == date(2024, 3, 31)
        assert record.source_type == SourceType.IMPORT
        assert record.created_by == seed.user_id

        lines = db_session.query(OfxLine).order_by(OfxLine.transaction_date).all()
        assert [line.fitid for line in lines] == ["A", "B", "C"]
        assert all(line.status == OfxLineStatus.PENDING for line in lines)
        assert all(line.hash_key is None for line in lines)
        assert all(line.ofx_import_id == record.id for line in lines)
        assert lines[0].amount == Decimal("-150.00")
        assert lines[0].raw_data == {"rawDate": "20240305120000[-3:BRT]", "typeCode": "DEBIT"}

    def test_reimport_skips_every_line_and_creates_new_record(self, db_session, seed, context, sample_ofx):
        """Importing the same statement again inserts nothing but still records the attempt."""
        # Arrange
        first = _import(db_session, context, seed, sample_ofx)
        db_session.commit()

        # Act
        second = _import(db_session, context, seed, sample_ofx)
        db_session.commit()

        # Assert
        assert second.success is True
        assert second.data.inserted == 0
        assert second.data.skipped_duplicates == 3
        assert second.data.errors == []
        assert second.data.import_record.id != first.data.import_record.id
        assert second.data.import_record.status == OfxImportStatus.IMPORTED
        assert second.data.import_record.total_lines == 3
        assert second.data.import_record.pending_lines == 0

        assert db_session.query(OfxImport).count() == 2
        assert db_session.query(OfxLine).count() == 3

    def test_same_file_on_another_account_is_staged_again(self, db_session, seed, context, sample_ofx):
        """FITID uniqueness is scoped to the bank account."""
        # Arrange
        _import(db_session, context, seed, sample_ofx)

        # Act
        result = _import(db_session, context, seed, sample_ofx, bank_account_id=seed.second_bank_account_id)

        # Assert
        assert result.success is True
        assert result.data.inserted == 3
        assert db_session.query(OfxLine).count() == 6

    def test_parse_warnings_are_returned_with_result(self, db_session, seed, context):
        """Parser warnings such as repeated FITIDs are returned in the result errors."""
        # Act
        result = _import(db_session, context, seed, DUPLICATE_B_OFX)

        # Assert
        assert result.success is True
        assert result.data.total_parsed == 1
        assert result.data.inserted == 1
        assert result.data.errors == ["Duplicate FITID ignored: B"]
        assert result.data.import_record.status == OfxImportStatus.IMPORTED

    def test_missing_block_fails_before_creating_record(self, db_session, seed, context):
        """A file without BANKTRANLIST is rejected and nothing is persisted."""
        # Act
        result = _import(db_session, context, seed, NO_BLOCK_OFX)

        # Assert
        assert result.success is False
        assert result.data is None
        assert result.error == "OFX parse failed: BANKTRANLIST block not found in OFX file"
        assert db_session.query(OfxImport).count() == 0
        assert db_session.query(AuditLog).count() == 0

    def test_file_without_transactions_fails(self, db_session, seed, context):
        """An empty transaction list is rejected with the parser's warning."""
        # Act
        result = _import(db_session, context, seed, "<OFX><BANKTRANLIST></BANKTRANLIST></OFX>")

        # Assert
        assert result.success is False
        assert result.error == "OFX parse failed: No transactions found in OFX file"
        assert db_session.query(OfxImport).count() == 0

    def test_insert_failure_marks_import_partial(self, db_session, seed, context, sample_ofx):
        """A line lost to the unique constraint is reported and the import ends as partial."""
        # Arrange
        _import(db_session, context, seed, SINGLE_B_OFX)
        db_session.commit()

        # Act
        with patch.object(crud_ofx_line, "exists_by_fitid", return_value=False):
            result = _import(db_session, context, seed, sample_ofx)
        db_session.commit()

        # Assert
        assert result.success is True
        assert result.data.total_parsed == 3
        assert result.data.inserted == 2
        assert result.data.skipped_duplicates == 0
        assert len(result.data.errors) == 1
        assert result.data.errors[0].startswith("FITID B: ")

        record = result.data.import_record
        assert record.status == OfxImportStatus.PARTIAL
        assert record.total_lines == 3
        assert record.pending_lines == 2
        assert db_session.query(OfxLine).filter(OfxLine.ofx_import_id == record.id).count() == 2

    def test_single_audit_entry_is_written(self, db_session, seed, context, sample_ofx):
        """A successful import writes exactly one audit entry describing the run."""
        # Act
        result = _import(db_session, context, seed, sample_ofx)

        # Assert
        logs = db_session.query(AuditLog).all()
        assert len(logs) == 1
        log = logs[0]
        assert log.action == "ofx_import"
        assert log.table_name == "ofx_imports"
        assert log.record_id == result.data.import_record.id
        assert log.store_id == seed.store_id
        assert log.user_id == seed.user_id
        assert log.org_id == seed.org_id
        assert log.ip_address == "127.0.0.1"
        assert log.new_data == {
            "file_name": "extrato.ofx",
            "total_parsed": 3,
            "inserted": 3,
            "skipped": 0,
            "errors": 0,
        }

    def test_audit_entry_counts_only_failed_lines(self, db_session, seed, context):
        """The audit entry records the number of failed lines, not the parser warnings."""
        # Arrange
        _import(db_session, context, seed, SINGLE_B_OFX)
        db_session.commit()

        # Act
        with patch.object(crud_ofx_line, "exists_by_fitid", return_value=False):
            result = _import(db_session, context, seed, DUPLICATE_B_OFX)

        # Assert
        assert result.success is True
        assert result.data.errors[0] == "Duplicate FITID ignored: B"
        assert result.data.errors[1].startswith("FITID B: ")
        log = (
            db_session.query(AuditLog)
            .filter(AuditLog.record_id == result.data.import_record.id)
            .one()
        )
        assert log.new_data["errors"] == 1
        assert log.new_data["inserted"] == 0

    def test_audit_failure_rolls_back_import(self, db_session, seed, context, sample_ofx):
        """When the audit entry cannot be written the import and its lines are rolled back."""
        # Act
        with patch(
            "conciliacao.services.ofx_import_service.log_action",
            side_effect=AuditLogError("Audit log failed: connection lost"),
        ):
            result = _import(db_session, context, seed, sample_ofx)

        # Assert
        assert result.success is False
        assert result.error == "Audit log failed: connection lost"
        assert db_session.query(OfxImport).count() == 0
        assert db_session.query(OfxLine).count() == 0

    def test_missing_context_is_rejected(self, db_session, seed, sample_ofx):
        """Without an authenticated context nothing is imported."""
        # Act
        result = _import(db_session, None, seed, sample_ofx)

        # Assert
        assert result.success is False
        assert result.error == "Not authenticated."
        assert db_session.query(OfxImport).count() == 0


class TestImportValidation:
    """Tests for checks that run before any write."""

    def test_inactive_bank_account(self, db_session, seed, context, sample_ofx):
        """An inactive bank account cannot receive imports."""
        # Act
        result = _import(db_session, context, seed, sample_ofx, bank_account_id=seed.inactive_bank_account_id)

        # Assert
        assert result.success is False
        assert result.error == f"Bank account {seed.inactive_bank_account_id} is inactive."
        assert db_session.query(OfxImport).count() == 0

    def test_bank_account_from_another_organization(self, db_session, seed, context, sample_ofx):
        """A bank account outside the caller's organization is treated as missing."""
        # Act
        result = _import(db_session, context, seed, sample_ofx, bank_account_id=seed.other_org_bank_account_id)

        # Assert
        assert result.success is False
        assert result.error == f"Bank account {seed.other_org_bank_account_id} not found."

    def test_bank_account_from_another_store(self, db_session, seed, context, sample_ofx):
        """The bank account must belong to the selected store."""
        # Act
        result = _import(db_session, context, seed, sample_ofx, store_id=seed.second_store_id)

        # Assert
        assert result.success is False
        assert result.error == (
            f"Bank account {seed.bank_account_id} does not belong to store {seed.second_store_id}."
        )

    def test_store_from_another_organization(self, db_session, seed, context, sample_ofx):
        """A store outside the caller's organization is rejected."""
        # Act
        result = _import(db_session, context, seed, sample_ofx, store_id=seed.other_store_id)

        # Assert
        assert result.success is False
        assert result.error == f"Store {seed.other_store_id} not found."

    def test_empty_content_and_file_name(self, db_session, seed, context, sample_ofx):
        """Blank content or a blank file name fail fast."""
        # Act
        empty_content = _import(db_session, context, seed, "   ")
        empty_name = _import(db_session, context, seed, sample_ofx, file_name=" ")

        # Assert
        assert empty_content.error == "OFX file is empty."
        assert empty_name.error == "File name is required."


class TestFinalizeImport:
    """Tests for the one-way status transition of an import record."""

    def test_second_finalization_is_refused(self, db_session, seed):
        """A finalized import cannot be finalized again and keeps its status and counters."""
        # Arrange
        ofx_import = crud_ofx_import.create_import(
            db_session,
            OfxImportCreate(store_id=seed.store_id, bank_account_id=seed.bank_account_id, file_name="extrato.ofx"),
            org_id=seed.org_id,
            user_id=seed.user_id,
        )
        crud_ofx_import.finalize_import(db_session, ofx_import, total_lines=3, inserted=2, has_line_errors=True)

        # Act / Assert
        with pytest.raises(ImportStateError):
            crud_ofx_import.finalize_import(db_session, ofx_import, total_lines=3, inserted=3, has_line_errors=False)

        db_session.refresh(ofx_import)
        assert ofx_import.status == OfxImportStatus.PARTIAL
        assert ofx_import.pending_lines == 2

    def test_state_error_is_a_domain_error(self):
        """The refusal is a ConciliacaoError, so the service turns it into a failure result."""
        assert issubclass(ImportStateError, ConciliacaoError)

    def test_finalization_failure_becomes_failure_result(self, db_session, seed, context, sample_ofx):
        """A refused finalization rolls back the import and is reported as a failure."""
        # Act
        with patch.object(
            crud_ofx_import,
            "finalize_import",
            side_effect=ImportStateError("OFX import 1 is already finalized with status 'imported'."),
        ):
            result = _import(db_session, context, seed, sample_ofx)

        # Assert
        assert result.success is False
        assert result.error == "OFX import 1 is already finalized with status 'imported'."
        assert db_session.query(OfxImport).count() == 0
        assert db_session.query(OfxLine).count() == 0


class TestStageTransactionWithoutFitid:
    """Tests for the hash-key path used when a transaction carries no FITID."""

    def test_hash_key_line_is_staged_once(self, db_session, seed, context):
        """A transaction without FITID is keyed by its hash and deduplicated on that key."""
        # Arrange
        ofx_import = crud_ofx_import.create_import(
            db_session,
            OfxImportCreate(store_id=seed.store_id, bank_account_id=seed.bank_account_id, file_name="sem-fitid.ofx"),
            org_id=seed.org_id,
            user_id=seed.user_id,
        )
        tx = OfxTransaction(
            fitid="", date=date(2024, 3, 1), amount=Decimal("-9.90"),
            description="TARIFA PIX", raw_date="20240301",
        )

        # Act
        first = ofx_import_service._stage_transaction(db_session, ofx_import, tx)
        second = ofx_import_service._stage_transaction(db_session, ofx_import, tx)

        # Assert
        assert first == (True, None)
        assert second == (False, None)
        line = db_session.query(OfxLine).one()
        assert line.fitid is None
        assert line.hash_key.startswith("hash_")


class TestReadOperations:
    """Tests for listing imports and their lines."""

    def test_list_imports_newest_first_with_filters(self, db_session, seed, context, sample_ofx):
        """Imports are listed newest first and can be filtered by account and status."""
        # Arrange
        first = _import(db_session, context, seed, sample_ofx)
        second = _import(db_session, context, seed, sample_ofx, bank_account_id=seed.second_bank_account_id)
        db_session.commit()

        # Act
        all_imports = ofx_import_service.list_imports(db_session, seed.org_id)
        by_account = ofx_import_service.list_imports(db_session, seed.org_id, bank_account_id=seed.bank_account_id)
        partial = ofx_import_service.list_imports(db_session, seed.org_id, status=OfxImportStatus.PARTIAL)
        limited = ofx_import_service.list_imports(db_session, seed.org_id, limit=1)

        # Assert
        assert [i.id for i in all_imports] == [second.data.import_record.id, first.data.import_record.id]
        assert [i.id for i in by_account] == [first.data.import_record.id]
        assert partial == []
        assert len(limited) == 1
        assert ofx_import_service.list_imports(db_session, seed.other_org_id) == []

    def test_get_import_is_scoped_to_organization(self, db_session, seed, context, sample_ofx):
        """An import is only visible to its own organization."""
        # Arrange
        import_id = _import(db_session, context, seed, sample_ofx).data.import_record.id

        # Act / Assert
        assert ofx_import_service.get_import(db_session, seed.org_id, import_id).id == import_id
        assert ofx_import_service.get_import(db_session, seed.other_org_id, import_id) is None

    def test_get_lines_ordered_by_date_with_status_filter(self, db_session, seed, context, sample_ofx):
        """Lines come back ordered by transaction date and can be filtered by status."""
        # Arrange
        import_id = _import(db_session, context, seed, sample_ofx).data.import_record.id

        # Act
        lines = ofx_import_service.get_lines(db_session, seed.org_id, import_id)
        matched = ofx_import_service.get_lines(db_session, seed.org_id, import_id, status=OfxLineStatus.MATCHED)

        # Assert
        assert [line.transaction_date for line in lines] == [date(2024, 3, 5), date(2024, 3, 10), date(2024, 3, 15)]
        assert matched == []
        assert ofx_import_service.get_lines(db_session, seed.other_org_id, import_id) == []

    def test_import_audit_logs(self, db_session, seed, context, sample_ofx):
        """The audit trail of an import can be read back."""
        # Arrange
        import_id = _import(db_session, context, seed, sample_ofx).data.import_record.id

        # Act
        logs = ofx_import_service.get_import_audit_logs(db_session, seed.org_id, import_id)

        # Assert
        assert len(logs) == 1
        assert logs[0].new_data["inserted"] == 3

    def test_preview_does_not_touch_database(self, db_session, seed, sample_ofx):
        """Previewing a file parses it without creating records."""
        # Act
        result = ofx_import_service.preview_ofx_file(sample_ofx)

        # Assert
        assert len(result.transactions) == 3
        assert db_session.query(OfxImport).count() == 0
