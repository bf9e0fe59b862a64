# conciliacao/services/ofx_import_service.py
import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from conciliacao.constants import (
    ACTION_TYPE_OFX_IMPORT,
    TABLE_OFX_IMPORTS,
    OfxImportStatus,
    OfxLineStatus,
)
from conciliacao.core.exceptions import ConciliacaoError, ImportValidationError
from conciliacao.core.security import RequestContext, require_context
from conciliacao.crud.crud import (
    crud_audit_log,
    crud_bank_account,
    crud_ofx_import,
    crud_ofx_line,
    crud_store,
    log_action,
)
from conciliacao.models import AuditLog, BankAccount, OfxImport, OfxLine
from conciliacao.parsers.ofx_parser import generate_tx_hash_key, parse_ofx_content
from conciliacao.schemas.ofx_schemas import (
    ActionResult,
    OfxImportCreate,
    OfxImportOut,
    OfxImportResult,
    OfxLineCreate,
    OfxParseResult,
    OfxTransaction,
)

logger = logging.getLogger(__name__)


class OfxImportService:
    """
    Stages bank statement transactions as pending OFX lines.

    The whole import runs inside the caller's session transaction: the import
    record, its lines, the finalization and the audit entry are committed
    together by `get_db`, or rolled back together on failure. Each line insert
    gets its own SAVEPOINT so a unique-constraint violation only costs that line.
    """

    def preview_ofx_file(self, content: str) -> OfxParseResult:
        return parse_ofx_content(content)

    def _validate_target(self, db: Session, org_id: int, store_id: int, bank_account_id: int) -> BankAccount:
        store = crud_store.get_for_org(db, store_id, org_id)
        if not store:
            raise ImportValidationError(f"Store {store_id} not found.")

        bank_account = crud_bank_account.get_for_org(db, bank_account_id, org_id)
        if not bank_account:
            raise ImportValidationError(f"Bank account {bank_account_id} not found.")
        if not bank_account.is_active:
            raise ImportValidationError(f"Bank account {bank_account_id} is inactive.")
        if bank_account.store_id != store_id:
            raise ImportValidationError(f"Bank account {bank_account_id} does not belong to store {store_id}.")
        return bank_account

    def _stage_transaction(self, db: Session, ofx_import: OfxImport, tx: OfxTransaction) -> Tuple[bool, Optional[str]]:
        """
        Returns (inserted, error). A duplicate is (False, None).
        """
        bank_account_id = ofx_import.bank_account_id
        if tx.fitid:
            key = tx.fitid
            hash_key = None
            exists = crud_ofx_line.exists_by_fitid(db, bank_account_id, key)
        else:
            hash_key = generate_tx_hash_key(bank_account_id, tx.date.isoformat(), tx.amount, tx.description)
            key = hash_key
            exists = crud_ofx_line.exists_by_hash_key(db, bank_account_id, key)

        if exists:
            logger.debug(f"OFX import {ofx_import.id}: line {key} already staged for bank account {bank_account_id}, skipping.")
            return False, None

        line_in = OfxLineCreate(
            fitid=tx.fitid or None,
            hash_key=hash_key,
            transaction_date=tx.date,
            amount=tx.amount,
            description=tx.description,
            memo=tx.memo,
            type_code=tx.type_code,
            raw_data={"rawDate": tx.raw_date, "typeCode": tx.type_code},
        )
        try:
            with db.begin_nested():
                crud_ofx_line.create_line(db, line_in, ofx_import)
        except SQLAlchemyError as e:
            message = str(getattr(e, "orig", None) or e)
            logger.warning(f"OFX import {ofx_import.id}: failed to stage line {key}: {message}")
            return False, f"FITID {key}: {message}"
        return True, None

    def import_ofx_file(
        self,
        db: Session,
        context: Optional[RequestContext],
        store_id: int,
        bank_account_id: int,
        file_name: str,
        file_content: str,
    ) -> ActionResult[OfxImportResult]:
        try:
            context = require_context(context)
            if not file_name or not file_name.strip():
                raise ImportValidationError("File name is required.")
            if not file_content or not file_content.strip():
                raise ImportValidationError("OFX file is empty.")

            self._validate_target(db, context.org_id, store_id, bank_account_id)

            parsed = parse_ofx_content(file_content)
            if not parsed.transactions and parsed.errors:
                logger.info(f"OFX import of '{file_name}' rejected: {parsed.errors}")
                return ActionResult(success=False, error="OFX parse failed: " + "; ".join(parsed.errors))

            logger.info(
                f"User {context.user_id} importing '{file_name}' into bank account {bank_account_id}: "
                f"{len(parsed.transactions)} transactions parsed."
            )

            ofx_import = crud_ofx_import.create_import(
                db,
                OfxImportCreate(
                    store_id=store_id,
                    bank_account_id=bank_account_id,
                    file_name=file_name.strip(),
                    period_start=parsed.period_start,
                    period_end=parsed.period_end,
                ),
                org_id=context.org_id,
                user_id=context.user_id,
            )

            inserted = 0
            skipped = 0
            line_errors: List[str] = []
            for tx in parsed.transactions:
                was_inserted, error = self._stage_transaction(db, ofx_import, tx)
                if was_inserted:
                    inserted += 1
                elif error:
                    line_errors.append(error)
                else:
                    skipped += 1

            crud_ofx_import.finalize_import(
                db,
                ofx_import,
                total_lines=len(parsed.transactions),
                inserted=inserted,
                has_line_errors=bool(line_errors),
            )

            errors = parsed.errors + line_errors
            log_action(
                db,
                org_id=context.org_id,
                action=ACTION_TYPE_OFX_IMPORT,
                table_name=TABLE_OFX_IMPORTS,
                record_id=ofx_import.id,
                new_data={
                    "file_name": ofx_import.file_name,
                    "total_parsed": len(parsed.transactions),
                    "inserted": inserted,
                    "skipped": skipped,
                    "errors": len(line_errors),
                },
                store_id=store_id,
                user_id=context.user_id,
                ip_address=context.ip_address,
            )

            logger.info(
                f"OFX import {ofx_import.id} finished with status '{ofx_import.status.value}': "
                f"{inserted} inserted, {skipped} skipped, {len(line_errors)} failed."
            )
            return ActionResult[OfxImportResult](
                success=True,
                data=OfxImportResult(
                    import_record=OfxImportOut.model_validate(ofx_import),
                    total_parsed=len(parsed.transactions),
                    inserted=inserted,
                    skipped_duplicates=skipped,
                    errors=errors,
                ),
            )
        except ConciliacaoError as e:
            db.rollback()
            logger.warning(f"OFX import of '{file_name}' failed: {e}")
            return ActionResult(success=False, error=str(e))
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error importing OFX file '{file_name}': {e}", exc_info=True)
            return ActionResult(success=False, error=f"Database error: {e}")

    # =====================================================================================
    # Read operations
    # =====================================================================================

    def list_imports(
        self,
        db: Session,
        org_id: int,
        bank_account_id: Optional[int] = None,
        status: Optional[OfxImportStatus] = None,
        limit: int = 50,
    ) -> List[OfxImport]:
        return crud_ofx_import.get_imports(db, org_id, bank_account_id=bank_account_id, status_filter=status, limit=limit)

    def get_import(self, db: Session, org_id: int, import_id: int) -> Optional[OfxImport]:
        return crud_ofx_import.get_for_org(db, import_id, org_id)

    def get_lines(self, db: Session, org_id: int, import_id: int, status: Optional[OfxLineStatus] = None) -> List[OfxLine]:
        return crud_ofx_line.get_lines_for_import(db, org_id, import_id, status_filter=status)

    def get_import_audit_logs(self, db: Session, org_id: int, import_id: int) -> List[AuditLog]:
        return crud_audit_log.get_all_logs(db, org_id, table_name=TABLE_OFX_IMPORTS, record_id=import_id)


ofx_import_service = OfxImportService()
