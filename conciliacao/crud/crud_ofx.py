# conciliacao/crud/crud_ofx.py

from datetime import datetime, timezone
from typing import List, Optional, Type
from sqlalchemy.orm import Session

from conciliacao.crud.base import CRUDBase
from conciliacao.models import OfxImport, OfxLine
from conciliacao.schemas.ofx_schemas import OfxImportCreate, OfxLineCreate
from conciliacao.constants import OfxImportStatus, OfxLineStatus, SourceType
from conciliacao.core.exceptions import ImportStateError


class CRUDOfxImport(CRUDBase):
    def __init__(self, model: Type[OfxImport]):
        super().__init__(model)

    def create_import(self, db: Session, obj_in: OfxImportCreate, org_id: int, user_id: int) -> OfxImport:
        return self.create(
            db,
            obj_in,
            org_id=org_id,
            status=OfxImportStatus.PROCESSING,
            source_type=SourceType.IMPORT,
            source_id=user_id,
            created_by=user_id,
        )

    def finalize_import(self, db: Session, db_obj: OfxImport, total_lines: int, inserted: int, has_line_errors: bool) -> OfxImport:
        """
        Moves an import out of 'processing'. Matching happens later, so matched/ignored start at zero.
        """
        if db_obj.status != OfxImportStatus.PROCESSING:
            raise ImportStateError(f"OFX import {db_obj.id} is already finalized with status '{db_obj.status.value}'.")

        return self.update(
            db,
            db_obj=db_obj,
            obj_in={
                "status": OfxImportStatus.PARTIAL if has_line_errors else OfxImportStatus.IMPORTED,
                "total_lines": total_lines,
                "pending_lines": inserted,
                "matched_lines": 0,
                "ignored_lines": 0,
                "imported_at": datetime.now(timezone.utc),
            },
        )

    def get_imports(
        self,
        db: Session,
        org_id: int,
        bank_account_id: Optional[int] = None,
        status_filter: Optional[OfxImportStatus] = None,
        limit: int = 50,
    ) -> List[OfxImport]:
        query = db.query(self.model).filter(self.model.org_id == org_id)
        if bank_account_id:
            query = query.filter(self.model.bank_account_id == bank_account_id)
        if status_filter:
            query = query.filter(self.model.status == status_filter)
        return query.order_by(self.model.created_at.desc(), self.model.id.desc()).limit(limit).all()


class CRUDOfxLine(CRUDBase):
    def __init__(self, model: Type[OfxLine]):
        super().__init__(model)

    def exists_by_fitid(self, db: Session, bank_account_id: int, fitid: str) -> bool:
        return db.query(self.model.id).filter(
            self.model.bank_account_id == bank_account_id,
            self.model.fitid == fitid,
        ).first() is not None

    def exists_by_hash_key(self, db: Session, bank_account_id: int, hash_key: str) -> bool:
        return db.query(self.model.id).filter(
            self.model.bank_account_id == bank_account_id,
            self.model.hash_key == hash_key,
        ).first() is not None

    def create_line(self, db: Session, obj_in: OfxLineCreate, ofx_import: OfxImport) -> OfxLine:
        return self.create(
            db,
            obj_in,
            org_id=ofx_import.org_id,
            ofx_import_id=ofx_import.id,
            bank_account_id=ofx_import.bank_account_id,
            status=OfxLineStatus.PENDING,
        )

    def get_lines_for_import(
        self,
        db: Session,
        org_id: int,
        ofx_import_id: int,
        status_filter: Optional[OfxLineStatus] = None,
    ) -> List[OfxLine]:
        query = db.query(self.model).filter(
            self.model.ofx_import_id == ofx_import_id,
            self.model.org_id == org_id,
        )
        if status_filter:
            query = query.filter(self.model.status == status_filter)
        return query.order_by(self.model.transaction_date.asc(), self.model.id.asc()).all()
