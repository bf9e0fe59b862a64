# crud_audit.py
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.sql import desc

from conciliacao.crud.base import CRUDBase
from conciliacao.models import AuditLog

# =====================================================================================
# Audit Logs
# =====================================================================================
class CRUDAuditLog(CRUDBase):
    def get_all_logs(
        self,
        db: Session,
        org_id: int,
        skip: int = 0,
        limit: int = 100,
        user_id: Optional[int] = None,
        action: Optional[str] = None,
        table_name: Optional[str] = None,
        record_id: Optional[int] = None,
        store_id: Optional[int] = None,
    ) -> List[AuditLog]:
        query = db.query(self.model).filter(self.model.org_id == org_id)
        if user_id:
            query = query.filter(self.model.user_id == user_id)
        if action:
            query = query.filter(self.model.action == action)
        if table_name:
            query = query.filter(self.model.table_name == table_name)
        if record_id:
            query = query.filter(self.model.record_id == record_id)
        if store_id:
            query = query.filter(self.model.store_id == store_id)

        query = query.order_by(desc(self.model.timestamp), desc(self.model.id))

        return query.offset(skip).limit(limit).all()
