# conciliacao/crud/crud_organization.py
from typing import List, Optional
from sqlalchemy.orm import Session

from conciliacao.crud.base import CRUDBase
from conciliacao.models import User


# =====================================================================================
# Stores & Bank Accounts
# =====================================================================================
class CRUDStore(CRUDBase):
    def get_active_for_org(self, db: Session, org_id: int) -> List:
        return (
            db.query(self.model)
            .filter(self.model.org_id == org_id, self.model.is_active == True)
            .order_by(self.model.name)
            .all()
        )


class CRUDBankAccount(CRUDBase):
    def get_active_for_org(self, db: Session, org_id: int, store_id: Optional[int] = None) -> List:
        query = db.query(self.model).filter(self.model.org_id == org_id, self.model.is_active == True)
        if store_id:
            query = query.filter(self.model.store_id == store_id)
        return query.order_by(self.model.name).all()


# =====================================================================================
# Users
# =====================================================================================
class CRUDUser(CRUDBase):
    def get_by_email(self, db: Session, email: str) -> Optional[User]:
        return (
            db.query(self.model)
            .filter(self.model.email == email.lower().strip())
            .first()
        )
