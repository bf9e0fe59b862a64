# conciliacao/crud/crud.py
import conciliacao.models as models

from .base import CRUDBase, log_action, sanitize_log_details
from .crud_audit import CRUDAuditLog
from .crud_organization import CRUDStore, CRUDBankAccount, CRUDUser
from .crud_ofx import CRUDOfxImport, CRUDOfxLine

# =====================================================================================
# Centralized CRUD Instances Instantiation and Re-export
# =====================================================================================

crud_audit_log = CRUDAuditLog(models.AuditLog)

crud_store = CRUDStore(models.Store)
crud_bank_account = CRUDBankAccount(models.BankAccount)
crud_user = CRUDUser(models.User)

crud_ofx_import = CRUDOfxImport(models.OfxImport)
crud_ofx_line = CRUDOfxLine(models.OfxLine)


__all__ = [
    "CRUDBase",
    "log_action",
    "sanitize_log_details",
    "crud_audit_log",
    "crud_store",
    "crud_bank_account",
    "crud_user",
    "crud_ofx_import",
    "crud_ofx_line",
]
