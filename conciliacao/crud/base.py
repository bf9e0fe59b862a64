# conciliacao/crud/base.py
import logging
from typing import Any, Dict, Optional, Type, TypeVar
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import func
from conciliacao.models import BaseModel as SQLBaseModel, AuditLog
from conciliacao.schemas.all_schemas import AuditLogCreate
from conciliacao.constants import SourceType
from conciliacao.core.exceptions import AuditLogError

logger = logging.getLogger(__name__)

# Define ModelType for generic CRUDBase typing
ModelType = TypeVar("ModelType", bound=SQLBaseModel)

# =====================================================================================
# Base CRUD Class Definition (CRUDBase)
# =====================================================================================
class CRUDBase:
    def __init__(self, model: Type[ModelType]):
        self.model = model

    def get(self, db: Session, id: Any) -> Optional[ModelType]:
        return db.query(self.model).filter(self.model.id == id).first()

    def get_for_org(self, db: Session, id: Any, org_id: int) -> Optional[ModelType]:
        return db.query(self.model).filter(self.model.id == id, self.model.org_id == org_id).first()

    def create(self, db: Session, obj_in: Any, **kwargs: Any) -> ModelType:
        obj_data = obj_in if isinstance(obj_in, dict) else obj_in.model_dump(exclude_unset=True)
        create_data = {**obj_data, **kwargs}
        db_obj = self.model(**create_data)
        db.add(db_obj)
        db.flush()
        db.refresh(db_obj)
        return db_obj

    def update(self, db: Session, db_obj: ModelType, obj_in: Any, **kwargs: Any) -> ModelType:
        update_data = obj_in if isinstance(obj_in, dict) else obj_in.model_dump(exclude_unset=True)
        for field, value in {**update_data, **kwargs}.items():
            setattr(db_obj, field, value)
        db_obj.updated_at = func.now()
        db.add(db_obj)
        db.flush()
        db.refresh(db_obj)
        return db_obj


# =====================================================================================
# Log Action Utility
# =====================================================================================

def sanitize_log_details(data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Recursively sanitizes a dictionary of log details to remove or mask sensitive information.

    Keys containing a sensitive keyword get their value replaced with '********'.
    Nested dictionaries and lists of dictionaries are sanitized as well.
    """
    if not data:
        return None

    sensitive_keys = [
        "password",
        "token",
        "access_token",
        "secret",
        "api_key",
        "credentials",
    ]

    sanitized_data = data.copy()

    for key, value in data.items():
        if any(sk in key.lower() for sk in sensitive_keys):
            sanitized_data[key] = "********"

        elif isinstance(value, dict):
            sanitized_data[key] = sanitize_log_details(value)

        elif isinstance(value, list):
            sanitized_data[key] = [
                sanitize_log_details(item) if isinstance(item, dict) else item
                for item in value
            ]

    return sanitized_data


def log_action(
    db: Session,
    org_id: int,
    action: str,
    table_name: Optional[str],
    record_id: Optional[int],
    old_data: Optional[Dict[str, Any]] = None,
    new_data: Optional[Dict[str, Any]] = None,
    store_id: Optional[int] = None,
    user_id: Optional[int] = None,
    source_type: SourceType = SourceType.USER,
    ip_address: Optional[str] = None,
) -> AuditLog:
    """
    Writes one audit_logs row in the caller's transaction after sanitizing the payloads.
    Raises AuditLogError (carrying the database message) when the row cannot be written.
    """
    log_in = AuditLogCreate(
        org_id=org_id,
        store_id=store_id,
        user_id=user_id,
        action=action,
        table_name=table_name,
        record_id=record_id,
        old_data=sanitize_log_details(old_data),
        new_data=sanitize_log_details(new_data),
        source_type=source_type,
        ip_address=ip_address,
    )
    try:
        audit_log_entry = AuditLog(**log_in.model_dump(), timestamp=func.now())
        db.add(audit_log_entry)
        db.flush()
        db.refresh(audit_log_entry)
    except SQLAlchemyError as e:
        logger.error(f"Error creating audit log entry for {action} on {table_name}:{record_id}: {e}", exc_info=True)
        raise AuditLogError(f"Audit log failed: {e}") from e
    return audit_log_entry
