# conciliacao/schemas/all_schemas.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, Dict, Any

from conciliacao.constants import UserRole, BankAccountType, SourceType


class BaseSchema(BaseModel):
    id: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StoreOut(BaseSchema):
    org_id: int
    name: str
    code: Optional[str] = None
    is_active: bool


class BankAccountOut(BaseSchema):
    org_id: int
    store_id: int
    name: str
    bank_name: Optional[str] = None
    agency: Optional[str] = None
    account_number: Optional[str] = None
    account_type: BankAccountType
    is_active: bool


class UserOut(BaseSchema):
    email: str
    full_name: Optional[str] = None
    role: UserRole
    org_id: Optional[int] = None
    is_active: bool


class AuditLogCreate(BaseModel):
    org_id: int = Field(..., description="Organization the action belongs to")
    store_id: Optional[int] = Field(None, description="Store associated with the action, when any")
    user_id: Optional[int] = Field(None, description="ID of the user who performed the action")
    action: str = Field(..., description="Action name (e.g., ofx_import)")
    table_name: Optional[str] = Field(None, description="Table of the affected record")
    record_id: Optional[int] = Field(None, description="ID of the affected record")
    old_data: Optional[Dict[str, Any]] = Field(None, description="Prior state")
    new_data: Optional[Dict[str, Any]] = Field(None, description="New state")
    source_type: SourceType = SourceType.USER
    ip_address: Optional[str] = None


class AuditLogOut(BaseModel):
    id: int
    org_id: int
    store_id: Optional[int]
    user_id: Optional[int]
    action: str
    table_name: Optional[str]
    record_id: Optional[int]
    old_data: Optional[Dict[str, Any]]
    new_data: Optional[Dict[str, Any]]
    source_type: SourceType
    timestamp: datetime

    class Config:
        from_attributes = True


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
