# conciliacao/schemas/ofx_schemas.py

from pydantic import BaseModel, Field
import datetime as dt
from decimal import Decimal
from typing import Optional, List, Dict, Any, Generic, TypeVar

from conciliacao.constants import OfxImportStatus, OfxLineStatus, SourceType, OFX_DEFAULT_TYPE_CODE

T = TypeVar("T")


class OfxTransaction(BaseModel):
    fitid: str = Field(..., description="Financial institution transaction id (FITID).")
    date: dt.date = Field(..., description="Posted date normalized from DTPOSTED.")
    amount: Decimal = Field(..., description="Signed amount: negative is a debit, positive a credit.")
    description: str = Field("", description="Payee name (NAME).")
    memo: Optional[str] = None
    type_code: str = OFX_DEFAULT_TYPE_CODE
    raw_date: str = Field(..., description="DTPOSTED exactly as found in the file.")


class OfxParseResult(BaseModel):
    bank_id: Optional[str] = None
    account_id: Optional[str] = None
    account_type: Optional[str] = None
    currency: Optional[str] = None
    period_start: Optional[dt.date] = None
    period_end: Optional[dt.date] = None
    transactions: List[OfxTransaction] = []
    errors: List[str] = []


class OfxImportCreate(BaseModel):
    """Schema for creating the import record at the start of an ingestion run."""
    store_id: int
    bank_account_id: int
    file_name: str = Field(..., min_length=1)
    period_start: Optional[dt.date] = None
    period_end: Optional[dt.date] = None
    notes: Optional[str] = None


class OfxLineCreate(BaseModel):
    fitid: Optional[str] = None
    hash_key: Optional[str] = None
    transaction_date: dt.date
    amount: Decimal
    description: Optional[str] = None
    memo: Optional[str] = None
    type_code: Optional[str] = None
    raw_data: Optional[Dict[str, Any]] = None


class OfxImportOut(BaseModel):
    id: int
    org_id: int
    store_id: int
    bank_account_id: int
    file_name: str
    status: OfxImportStatus
    period_start: Optional[dt.date] = None
    period_end: Optional[dt.date] = None
    total_lines: int
    pending_lines: int
    matched_lines: int
    ignored_lines: int
    imported_at: Optional[dt.datetime] = None
    notes: Optional[str] = None
    source_type: SourceType
    source_id: Optional[int] = None
    created_by: Optional[int] = None
    created_at: dt.datetime
    updated_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


class OfxLineOut(BaseModel):
    id: int
    org_id: int
    ofx_import_id: int
    bank_account_id: int
    fitid: Optional[str] = None
    hash_key: Optional[str] = None
    transaction_date: dt.date
    amount: Decimal
    description: Optional[str] = None
    memo: Optional[str] = None
    type_code: Optional[str] = None
    status: OfxLineStatus
    raw_data: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    created_at: dt.datetime

    class Config:
        from_attributes = True


class OfxImportResult(BaseModel):
    import_record: OfxImportOut = Field(..., alias="import")
    total_parsed: int
    inserted: int
    skipped_duplicates: int
    errors: List[str] = []

    class Config:
        populate_by_name = True


class ActionResult(BaseModel, Generic[T]):
    """Uniform outcome of a write action: callers must inspect `data.errors` even when `success` is true."""
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
