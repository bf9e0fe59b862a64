# conciliacao/api/v1/endpoints/conciliacao.py
import os
import logging
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File, Form, Query
from sqlalchemy.orm import Session
from dotenv import load_dotenv

from conciliacao.database import get_db
from conciliacao.core.security import get_request_context, RequestContext
from conciliacao.constants import OfxImportStatus, OfxLineStatus
from conciliacao.crud.crud import crud_store, crud_bank_account
from conciliacao.parsers.ofx_parser import decode_ofx_bytes
from conciliacao.services.ofx_import_service import ofx_import_service
from conciliacao.schemas.all_schemas import StoreOut, BankAccountOut, AuditLogOut
from conciliacao.schemas.ofx_schemas import (
    ActionResult,
    OfxImportOut,
    OfxImportResult,
    OfxLineOut,
    OfxParseResult,
)

logger = logging.getLogger(__name__)

load_dotenv()

OFX_MAX_FILE_BYTES = int(os.getenv("OFX_MAX_FILE_BYTES", 5 * 1024 * 1024))

router = APIRouter(
    prefix="/conciliacao",
    tags=["Conciliacao"],
)


async def _read_ofx_upload(file: UploadFile) -> str:
    raw = await file.read()
    if len(raw) > OFX_MAX_FILE_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"OFX file exceeds the maximum size of {OFX_MAX_FILE_BYTES} bytes.",
        )
    return decode_ofx_bytes(raw)


def _get_import_or_404(db: Session, org_id: int, import_id: int):
    ofx_import = ofx_import_service.get_import(db, org_id, import_id)
    if not ofx_import:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="OFX import not found.")
    return ofx_import


# =====================================================================================
# Import targets
# =====================================================================================

@router.get("/stores", response_model=List[StoreOut])
def list_stores(
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    return crud_store.get_active_for_org(db, context.org_id)


@router.get("/bank-accounts", response_model=List[BankAccountOut])
def list_bank_accounts(
    store_id: Optional[int] = Query(None),
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    return crud_bank_account.get_active_for_org(db, context.org_id, store_id=store_id)


# =====================================================================================
# OFX imports
# =====================================================================================

@router.post("/ofx-imports", response_model=ActionResult[OfxImportResult], status_code=status.HTTP_200_OK)
async def import_ofx_file(
    file: UploadFile = File(...),
    store_id: int = Form(...),
    bank_account_id: int = Form(...),
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    logger.info(f"OFX upload hit for file: {file.filename}, bank account {bank_account_id}, org {context.org_id}.")
    content = await _read_ofx_upload(file)
    return ofx_import_service.import_ofx_file(
        db,
        context,
        store_id=store_id,
        bank_account_id=bank_account_id,
        file_name=file.filename or "",
        file_content=content,
    )


@router.post("/ofx-imports/preview", response_model=OfxParseResult, status_code=status.HTTP_200_OK)
async def preview_ofx_file(
    file: UploadFile = File(...),
    context: RequestContext = Depends(get_request_context),
):
    content = await _read_ofx_upload(file)
    return ofx_import_service.preview_ofx_file(content)


@router.get("/ofx-imports", response_model=List[OfxImportOut])
def list_ofx_imports(
    bank_account_id: Optional[int] = Query(None),
    status_filter: Optional[OfxImportStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    return ofx_import_service.list_imports(
        db, context.org_id, bank_account_id=bank_account_id, status=status_filter, limit=limit
    )


@router.get("/ofx-imports/{import_id}", response_model=OfxImportOut)
def get_ofx_import(
    import_id: int,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    return _get_import_or_404(db, context.org_id, import_id)


@router.get("/ofx-imports/{import_id}/lines", response_model=List[OfxLineOut])
def get_ofx_lines(
    import_id: int,
    status_filter: Optional[OfxLineStatus] = Query(None, alias="status"),
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    _get_import_or_404(db, context.org_id, import_id)
    return ofx_import_service.get_lines(db, context.org_id, import_id, status=status_filter)


@router.get("/ofx-imports/{import_id}/audit-logs", response_model=List[AuditLogOut])
def get_ofx_import_audit_logs(
    import_id: int,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    _get_import_or_404(db, context.org_id, import_id)
    return ofx_import_service.get_import_audit_logs(db, context.org_id, import_id)
