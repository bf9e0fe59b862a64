# conciliacao/models.py
from __future__ import annotations
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint, Enum as SQLEnum, Text, Numeric, CheckConstraint, Date, Index, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from conciliacao.database import Base
from conciliacao.constants import UserRole, BankAccountType, SourceType, OfxImportStatus, OfxLineStatus


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class BaseModel(Base):
    __abstract__ = True

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


# --- TENANCY ---

class Organization(BaseModel):
    __tablename__ = "organizations"
    name = Column(String, unique=True, index=True, nullable=False, comment="Organization (tenant) name")
    is_active = Column(Boolean, default=True, nullable=False)

    stores = relationship("Store", back_populates="organization", cascade="all, delete-orphan")
    users = relationship("User", back_populates="organization")

    def __repr__(self: Organization):
        return f"<Organization(id={self.id}, name='{self.name}')>"


class Store(BaseModel):
    __tablename__ = "stores"
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String, nullable=False, comment="Store or distribution center name")
    code = Column(String(10), nullable=True, comment="Short internal code")
    is_active = Column(Boolean, default=True, nullable=False)

    organization = relationship("Organization", back_populates="stores")
    bank_accounts = relationship("BankAccount", back_populates="store")

    __table_args__ = (
        UniqueConstraint('org_id', 'name', name='_org_store_name_uc'),
    )

    def __repr__(self: Store):
        return f"<Store(id={self.id}, name='{self.name}', org_id={self.org_id})>"


class User(BaseModel):
    __tablename__ = "users"
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    full_name = Column(String, nullable=True)
    role = Column(SQLEnum(UserRole, values_callable=_enum_values), nullable=False, default=UserRole.OPERATOR)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=True, comment="Profile link to the user's organization; null means no profile")
    is_active = Column(Boolean, default=True, nullable=False)

    organization = relationship("Organization", back_populates="users")

    def __repr__(self: User):
        return f"<User(id={self.id}, email='{self.email}', org_id={self.org_id})>"


class BankAccount(BaseModel):
    __tablename__ = "bank_accounts"
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False, index=True)
    name = Column(String, nullable=False, comment="Display name of the account")
    bank_name = Column(String, nullable=True)
    agency = Column(String, nullable=True)
    account_number = Column(String, nullable=True)
    account_type = Column(SQLEnum(BankAccountType, values_callable=_enum_values), nullable=False, default=BankAccountType.CHECKING)
    is_active = Column(Boolean, default=True, nullable=False)

    store = relationship("Store", back_populates="bank_accounts")

    def __repr__(self: BankAccount):
        return f"<BankAccount(id={self.id}, name='{self.name}', store_id={self.store_id})>"


# --- BANK STATEMENT STAGING ---

class OfxImport(BaseModel):
    """
    One OFX file import attempt (e.g. Itau checking statement - Mar 2024).
    Created in 'processing' and finalized exactly once.
    """
    __tablename__ = "ofx_imports"

    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False)
    bank_account_id = Column(Integer, ForeignKey("bank_accounts.id"), nullable=False, index=True)
    file_name = Column(String, nullable=False)
    status = Column(SQLEnum(OfxImportStatus, values_callable=_enum_values), nullable=False, default=OfxImportStatus.PROCESSING)

    period_start = Column(Date, nullable=True, comment="DTSTART declared by the statement")
    period_end = Column(Date, nullable=True, comment="DTEND declared by the statement")

    total_lines = Column(Integer, default=0, nullable=False)
    pending_lines = Column(Integer, default=0, nullable=False)
    matched_lines = Column(Integer, default=0, nullable=False)
    ignored_lines = Column(Integer, default=0, nullable=False)
    imported_at = Column(DateTime(timezone=True), nullable=True)

    notes = Column(Text, nullable=True)
    source_type = Column(SQLEnum(SourceType, values_callable=_enum_values), nullable=False, default=SourceType.IMPORT)
    source_id = Column(Integer, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    bank_account = relationship("BankAccount")
    store = relationship("Store")
    lines = relationship("OfxLine", back_populates="ofx_import", order_by="OfxLine.transaction_date")

    def __repr__(self: OfxImport):
        return f"<OfxImport(id={self.id}, file='{self.file_name}', status='{self.status}')>"


class OfxLine(BaseModel):
    """
    One bank movement staged for reconciliation.
    Identified per bank account by its FITID or, when the bank sends none, by a derived hash key.
    """
    __tablename__ = "ofx_lines"

    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    ofx_import_id = Column(Integer, ForeignKey("ofx_imports.id"), nullable=False, index=True)
    bank_account_id = Column(Integer, ForeignKey("bank_accounts.id"), nullable=False)

    fitid = Column(String, nullable=True)
    hash_key = Column(String, nullable=True)

    transaction_date = Column(Date, nullable=False)
    amount = Column(Numeric(precision=18, scale=2), nullable=False)
    description = Column(String, nullable=True)
    memo = Column(String, nullable=True)
    type_code = Column(String, nullable=True)

    status = Column(SQLEnum(OfxLineStatus, values_callable=_enum_values), nullable=False, default=OfxLineStatus.PENDING)
    raw_data = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)

    ofx_import = relationship("OfxImport", back_populates="lines")

    __table_args__ = (
        UniqueConstraint('bank_account_id', 'fitid', name='_bank_account_fitid_uc'),
        UniqueConstraint('bank_account_id', 'hash_key', name='_bank_account_hash_key_uc'),
        CheckConstraint(
            '(fitid IS NOT NULL AND hash_key IS NULL) OR (fitid IS NULL AND hash_key IS NOT NULL)',
            name='_ofx_line_single_key_ck'
        ),
        Index('ix_ofx_lines_import_status', 'ofx_import_id', 'status'),
    )

    def __repr__(self: OfxLine):
        return f"<OfxLine(id={self.id}, key='{self.fitid or self.hash_key}', amount={self.amount})>"


# --- AUDIT ---

class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, comment="Organization this audit log belongs to (for filtering)")
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, comment="User who performed the action (null for system actions)")
    action = Column(String, nullable=False, comment="Action name (e.g., ofx_import)")
    table_name = Column(String, nullable=True, comment="Table of the affected record")
    record_id = Column(Integer, nullable=True, comment="ID of the affected record")
    old_data = Column(JSON, nullable=True, comment="Prior state (sensitive data redacted)")
    new_data = Column(JSON, nullable=True, comment="New state (sensitive data redacted)")
    source_type = Column(SQLEnum(SourceType, values_callable=_enum_values), nullable=False, default=SourceType.USER)
    ip_address = Column(String, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User")

    def __repr__(self: AuditLog):
        return f"<AuditLog(id={self.id}, action='{self.action}', record='{self.table_name}:{self.record_id}', user_id={self.user_id})>"
