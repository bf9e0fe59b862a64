# conciliacao/constants.py
from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    OPERATOR = "operator"


class BankAccountType(str, Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    INVESTMENT = "investment"


class SourceType(str, Enum):
    USER = "user"
    AI = "ai"
    SYSTEM = "system"
    IMPORT = "import"


class OfxImportStatus(str, Enum):
    PROCESSING = "processing"
    IMPORTED = "imported"
    PARTIAL = "partial"


class OfxLineStatus(str, Enum):
    PENDING = "pending"
    MATCHED = "matched"
    IGNORED = "ignored"


# Audit action / table names
ACTION_TYPE_OFX_IMPORT = "ofx_import"
TABLE_OFX_IMPORTS = "ofx_imports"

# OFX parsing
OFX_DEFAULT_TYPE_CODE = "OTHER"
OFX_HASH_KEY_PREFIX = "hash_"
