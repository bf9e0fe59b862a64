# conciliacao/core/exceptions.py


class ConciliacaoError(Exception):
    """Base class for errors raised by the bank statement staging services."""


class AuthenticationError(ConciliacaoError):
    """No authenticated session, or the user has no organization profile."""


class ImportValidationError(ConciliacaoError):
    """The import request references a store or bank account it cannot use."""


class AuditLogError(ConciliacaoError):
    """Writing the audit trail entry failed; the message carries the underlying cause."""


class ImportStateError(ConciliacaoError):
    """The import record is not in a state that allows the requested transition."""
