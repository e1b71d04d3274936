"""
acadledger exception hierarchy.

All exceptions inherit from AcadLedgerError for easy catching.

Every ledger failure carries a stable ``kind`` string. The kind is what a
façade maps to a caller-facing signal, so it is never collapsed into a
generic failure on the way out.
"""


class AcadLedgerError(Exception):
    """Base exception for all acadledger errors"""

    kind = "LedgerFailure"

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message

    def to_dict(self) -> dict:
        """Caller-facing failure payload."""
        return {
            "error": self.kind,
            "message": self.message,
            "details": dict(self.details),
        }


# ── Operation failures ────────────────────────────────────────

class NotFoundError(AcadLedgerError):
    """Raised when a referenced class/exam/material/grade is absent"""
    kind = "NotFound"


class AlreadyExistsError(AcadLedgerError):
    """Raised when creating against an occupied key or existing membership"""
    kind = "AlreadyExists"


class AlreadyEnrolledError(AlreadyExistsError):
    """Raised when a student is already a member of the class"""
    kind = "AlreadyEnrolled"


class CorrectionAlreadyUploadedError(AlreadyExistsError):
    """Raised on a second correction upload for the same exam"""
    kind = "CorrectionAlreadyUploaded"


class AccessDeniedError(AcadLedgerError):
    """Raised when an organization or ownership check fails"""
    kind = "AccessDenied"


class InvalidArgumentError(AcadLedgerError):
    """Raised on malformed dates, negative scores, unknown enum values"""
    kind = "InvalidArgument"


class ExamDateLockedError(InvalidArgumentError):
    """Raised when rescheduling an exam that already has a correction"""
    kind = "ExamDateLocked"


class UnknownOperationError(InvalidArgumentError):
    """Raised when no ledger program exposes the requested operation"""
    kind = "UnknownOperation"


class TemporalGateError(AcadLedgerError):
    """Raised when a time gate is not yet satisfied"""
    kind = "TemporalGate"


class TooEarlyError(TemporalGateError):
    """Raised when a correction is uploaded before the exam date"""
    kind = "TooEarly"


class NotYetAvailableError(TemporalGateError):
    """Raised when a correction is fetched before its availability window"""
    kind = "NotYetAvailable"


class NotPublishedError(AcadLedgerError):
    """Raised when the owning student reads a grade that is not published yet"""
    kind = "NotPublished"


class IdentityResolutionError(AcadLedgerError):
    """Raised when the caller credential is malformed. Fatal for the operation."""
    kind = "IdentityResolutionFailure"


# ── Infrastructure failures ───────────────────────────────────

class ConfigurationError(AcadLedgerError):
    """Raised when configuration is invalid"""
    kind = "ConfigurationError"


class RecordDecodeError(AcadLedgerError):
    """Raised when stored bytes do not decode into a known record"""
    kind = "RecordDecodeError"


class MVCCReadConflictError(AcadLedgerError):
    """Raised at commit when a key read by the operation changed underneath it"""
    kind = "MVCCReadConflict"


class LedgerError(AcadLedgerError):
    """Raised when transaction log operations fail"""
    kind = "LedgerError"
