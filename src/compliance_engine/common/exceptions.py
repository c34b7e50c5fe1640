"""Compliance-Engine exception hierarchy."""


class ComplianceError(Exception):
    """Base exception for all compliance engine errors."""

    status_code = 400

    def __init__(self, message: str = "", code: str = "COMPLIANCE_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(ComplianceError):
    """Raised for malformed input: unknown check type, short override reason."""

    status_code = 422

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, code="VALIDATION")


class PermissionDeniedError(ComplianceError):
    """Raised when an actor lacks the capability an operation requires."""

    status_code = 403

    def __init__(self, message: str = "Actor lacks the required capability"):
        super().__init__(message, code="PERMISSION_DENIED")


class ConflictError(ComplianceError):
    """Raised when a transition is attempted against a stale check status."""

    status_code = 409

    def __init__(self, message: str = "Check was modified concurrently; re-read and retry"):
        super().__init__(message, code="CONFLICT")


class NotFoundError(ComplianceError):
    """Raised when a check, order or delivery cannot be found."""

    status_code = 404

    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND")


class UnknownPolicyScopeError(NotFoundError):
    """Raised when a policy scope has no registered check definitions."""

    def __init__(self, scope: str):
        self.scope = scope
        super().__init__(f"Unknown policy scope '{scope}'")
        self.code = "UNKNOWN_POLICY_SCOPE"


class PersistenceError(ComplianceError):
    """Raised when the storage layer fails. Transient failures may be retried."""

    def __init__(self, message: str = "Storage failure", transient: bool = False):
        self.transient = transient
        super().__init__(message, code="PERSISTENCE")

    @property
    def status_code(self) -> int:
        return 503 if self.transient else 500


class AuditLogImmutableError(ComplianceError):
    """Raised when something tries to update or delete a recorded audit entry."""

    status_code = 500

    def __init__(self, message: str = "Audit log entries are immutable"):
        super().__init__(message, code="AUDIT_IMMUTABLE")
