"""
Error taxonomy for the supplier-ops scripts.

Every error carries the process exit code the CLIs use:
  0 success, 1 missing input / configuration / validation, 2 subject not found,
  3 transactional failure after rollback.
"""


class OpsError(Exception):
    """Base class. `exit_code` is what the CLI returns when this reaches main()."""

    exit_code = 1


class ConfigurationMissing(OpsError):
    """Required connection string / location not provided."""


class ValidationFailed(OpsError):
    """Bad CLI input (unknown role, malformed country code, empty email...)."""


class ConfirmationRequired(OpsError):
    def __init__(self, message: str = None):
        super().__init__(message or "Confirmation required. Re-run with --yes (or CONFIRM=1).")


class ConnectionFailed(OpsError):
    """Connection pool could not be opened, or a query outside a transaction failed."""


class SourceNotFound(OpsError):
    def __init__(self, message: str, candidates=()):
        self.candidates = list(candidates)
        if self.candidates:
            message = f"{message} Tried: {', '.join(str(c) for c in self.candidates)}"
        super().__init__(message)


class SheetNotFound(SourceNotFound):
    def __init__(self, sheet_name: str, available=()):
        self.sheet_name = sheet_name
        self.available = list(available)
        OpsError.__init__(
            self,
            f"Sheet not found: {sheet_name!r}. Available sheets: {self.available}",
        )
        self.candidates = self.available


class ManifestWriteFailed(OpsError):
    pass


class NotFound(OpsError):
    exit_code = 2


class TransactionFailed(OpsError):
    exit_code = 3

    def __init__(self, message: str, cause: BaseException = None):
        self.cause = cause
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
