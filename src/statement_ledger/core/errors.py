class StatementLedgerError(Exception):
    """Base class for all errors raised by statement_ledger."""


class UnrecognizedFormatError(StatementLedgerError):
    """The document carries no section markers at all."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "Unrecognized statement format: expected Reservasjoner or Kontobevegelser sections"
        )


class LineParseError(StatementLedgerError):
    """A single statement line could not be turned into a transaction."""


class InvalidDateError(LineParseError):
    pass


class InvalidAmountError(LineParseError):
    pass


class UnsafePatternError(StatementLedgerError):
    """A user supplied regex was rejected or failed to compile."""


class RuleApplicationError(StatementLedgerError):
    def __init__(self, transaction_id: str, cause: Exception) -> None:
        super().__init__(f"Applying rules to transaction {transaction_id} failed: {cause}")
        self.transaction_id = transaction_id
        self.cause = cause


class ConfigurationError(StatementLedgerError):
    pass
