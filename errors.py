"""
Ledger errors.

Every failure the ledger reports to its callers is defined here.
The route layer maps these to user-facing messages.
"""


class LedgerError(Exception):
    """Base error for all ledger errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)


class InvalidAmountError(LedgerError):
    """Raised when an amount, quantity or price is not a usable number."""

    def __init__(self, field: str, value: object) -> None:
        super().__init__(f"Invalid {field}: {value!r}")
        self.field = field
        self.value = value


class InvalidTradeError(LedgerError):
    """Raised when a trade request names an unknown type or an empty symbol."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Invalid trade: {reason}")
        self.reason = reason


class InsufficientFundsError(LedgerError):
    """Raised when a cash debit exceeds the current capital."""

    def __init__(self, user_id: str, required: str, available: str) -> None:
        super().__init__(
            f"Insufficient funds for user {user_id}: "
            f"required {required}, available {available}"
        )
        self.user_id = user_id
        self.required = required
        self.available = available


class InsufficientAssetsError(LedgerError):
    """Raised when a sell exceeds the held quantity or no position exists."""

    def __init__(self, user_id: str, symbol: str, requested: str, held: str) -> None:
        super().__init__(
            f"Insufficient {symbol} for user {user_id}: "
            f"requested {requested}, held {held}"
        )
        self.user_id = user_id
        self.symbol = symbol
        self.requested = requested
        self.held = held


class CapitalNotFoundError(LedgerError):
    """Raised when a user has no capital row yet."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Capital not initialized for user {user_id}")
        self.user_id = user_id


class TransactionConflictError(LedgerError):
    """Raised when the store reports a lock timeout, serialization failure or constraint violation."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Transaction conflict: {reason}")
        self.reason = reason


class PriceUnavailableError(LedgerError):
    """Raised when no usable quote can be obtained for a symbol."""

    def __init__(self, symbol: str, reason: str) -> None:
        super().__init__(f"Price unavailable for {symbol}: {reason}")
        self.symbol = symbol
        self.reason = reason
