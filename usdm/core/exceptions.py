"""
USDM Exception Hierarchy

All exceptions inherit from UsdmError for easy catching.

Every error raised inside a state transition aborts that transition
cleanly. None of them leave a partial mutation behind.
"""


class UsdmError(Exception):
    """Base exception for all USDM errors"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


# ── Validation (rejected before any state access or storage) ──

class ValidationError(UsdmError):
    """Raised when request or submission data validation fails"""
    pass


class InvalidMarketError(ValidationError):
    """Raised when a market is unknown or inactive"""
    pass


class InvalidSourceError(ValidationError):
    """Raised when a price source is not authorized for the market"""
    pass


class InvalidPriceError(ValidationError):
    """Raised when a submitted price is not strictly positive"""
    pass


class InvalidExpiryError(ValidationError):
    """Raised when a submission expiry is not strictly in the future"""
    pass


class InvalidAddressError(ValidationError):
    """Raised when an account address is malformed"""
    pass


class InvalidAmountError(ValidationError):
    """Raised when a coin amount is negative or not an integer"""
    pass


class InvalidRatioError(ValidationError):
    """Raised when a collateral ratio falls outside [0, 1]"""
    pass


class ConfigError(ValidationError):
    """Raised when genesis configuration is invalid"""
    pass


# ── Pricing ───────────────────────────────────────────────────

class PriceError(UsdmError):
    """Raised when a current price cannot be produced"""
    pass


class NoLivePriceError(PriceError):
    """Raised when a market has no unexpired submission"""
    pass


# ── Settlement ────────────────────────────────────────────────

class SettlementError(UsdmError):
    """Raised when a balance mutation cannot be applied"""
    pass


class InsufficientFundsError(SettlementError):
    """Raised when an account cannot cover a debit"""
    pass


class InsufficientReserveError(SettlementError):
    """Raised when the protocol reserve cannot cover a payout"""
    pass


# ── Journal ───────────────────────────────────────────────────

class JournalError(UsdmError):
    """Raised when journal operations fail"""
    pass
