"""
Token wallet error taxonomy.

Every error carries a stable error_code and the HTTP status the API layer
reports it with. Authentication and authorization failures are terminal for
the request; provider failures surface as ProviderError subclasses.
"""

from typing import Optional

from .config import ERROR_CODES


class WalletError(Exception):
    """Base class for all token wallet errors."""

    error_code = "WALLET_ERROR"
    status_code = 500

    def __init__(self, message: Optional[str] = None, **details):
        self.message = message or ERROR_CODES.get(self.error_code, self.error_code)
        self.details = details
        super().__init__(self.message)

    def to_dict(self):
        """Convert to API response format."""
        body = {"error_code": self.error_code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class Unauthenticated(WalletError):
    error_code = "UNAUTHENTICATED"
    status_code = 401


class InsufficientBalance(WalletError):
    error_code = "INSUFFICIENT_BALANCE"
    status_code = 402


class AccountNotFound(WalletError):
    error_code = "ACCOUNT_NOT_FOUND"
    status_code = 404


class UnknownIntent(WalletError):
    error_code = "UNKNOWN_INTENT"
    status_code = 404


class AlreadyConsumed(WalletError):
    """Raised for a repeated idempotency key; the reconciler and refunds recover from it."""
    error_code = "ALREADY_CONSUMED"
    status_code = 200


class AccountMismatch(WalletError):
    error_code = "ACCOUNT_MISMATCH"
    status_code = 403


# ==================== PROVIDER ERRORS ====================

class ProviderError(WalletError):
    error_code = "PROVIDER_ERROR"
    status_code = 502


class AuthProviderError(ProviderError):
    error_code = "AUTH_PROVIDER_ERROR"
    status_code = 401


class PaymentProviderError(ProviderError):
    error_code = "PAYMENT_PROVIDER_ERROR"
    status_code = 502


class PaymentSignatureError(PaymentProviderError):
    error_code = "PAYMENT_SIGNATURE_INVALID"
    status_code = 400


class PaymentAmountMismatch(PaymentProviderError):
    error_code = "PAYMENT_AMOUNT_MISMATCH"
    status_code = 409


class CompletionProviderError(ProviderError):
    error_code = "COMPLETION_PROVIDER_ERROR"
    status_code = 502
