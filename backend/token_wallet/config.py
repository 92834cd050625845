"""
Token Wallet Configuration and Constants

Token packs, operation costs, session and provider settings are defined here.
Prices are in minor currency units (cents), balances in tokens.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent.parent / '.env')

# ==================== TOKEN PACKS ====================
# Clients pick a pack by id; price and token count are never taken from a request.
TOKEN_PACKS = {
    "starter": {
        "name": "Starter Pack",
        "tokens": 500,
        "price_minor_units": 999,
        "description": "500 completion tokens"
    },
    "standard": {
        "name": "Standard Pack",
        "tokens": 2000,
        "price_minor_units": 2999,
        "description": "2,000 completion tokens"
    },
    "pro": {
        "name": "Pro Pack",
        "tokens": 10000,
        "price_minor_units": 9999,
        "description": "10,000 completion tokens"
    }
}

PAYMENT_CURRENCY = os.environ.get("PAYMENT_CURRENCY", "usd")

# ==================== OPERATION TOKEN COSTS ====================
OPERATION_COSTS = {
    "completion": int(os.environ.get("COMPLETION_TOKEN_COST", "10")),
}

# ==================== SESSIONS ====================
SESSION_COOKIE_NAME = "session"
SESSION_TTL_DAYS = int(os.environ.get("SESSION_TTL_DAYS", "30"))
SESSION_SECRET = os.environ.get("SESSION_SECRET", "token-wallet-session-secret-change-in-production")
SESSION_ALGORITHM = "HS256"

# ==================== URLS ====================
BASE_URL = os.environ.get("BASE_URL", "http://localhost:4000").rstrip("/")
PAYWALL_URL = os.environ.get("PAYWALL_URL", f"{BASE_URL}/paywall")

# ==================== COMPLETION PROVIDER ====================
OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o-mini")
COMPLETION_TIMEOUT_SECONDS = float(os.environ.get("COMPLETION_TIMEOUT_SECONDS", "60"))

# ==================== ACCOUNT STORE ====================
# Conditional update attempts before a debit is reported as insufficient
MAX_APPLY_ATTEMPTS = 3
# Most recent idempotency keys kept on an account document. Older purchases
# are still guarded by their intent status.
APPLIED_KEYS_LIMIT = 200

# ==================== ERROR CODES ====================
ERROR_CODES = {
    "UNAUTHENTICATED": "Not signed in or session expired. Please sign in again.",
    "INSUFFICIENT_BALANCE": "Not enough tokens. Please purchase more.",
    "ACCOUNT_NOT_FOUND": "Account not found.",
    "UNKNOWN_INTENT": "No pending purchase matches this confirmation.",
    "ALREADY_CONSUMED": "This purchase has already been credited.",
    "ACCOUNT_MISMATCH": "This purchase belongs to a different account.",
    "AUTH_PROVIDER_ERROR": "Sign-in with the identity provider failed.",
    "PAYMENT_PROVIDER_ERROR": "The payment provider could not process the request.",
    "PAYMENT_SIGNATURE_INVALID": "Payment notification signature is invalid.",
    "PAYMENT_AMOUNT_MISMATCH": "Paid amount does not match the purchase.",
    "COMPLETION_PROVIDER_ERROR": "The completion provider failed. No tokens were charged."
}

# Stripe Checkout events handled by the reconciler
STRIPE_PAID_EVENTS = {
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
}
STRIPE_EXPIRED_EVENT = "checkout.session.expired"
