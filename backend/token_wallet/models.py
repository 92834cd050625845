"""
Token Wallet Data Models

Pydantic models for wallet operations.
These define the structure of documents stored in MongoDB collections.
"""

from pydantic import BaseModel, Field
from typing import Optional, Literal
from datetime import datetime, timezone


# ==================== ACCOUNT MODELS ====================

class Account(BaseModel):
    """A user's prepaid token account"""
    identity: str  # OAuth provider subject id
    display_name: Optional[str] = None
    email: Optional[str] = None
    token_balance: int = Field(0, ge=0)
    created_at: Optional[str] = None  # ISO datetime string
    updated_at: Optional[str] = None


class AccountResponse(BaseModel):
    """Response model for the profile endpoint"""
    identity: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    token_balance: int


class BalanceResponse(BaseModel):
    token_balance: int


# ==================== LEDGER MODELS ====================

class LedgerEntry(BaseModel):
    """Immutable ledger entry for an applied balance delta"""
    identity: str
    delta: int
    balance_after: int
    source: Literal["purchase", "usage", "refund"]
    request_id: Optional[str] = None
    timestamp: str  # ISO datetime string
    details: Optional[dict] = None


# ==================== SESSION MODELS ====================

class ExternalProfile(BaseModel):
    """Verified profile produced by the OAuth provider"""
    subject_id: str
    display_name: Optional[str] = None
    email: Optional[str] = None


class Session(BaseModel):
    session_id: str
    identity: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        # Mongo hands back naive UTC datetimes
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return now >= expires_at


# ==================== PURCHASE MODELS ====================

class PurchaseIntent(BaseModel):
    """Registered, not-yet-confirmed token purchase"""
    intent_id: str
    identity: str
    tokens_requested: int = Field(..., gt=0)
    price_minor_units: int = Field(..., gt=0)
    currency: str = "usd"
    status: Literal["pending", "consumed", "expired", "failed"]
    created_at: str
    consumed_at: Optional[str] = None
    provider_session_id: Optional[str] = None
    redirect_url: Optional[str] = None
    error_message: Optional[str] = None


class ProviderIntent(BaseModel):
    """What the payment provider returns for a created checkout"""
    provider_intent_id: str
    redirect_url: str


class PurchaseCreateRequest(BaseModel):
    """Request to create a token purchase"""
    pack_id: str = Field(..., description="Token pack ID: starter, standard, or pro")


class PurchaseCreateResponse(BaseModel):
    intent_id: str
    pack_id: str
    tokens: int
    price_minor_units: int
    currency: str
    redirect_url: str


class PurchaseStatusResponse(BaseModel):
    intent_id: str
    status: str
    tokens_requested: int
    price_minor_units: int
    # Redirect pages never credit; the balance only moves on the signed callback
    credited: bool


# ==================== GATE MODELS ====================

class GateDecision(BaseModel):
    """Result from the access gate"""
    allowed: bool
    debit: int = 0
    reason: Optional[Literal["UNAUTHENTICATED", "INSUFFICIENT_BALANCE"]] = None
    request_id: Optional[str] = None
    remaining_balance: int = 0


# ==================== COMPLETION MODELS ====================

class CompletionRequest(BaseModel):
    prompt: str = Field(..., min_length=1)


class CompletionResult(BaseModel):
    response: str
    tokens_used: int
    remaining_balance: int
    request_id: str
