"""
Token Wallet API Routes

Endpoints:
- GET /account/balance - Current token balance
- GET /account/me - Profile of the signed-in account
- GET /account/ledger - Transaction history
- GET /purchase/packs - Available token packs
- POST /purchase/intent - Start a token purchase
- GET /purchase/{intent_id} - Purchase status
- POST /purchase/confirm - Stripe webhook (the only path that credits)
- GET /payment-success, /payment-cancelled - Checkout return pages (status only)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Query

from utils.auth import get_current_account

from .account_store import AccountStore
from .config import TOKEN_PACKS, PAYMENT_CURRENCY
from .dependencies import get_account_store, get_credit_reconciler, get_payment_provider
from .models import (
    Account,
    AccountResponse,
    BalanceResponse,
    LedgerEntry,
    PurchaseCreateRequest,
    PurchaseCreateResponse,
    PurchaseIntent,
    PurchaseStatusResponse,
)
from .reconciler import CreditReconciler

logger = logging.getLogger(__name__)

wallet_router = APIRouter(tags=["Token Wallet"])


def _status_response(intent: PurchaseIntent) -> PurchaseStatusResponse:
    return PurchaseStatusResponse(
        intent_id=intent.intent_id,
        status=intent.status,
        tokens_requested=intent.tokens_requested,
        price_minor_units=intent.price_minor_units,
        credited=intent.status == "consumed"
    )


# ==================== ACCOUNT ENDPOINTS ====================

@wallet_router.get("/account/balance", response_model=BalanceResponse)
async def get_balance(account: Account = Depends(get_current_account)):
    """Current token balance of the signed-in account"""
    return BalanceResponse(token_balance=account.token_balance)


@wallet_router.get("/account/me", response_model=AccountResponse)
async def get_me(account: Account = Depends(get_current_account)):
    return AccountResponse(**account.model_dump())


@wallet_router.get("/account/ledger")
async def get_ledger(
    limit: int = Query(50, ge=1, le=200),
    account: Account = Depends(get_current_account),
    accounts: AccountStore = Depends(get_account_store)
):
    """
    Get token history (ledger entries).

    Shows all balance changes: purchases, usage, refunds.
    """
    entries = [LedgerEntry(**e) for e in await accounts.get_ledger(account.identity, limit)]

    return {
        "entries": entries,
        "count": len(entries)
    }


# ==================== PURCHASE ENDPOINTS ====================

@wallet_router.get("/purchase/packs")
async def get_token_packs():
    """Get available token packs for purchase."""
    return {
        "packs": [
            {
                "id": pack_id,
                **pack_info
            }
            for pack_id, pack_info in TOKEN_PACKS.items()
        ],
        "currency": PAYMENT_CURRENCY
    }


@wallet_router.post("/purchase/intent", response_model=PurchaseCreateResponse)
async def create_purchase(
    body: PurchaseCreateRequest,
    account: Account = Depends(get_current_account),
    reconciler: CreditReconciler = Depends(get_credit_reconciler)
):
    """
    Create a token pack purchase and get the checkout URL.

    Flow:
    1. Record a pending intent
    2. Open a Stripe Checkout session
    3. Return the checkout URL for redirect

    Tokens are credited later by the signed webhook, never by this call.
    """
    pack = TOKEN_PACKS.get(body.pack_id)
    if not pack:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid pack_id. Valid options: {list(TOKEN_PACKS.keys())}"
        )

    intent = await reconciler.initiate_purchase(
        account.identity,
        pack["tokens"],
        pack["price_minor_units"],
        description=f"{pack['name']} ({pack['tokens']} tokens)"
    )

    return PurchaseCreateResponse(
        intent_id=intent.intent_id,
        pack_id=body.pack_id,
        tokens=intent.tokens_requested,
        price_minor_units=intent.price_minor_units,
        currency=intent.currency,
        redirect_url=intent.redirect_url
    )


@wallet_router.post("/purchase/confirm")
async def purchase_webhook(
    request: Request,
    payments=Depends(get_payment_provider),
    reconciler: CreditReconciler = Depends(get_credit_reconciler)
):
    """
    Handle Stripe webhook notifications.

    Called server-to-server by Stripe. Tokens are credited only for a paid
    checkout with a valid signature.
    """
    payload = await request.body()
    event = payments.construct_event(payload, request.headers.get("stripe-signature"))

    logger.info(f"Received payment webhook: {event.get('type')} (event_id={event.get('id')})")

    result = await reconciler.handle_provider_event(event)
    if result["status"] != "success":
        # Still acknowledge so the provider stops redelivering
        logger.warning(f"Webhook not applied: {result}")

    return {"received": True, **result}


@wallet_router.get("/purchase/{intent_id}", response_model=PurchaseStatusResponse)
async def get_purchase_status(
    intent_id: str,
    account: Account = Depends(get_current_account),
    reconciler: CreditReconciler = Depends(get_credit_reconciler)
):
    """Get status of a token purchase."""
    intent = await reconciler.get_intent(intent_id, identity=account.identity)
    return _status_response(intent)


# ==================== CHECKOUT RETURN PAGES ====================

@wallet_router.get("/payment-success", response_model=PurchaseStatusResponse)
async def payment_success(
    intent: str = Query(...),
    account: Account = Depends(get_current_account),
    reconciler: CreditReconciler = Depends(get_credit_reconciler)
):
    """
    Browser return from a completed checkout.

    Anyone can open this URL without paying, so it only reports status; the
    UI polls it until the webhook has credited the purchase.
    """
    purchase = await reconciler.get_intent(intent, identity=account.identity)
    return _status_response(purchase)


@wallet_router.get("/payment-cancelled", response_model=PurchaseStatusResponse)
async def payment_cancelled(
    intent: Optional[str] = Query(None),
    account: Account = Depends(get_current_account),
    reconciler: CreditReconciler = Depends(get_credit_reconciler)
):
    """Browser return from an abandoned checkout."""
    if not intent:
        raise HTTPException(status_code=400, detail="Missing intent")
    purchase = await reconciler.get_intent(intent, identity=account.identity)
    return _status_response(purchase)
