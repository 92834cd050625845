"""
Credit Reconciler

Converts an external payment confirmation into exactly one balance increment.

Flow:
1. initiate_purchase records a pending intent and opens a provider checkout
2. The provider calls back server-to-server with a signed event
3. confirm_purchase credits the intent's tokens once and retires the intent

Only the signed server callback credits. The browser redirect back from the
checkout page is a hint for the UI and never moves a balance.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from .account_store import AccountStore
from .config import (
    BASE_URL,
    PAYMENT_CURRENCY,
    STRIPE_PAID_EVENTS,
    STRIPE_EXPIRED_EVENT,
)
from .errors import (
    AccountMismatch,
    AccountNotFound,
    AlreadyConsumed,
    PaymentAmountMismatch,
    PaymentProviderError,
    UnknownIntent,
)
from .models import Account, PurchaseIntent

logger = logging.getLogger(__name__)


class CreditReconciler:

    def __init__(self, db, account_store: AccountStore, payment_provider):
        self.db = db
        self.accounts = account_store
        self.payments = payment_provider

    async def initiate_purchase(
        self,
        identity: str,
        tokens_requested: int,
        price_minor_units: int,
        description: Optional[str] = None
    ) -> PurchaseIntent:
        """
        Register a purchase intent and open a checkout with the provider.

        Returns:
            The pending intent, including the provider redirect URL
        """
        if tokens_requested <= 0 or price_minor_units <= 0:
            raise ValueError("tokens_requested and price_minor_units must be positive")

        if await self.accounts.get(identity) is None:
            raise AccountNotFound(identity=identity)

        intent_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)

        intent = PurchaseIntent(
            intent_id=intent_id,
            identity=identity,
            tokens_requested=tokens_requested,
            price_minor_units=price_minor_units,
            currency=PAYMENT_CURRENCY,
            status="pending",
            created_at=now.isoformat()
        )
        await self.db.purchase_intents.insert_one(intent.model_dump())

        try:
            provider_intent = await self.payments.create_intent(
                price_minor_units,
                f"{BASE_URL}/payment-success?intent={intent_id}",
                f"{BASE_URL}/payment-cancelled?intent={intent_id}",
                reference=intent_id,
                metadata={
                    "intent_id": intent_id,
                    "identity": identity,
                    "tokens": str(tokens_requested)
                },
                description=description or f"{tokens_requested} completion tokens"
            )
        except PaymentProviderError as e:
            await self.db.purchase_intents.update_one(
                {"intent_id": intent_id},
                {"$set": {"status": "failed", "error_message": e.message}}
            )
            raise

        await self.db.purchase_intents.update_one(
            {"intent_id": intent_id},
            {"$set": {
                "provider_session_id": provider_intent.provider_intent_id,
                "redirect_url": provider_intent.redirect_url
            }}
        )

        logger.info(
            f"Purchase intent {intent_id} created for {identity}: "
            f"{tokens_requested} tokens / {price_minor_units} {PAYMENT_CURRENCY}"
        )
        return intent.model_copy(update={
            "provider_session_id": provider_intent.provider_intent_id,
            "redirect_url": provider_intent.redirect_url
        })

    async def get_intent(self, intent_id: str, identity: Optional[str] = None) -> PurchaseIntent:
        """Look up an intent, optionally restricted to its owner."""
        query = {"intent_id": intent_id}
        if identity is not None:
            query["identity"] = identity
        doc = await self.db.purchase_intents.find_one(query, {"_id": 0})
        if not doc:
            raise UnknownIntent(intent_id=intent_id)
        return PurchaseIntent(**doc)

    async def confirm_purchase(
        self,
        intent_id: str,
        identity: str,
        amount_paid: Optional[int] = None
    ) -> Account:
        """
        Apply a confirmed payment to its account exactly once.

        Confirming an already consumed intent returns the current account
        unchanged.

        Raises:
            UnknownIntent: no such intent; nothing is credited
            AccountMismatch: intent belongs to another identity; nothing is credited
            PaymentAmountMismatch: provider reports a different amount
        """
        try:
            intent = await self.get_intent(intent_id)
        except UnknownIntent:
            logger.warning(f"Confirmation for unknown intent {intent_id} ignored")
            raise

        if intent.identity != identity:
            logger.error(
                f"Intent {intent_id} belongs to {intent.identity}, "
                f"confirmation claimed {identity}; not credited"
            )
            raise AccountMismatch(intent_id=intent_id)

        if intent.status == "consumed":
            logger.info(f"Intent {intent_id} already consumed, not crediting again")
            return await self._current_account(identity)

        if amount_paid is not None and amount_paid != intent.price_minor_units:
            logger.error(
                f"Amount mismatch on intent {intent_id}: "
                f"paid {amount_paid}, expected {intent.price_minor_units}"
            )
            raise PaymentAmountMismatch(intent_id=intent_id)

        # Keyed on the account document, so a replay after a crash between
        # the credit and the status update cannot credit twice
        try:
            account = await self.accounts.apply_delta(
                identity,
                intent.tokens_requested,
                source="purchase",
                idempotency_key=intent_id,
                details={
                    "intent_id": intent_id,
                    "price_minor_units": intent.price_minor_units,
                    "provider_session_id": intent.provider_session_id
                }
            )
            logger.info(f"Credited {intent.tokens_requested} tokens to {identity} (intent={intent_id})")
        except AlreadyConsumed:
            logger.info(f"Intent {intent_id} was credited before, retiring it")
            account = await self._current_account(identity)

        await self.db.purchase_intents.update_one(
            {"intent_id": intent_id},
            {"$set": {
                "status": "consumed",
                "consumed_at": datetime.now(timezone.utc).isoformat()
            }}
        )

        return account

    async def _current_account(self, identity: str) -> Account:
        account = await self.accounts.get(identity)
        if account is None:
            raise AccountNotFound(identity=identity)
        return account

    async def expire_intent(self, intent_id: str) -> bool:
        """Retire a pending intent the provider reports as abandoned."""
        result = await self.db.purchase_intents.update_one(
            {"intent_id": intent_id, "status": "pending"},
            {"$set": {"status": "expired"}}
        )
        if result.modified_count:
            logger.info(f"Intent {intent_id} expired")
        return result.modified_count > 0

    async def handle_provider_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Route a verified provider event.

        Business rejections are acknowledged (logged, not raised) so the
        provider does not keep redelivering an event that can never apply.
        """
        event_type = event.get("type")
        data = event.get("data", {}).get("object", {})
        intent_id = data.get("client_reference_id") or data.get("metadata", {}).get("intent_id")

        if not intent_id:
            logger.info(f"Ignoring {event_type} event without intent reference")
            return {"status": "ignored", "reason": "no intent reference"}

        if event_type == STRIPE_EXPIRED_EVENT:
            if not await self.expire_intent(intent_id):
                logger.info(f"Expiry for intent {intent_id} ignored: unknown or no longer pending")
                return {"status": "ignored", "reason": "intent not pending"}
            return {"status": "success", "action": "intent_expired"}

        if event_type not in STRIPE_PAID_EVENTS:
            logger.info(f"Ignoring event type: {event_type}")
            return {"status": "ignored", "reason": f"event type {event_type}"}

        if data.get("payment_status") != "paid":
            # Delayed payment methods complete the session before funds arrive
            logger.info(f"Intent {intent_id} not paid yet ({data.get('payment_status')})")
            return {"status": "ignored", "reason": "not paid"}

        identity = data.get("metadata", {}).get("identity")
        try:
            account = await self.confirm_purchase(
                intent_id,
                identity,
                amount_paid=data.get("amount_total")
            )
        except UnknownIntent as e:
            return {"status": "ignored", "reason": e.error_code}
        except (AccountMismatch, PaymentAmountMismatch) as e:
            return {"status": "rejected", "reason": e.error_code}

        return {"status": "success", "action": "credited", "token_balance": account.token_balance}
