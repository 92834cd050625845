"""
Account Store

Durable identity -> token balance mapping. Source of truth for balances.

- Lazy account creation on first login
- Atomic relative deltas (credits, debits, refunds)
- Idempotent credits keyed on the account document itself
- Immutable ledger entries

CRITICAL: Every balance change is a single MongoDB conditional update, so a
negative balance or a lost update is impossible under any concurrency
scenario. Updates to different accounts never contend.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from .config import APPLIED_KEYS_LIMIT, MAX_APPLY_ATTEMPTS
from .errors import AccountNotFound, AlreadyConsumed, InsufficientBalance
from .models import Account

logger = logging.getLogger(__name__)

# applied_keys is internal bookkeeping and never leaves the store
ACCOUNT_PROJECTION = {"_id": 0, "applied_keys": 0}


class AccountStore:
    """Store for prepaid token accounts."""

    def __init__(self, db):
        self.db = db

    async def get(self, identity: str) -> Optional[Account]:
        doc = await self.db.accounts.find_one({"identity": identity}, ACCOUNT_PROJECTION)
        return Account(**doc) if doc else None

    async def get_or_create(
        self,
        identity: str,
        display_name: Optional[str] = None,
        email: Optional[str] = None
    ) -> Account:
        """
        Get existing account or create one with a zero balance.

        Uses an upsert with $setOnInsert so concurrent first logins for the
        same identity produce exactly one account.
        """
        now = datetime.now(timezone.utc).isoformat()

        account_doc = {
            "identity": identity,
            "display_name": display_name,
            "email": email,
            "token_balance": 0,
            "applied_keys": [],
            "created_at": now,
            "updated_at": now
        }

        try:
            result = await self.db.accounts.update_one(
                {"identity": identity},
                {"$setOnInsert": account_doc},
                upsert=True
            )
            if result.upserted_id is not None:
                logger.info(f"Created account for identity {identity}")
        except DuplicateKeyError:
            # Lost the upsert race to a concurrent login; the other insert wins
            logger.debug(f"Concurrent account creation for identity {identity}")

        doc = await self.db.accounts.find_one({"identity": identity}, ACCOUNT_PROJECTION)
        return Account(**doc)

    async def apply_delta(
        self,
        identity: str,
        delta: int,
        *,
        source: str,
        request_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        details: Optional[Dict] = None
    ) -> Account:
        """
        Atomically add delta (positive or negative) to the token balance.

        Args:
            identity: Account to change
            delta: Relative, server-computed change
            source: Ledger source ('purchase', 'usage', 'refund')
            request_id: Request the change belongs to
            idempotency_key: When given, the delta is applied at most once
                per key. The newest APPLIED_KEYS_LIMIT keys are remembered;
                purchase replays older than that are stopped by intent status.
            details: Additional details for the ledger

        Raises:
            AccountNotFound: identity is unknown
            AlreadyConsumed: idempotency_key was applied before; nothing applied
            InsufficientBalance: the result would be negative; nothing applied
        """
        query: Dict[str, Any] = {"identity": identity}
        update: Dict[str, Any] = {
            "$inc": {"token_balance": delta},
            "$set": {"updated_at": datetime.now(timezone.utc).isoformat()}
        }
        if delta < 0:
            query["token_balance"] = {"$gte": -delta}
        if idempotency_key:
            query["applied_keys"] = {"$ne": idempotency_key}
            update["$push"] = {"applied_keys": {"$each": [idempotency_key], "$slice": -APPLIED_KEYS_LIMIT}}

        for attempt in range(MAX_APPLY_ATTEMPTS):
            doc = await self.db.accounts.find_one_and_update(
                query,
                update,
                projection=ACCOUNT_PROJECTION,
                return_document=ReturnDocument.AFTER
            )
            if doc is not None:
                account = Account(**doc)
                try:
                    await self._write_ledger_entry(
                        identity=identity,
                        delta=delta,
                        balance_after=account.token_balance,
                        source=source,
                        request_id=request_id or idempotency_key,
                        details=details
                    )
                except Exception:
                    # The delta is already applied; callers must still see it
                    logger.exception(
                        f"Ledger write failed for {identity} (delta={delta}, "
                        f"source={source}, request={request_id or idempotency_key})"
                    )
                return account

            # Guard missed - find out why
            current = await self.db.accounts.find_one({"identity": identity}, {"_id": 0})
            if current is None:
                raise AccountNotFound(identity=identity)

            if idempotency_key and idempotency_key in current.get("applied_keys", []):
                logger.info(f"Delta {idempotency_key} already applied to {identity}, skipping")
                raise AlreadyConsumed(identity=identity, idempotency_key=idempotency_key)

            balance = current.get("token_balance", 0)
            if balance + delta < 0:
                raise InsufficientBalance(
                    identity=identity,
                    balance=balance,
                    required=-delta
                )

            # Balance changed between guard and read - retry
            logger.warning(
                f"Concurrent balance change for {identity}, retrying "
                f"(attempt {attempt + 1}/{MAX_APPLY_ATTEMPTS})"
            )

        raise InsufficientBalance(identity=identity, required=-delta)

    async def _write_ledger_entry(
        self,
        identity: str,
        delta: int,
        balance_after: int,
        source: str,
        request_id: Optional[str],
        details: Optional[Dict] = None
    ):
        """Write an immutable ledger entry."""
        entry = {
            "identity": identity,
            "delta": delta,
            "balance_after": balance_after,
            "source": source,
            "request_id": request_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "details": details or {}
        }

        await self.db.token_ledger.insert_one(entry)

    async def get_ledger(self, identity: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Get recent ledger entries for an account."""
        cursor = self.db.token_ledger.find(
            {"identity": identity},
            {"_id": 0}
        ).sort("timestamp", -1).limit(limit)

        return await cursor.to_list(length=limit)
