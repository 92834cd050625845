"""
Token Wallet Module
Prepaid token access control for a metered completion API

This module provides:
- Token accounts with atomic, never-negative balances
- Cookie sessions bound to OAuth identities
- Stripe Checkout purchases credited exactly once from signed webhooks
- Per-request authorization with debit-before-dispatch and refund on failure

Collections used:
- accounts: Token balances per identity
- sessions: Active login sessions (TTL-expired)
- purchase_intents: Registered purchases awaiting confirmation
- token_ledger: Immutable transaction log
"""

__version__ = "1.0.0"
