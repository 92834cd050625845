"""
FastAPI dependency wiring for the token wallet services.

Stores and services are cheap and built per request around the shared
database handle; provider clients are process-wide singletons.
"""

from functools import lru_cache

from fastapi import Depends

from database import get_db
from utils.environment import is_production

from .account_store import AccountStore
from .completion_service import CompletionService
from .dispatcher import ProxyDispatcher
from .guard import AccessGate
from .providers import GoogleOAuthProvider, OpenAICompletionProvider, StripePaymentProvider
from .reconciler import CreditReconciler
from .session_service import SessionAuthenticator
from .session_store import SessionStore


# ==================== PROVIDERS ====================

@lru_cache
def get_oauth_provider() -> GoogleOAuthProvider:
    return GoogleOAuthProvider(allow_insecure_http=not is_production())


@lru_cache
def get_payment_provider() -> StripePaymentProvider:
    return StripePaymentProvider()


@lru_cache
def get_completion_provider() -> OpenAICompletionProvider:
    return OpenAICompletionProvider()


# ==================== SERVICES ====================

def get_account_store(db=Depends(get_db)) -> AccountStore:
    return AccountStore(db)


def get_session_store(db=Depends(get_db)) -> SessionStore:
    return SessionStore(db)


def get_session_authenticator(
    sessions: SessionStore = Depends(get_session_store),
    accounts: AccountStore = Depends(get_account_store)
) -> SessionAuthenticator:
    return SessionAuthenticator(sessions, accounts)


def get_credit_reconciler(
    db=Depends(get_db),
    accounts: AccountStore = Depends(get_account_store),
    payments=Depends(get_payment_provider)
) -> CreditReconciler:
    return CreditReconciler(db, accounts, payments)


def get_access_gate(accounts: AccountStore = Depends(get_account_store)) -> AccessGate:
    return AccessGate(accounts)


def get_completion_service(
    gate: AccessGate = Depends(get_access_gate),
    provider=Depends(get_completion_provider)
) -> CompletionService:
    return CompletionService(gate, ProxyDispatcher(provider))
