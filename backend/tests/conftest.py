"""
Shared fixtures for token wallet tests.

The database is an in-process Motor-compatible mock; external providers are
replaced with fakes that record what they were asked to do.
"""

import asyncio
import json

import httpx
import pytest
import pytest_asyncio
from fastapi.responses import RedirectResponse
from mongomock_motor import AsyncMongoMockClient

from token_wallet.account_store import AccountStore
from token_wallet.completion_service import CompletionService
from token_wallet.config import OPERATION_COSTS
from token_wallet.dispatcher import ProxyDispatcher
from token_wallet.errors import PaymentProviderError, PaymentSignatureError
from token_wallet.guard import AccessGate
from token_wallet.models import ExternalProfile, ProviderIntent
from token_wallet.reconciler import CreditReconciler
from token_wallet.session_service import SessionAuthenticator
from token_wallet.session_store import SessionStore

VALID_SIGNATURE = "t=1,v1=valid"
COMPLETION_COST = 10


# ==================== FAKE PROVIDERS ====================

class FakeOAuthProvider:
    def __init__(self, profile: ExternalProfile = None, error: Exception = None):
        self.profile = profile or ExternalProfile(
            subject_id="google-u1", display_name="User One", email="u1@example.com"
        )
        self.error = error
        self.codes = []

    async def login_redirect(self):
        return RedirectResponse("https://accounts.google.com/o/oauth2/v2/auth?client_id=test")

    async def resolve(self, request, code=None):
        self.codes.append(code)
        if self.error:
            raise self.error
        return self.profile


class FakePaymentProvider:
    def __init__(self):
        self.created = []
        self.fail = False

    async def create_intent(self, amount_minor_units, success_redirect, cancel_redirect,
                            *, reference, metadata, description):
        if self.fail:
            raise PaymentProviderError("checkout unavailable")
        self.created.append({
            "amount": amount_minor_units,
            "success_redirect": success_redirect,
            "cancel_redirect": cancel_redirect,
            "reference": reference,
            "metadata": metadata,
        })
        return ProviderIntent(
            provider_intent_id=f"cs_test_{reference}",
            redirect_url=f"https://checkout.stripe.test/pay/{reference}"
        )

    def construct_event(self, payload, signature):
        if signature != VALID_SIGNATURE:
            raise PaymentSignatureError()
        return json.loads(payload)


class FakeCompletionProvider:
    def __init__(self, text="Paris.", error: Exception = None, delay: float = 0):
        self.text = text
        self.error = error
        self.delay = delay
        self.calls = 0

    async def complete(self, prompt):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.text


def _paid_event(intent_id, identity, amount, event_type="checkout.session.completed",
               payment_status="paid"):
    """Stripe-shaped checkout event"""
    return {
        "id": f"evt_{intent_id}",
        "type": event_type,
        "data": {
            "object": {
                "id": f"cs_test_{intent_id}",
                "client_reference_id": intent_id,
                "payment_status": payment_status,
                "amount_total": amount,
                "metadata": {"intent_id": intent_id, "identity": identity},
            }
        },
    }


# ==================== FIXTURES ====================

@pytest.fixture(autouse=True)
def completion_cost(monkeypatch):
    monkeypatch.setitem(OPERATION_COSTS, "completion", COMPLETION_COST)
    return COMPLETION_COST


@pytest.fixture
def db():
    return AsyncMongoMockClient()["token_wallet_test"]


@pytest.fixture
def accounts(db):
    return AccountStore(db)


@pytest.fixture
def sessions(db):
    return SessionStore(db)


@pytest.fixture
def authenticator(sessions, accounts):
    return SessionAuthenticator(sessions, accounts)


@pytest.fixture
def payments():
    return FakePaymentProvider()


@pytest.fixture
def oauth():
    return FakeOAuthProvider()


@pytest.fixture
def completion_provider():
    return FakeCompletionProvider()


@pytest.fixture
def reconciler(db, accounts, payments):
    return CreditReconciler(db, accounts, payments)


@pytest.fixture
def gate(accounts):
    return AccessGate(accounts)


@pytest.fixture
def completion_service(gate, completion_provider):
    return CompletionService(gate, ProxyDispatcher(completion_provider, timeout_seconds=1))


@pytest_asyncio.fixture
async def session_u1(authenticator):
    return await authenticator.begin_login(
        ExternalProfile(subject_id="u1", display_name="User One", email="u1@example.com")
    )


@pytest_asyncio.fixture
async def client(db, payments, oauth, completion_provider):
    """ASGI client against the app with database and providers replaced"""
    from database import get_db
    from server import app
    from token_wallet.dependencies import (
        get_completion_provider,
        get_oauth_provider,
        get_payment_provider,
    )

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_oauth_provider] = lambda: oauth
    app.dependency_overrides[get_payment_provider] = lambda: payments
    app.dependency_overrides[get_completion_provider] = lambda: completion_provider

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client

    app.dependency_overrides.clear()


@pytest.fixture
def paid_event():
    return _paid_event


@pytest.fixture
def webhook_signature():
    return VALID_SIGNATURE


@pytest.fixture
def fake_provider():
    """Factory for completion providers with a given behaviour"""
    return FakeCompletionProvider
