"""
Test Suite: HTTP API
====================

End-to-end flows through the FastAPI app with the database and external
providers replaced:
- Login / logout and cookie handling
- Purchases credited only by the signed webhook
- Metered completion with deny, debit and refund
"""

import json

import pytest

from token_wallet.config import PAYWALL_URL, SESSION_COOKIE_NAME, TOKEN_PACKS
from token_wallet.errors import CompletionProviderError


async def login(client):
    response = await client.post("/session/login-callback", json={"code": "auth-code"})
    assert response.status_code == 200
    return response.json()


async def buy(client, webhook_signature, paid_event, pack_id="starter"):
    intent = (await client.post("/purchase/intent", json={"pack_id": pack_id})).json()
    event = paid_event(intent["intent_id"], "google-u1", TOKEN_PACKS[pack_id]["price_minor_units"])
    response = await client.post(
        "/purchase/confirm",
        content=json.dumps(event),
        headers={"stripe-signature": webhook_signature}
    )
    assert response.status_code == 200
    return intent, response.json()


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestSession:

    @pytest.mark.asyncio
    async def test_unauthenticated_balance(self, client):
        response = await client.get("/account/balance")

        assert response.status_code == 401
        assert response.json()["error_code"] == "UNAUTHENTICATED"

    @pytest.mark.asyncio
    async def test_google_login_redirects_to_consent(self, client):
        response = await client.get("/auth/google")

        assert response.status_code in (302, 307)
        assert response.headers["location"].startswith("https://accounts.google.com/")

    @pytest.mark.asyncio
    async def test_first_login_creates_empty_account(self, client, oauth):
        body = await login(client)

        assert body["success"] is True
        assert body["account"]["token_balance"] == 0
        assert oauth.codes == ["auth-code"]

        balance = await client.get("/account/balance")
        assert balance.json() == {"token_balance": 0}

        me = (await client.get("/account/me")).json()
        assert me["identity"] == "google-u1"
        assert me["email"] == "u1@example.com"

    @pytest.mark.asyncio
    async def test_redirect_callback_sets_cookie_and_goes_to_paywall(self, client):
        response = await client.get("/session/login-callback", params={"code": "x", "state": "y"})

        assert response.status_code == 302
        assert response.headers["location"] == PAYWALL_URL
        assert SESSION_COOKIE_NAME in response.cookies

    @pytest.mark.asyncio
    async def test_failed_oauth_exchange(self, client, oauth):
        from token_wallet.errors import AuthProviderError
        oauth.error = AuthProviderError("Google sign-in failed")

        response = await client.post("/session/login-callback", json={"code": "bad"})

        assert response.status_code == 401
        assert response.json()["error_code"] == "AUTH_PROVIDER_ERROR"

    @pytest.mark.asyncio
    async def test_logout_ends_session(self, client):
        await login(client)
        cookie = client.cookies.get(SESSION_COOKIE_NAME)

        response = await client.post("/session/logout")
        assert response.status_code == 200

        # A copy of the old cookie is useless once the session ended
        client.cookies.set(SESSION_COOKIE_NAME, cookie)
        assert (await client.get("/account/balance")).status_code == 401

    @pytest.mark.asyncio
    async def test_logout_without_session(self, client):
        response = await client.post("/session/logout")

        assert response.status_code == 200
        assert response.json() == {"success": True}


class TestPurchase:

    @pytest.mark.asyncio
    async def test_packs_listed(self, client):
        body = (await client.get("/purchase/packs")).json()

        assert {p["id"] for p in body["packs"]} == set(TOKEN_PACKS)

    @pytest.mark.asyncio
    async def test_purchase_requires_login(self, client):
        response = await client.post("/purchase/intent", json={"pack_id": "starter"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_invalid_pack(self, client):
        await login(client)

        response = await client.post("/purchase/intent", json={"pack_id": "platinum"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_intent_uses_server_side_price(self, client, payments):
        await login(client)

        body = (await client.post("/purchase/intent", json={"pack_id": "standard"})).json()

        assert body["tokens"] == TOKEN_PACKS["standard"]["tokens"]
        assert payments.created[0]["amount"] == TOKEN_PACKS["standard"]["price_minor_units"]
        assert body["redirect_url"].startswith("https://checkout.stripe.test/")

    @pytest.mark.asyncio
    async def test_checkout_unavailable(self, client, payments):
        await login(client)
        payments.fail = True

        response = await client.post("/purchase/intent", json={"pack_id": "starter"})

        assert response.status_code == 502
        assert response.json()["error_code"] == "PAYMENT_PROVIDER_ERROR"

    @pytest.mark.asyncio
    async def test_webhook_credits_once(self, client, webhook_signature, paid_event):
        await login(client)

        intent, result = await buy(client, webhook_signature, paid_event)
        assert result["action"] == "credited"
        assert (await client.get("/account/balance")).json()["token_balance"] == 500

        event = paid_event(intent["intent_id"], "google-u1", 999)
        await client.post(
            "/purchase/confirm",
            content=json.dumps(event),
            headers={"stripe-signature": webhook_signature}
        )
        assert (await client.get("/account/balance")).json()["token_balance"] == 500

        status = (await client.get(f"/purchase/{intent['intent_id']}")).json()
        assert status["status"] == "consumed"
        assert status["credited"] is True

    @pytest.mark.asyncio
    async def test_webhook_with_bad_signature_credits_nothing(self, client, paid_event):
        await login(client)
        intent = (await client.post("/purchase/intent", json={"pack_id": "starter"})).json()

        response = await client.post(
            "/purchase/confirm",
            content=json.dumps(paid_event(intent["intent_id"], "google-u1", 999)),
            headers={"stripe-signature": "t=1,v1=forged"}
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "PAYMENT_SIGNATURE_INVALID"
        assert (await client.get("/account/balance")).json()["token_balance"] == 0

    @pytest.mark.asyncio
    async def test_success_redirect_never_credits(self, client):
        await login(client)
        intent = (await client.post("/purchase/intent", json={"pack_id": "starter"})).json()

        response = await client.get("/payment-success", params={"intent": intent["intent_id"]})

        assert response.status_code == 200
        assert response.json()["credited"] is False
        assert response.json()["status"] == "pending"
        assert (await client.get("/account/balance")).json()["token_balance"] == 0

    @pytest.mark.asyncio
    async def test_cancel_redirect(self, client):
        await login(client)
        intent = (await client.post("/purchase/intent", json={"pack_id": "starter"})).json()

        response = await client.get("/payment-cancelled", params={"intent": intent["intent_id"]})

        assert response.json()["credited"] is False

    @pytest.mark.asyncio
    async def test_unknown_purchase_status(self, client):
        await login(client)

        response = await client.get("/purchase/does-not-exist")

        assert response.status_code == 404
        assert response.json()["error_code"] == "UNKNOWN_INTENT"

    @pytest.mark.asyncio
    async def test_ledger_lists_purchase(self, client, webhook_signature, paid_event):
        await login(client)
        await buy(client, webhook_signature, paid_event)

        body = (await client.get("/account/ledger")).json()

        assert body["count"] == 1
        assert body["entries"][0]["source"] == "purchase"

    @pytest.mark.asyncio
    async def test_absolute_balance_endpoint_is_not_exposed(self, client):
        await login(client)

        response = await client.post("/api/update-tokens", json={"tokens": 1000000})

        assert response.status_code == 404
        assert (await client.get("/account/balance")).json()["token_balance"] == 0


class TestCompletion:

    @pytest.mark.asyncio
    async def test_unauthenticated(self, client, completion_provider):
        response = await client.post("/completion", json={"prompt": "hi"})

        assert response.status_code == 401
        assert completion_provider.calls == 0

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, client, completion_provider):
        await login(client)

        response = await client.post("/completion", json={"prompt": "hi"})

        assert response.status_code == 402
        assert response.json()["error_code"] == "INSUFFICIENT_BALANCE"
        assert completion_provider.calls == 0

    @pytest.mark.asyncio
    async def test_empty_prompt_rejected(self, client):
        await login(client)

        response = await client.post("/completion", json={"prompt": ""})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_paid_completion(self, client, webhook_signature, paid_event, completion_cost):
        await login(client)
        await buy(client, webhook_signature, paid_event)

        response = await client.post("/completion", json={"prompt": "Capital of France?"})

        assert response.status_code == 200
        assert response.json()["response"] == "Paris."
        assert response.json()["remaining_balance"] == 500 - completion_cost
        assert (await client.get("/account/balance")).json()["token_balance"] == 500 - completion_cost

    @pytest.mark.asyncio
    async def test_provider_failure_is_refunded(self, client, webhook_signature, paid_event,
                                                completion_provider):
        await login(client)
        await buy(client, webhook_signature, paid_event)
        completion_provider.error = CompletionProviderError("upstream unavailable")

        response = await client.post("/completion", json={"prompt": "hi"})

        assert response.status_code == 502
        assert response.json()["error_code"] == "COMPLETION_PROVIDER_ERROR"
        assert (await client.get("/account/balance")).json()["token_balance"] == 500
