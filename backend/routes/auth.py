"""
Authentication routes

Google sign-in, session callback and sign-out.
"""
import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from token_wallet.config import PAYWALL_URL, SESSION_COOKIE_NAME
from token_wallet.dependencies import get_oauth_provider, get_session_authenticator
from token_wallet.models import AccountResponse
from token_wallet.session_service import SessionAuthenticator
from utils.auth import set_session_cookie, clear_session_cookie

logger = logging.getLogger(__name__)

auth_router = APIRouter(tags=["Authentication"])


class LoginCallbackBody(BaseModel):
    code: str


@auth_router.get("/auth/google")
async def google_login(oauth=Depends(get_oauth_provider)):
    """Send the browser to Google's consent page"""
    return await oauth.login_redirect()


@auth_router.get("/session/login-callback")
async def login_callback_redirect(
    request: Request,
    oauth=Depends(get_oauth_provider),
    authenticator: SessionAuthenticator = Depends(get_session_authenticator)
):
    """OAuth redirect target: start a session, then continue to the paywall"""
    profile = await oauth.resolve(request)
    session = await authenticator.begin_login(profile)

    response = RedirectResponse(PAYWALL_URL, status_code=302)
    set_session_cookie(response, authenticator.issue_cookie(session))
    return response


@auth_router.post("/session/login-callback")
async def login_callback(
    body: LoginCallbackBody,
    request: Request,
    response: Response,
    oauth=Depends(get_oauth_provider),
    authenticator: SessionAuthenticator = Depends(get_session_authenticator)
):
    """Start a session from an authorization code posted by the client"""
    profile = await oauth.resolve(request, code=body.code)
    session = await authenticator.begin_login(profile)
    set_session_cookie(response, authenticator.issue_cookie(session))

    account = await authenticator.accounts.get(session.identity)
    return {
        "success": True,
        "expires_at": session.expires_at.isoformat(),
        "account": AccountResponse(**account.model_dump())
    }


@auth_router.post("/session/logout")
async def logout(
    request: Request,
    response: Response,
    authenticator: SessionAuthenticator = Depends(get_session_authenticator)
):
    """End the current session. Signing out twice is fine."""
    session_id = authenticator.read_cookie(request.cookies.get(SESSION_COOKIE_NAME))
    await authenticator.end_login(session_id)
    clear_session_cookie(response)
    return {"success": True}
