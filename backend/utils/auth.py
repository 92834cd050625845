"""
Authentication utilities
"""
from typing import Optional

from fastapi import Depends, Request, Response

from token_wallet.config import SESSION_COOKIE_NAME, SESSION_TTL_DAYS
from token_wallet.dependencies import get_session_authenticator
from token_wallet.errors import Unauthenticated
from token_wallet.models import Account, Session
from token_wallet.session_service import SessionAuthenticator
from utils.environment import is_production


def set_session_cookie(response: Response, value: str):
    secure = is_production()
    response.set_cookie(
        SESSION_COOKIE_NAME,
        value,
        max_age=SESSION_TTL_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=secure,
        # The browser extension calls cross-site with credentials
        samesite="none" if secure else "lax"
    )


def clear_session_cookie(response: Response):
    response.delete_cookie(SESSION_COOKIE_NAME)


async def get_optional_session(
    request: Request,
    authenticator: SessionAuthenticator = Depends(get_session_authenticator)
) -> Optional[Session]:
    """Active session of the request, or None"""
    return await authenticator.resolve_session(request.cookies.get(SESSION_COOKIE_NAME))


async def get_current_account(
    request: Request,
    authenticator: SessionAuthenticator = Depends(get_session_authenticator)
) -> Account:
    """Resolve the session cookie to its account"""
    account = await authenticator.resolve(request.cookies.get(SESSION_COOKIE_NAME))
    if account is None:
        raise Unauthenticated()
    return account
