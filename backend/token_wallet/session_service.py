"""
Session Authenticator

Turns the session cookie of an inbound request into an Account, and owns the
session lifecycle:

    NoSession -> Pending (OAuth redirect issued) -> Active -> Ended

Identity verification itself is delegated to the OAuth provider; this class
only receives an already verified ExternalProfile.

The cookie is a signed JWT carrying the session id. The session store stays
authoritative: a signed cookie for an ended session resolves to nothing.
"""

import logging
from typing import Optional

import jwt

from .account_store import AccountStore
from .config import SESSION_SECRET, SESSION_ALGORITHM
from .models import Account, ExternalProfile, Session
from .session_store import SessionStore

logger = logging.getLogger(__name__)


class SessionAuthenticator:

    def __init__(
        self,
        session_store: SessionStore,
        account_store: AccountStore,
        secret: str = SESSION_SECRET
    ):
        self.sessions = session_store
        self.accounts = account_store
        self.secret = secret

    # ==================== COOKIE ====================

    def issue_cookie(self, session: Session) -> str:
        payload = {
            "sid": session.session_id,
            "sub": session.identity,
            "exp": session.expires_at
        }
        return jwt.encode(payload, self.secret, algorithm=SESSION_ALGORITHM)

    def read_cookie(self, cookie: Optional[str]) -> Optional[str]:
        """Return the session id of a valid cookie, or None."""
        if not cookie:
            return None
        try:
            payload = jwt.decode(cookie, self.secret, algorithms=[SESSION_ALGORITHM])
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            logger.warning("Rejected session cookie with invalid signature")
            return None
        return payload.get("sid")

    # ==================== LIFECYCLE ====================

    async def begin_login(self, profile: ExternalProfile) -> Session:
        """
        Bind a new session to the account of a verified profile.

        Creates the account with a zero balance on first login. Never reads
        or writes the balance, so concurrent spend on the same account cannot
        block or fail a login.
        """
        account = await self.accounts.get_or_create(
            profile.subject_id,
            display_name=profile.display_name,
            email=profile.email
        )
        session = await self.sessions.create(account.identity)
        logger.info(f"Session started for identity {account.identity}")
        return session

    async def end_login(self, session_id: Optional[str]) -> None:
        """Invalidate a session. Ending an unknown or ended session is a no-op."""
        if not session_id:
            return
        if await self.sessions.delete(session_id):
            logger.info("Session ended")

    async def resolve_session(self, cookie: Optional[str]) -> Optional[Session]:
        session_id = self.read_cookie(cookie)
        if not session_id:
            return None

        session = await self.sessions.get(session_id)
        if session is None:
            return None

        if session.is_expired():
            # Passive expiry: Active -> Ended
            await self.end_login(session.session_id)
            return None

        return session

    async def resolve(self, cookie: Optional[str]) -> Optional[Account]:
        """Resolve a cookie to its Account. None means unauthenticated."""
        session = await self.resolve_session(cookie)
        if session is None:
            return None
        return await self.accounts.get(session.identity)
