"""
Session Store

Server-side session records. Each session expires on its own: a TTL index on
expires_at lets MongoDB purge stale records and readers check expiry too, so
a record the TTL monitor has not reached yet is still treated as ended.
"""

import logging
import secrets
from datetime import datetime, timezone, timedelta
from typing import Optional

from .config import SESSION_TTL_DAYS
from .models import Session

logger = logging.getLogger(__name__)


class SessionStore:
    """MongoDB-backed session store, injected into the authenticator."""

    def __init__(self, db, ttl: Optional[timedelta] = None):
        self.db = db
        self.ttl = ttl or timedelta(days=SESSION_TTL_DAYS)

    async def create(self, identity: str) -> Session:
        now = datetime.now(timezone.utc)
        session = Session(
            session_id=secrets.token_urlsafe(32),
            identity=identity,
            created_at=now,
            expires_at=now + self.ttl
        )
        await self.db.sessions.insert_one(session.model_dump())
        return session

    async def get(self, session_id: str) -> Optional[Session]:
        doc = await self.db.sessions.find_one({"session_id": session_id}, {"_id": 0})
        return Session(**doc) if doc else None

    async def delete(self, session_id: str) -> bool:
        result = await self.db.sessions.delete_one({"session_id": session_id})
        return result.deleted_count > 0
