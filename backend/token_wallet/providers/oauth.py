"""
Google OAuth provider.

Code exchange and profile lookup are done by fastapi-sso; this module only
adapts the result to an ExternalProfile.
"""

import logging
import os
from typing import Optional

import httpx
from fastapi import Request
from fastapi_sso.sso.base import SSOLoginError
from fastapi_sso.sso.google import GoogleSSO

from ..errors import AuthProviderError
from ..models import ExternalProfile

logger = logging.getLogger(__name__)


class GoogleOAuthProvider:

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        allow_insecure_http: bool = False
    ):
        self.client_id = client_id or os.environ.get("GOOGLE_CLIENT_ID", "")
        self.client_secret = client_secret or os.environ.get("GOOGLE_CLIENT_SECRET", "")
        self.redirect_uri = redirect_uri or os.environ.get("GOOGLE_REDIRECT_URI")
        self.allow_insecure_http = allow_insecure_http

    def _sso(self) -> GoogleSSO:
        return GoogleSSO(
            self.client_id,
            self.client_secret,
            redirect_uri=self.redirect_uri,
            allow_insecure_http=self.allow_insecure_http
        )

    async def login_redirect(self):
        """Redirect response that sends the browser to Google's consent page."""
        google_sso = self._sso()
        async with google_sso:
            return await google_sso.get_login_redirect(params={"prompt": "select_account"})

    async def resolve(self, request: Request, code: Optional[str] = None) -> ExternalProfile:
        """
        Exchange the authorization code for a verified profile.

        Reads the code from the callback query string unless given explicitly.

        Raises:
            AuthProviderError: the exchange failed or returned no subject id
        """
        google_sso = self._sso()
        try:
            async with google_sso:
                if code:
                    user = await google_sso.process_login(code, request)
                else:
                    user = await google_sso.verify_and_process(request)
        except (SSOLoginError, httpx.HTTPError) as e:
            logger.warning(f"Google login failed: {e}")
            raise AuthProviderError(str(e))

        if user is None or not user.id:
            raise AuthProviderError("Google returned no profile")

        return ExternalProfile(
            subject_id=user.id,
            display_name=user.display_name,
            email=user.email
        )
