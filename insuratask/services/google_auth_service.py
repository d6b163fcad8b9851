"""Google OAuth2 web flow: authorization URL, code exchange, token refresh and revocation"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

import requests
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from sqlalchemy.orm import Session

from insuratask.core.config import settings
from insuratask.core.errors import CalendarNotConfiguredError, GoogleCalendarError
from insuratask.core.security import create_oauth_state
from insuratask.models.calendar_sync import GoogleCalendarConfig
from insuratask.services import calendar_store
from insuratask.services.google_calendar_service import GoogleCalendarClient

logger = logging.getLogger(__name__)

SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/calendar.events",
]
TOKEN_URI = "https://oauth2.googleapis.com/token"
REVOKE_URI = "https://oauth2.googleapis.com/revoke"


class GoogleAuthService:
    def __init__(self, client_id: str = None, client_secret: str = None, redirect_uri: str = None):
        self.client_id = client_id if client_id is not None else settings.GOOGLE_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else settings.GOOGLE_CLIENT_SECRET
        self.redirect_uri = redirect_uri or settings.GOOGLE_REDIRECT_URI

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _flow(self, state: Optional[str] = None) -> Flow:
        if not self.is_configured():
            raise CalendarNotConfiguredError("Google OAuth client id/secret are not set")
        client_config = {
            "web": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                "token_uri": TOKEN_URI,
                "redirect_uris": [self.redirect_uri],
            }
        }
        return Flow.from_client_config(
            client_config,
            scopes=SCOPES,
            redirect_uri=self.redirect_uri,
            state=state,
            autogenerate_code_verifier=False
        )

    def get_auth_url(self, user_id: str = "default") -> Tuple[str, str]:
        """Consent URL with offline access, so Google hands out a refresh token"""
        state = create_oauth_state(user_id)
        auth_url, _ = self._flow(state).authorization_url(
            access_type="offline",
            include_granted_scopes="true",
            prompt="consent"
        )
        return auth_url, state

    def exchange_code(self, code: str) -> Credentials:
        flow = self._flow()
        try:
            flow.fetch_token(code=code)
        except Exception as e:
            logger.error(f"OAuth code exchange failed: {e}")
            raise GoogleCalendarError(f"Token exchange failed: {e}")
        return flow.credentials

    def credentials_for(self, db: Session, config: GoogleCalendarConfig) -> Credentials:
        """Credentials from the stored tokens, refreshed and saved back when expired"""
        creds = Credentials(
            token=config.access_token,
            refresh_token=config.refresh_token,
            token_uri=TOKEN_URI,
            client_id=self.client_id or None,
            client_secret=self.client_secret or None,
            scopes=SCOPES,
            expiry=config.token_expires_at
        )

        if creds.expired and creds.refresh_token:
            try:
                creds.refresh(Request())
            except RefreshError as e:
                logger.error(f"Google token refresh failed: {e}")
                raise GoogleCalendarError("Google authorization expired, reconnect the account")
            calendar_store.update_tokens(
                db,
                config,
                access_token=creds.token,
                refresh_token=creds.refresh_token,
                expires_at=creds.expiry or datetime.utcnow() + timedelta(hours=1)
            )
            logger.info("Google access token refreshed")

        return creds

    def build_client(self, credentials: Credentials) -> GoogleCalendarClient:
        return GoogleCalendarClient(credentials)

    def revoke_token(self, token: str) -> bool:
        try:
            response = requests.post(
                REVOKE_URI,
                params={"token": token},
                headers={"content-type": "application/x-www-form-urlencoded"},
                timeout=10
            )
        except requests.RequestException as e:
            logger.warning(f"Token revocation failed: {e}")
            return False

        if response.status_code != 200:
            # Expired or already revoked tokens come back as 400
            logger.warning(f"Token revocation returned HTTP {response.status_code}")
            return False
        return True


google_auth_service = GoogleAuthService()
