"""
QuickBooks OAuth token management
Keeps a valid bearer token for the accounting API and owns the connect/disconnect lifecycle
"""

import base64
import logging
import secrets
from datetime import timedelta
from typing import Optional
from urllib.parse import urlencode

import httpx
from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session

from ...config import (
    QUICKBOOKS_AUTH_URL,
    QUICKBOOKS_CLIENT_ID,
    QUICKBOOKS_CLIENT_SECRET,
    QUICKBOOKS_ENCRYPTION_KEY,
    QUICKBOOKS_ENVIRONMENT,
    QUICKBOOKS_REDIRECT_URI,
    QUICKBOOKS_REVOKE_URL,
    QUICKBOOKS_TOKEN_URL,
)
from ...models_quickbooks import QuickBooksConfig
from .client import REQUEST_TIMEOUT, QuickBooksClient, QuickBooksCredentials
from .exceptions import NotConnected, QuickBooksError, RemoteApiError, TokenRefreshFailed
from .repository import QuickBooksRepository, utcnow

logger = logging.getLogger(__name__)

# Refresh when the access token expires within this window
REFRESH_WINDOW = timedelta(minutes=5)
OAUTH_SCOPE = "com.intuit.quickbooks.accounting"

# Initialize encryption
fernet = Fernet(QUICKBOOKS_ENCRYPTION_KEY) if QUICKBOOKS_ENCRYPTION_KEY else None


def encrypt_token(token: str) -> str:
    """Encrypt an OAuth token for storage"""
    if not fernet:
        logger.warning("QUICKBOOKS_ENCRYPTION_KEY not set, storing token in plain text")
        return token
    return fernet.encrypt(token.encode()).decode()


def decrypt_token(encrypted: str) -> str:
    """Decrypt a stored OAuth token"""
    if not fernet or not encrypted:
        return encrypted or ""
    try:
        return fernet.decrypt(encrypted.encode()).decode()
    except InvalidToken:
        return encrypted  # Stored before encryption was enabled


def get_basic_auth_header() -> str:
    """Generate Basic Auth header value for the Intuit OAuth endpoints"""
    credentials = f"{QUICKBOOKS_CLIENT_ID}:{QUICKBOOKS_CLIENT_SECRET}"
    return base64.b64encode(credentials.encode()).decode()


class TokenManager:
    """
    Loads the singleton connection row and hands out valid credentials.

    Refresh is not guarded by a lock; two callers racing past the expiry
    window can both refresh, and the loser sees TokenRefreshFailed next time.
    """

    def __init__(self, db: Session, http_client: Optional[httpx.AsyncClient] = None):
        self.db = db
        self.http_client = http_client
        self.repo = QuickBooksRepository()

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        if self.http_client is not None:
            return await self.http_client.post(url, **kwargs)
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            return await client.post(url, **kwargs)

    def _oauth_headers(self, content_type: str = "application/x-www-form-urlencoded") -> dict:
        return {
            "Accept": "application/json",
            "Content-Type": content_type,
            "Authorization": f"Basic {get_basic_auth_header()}",
        }

    def load_config(self) -> QuickBooksConfig:
        config = self.repo.get_connected_config(self.db)
        if not config:
            raise NotConnected()
        return config

    async def get_valid_token(self) -> QuickBooksCredentials:
        """Return credentials, refreshing first if the token is about to expire"""
        config = self.load_config()

        if config.token_expires_at and config.token_expires_at > utcnow() + REFRESH_WINDOW:
            return QuickBooksCredentials(
                access_token=decrypt_token(config.access_token), realm_id=config.realm_id
            )

        access_token = await self.refresh(config)
        return QuickBooksCredentials(access_token=access_token, realm_id=config.realm_id)

    async def refresh(self, config: QuickBooksConfig) -> str:
        """Exchange the refresh token and persist the rotated pair"""
        logger.info(f"🔄 Refreshing QuickBooks access token for realm {config.realm_id}")

        try:
            response = await self._post(
                QUICKBOOKS_TOKEN_URL,
                headers=self._oauth_headers(),
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": decrypt_token(config.refresh_token),
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"❌ Token refresh connection error: {e}")
            raise TokenRefreshFailed(None, str(e)) from e

        if response.status_code < 200 or response.status_code >= 300:
            logger.error(f"❌ Token refresh failed ({response.status_code}): {response.text}")
            raise TokenRefreshFailed(response.status_code, response.text)

        token_data = response.json()
        new_access_token = token_data.get("access_token")
        new_refresh_token = token_data.get("refresh_token")
        expires_in = token_data.get("expires_in", 3600)

        if not new_access_token:
            raise TokenRefreshFailed(response.status_code, "Token response missing access_token")

        # Intuit rotates refresh tokens; the old one stops working after this call
        config.access_token = encrypt_token(new_access_token)
        if new_refresh_token:
            config.refresh_token = encrypt_token(new_refresh_token)
        config.token_expires_at = utcnow() + timedelta(seconds=int(expires_in))
        self.db.commit()

        logger.info("✅ QuickBooks access token refreshed")
        return new_access_token

    async def get_client(self) -> QuickBooksClient:
        """Authenticated API client for one sync operation"""
        credentials = await self.get_valid_token()
        return QuickBooksClient(credentials, http_client=self.http_client)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def get_authorization_url(self, state: Optional[str] = None) -> dict:
        if not QUICKBOOKS_CLIENT_ID or not QUICKBOOKS_CLIENT_SECRET:
            raise QuickBooksError("QuickBooks not configured")

        state = state or secrets.token_urlsafe(32)
        params = {
            "client_id": QUICKBOOKS_CLIENT_ID,
            "response_type": "code",
            "scope": OAUTH_SCOPE,
            "redirect_uri": QUICKBOOKS_REDIRECT_URI,
            "state": state,
        }
        logger.info(f"QuickBooks OAuth initiated, environment: {QUICKBOOKS_ENVIRONMENT}")
        return {"authUrl": f"{QUICKBOOKS_AUTH_URL}?{urlencode(params)}", "state": state}

    async def exchange_code(self, code: str, realm_id: str) -> dict:
        """Complete the OAuth flow and store the connection"""
        logger.info(f"QuickBooks OAuth callback, realm: {realm_id}")

        try:
            response = await self._post(
                QUICKBOOKS_TOKEN_URL,
                headers=self._oauth_headers(),
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": QUICKBOOKS_REDIRECT_URI,
                },
            )
        except httpx.HTTPError as e:
            raise RemoteApiError(0, str(e), "token exchange") from e

        if response.status_code != 200:
            logger.error(f"❌ QuickBooks token exchange failed: {response.text}")
            raise RemoteApiError(response.status_code, response.text, "token exchange")

        token_data = response.json()
        access_token = token_data.get("access_token")
        refresh_token = token_data.get("refresh_token")
        expires_in = token_data.get("expires_in", 3600)

        if not access_token or not refresh_token:
            raise QuickBooksError("Invalid token response from QuickBooks")

        # Company name is cosmetic; a failure here must not block the connection
        company_name = None
        try:
            client = QuickBooksClient(
                QuickBooksCredentials(access_token, realm_id), http_client=self.http_client
            )
            company_name = (await client.get_company_info()).get("CompanyName")
        except RemoteApiError as e:
            logger.warning(f"Failed to fetch company info: {e}")

        now = utcnow()
        config = self.repo.get_config(self.db)
        if config is None:
            config = QuickBooksConfig()
            self.db.add(config)

        config.realm_id = realm_id
        config.company_name = company_name
        config.access_token = encrypt_token(access_token)
        config.refresh_token = encrypt_token(refresh_token)
        config.token_expires_at = now + timedelta(seconds=int(expires_in))
        config.is_connected = True
        config.connected_at = now

        self.repo.log_sync(
            self.db,
            entity_type="connection",
            action="connect",
            status="success",
            details={"realm_id": realm_id, "company_name": company_name},
        )
        self.db.commit()

        logger.info(f"✅ QuickBooks connected: {company_name or realm_id}")
        return {"success": True, "realmId": realm_id, "companyName": company_name}

    async def disconnect(self) -> dict:
        config = self.load_config()

        # Revoke is best effort; the local row is disconnected either way
        try:
            response = await self._post(
                QUICKBOOKS_REVOKE_URL,
                headers=self._oauth_headers("application/json"),
                json={"token": decrypt_token(config.refresh_token)},
            )
            if response.status_code >= 400:
                logger.warning(f"QuickBooks token revoke returned {response.status_code}")
        except httpx.HTTPError as e:
            logger.warning(f"QuickBooks token revoke failed: {e}")

        config.is_connected = False
        self.repo.log_sync(
            self.db,
            entity_type="connection",
            action="disconnect",
            status="success",
            details={"realm_id": config.realm_id},
        )
        self.db.commit()

        logger.info(f"✅ QuickBooks disconnected for realm {config.realm_id}")
        return {"success": True}

    def status(self) -> dict:
        config = self.repo.get_connected_config(self.db)
        if not config:
            return {"connected": False}

        return {
            "connected": True,
            "realmId": config.realm_id,
            "companyName": config.company_name,
            "connectedAt": config.connected_at,
            "lastSyncAt": config.last_sync_at,
            "tokenExpiresAt": config.token_expires_at,
        }
