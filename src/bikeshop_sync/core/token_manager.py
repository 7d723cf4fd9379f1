"""Token management for Bling API authentication."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Type
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import async_sessionmaker

from bikeshop_sync.config.constants import TOKEN_EXPIRATION_DEFAULT, TOKEN_REFRESH_BUFFER_SECONDS
from bikeshop_sync.core.exceptions import (
    BikeshopError,
    NotConnected,
    RefreshFailed,
    TokenExchangeFailed,
)
from bikeshop_sync.core.logger import setup_logger
from bikeshop_sync.db.models import OAuthToken
from bikeshop_sync.db.repository import TokenRepository
from bikeshop_sync.models.bling import BlingTokenResponse
from bikeshop_sync.utils.dates import as_utc

logger = setup_logger(__name__)


def is_token_expiring(expires_at: datetime, now: Optional[datetime] = None) -> bool:
    """Check if token is expired or expires within the refresh buffer (5 minutes)."""
    now = now or datetime.now(timezone.utc)
    return as_utc(expires_at) - now < timedelta(seconds=TOKEN_REFRESH_BUFFER_SECONDS)


class TokenManager:
    """
    Holds and refreshes the Bling OAuth2 token pair.

    Tokens live in the `bling_oauth_tokens` table; only the newest row is
    used. Refreshes inside one process are serialized; across processes a
    rejected refresh falls back to a token another worker stored meanwhile.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        client_id: Optional[str],
        client_secret: Optional[str],
        api_base: str = "https://www.bling.com.br/Api/v3",
        redirect_uri: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.session_factory = session_factory
        self.client_id = client_id
        self.client_secret = client_secret
        self.api_base = api_base.rstrip("/")
        self.redirect_uri = redirect_uri
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(timeout=timeout)
        self._refresh_lock = asyncio.Lock()

    async def _latest_token(self) -> Optional[OAuthToken]:
        async with self.session_factory() as session:
            return await TokenRepository(session).get_latest()

    async def _store_token(self, data: BlingTokenResponse) -> OAuthToken:
        expires_in = data.expires_in or TOKEN_EXPIRATION_DEFAULT
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        async with self.session_factory() as session:
            return await TokenRepository(session).replace(
                access_token=data.access_token,
                refresh_token=data.refresh_token,
                expires_at=expires_at,
            )

    async def _request_token(
        self,
        form: Dict[str, str],
        error_cls: Type[BikeshopError],
    ) -> BlingTokenResponse:
        """
        POST to the Bling token endpoint with Basic client credentials.

        Raises:
            error_cls: On missing credentials, transport errors, non-2xx
                responses or a malformed token payload.
        """
        if not self.client_id or not self.client_secret:
            raise error_cls("Bling credentials not configured")

        url = f"{self.api_base}/oauth/token"
        try:
            response = await self.client.post(
                url,
                data=form,
                auth=(self.client_id, self.client_secret),
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            logger.error(f"Token endpoint unreachable: {e}")
            raise error_cls(f"Token endpoint unreachable: {e}") from e

        if response.status_code >= 400:
            logger.error(
                f"Token request ({form.get('grant_type')}) failed "
                f"[{response.status_code}]: {response.text}"
            )
            raise error_cls(f"Token request failed: {response.status_code}")

        try:
            return BlingTokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"Unexpected token response: {response.text}")
            raise error_cls("Unexpected token response from Bling") from e

    async def get_valid_access_token(self) -> str:
        """
        Return an access token valid for at least five more minutes.

        Raises:
            NotConnected: No token has ever been stored.
            RefreshFailed: Bling rejected the refresh and no fresher token
                was stored by another worker, or the refreshed token would
                itself expire within five minutes.
        """
        token = await self._latest_token()
        if token is None:
            raise NotConnected()

        if not is_token_expiring(token.expires_at):
            return token.access_token

        async with self._refresh_lock:
            # A request that waited on the lock may find the peer's fresh token
            token = await self._latest_token()
            if token is None:
                raise NotConnected()
            if not is_token_expiring(token.expires_at):
                logger.debug("Token refreshed by a concurrent request, reusing it")
                return token.access_token

            logger.info("Token expired or expiring soon, refreshing...")
            try:
                fresh = await self._request_token(
                    {"grant_type": "refresh_token", "refresh_token": token.refresh_token},
                    RefreshFailed,
                )
            except RefreshFailed:
                # Refresh tokens are single-use: another process may have won the race
                latest = await self._latest_token()
                if (
                    latest is not None
                    and latest.access_token != token.access_token
                    and not is_token_expiring(latest.expires_at)
                ):
                    logger.info("Refresh rejected but a newer token was stored, using it")
                    return latest.access_token
                raise

            # The old refresh token is spent, so the new pair is stored either way
            stored = await self._store_token(fresh)
            if is_token_expiring(stored.expires_at):
                logger.error(f"Refreshed token lives only {fresh.expires_in}s, below the refresh buffer")
                raise RefreshFailed("Refreshed token expires within the refresh buffer")

            logger.info("Token refreshed successfully")
            return stored.access_token

    async def exchange_code(self, code: str) -> OAuthToken:
        """
        Exchange an authorization code for tokens and store them.

        Raises:
            TokenExchangeFailed: Exchange rejected or tokens could not be stored.
        """
        fresh = await self._request_token(
            {"grant_type": "authorization_code", "code": code},
            TokenExchangeFailed,
        )
        logger.info("Token exchange successful")

        try:
            stored = await self._store_token(fresh)
        except Exception as e:
            logger.error(f"Failed to store tokens: {e}", exc_info=True)
            raise TokenExchangeFailed("Failed to store tokens") from e

        logger.info("Tokens stored successfully")
        return stored

    def authorize_url(self) -> str:
        """URL the admin opens to grant the application access to Bling."""
        params = {
            "response_type": "code",
            "client_id": self.client_id or "",
            "state": "connect",
        }
        if self.redirect_uri:
            params["redirect_uri"] = self.redirect_uri
        return f"{self.api_base}/oauth/authorize?{urlencode(params)}"

    async def connection_status(self) -> dict:
        """Connection summary for the admin page."""
        token = await self._latest_token()
        expires_at = as_utc(token.expires_at) if token else None
        connected = bool(expires_at and expires_at > datetime.now(timezone.utc))
        return {
            "connected": connected,
            "authUrl": self.authorize_url(),
            "expiresAt": expires_at.isoformat() if expires_at else None,
        }

    async def close(self) -> None:
        """Close HTTP client connection if this manager created it."""
        if self._owns_client:
            await self.client.aclose()
