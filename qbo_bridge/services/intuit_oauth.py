"""
Intuit OAuth Client

Handles HTTP communication with the Intuit authorization server:
- Authorize URL construction (start of the connect flow)
- Authorization code exchange (first token for a realm)
- Token refresh (refresh token -> new access token)

No retries happen here. The refresher tries again on its next tick.
"""

import base64
import logging
from typing import Any
from urllib.parse import urlencode

import httpx
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import AsyncSession

from qbo_bridge.config import Settings, get_settings
from qbo_bridge.core.errors import (
    AuthServerRejectedError,
    InvalidTokenResponseError,
    OAuthCallbackError,
    TokenRefreshError,
    TransportError,
)
from qbo_bridge.models.schemas import (
    DEFAULT_EXPIRES_IN_SECONDS,
    MAX_EXPIRES_IN_SECONDS,
    TokenGrant,
)
from qbo_bridge.repositories.qbo_tokens import QboTokenRepository

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://appcenter.intuit.com/connect/oauth2"
TOKEN_URL = "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer"
ACCOUNTING_SCOPE = "com.intuit.quickbooks.accounting"


def basic_auth_header(client_id: str, client_secret: SecretStr) -> str:
    """Build the Basic authorization header value for client credentials."""
    raw = f"{client_id}:{client_secret.get_secret_value()}".encode()
    return "Basic " + base64.b64encode(raw).decode("ascii")


def parse_expires_in(value: Any) -> int:
    """
    Coerce an expires_in value to whole seconds.

    Missing, non-numeric, non-finite and non-positive values fall back to
    one hour. Oversized values are capped at MAX_EXPIRES_IN_SECONDS.
    """
    if value is None or isinstance(value, bool):
        return DEFAULT_EXPIRES_IN_SECONDS
    try:
        seconds = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_EXPIRES_IN_SECONDS
    if seconds <= 0:
        return DEFAULT_EXPIRES_IN_SECONDS
    return min(seconds, MAX_EXPIRES_IN_SECONDS)


class IntuitOAuthClient:
    """
    Client for the Intuit OAuth 2.0 endpoints.

    Features:
    - Authorize URL for the QuickBooks accounting scope
    - Authorization code exchange
    - Refresh token exchange
    - Per-request timeout
    """

    def __init__(
        self,
        client_id: str,
        client_secret: SecretStr,
        redirect_uri: str,
        timeout: float = 30.0,
        token_url: str = TOKEN_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the Intuit OAuth client

        Args:
            client_id: Intuit app client ID
            client_secret: Intuit app client secret
            redirect_uri: Redirect URI registered for the app
            timeout: Request timeout in seconds
            token_url: Token endpoint (overridable for tests)
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = httpx.Timeout(timeout)
        self.token_url = token_url
        self._transport = transport
        logger.debug(f"IntuitOAuthClient initialized (timeout={timeout}s)")

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "IntuitOAuthClient":
        settings = settings or get_settings()
        return cls(
            client_id=settings.qbo_client_id,
            client_secret=settings.qbo_client_secret,
            redirect_uri=settings.qbo_redirect_uri,
            timeout=settings.refresh_request_timeout_seconds,
            transport=transport,
        )

    def build_authorize_url(self, state: str) -> str:
        """
        Build the URL that sends the user to Intuit to connect a company.

        Args:
            state: Opaque value echoed back to the callback

        Returns:
            Authorization URL
        """
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "scope": ACCOUNTING_SCOPE,
            "redirect_uri": self.redirect_uri,
            "state": state,
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def refresh(self, refresh_token: SecretStr) -> TokenGrant:
        """
        Exchange a refresh token for a new access token.

        Args:
            refresh_token: Current refresh token

        Returns:
            Parsed token grant. refresh_token is None when Intuit did not rotate it.

        Raises:
            AuthServerRejectedError: Non-2xx response
            InvalidTokenResponseError: 2xx response without a usable access_token
            TransportError: Network failure or timeout
        """
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token.get_secret_value(),
        }
        return await self._token_request(payload)

    async def exchange_code(self, code: str) -> TokenGrant:
        """
        Exchange an authorization code for the first token pair of a realm.

        Raises the same errors as refresh().
        """
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        }
        return await self._token_request(payload)

    async def _token_request(self, payload: dict[str, str]) -> TokenGrant:
        headers = {
            "Authorization": basic_auth_header(self.client_id, self.client_secret),
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.token_url, data=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise TransportError(f"Token request timed out: {type(e).__name__}") from e
        except httpx.TransportError as e:
            raise TransportError(f"Token request failed: {type(e).__name__}: {e}") from e

        if not response.is_success:
            raise AuthServerRejectedError(response.status_code, self._read_body(response))

        return self._parse_token_response(response)

    @staticmethod
    def _read_body(response: httpx.Response) -> str:
        """Best-effort capture of an error body."""
        try:
            return response.text
        except Exception as e:
            logger.debug(f"Could not read token endpoint error body: {e}")
            return ""

    @staticmethod
    def _parse_token_response(response: httpx.Response) -> TokenGrant:
        try:
            data = response.json()
        except ValueError as e:
            raise InvalidTokenResponseError("Token response was not valid JSON") from e

        if not isinstance(data, dict):
            raise InvalidTokenResponseError("Token response was not a JSON object")

        access_token = data.get("access_token")
        if not access_token or not isinstance(access_token, str):
            raise InvalidTokenResponseError("Token response did not include an access_token")

        new_refresh = data.get("refresh_token")
        if "expires_in" not in data:
            logger.warning("Token response missing expires_in, defaulting to 1 hour")

        return TokenGrant(
            access_token=SecretStr(access_token),
            refresh_token=SecretStr(new_refresh) if isinstance(new_refresh, str) and new_refresh else None,
            expires_in=parse_expires_in(data.get("expires_in")),
            token_type=data.get("token_type") or "bearer",
        )


async def handle_callback(
    db: AsyncSession,
    code: str,
    realm_id: str,
    integration_id: str,
    client: IntuitOAuthClient | None = None,
) -> None:
    """
    Complete the connect flow: exchange the code and store the first token record.

    Args:
        db: Database session (committed by the caller's scope)
        code: Authorization code from the callback query string
        realm_id: QuickBooks company id from the callback query string
        integration_id: Integration the realm belongs to
        client: Optional client override

    Raises:
        OAuthCallbackError: If the code exchange fails
    """
    client = client or IntuitOAuthClient.from_settings()

    try:
        grant = await client.exchange_code(code)
    except TokenRefreshError as e:
        raise OAuthCallbackError(f"Authorization code exchange failed ({e.error_code})") from e

    repo = QboTokenRepository(db)
    await repo.upsert_token(
        integration_id=integration_id,
        realm_id=realm_id,
        access_token=grant.access_token.get_secret_value(),
        refresh_token=grant.refresh_token.get_secret_value() if grant.refresh_token else None,
        expires_in_seconds=grant.expires_in,
    )
    logger.info(f"Connected QuickBooks realm_id={realm_id} for integration_id={integration_id}")
