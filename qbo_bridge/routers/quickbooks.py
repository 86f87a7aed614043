"""
QuickBooks Router

Thin HTTP layer around the Intuit connect flow:
- Launch / connect: send the user to Intuit
- Callback: exchange the code and store the first token record
- Webhook: verify and hand payloads to the application callback
- Company info: end-to-end check that the stored bearer token works

Failures return generic bodies; details stay in the server log.
"""

import logging
import secrets

import httpx
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse, Response

from qbo_bridge.config import get_settings
from qbo_bridge.core.database import DbSession
from qbo_bridge.repositories.qbo_tokens import QboTokenRepository
from qbo_bridge.services.intuit_oauth import IntuitOAuthClient, handle_callback
from qbo_bridge.services.webhooks import (
    SIGNATURE_HEADER,
    WebhookCallback,
    WebhookPayloadError,
    WebhookVerificationError,
    log_webhook_payload,
    verify_and_parse_webhook,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["QuickBooks"])

COMPANY_INFO_MINOR_VERSION = 76


# =============================================================================
# Dependencies
# =============================================================================


def get_http_transport() -> httpx.AsyncBaseTransport | None:
    """Outbound HTTP transport (overridden in tests)."""
    return None


def get_oauth_client(
    transport: httpx.AsyncBaseTransport | None = Depends(get_http_transport),
) -> IntuitOAuthClient:
    return IntuitOAuthClient.from_settings(transport=transport)


def get_webhook_callback() -> WebhookCallback:
    return log_webhook_payload


def new_state() -> str:
    return secrets.token_hex(16)


# =============================================================================
# Connect flow
# =============================================================================


@router.get("/quickbooks/launch")
async def launch(client: IntuitOAuthClient = Depends(get_oauth_client)) -> RedirectResponse:
    """Browser-friendly redirect to the Intuit consent screen."""
    return RedirectResponse(client.build_authorize_url(new_state()), status_code=status.HTTP_302_FOUND)


@router.get("/api/integrations/quickbooks/connect")
async def connect(client: IntuitOAuthClient = Depends(get_oauth_client)) -> dict[str, str]:
    """Return the authorize URL for clients that redirect themselves."""
    return {"url": client.build_authorize_url(new_state())}


@router.get("/quickbooks/callback")
async def callback(
    db: DbSession,
    code: str = Query(default=""),
    realm_id: str = Query(default="", alias="realmId"),
    state: str = Query(default=""),
    client: IntuitOAuthClient = Depends(get_oauth_client),
) -> PlainTextResponse:
    """OAuth redirect target: store the first token record for the realm."""
    settings = get_settings()
    integration_id = settings.qbo_integration_id or state

    if not code or not realm_id or not integration_id:
        return PlainTextResponse(
            "Missing code/realmId/integrationId",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    try:
        await handle_callback(db, code, realm_id, integration_id, client=client)
        await db.commit()
    except Exception as e:
        logger.error(f"QBO callback error for realm_id={realm_id}: {e}", exc_info=True)
        return PlainTextResponse(
            "QuickBooks connection failed. Check server logs.",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return PlainTextResponse("Connected to QuickBooks. You can close this window.")


# =============================================================================
# Webhook
# =============================================================================


@router.post("/api/webhooks/quickbooks")
async def webhook(
    request: Request,
    on_payload: WebhookCallback = Depends(get_webhook_callback),
) -> Response:
    """Verify the intuit-signature header over the raw body and dispatch the payload."""
    settings = get_settings()
    raw_body = await request.body()

    try:
        payload = verify_and_parse_webhook(
            raw_body,
            request.headers.get(SIGNATURE_HEADER),
            settings.qbo_webhook_verifier_token,
        )
    except WebhookVerificationError:
        logger.warning("Rejected QBO webhook with invalid signature")
        return Response(status_code=status.HTTP_401_UNAUTHORIZED)
    except WebhookPayloadError as e:
        logger.warning(f"Rejected QBO webhook: {e}")
        return Response(status_code=status.HTTP_400_BAD_REQUEST)

    try:
        await on_payload(payload)
    except Exception as e:
        logger.error(f"QBO webhook handler error: {e}", exc_info=True)
        return Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return Response(status_code=status.HTTP_200_OK)


# =============================================================================
# Company info
# =============================================================================


@router.get("/quickbooks/company")
async def company_info(
    db: DbSession,
    transport: httpx.AsyncBaseTransport | None = Depends(get_http_transport),
) -> JSONResponse:
    """Fetch CompanyInfo with the most recent stored token for the configured integration."""
    settings = get_settings()

    try:
        record = await QboTokenRepository(db).get_latest_for_integration(
            settings.qbo_integration_id or ""
        )
        if record is None or not record.realm_id or not record.access_token.get_secret_value():
            return JSONResponse({"error": "No token/realm found"}, status_code=status.HTTP_404_NOT_FOUND)

        url = (
            f"{settings.qbo_api_base_url}/v3/company/{record.realm_id}"
            f"/companyinfo/{record.realm_id}"
        )
        async with httpx.AsyncClient(
            timeout=settings.refresh_request_timeout_seconds,
            transport=transport,
        ) as client:
            response = await client.get(
                url,
                params={"minorversion": COMPANY_INFO_MINOR_VERSION},
                headers={
                    "Authorization": f"Bearer {record.access_token.get_secret_value()}",
                    "Accept": "application/json",
                },
            )

        try:
            body = response.json()
        except ValueError:
            body = {}

        return JSONResponse(body, status_code=200 if response.is_success else response.status_code)

    except Exception as e:
        logger.error(f"Company info error: {e}", exc_info=True)
        return JSONResponse(
            {"error": "Failed to fetch company info"},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
