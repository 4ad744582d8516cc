"""
QuickBooks Webhook Handler
Receives Intuit change notifications and re-syncs the affected records
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from ... import config
from ...database import get_db
from ...webhook_security import verify_intuit_webhook
from .router import get_token_manager
from .tokens import TokenManager
from .webhook import WebhookProcessor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/quickbooks", tags=["webhooks"])


def get_webhook_verifier_token() -> Optional[str]:
    return config.QUICKBOOKS_WEBHOOK_VERIFIER_TOKEN


@router.get("", response_class=PlainTextResponse)
async def webhook_challenge(challenge: Optional[str] = None):
    """Echo the registration challenge; any other GET is not allowed"""
    if not challenge:
        raise HTTPException(status_code=405, detail="Method not allowed")
    logger.info("📥 QuickBooks webhook challenge received")
    return PlainTextResponse(challenge)


@router.post("")
async def handle_quickbooks_webhook(
    request: Request,
    db: Session = Depends(get_db),
    tokens: TokenManager = Depends(get_token_manager),
    verifier_token: Optional[str] = Depends(get_webhook_verifier_token),
):
    """
    Handle QuickBooks change notifications.

    Signature failures are 401. After verification the response is always 200
    so Intuit does not retry; failures are reported in the body and logged.
    """
    raw_body = await verify_intuit_webhook(request, verifier_token)

    try:
        payload = json.loads(raw_body)
    except ValueError as e:
        logger.error(f"❌ QuickBooks webhook body is not valid JSON: {e}")
        return {"success": False, "error": "Invalid JSON payload"}

    try:
        result = await WebhookProcessor(db, tokens).process(payload)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ QuickBooks webhook processing failed: {e}")
        return {"success": False, "error": str(e)}

    logger.info(f"✅ QuickBooks webhook processed: {len(result.get('results', []))} change(s)")
    return result
