import hmac
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.constants.event_types import (
    EVENT_TELEGRAM_SECRET_VERIFICATION_FAILURE,
    EVENT_TELEGRAM_WEBHOOK_FAILURE,
)
from app.core.config import settings
from app.db.deps import get_db
from app.middleware.correlation_id import get_correlation_id
from app.schemas.telegram import TelegramUpdate
from app.services.dialogue import handle_event
from app.services.messaging.admin_alerts import notify_admin_error
from app.services.messaging.telegram_client import TelegramApiError, answer_callback_query
from app.services.system_event_service import error as log_error_event
from app.services.system_event_service import warn as log_warn_event
from app.services.telegram_updates import parse_update
from app.services.update_ledger import record_update_if_new

logger = logging.getLogger(__name__)

router = APIRouter()

# Sent by Telegram when setWebhook was called with secret_token
SECRET_TOKEN_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def _tg_error_response(status_code: int, error: str) -> JSONResponse:
    """Build JSONResponse for Telegram webhook errors: {"ok": False, "error": ...}."""
    return JSONResponse(status_code=status_code, content={"ok": False, "error": error})


def _verify_secret_token(request: Request, db: Session) -> JSONResponse | None:
    """
    Check the webhook secret header when a secret is configured.
    Returns None on success (or when no secret is configured); an error response otherwise.
    """
    secret = settings.telegram_webhook_secret
    if not secret:
        return None
    provided = request.headers.get(SECRET_TOKEN_HEADER)
    if provided and hmac.compare_digest(provided, secret):
        return None

    logger.warning("Telegram webhook secret token mismatch - rejecting request")
    log_warn_event(
        db=db,
        event_type=EVENT_TELEGRAM_SECRET_VERIFICATION_FAILURE,
        payload={"has_secret_header": provided is not None},
    )
    return _tg_error_response(403, "Invalid secret token")


async def _ack_callback(callback_query_id: str) -> None:
    """Stop the button spinner; failure only costs a cosmetic glitch."""
    try:
        await answer_callback_query(callback_query_id)
    except TelegramApiError as e:
        logger.warning(f"Failed to answer callback query {callback_query_id}: {e}")


@router.post("/telegram")
async def telegram_inbound(request: Request, db: Session = Depends(get_db)):
    correlation_id = get_correlation_id(request)

    err_response = _verify_secret_token(request, db)
    if err_response is not None:
        return err_response

    try:
        payload = await request.json()
    except ValueError as e:
        logger.warning(f"Invalid JSON payload in Telegram webhook: {e}")
        return _tg_error_response(400, "Invalid JSON payload")

    try:
        update = TelegramUpdate.model_validate(payload)
    except ValidationError as e:
        # Acknowledge so Telegram does not redeliver a payload we can never parse
        logger.warning(f"Malformed Telegram update: {e}")
        return {"ok": True, "type": "malformed-payload"}

    logger.info(
        f"telegram.inbound_received update_id={update.update_id} "
        f"type={update.event_type} correlation_id={correlation_id}"
    )

    try:
        # Idempotency: record the update_id FIRST; a unique violation means a redelivery
        if record_update_if_new(db, update.update_id, update.event_type):
            return {"ok": True, "type": "duplicate", "update_id": update.update_id}

        event = parse_update(update)
        if event is None:
            return {"ok": True, "type": "ignored", "update_id": update.update_id}

        if event.callback_query_id:
            await _ack_callback(event.callback_query_id)

        result = await handle_event(db, event)
        return {"ok": True, "type": "handled", "update_id": update.update_id, **result}
    except Exception as e:
        # Always 200: a retry would replay side effects that may already have happened
        db.rollback()
        logger.error(
            f"Telegram webhook processing failed for update {update.update_id}: "
            f"{type(e).__name__}: {e}",
            exc_info=True,
        )
        try:
            log_error_event(
                db=db,
                event_type=EVENT_TELEGRAM_WEBHOOK_FAILURE,
                payload={"update_id": update.update_id},
                exc=e,
            )
        except Exception:
            db.rollback()
            logger.error("Failed to record webhook failure event", exc_info=True)
        await notify_admin_error(e)
        return {"ok": True, "type": "error", "update_id": update.update_id}
