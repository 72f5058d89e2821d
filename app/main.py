import logging

from fastapi import Depends, FastAPI, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.api.webhooks import router as webhooks_router
from app.api.worker import router as worker_router
from app.core.config import Settings, settings
from app.db.deps import get_db
from app.middleware.correlation_id import CorrelationIdMiddleware
from app.services.delivery import DELIVERY_MODE_INLINE, DELIVERY_MODE_WORKER

logger = logging.getLogger(__name__)

DELIVERY_MODES = (DELIVERY_MODE_INLINE, DELIVERY_MODE_WORKER)
REQUIRED_SETTINGS = ("database_url", "telegram_bot_token", "telegram_target_chat_id")

app = FastAPI(title="Photo Intake Bot")

app.add_middleware(CorrelationIdMiddleware)


def collect_config_errors(config: Settings) -> list[str]:
    """
    Problems that must stop the service from starting.

    Production additionally needs the webhook secret, a worker key when the
    sweep endpoint is in use, and real (non dry-run) sending.
    """
    errors = [
        f"{key.upper()} is not set" for key in REQUIRED_SETTINGS if not getattr(config, key, None)
    ]
    if config.delivery_mode not in DELIVERY_MODES:
        errors.append(
            f"DELIVERY_MODE must be one of {', '.join(DELIVERY_MODES)}, got '{config.delivery_mode}'"
        )

    if config.app_env == "production":
        if not config.telegram_webhook_secret:
            errors.append("TELEGRAM_WEBHOOK_SECRET is required in production (setWebhook secret_token)")
        if config.delivery_mode == DELIVERY_MODE_WORKER and not config.worker_api_key:
            errors.append("WORKER_API_KEY is required in production when DELIVERY_MODE=worker")
        if config.telegram_dry_run:
            errors.append("TELEGRAM_DRY_RUN must be false in production")
    return errors


@app.on_event("startup")
async def startup_event():
    """Fail fast on bad configuration, then log a summary (no secrets)."""
    errors = collect_config_errors(settings)
    if errors:
        message = "Configuration invalid:\n" + "\n".join(f"  - {e}" for e in errors)
        logger.error(message)
        raise RuntimeError(message)

    logger.info(
        f"Startup: env={settings.app_env} delivery_mode={settings.delivery_mode} "
        f"telegram_dry_run={settings.telegram_dry_run}"
    )


@app.get("/health")
def health():
    """Liveness plus the delivery settings in effect."""
    return {
        "ok": True,
        "delivery": {
            "mode": settings.delivery_mode,
            "batch_limit": settings.worker_batch_limit,
            "max_attempts": settings.worker_max_attempts,
        },
        "telegram_dry_run": settings.telegram_dry_run,
    }


@app.get("/ready")
def ready(db: Session = Depends(get_db)):
    """503 when the database cannot answer SELECT 1."""
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"ok": False, "database": "disconnected", "error": str(e)},
        )
    return {"ok": True, "database": "connected"}


app.include_router(webhooks_router, prefix="/webhooks", tags=["webhooks"])
app.include_router(worker_router, prefix="/worker", tags=["worker"])
