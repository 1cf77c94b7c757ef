import asyncio
import os
from datetime import datetime, timezone

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal, get_db
from app.logging_config import get_logger, setup_logging
from app.models import Automation, Channel, InboundComment, InboundMessage, InteractionReport
from app.routers import reports, webhook
from app.services.notifier_service import notifier
from app.services.token_refresh_service import refresh_expiring_tokens, seconds_until_next_run

setup_logging()

app = FastAPI(
    title="Instaflow API",
    description="Webhook automation engine for Instagram channels",
    version="0.1.0",
)

cors_env = os.environ.get("CORS_ALLOW_ORIGINS", "*")
cors_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(reports.router)

refresh_logger = get_logger("token_refresh_worker")
_token_refresh_task: asyncio.Task | None = None


def _is_env_enabled(value: str | None, default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _is_token_refresh_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return _is_env_enabled(os.environ.get("TOKEN_REFRESH_ENABLED"), default=True)


async def _token_refresh_loop() -> None:
    while True:
        try:
            delay = seconds_until_next_run(datetime.now(timezone.utc), settings.token_refresh_hour)
            await asyncio.sleep(delay)
            db = SessionLocal()
            try:
                await refresh_expiring_tokens(db)
            finally:
                db.close()
        except asyncio.CancelledError:
            break
        except Exception as exc:
            refresh_logger.error(
                "Token refresh loop failed",
                extra={"context": {"error": str(exc)}},
            )
            await asyncio.sleep(60)


@app.on_event("startup")
async def start_background_workers() -> None:
    global _token_refresh_task
    notifier.start()
    if not _is_token_refresh_enabled():
        return
    if _token_refresh_task is None or _token_refresh_task.done():
        _token_refresh_task = asyncio.create_task(_token_refresh_loop())
        refresh_logger.info("Token refresh worker started", extra={"context": {"hour": settings.token_refresh_hour}})


@app.on_event("shutdown")
async def stop_background_workers() -> None:
    global _token_refresh_task
    await notifier.stop()
    if _token_refresh_task is None:
        return
    _token_refresh_task.cancel()
    try:
        await _token_refresh_task
    except asyncio.CancelledError:
        pass
    _token_refresh_task = None


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/db-check")
def db_check(db: Session = Depends(get_db)):
    return {
        "status": "ok",
        "channels": db.query(Channel).count(),
        "automations": db.query(Automation).count(),
        "inbound_messages": db.query(InboundMessage).count(),
        "inbound_comments": db.query(InboundComment).count(),
        "interaction_reports": db.query(InteractionReport).count(),
    }
