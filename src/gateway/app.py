from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.auth.cache import CredentialCache
from src.auth.credentials import CredentialAuthenticator
from src.auth.init_data import InitDataAuthenticator
from src.auth.pairing import PairingService
from src.auth.tokens import TokenSigner
from src.channels.telegram import TelegramAdapter, TelegramSink, create_bot
from src.config.settings import DEV_JWT_SECRET, Settings, get_settings
from src.gateway import agent_api, control_api
from src.gateway.deps import Services
from src.gateway.protocol import ErrorBody
from src.infra.clock import Clock, SystemClock
from src.infra.errors import AniPilotError, ChannelError
from src.infra.logging import setup_logging
from src.notify.dispatcher import NotificationDispatcher, NotificationSink
from src.store.command_channel import CommandChannel
from src.store.database import create_db_engine, ensure_schema, make_session_factory
from src.store.notification_log import NotificationLedger
from src.store.sync_store import SyncStore
from src.sync.liveness import LivenessMonitor
from src.sync.marathon import MarathonController

logger = structlog.get_logger()


def build_services(
    settings: Settings,
    db_session_factory: async_sessionmaker,
    *,
    clock: Clock,
    sink: NotificationSink | None,
) -> Services:
    """Wire the sync core. Everything process-scoped hangs off the returned container."""
    sync = settings.sync
    store = SyncStore(db_session_factory, clock, history_max_items=sync.history_max_items)
    commands = CommandChannel(
        db_session_factory, clock, retention_ms=sync.command_retention_s * 1000
    )
    ledger = NotificationLedger(db_session_factory, clock)
    dispatcher = NotificationDispatcher(
        store, ledger, sink, cooldown_ms=sync.notify_cooldown_s * 1000
    )
    monitor = LivenessMonitor(
        store=store,
        commands=commands,
        ledger=ledger,
        dispatcher=dispatcher,
        clock=clock,
        settings=sync,
    )
    signer = TokenSigner(settings.auth.jwt_secret, ttl_days=settings.auth.token_ttl_days)
    cache = CredentialCache(
        clock,
        ttl_ms=int(settings.auth.cache_ttl_s * 1000),
        sweep_interval_ms=int(settings.auth.cache_sweep_interval_s * 1000),
    )
    pairing = PairingService(
        store=store,
        signer=signer,
        cache=cache,
        dispatcher=dispatcher,
        clock=clock,
        code_ttl_ms=settings.auth.pairing_code_ttl_s * 1000,
    )
    return Services(
        clock=clock,
        sync_settings=sync,
        store=store,
        commands=commands,
        ledger=ledger,
        dispatcher=dispatcher,
        monitor=monitor,
        marathon=MarathonController(store, commands),
        pairing=pairing,
        agent_auth=CredentialAuthenticator(store, signer, cache),
        control_auth=InitDataAuthenticator(store, settings.telegram.bot_token),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize shared state on startup."""
    settings = get_settings()
    setup_logging(json_output=settings.logging.json_output, log_level=settings.logging.level)

    if settings.auth.jwt_secret == DEV_JWT_SECRET:
        logger.warning("auth_dev_jwt_secret_in_use")

    # DB is mandatory; startup fails if DB/schema unavailable.
    engine = await create_db_engine(
        settings.database, command_timeout_s=settings.gateway.request_timeout_s
    )
    await ensure_schema(engine, settings.database.schema_)
    db_session_factory = make_session_factory(engine)
    logger.info("db_connected")

    bot = create_bot(settings.telegram) if settings.telegram.bot_token else None
    services = build_services(
        settings,
        db_session_factory,
        clock=SystemClock(),
        sink=TelegramSink(bot) if bot else None,
    )
    app.state.services = services

    adapter: TelegramAdapter | None = None
    polling_task: asyncio.Task | None = None
    if bot is not None:
        adapter = TelegramAdapter(
            bot,
            telegram_settings=settings.telegram,
            sync_settings=settings.sync,
            store=services.store,
            commands=services.commands,
            marathon=services.marathon,
            pairing=services.pairing,
            clock=services.clock,
        )
        try:
            await adapter.check_ready()
            polling_task = asyncio.create_task(adapter.start_polling(), name="telegram_polling")
        except ChannelError:
            logger.exception("telegram_unavailable")
    else:
        logger.warning("telegram_disabled", reason="TELEGRAM_BOT_TOKEN not set")

    logger.info(
        "gateway_started",
        host=settings.gateway.host,
        port=settings.gateway.port,
        telegram=polling_task is not None,
    )

    yield

    # Cleanup
    if adapter is not None:
        await adapter.stop()
    if polling_task is not None:
        polling_task.cancel()
        with suppress(asyncio.CancelledError):
            await polling_task
    await services.monitor.wait_idle()
    await services.dispatcher.drain()
    await engine.dispose()
    logger.info("db_engine_disposed")


def _error_response(status_code: int, message: str, code: str) -> JSONResponse:
    body = ErrorBody(error=message, code=code)
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def _handle_app_error(request: Request, exc: AniPilotError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_error", code=exc.code, error=str(exc), path=request.url.path)
    else:
        logger.info("request_rejected", code=exc.code, error=str(exc), path=request.url.path)
    return _error_response(exc.status_code, str(exc), exc.code)


async def _handle_request_validation(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors: list[Any] = exc.errors()
    first = errors[0] if errors else {}
    loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{loc}: {first.get('msg', 'invalid')}" if loc else "Invalid request body"
    logger.info("request_rejected", code="VALIDATION_ERROR", error=message, path=request.url.path)
    return _error_response(400, message, "VALIDATION_ERROR")


async def _handle_upstream(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("upstream_error", path=request.url.path, error_type=type(exc).__name__)
    return _error_response(502, "Storage unavailable", "UPSTREAM_ERROR")


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path)
    return _error_response(500, "An internal error occurred", "INTERNAL_ERROR")


def create_app(*, lifespan=lifespan) -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="AniPilot Sync", version="0.1.0", lifespan=lifespan)

    origins = [o.strip() for o in settings.gateway.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AniPilotError, _handle_app_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(SQLAlchemyError, _handle_upstream)
    app.add_exception_handler(TimeoutError, _handle_upstream)
    app.add_exception_handler(Exception, _handle_unexpected)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(agent_api.router)
    app.include_router(control_api.router)
    return app


app = create_app()


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "src.gateway.app:app",
        host=settings.gateway.host,
        port=settings.gateway.port,
        log_config=None,
    )
