"""Process-scoped service container and FastAPI dependencies.

Services is built once in the app lifespan and stored on app.state; handlers
receive it by reference. The credential cache and sweep throttle live inside
it, so nothing here is module-global.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header, Request

from src.auth.credentials import CredentialAuthenticator
from src.auth.init_data import InitDataAuthenticator
from src.auth.pairing import PairingService
from src.config.settings import SyncSettings
from src.infra.clock import Clock
from src.notify.dispatcher import NotificationDispatcher
from src.store.command_channel import CommandChannel
from src.store.notification_log import NotificationLedger
from src.store.sync_store import SyncStore
from src.sync.liveness import LivenessMonitor
from src.sync.marathon import MarathonController
from src.sync.state import User


@dataclass
class Services:
    clock: Clock
    sync_settings: SyncSettings
    store: SyncStore
    commands: CommandChannel
    ledger: NotificationLedger
    dispatcher: NotificationDispatcher
    monitor: LivenessMonitor
    marathon: MarathonController
    pairing: PairingService
    agent_auth: CredentialAuthenticator
    control_auth: InitDataAuthenticator


def get_services(request: Request) -> Services:
    return request.app.state.services


async def trigger_liveness_sweep(services: Services = Depends(get_services)) -> None:
    """Attached to every API router: piggyback the throttled sweep on request traffic."""
    services.monitor.trigger()


async def agent_user(
    services: Services = Depends(get_services),
    authorization: str | None = Header(None),
) -> User:
    return await services.agent_auth.authenticate(authorization)


async def _init_data_from_body(request: Request) -> str | None:
    if request.method in ("GET", "HEAD"):
        return None
    try:
        body = await request.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("initData"), str):
        return body["initData"]
    return None


async def control_user(
    request: Request,
    services: Services = Depends(get_services),
    x_telegram_init_data: str | None = Header(None),
) -> User:
    init_data = x_telegram_init_data or await _init_data_from_body(request)
    return await services.control_auth.authenticate(init_data)
