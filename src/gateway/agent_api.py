"""Agent-facing API: pairing, heartbeat, command polling/ack, events, offline."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends

from src.gateway.deps import Services, agent_user, get_services, trigger_liveness_sweep
from src.gateway.protocol import EventParams, HeartbeatParams, PairVerifyParams
from src.infra.errors import ValidationError
from src.sync.state import User

logger = structlog.get_logger()

router = APIRouter(prefix="/api", dependencies=[Depends(trigger_liveness_sweep)])


@router.post("/auth/verify")
async def verify_pairing(
    params: PairVerifyParams,
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    result = await services.pairing.verify(params.code)
    return result.to_wire()


@router.post("/heartbeat")
async def heartbeat(
    params: HeartbeatParams,
    user: User = Depends(agent_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    state = params.state.to_wire() if params.state is not None else None
    await services.store.record_heartbeat(user.id, state)
    return {"ok": True}


@router.get("/commands")
async def poll_commands(
    user: User = Depends(agent_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    commands = await services.commands.poll_pending(
        user.id, services.sync_settings.poll_limit
    )
    return {"commands": [c.to_wire() for c in commands]}


@router.post("/commands/{command_id}/done")
async def ack_command(
    command_id: int,
    user: User = Depends(agent_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    await services.commands.acknowledge(command_id, user.id)
    return {"ok": True}


@router.post("/event")
async def report_event(
    params: EventParams,
    user: User = Depends(agent_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Agent-side incident (crash, marathon finished, ...) forwarded as a notification."""
    if not params.type:
        raise ValidationError("No type")
    services.dispatcher.send_background(user.id, params.type, params.payload or {})
    return {"ok": True}


@router.post("/offline")
async def declare_offline(
    user: User = Depends(agent_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    await services.store.declare_offline(user.id)
    logger.info("agent_declared_offline", user_id=user.id)
    return {"ok": True}
