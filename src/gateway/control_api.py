"""Mini App API: state view, command enqueue, marathon actions, notification settings."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from src.gateway.deps import Services, control_user, get_services, trigger_liveness_sweep
from src.gateway.protocol import CommandParams, MarathonParams, SettingsParams
from src.infra.errors import ValidationError
from src.sync.state import User, is_reachable

router = APIRouter(prefix="/api/webapp", dependencies=[Depends(trigger_liveness_sweep)])


def _reachable(services: Services, state) -> bool:
    return is_reachable(
        state,
        services.clock.now_ms(),
        services.sync_settings.reachable_window_s * 1000,
    )


@router.get("/state")
async def get_state(
    user: User = Depends(control_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    state = await services.store.get_state(user.id)
    body = state.to_dict() if state is not None else {}
    body["scriptOnline"] = _reachable(services, state)
    return {
        "ok": True,
        "state": body,
        "user": {"id": user.id, "username": user.username},
    }


@router.post("/command")
async def enqueue_command(
    params: CommandParams,
    user: User = Depends(control_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Queue a command for the agent. scriptOnline hints whether it will run soon."""
    if not params.type:
        raise ValidationError("No type")
    payload = params.payload if params.payload is not None else {}
    await services.commands.enqueue(user.id, params.type, payload)
    state = await services.store.get_state(user.id)
    return {"ok": True, "scriptOnline": _reachable(services, state)}


@router.post("/marathon")
async def marathon_action(
    params: MarathonParams,
    user: User = Depends(control_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    if not params.action:
        raise ValidationError("No action")
    result = await services.marathon.apply(user.id, params.action, params.payload)
    return result.to_wire()


@router.get("/settings")
async def get_settings(user: User = Depends(control_user)) -> dict[str, Any]:
    return {"ok": True, "connected": bool(user.token), "settings": user.settings()}


@router.post("/settings")
async def save_settings(
    params: SettingsParams,
    user: User = Depends(control_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    fields = params.model_dump(exclude_none=True, exclude={"init_data"})
    if fields:
        await services.store.update_settings(user.id, fields)
    return {"ok": True}
