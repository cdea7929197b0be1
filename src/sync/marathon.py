"""Marathon (playlist) state machine, driven from the control plane.

Ownership split:
- queue contents are edited here and pushed to the agent via marathon_sync;
- marathon_on / marathon_idx belong to the agent and arrive via heartbeats.
  start/next/stop/continue only enqueue intents.
- clear is the exception: it resets everything server-side immediately so it
  works with the agent offline, and enqueues marathon_clear for later.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from src.infra.errors import ValidationError
from src.sync.commands import CommandType

if TYPE_CHECKING:
    from src.store.command_channel import CommandChannel
    from src.store.sync_store import SyncStore
    from src.sync.state import SyncState

logger = structlog.get_logger()


class MarathonAction(StrEnum):
    add = "add"
    remove = "remove"
    reorder = "reorder"
    start = "start"
    stop = "stop"
    next = "next"
    continue_ = "continue"
    clear = "clear"


class MarathonPhase(StrEnum):
    empty = "empty"
    queued = "queued"
    running = "running"


@dataclass(frozen=True)
class MarathonResult:
    exists: bool = False

    def to_wire(self) -> dict[str, Any]:
        body: dict[str, Any] = {"ok": True}
        if self.exists:
            body["msg"] = "exists"
        return body


_INTENT_COMMANDS: dict[MarathonAction, CommandType] = {
    MarathonAction.start: CommandType.marathon_start,
    MarathonAction.stop: CommandType.marathon_stop,
    MarathonAction.next: CommandType.marathon_next,
    MarathonAction.continue_: CommandType.marathon_continue,
}


def phase_of(state: SyncState | None) -> MarathonPhase:
    if state is None or not state.marathon_queue:
        return MarathonPhase.empty
    if state.marathon_on:
        return MarathonPhase.running
    return MarathonPhase.queued


def add_item(queue: Sequence[Any], item: Mapping[str, Any]) -> tuple[list[Any], bool]:
    """Append item unless an entry with the same id exists. Returns (queue, added)."""
    item_id = item.get("id")
    if any(isinstance(x, Mapping) and x.get("id") == item_id for x in queue):
        return list(queue), False
    return [*queue, dict(item)], True


def remove_item(queue: Sequence[Any], item_id: Any) -> list[Any]:
    return [x for x in queue if not (isinstance(x, Mapping) and x.get("id") == item_id)]


def cursor_fix(state: SyncState | None, new_queue: Sequence[Any]) -> dict[str, Any]:
    """Extra columns needed to keep 0 <= idx < len(queue) while running.

    Only touches the agent-owned cursor when an edit would leave it invalid.
    """
    if state is None or not state.marathon_on:
        return {}
    if not new_queue:
        return {"marathon_on": False, "marathon_idx": 0}
    if state.marathon_idx >= len(new_queue):
        return {"marathon_idx": len(new_queue) - 1}
    return {}


def _item_id(payload: Any) -> Any:
    if not isinstance(payload, Mapping) or payload.get("id") is None:
        raise ValidationError("payload.id is required")
    return payload["id"]


class MarathonController:
    def __init__(self, store: SyncStore, commands: CommandChannel) -> None:
        self._store = store
        self._commands = commands

    async def apply(self, user_id: int, action: str, payload: Any = None) -> MarathonResult:
        """Dispatch a control-plane marathon action by name."""
        try:
            parsed = MarathonAction(action)
        except ValueError:
            raise ValidationError(f"Unknown marathon action: {action}") from None

        if parsed is MarathonAction.add:
            return await self.add(user_id, payload)
        if parsed is MarathonAction.remove:
            return await self.remove(user_id, _item_id(payload))
        if parsed is MarathonAction.reorder:
            queue = payload.get("queue") if isinstance(payload, Mapping) else None
            if not isinstance(queue, list):
                raise ValidationError("payload.queue must be a list")
            return await self.reorder(user_id, queue)
        if parsed is MarathonAction.clear:
            return await self.clear(user_id)
        return await self.send_intent(user_id, parsed)

    async def add(self, user_id: int, item: Any) -> MarathonResult:
        _item_id(item)
        state = await self._store.get_state(user_id)
        queue, added = add_item(state.marathon_queue if state else [], item)
        if not added:
            return MarathonResult(exists=True)
        await self._write_queue(user_id, state, queue)
        return MarathonResult()

    async def remove(self, user_id: int, item_id: Any) -> MarathonResult:
        state = await self._store.get_state(user_id)
        queue = remove_item(state.marathon_queue if state else [], item_id)
        await self._write_queue(user_id, state, queue)
        return MarathonResult()

    async def reorder(self, user_id: int, new_queue: list[Any]) -> MarathonResult:
        state = await self._store.get_state(user_id)
        await self._write_queue(user_id, state, list(new_queue))
        return MarathonResult()

    async def send_intent(self, user_id: int, action: MarathonAction) -> MarathonResult:
        command = _INTENT_COMMANDS.get(action)
        if command is None:
            raise ValidationError(f"Marathon action '{action}' is not an intent")
        await self._commands.enqueue(user_id, command, {})
        return MarathonResult()

    async def start(self, user_id: int) -> MarathonResult:
        return await self.send_intent(user_id, MarathonAction.start)

    async def stop(self, user_id: int) -> MarathonResult:
        return await self.send_intent(user_id, MarathonAction.stop)

    async def next(self, user_id: int) -> MarathonResult:
        return await self.send_intent(user_id, MarathonAction.next)

    async def resume(self, user_id: int) -> MarathonResult:
        return await self.send_intent(user_id, MarathonAction.continue_)

    async def clear(self, user_id: int) -> MarathonResult:
        await self._store.upsert_state(
            user_id, {"marathon_queue": [], "marathon_on": False, "marathon_idx": 0}
        )
        await self._commands.enqueue(user_id, CommandType.marathon_clear, {})
        logger.info("marathon_cleared", user_id=user_id)
        return MarathonResult()

    async def _write_queue(
        self, user_id: int, state: SyncState | None, queue: list[Any]
    ) -> None:
        await self._store.upsert_state(
            user_id, {"marathon_queue": queue, **cursor_fix(state, queue)}
        )
        await self._commands.enqueue(user_id, CommandType.marathon_sync, {"queue": queue})
