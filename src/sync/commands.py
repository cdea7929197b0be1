from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, TypeAlias

# Open structured value for payload passthrough. The service never looks
# inside a payload; interpretation belongs to the agent-side executor.
JSONValue: TypeAlias = (
    dict[str, "JSONValue"] | list["JSONValue"] | str | int | float | bool | None
)


class CommandType(StrEnum):
    """Command tags the agent understands. Not exhaustive: unknown tags pass through."""

    navigate = "navigate"
    play = "play"
    pause = "pause"
    next_episode = "next_episode"
    resume = "resume"
    marathon_start = "marathon_start"
    marathon_stop = "marathon_stop"
    marathon_next = "marathon_next"
    marathon_continue = "marathon_continue"
    marathon_clear = "marathon_clear"
    marathon_sync = "marathon_sync"


@dataclass(frozen=True)
class Command:
    id: int
    user_id: int
    type: str
    payload: JSONValue
    created_at: int

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "payload": self.payload,
            "created_at": self.created_at,
        }
