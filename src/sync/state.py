"""Per-user sync state: heartbeat merge rules and the reachability predicate."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from typing import Any

REACHABLE_WINDOW_MS = 120_000

# Agent wire field -> sync_state column. Only fields listed here are ever
# written by a heartbeat; the agent is authoritative for all of them.
HEARTBEAT_FIELDS: dict[str, str] = {
    "url": "current_url",
    "anime": "current_anime",
    "season": "current_season",
    "episode": "current_episode",
    "videoTime": "video_time",
    "videoDuration": "video_duration",
    "playing": "is_playing",
    "marathonOn": "marathon_on",
    "marathonIdx": "marathon_idx",
    "marathonQueue": "marathon_queue",
    "history": "history",
    "binge": "binge_today",
    "bingeDate": "binge_date",
    "watchMinutes": "watch_minutes",
}


@dataclass
class User:
    id: int
    telegram_id: int
    username: str = ""
    token: str | None = None
    notify_crash: bool = True
    notify_marathon: bool = True
    notify_offline: bool = True
    notify_digest: bool = True
    connect_code: str | None = None
    code_expires: int = 0

    def settings(self) -> dict[str, bool]:
        return {
            "notify_crash": self.notify_crash,
            "notify_marathon": self.notify_marathon,
            "notify_offline": self.notify_offline,
            "notify_digest": self.notify_digest,
        }


@dataclass
class SyncState:
    """Snapshot of one user's sync_state row."""

    user_id: int
    is_online: bool = False
    last_heartbeat: int = 0
    notified_offline: bool = False
    current_url: str | None = None
    current_anime: dict[str, Any] | None = None
    current_season: int | None = None
    current_episode: int | None = None
    video_time: float = 0.0
    video_duration: float = 0.0
    is_playing: bool = False
    marathon_on: bool = False
    marathon_idx: int = 0
    marathon_queue: list[Any] = field(default_factory=list)
    history: list[Any] = field(default_factory=list)
    binge_today: int = 0
    binge_date: str | None = None
    watch_minutes: int = 0

    @property
    def anime_title(self) -> str:
        if isinstance(self.current_anime, dict):
            return str(self.current_anime.get("title") or "")
        return ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def is_reachable(
    state: SyncState | None, now_ms: int, window_ms: int = REACHABLE_WINDOW_MS
) -> bool:
    """True only if the agent reported online AND its last heartbeat is fresh.

    The raw is_online flag alone is never trusted: an agent that crashed
    without calling /offline keeps is_online=True until the liveness sweep.
    """
    if state is None or not state.is_online:
        return False
    return (now_ms - state.last_heartbeat) < window_ms


def build_heartbeat_patch(
    partial: Mapping[str, Any] | None,
    *,
    now_ms: int,
    history_max_items: int = 50,
) -> dict[str, Any]:
    """Translate an agent heartbeat into a column patch.

    Keys that are absent or null are left out, so the upsert only touches
    fields the agent actually reported. Liveness columns are always set.
    """
    patch: dict[str, Any] = {
        "is_online": True,
        "last_heartbeat": now_ms,
        "notified_offline": False,
    }
    if not partial:
        return patch

    for wire_key, column in HEARTBEAT_FIELDS.items():
        value = partial.get(wire_key)
        if value is None:
            continue
        if column == "history":
            value = list(value[:history_max_items]) if isinstance(value, list) else []
        patch[column] = value
    return patch
