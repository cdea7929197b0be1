"""Fixed notification templates: payload -> message text + inline actions.

Every template is a pure function. Payloads come straight from the agent,
so field access is tolerant of missing or oddly typed values.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Action:
    """A labeled button. callback_data is routed back to the bot; web_app_url opens the Mini App."""

    text: str
    callback_data: str | None = None
    web_app_url: str | None = None


@dataclass(frozen=True)
class RenderedMessage:
    text: str
    actions: list[list[Action]] = field(default_factory=list)


# Notification type -> User opt-in flag
NOTIFY_SETTING: dict[str, str] = {
    "video_crash": "notify_crash",
    "connection_lost": "notify_crash",
    "marathon_crash": "notify_marathon",
    "marathon_complete": "notify_marathon",
    "script_offline": "notify_offline",
}


def fmt_time(seconds: float) -> str:
    """Seconds -> m:ss."""
    total = int(seconds)
    return f"{total // 60}:{total % 60:02d}"


def _num(payload: Mapping[str, Any], key: str) -> float:
    value = payload.get(key)
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    return 0.0


def _str(payload: Mapping[str, Any], key: str, default: str = "") -> str:
    value = payload.get(key)
    if value is None or value == "":
        return default
    return str(value)


def _video_crash(p: Mapping[str, Any], uid: int) -> RenderedMessage:
    text = (
        "⚠️ *Playback interrupted*\n"
        f"{_str(p, 'title', 'Anime')} S{_str(p, 'season', '?')}E{_str(p, 'episode', '?')}"
    )
    if _num(p, "time") > 0:
        text += f"\n⏱ at {fmt_time(_num(p, 'time'))}"
    return RenderedMessage(
        text,
        [
            [Action("▶ Resume", callback_data=f"resume:{uid}")],
            [Action("🔍 Find something else", callback_data=f"search:{uid}")],
        ],
    )


def _connection_lost(p: Mapping[str, Any], uid: int) -> RenderedMessage:
    title = _str(p, "title")
    text = "📡 *Connection lost*\n" + (f"Last: {title}" if title else "")
    return RenderedMessage(text, [[Action("▶ Resume", callback_data=f"resume:{uid}")]])


def _marathon_crash(p: Mapping[str, Any], uid: int) -> RenderedMessage:
    text = (
        "💥 *Marathon interrupted*\n"
        f"{_str(p, 'title', '?')} ({_str(p, 'idx', '?')}/{_str(p, 'total', '?')})"
    )
    return RenderedMessage(
        text,
        [[
            Action("▶ Continue", callback_data=f"mcont:{uid}"),
            Action("⏹ Stop", callback_data=f"mstop:{uid}"),
        ]],
    )


def _marathon_complete(p: Mapping[str, Any], uid: int) -> RenderedMessage:
    text = f"🎉 *Marathon complete!*\n{_str(p, 'total', '?')} anime"
    if _str(p, "time"):
        text += f", {_str(p, 'time')}"
    return RenderedMessage(
        text,
        [[
            Action("🔄 New", callback_data=f"mnew:{uid}"),
            Action("📊 Stats", callback_data=f"stats:{uid}"),
        ]],
    )


def _script_offline(p: Mapping[str, Any], uid: int) -> RenderedMessage:
    text = "🔌 *AniPilot disconnected*\nNo response for 10+ min"
    title = _str(p, "title")
    if title:
        text += f"\nLast: {title}"
    return RenderedMessage(text, [[Action("🔄 Check", callback_data=f"check:{uid}")]])


TEMPLATES: dict[str, Callable[[Mapping[str, Any], int], RenderedMessage]] = {
    "video_crash": _video_crash,
    "connection_lost": _connection_lost,
    "marathon_crash": _marathon_crash,
    "marathon_complete": _marathon_complete,
    "script_offline": _script_offline,
}


def render(type_: str, payload: Any, user_id: int) -> RenderedMessage | None:
    """Render a notification, or None if the type has no template."""
    template = TEMPLATES.get(type_)
    if template is None:
        return None
    if not isinstance(payload, Mapping):
        payload = {}
    return template(payload, user_id)
