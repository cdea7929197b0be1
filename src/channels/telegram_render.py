"""Telegram chat rendering: status, marathon and stats messages."""

from __future__ import annotations

from src.notify.templates import Action, RenderedMessage, fmt_time
from src.sync.marathon import MarathonPhase, phase_of
from src.sync.state import SyncState

HELP_TEXT = (
    "📖 *AniPilot — Commands*\n\n"
    "/connect — Link the script\n"
    "/status — Current status\n"
    "/marathon — Marathon queue\n"
    "/stats — Today's stats"
)

NOT_LINKED_TEXT = "❌ Script not linked → /connect"

QUEUED_HINT = "\n📋 Command queued — open the player site to run it"


def welcome_message(user_id: int, webapp_url: str = "") -> RenderedMessage:
    actions: list[list[Action]] = []
    if webapp_url:
        actions.append([Action("🎬 Open AniPilot", web_app_url=webapp_url)])
    actions.append([Action("🔗 Link script", callback_data=f"connect:{user_id}")])
    return RenderedMessage(
        "🎬 *AniPilot*\n\n"
        "📺 Control the player from your phone\n"
        "🎬 Marathons with auto-advance\n"
        "📊 Watch stats\n\n"
        "To begin: /connect",
        actions,
    )


def pairing_code_message(code: str, ttl_minutes: int = 5) -> str:
    return (
        f"🔗 *Pairing code:*\n\n`{code}`\n\n"
        f"Enter it in the AniPilot settings on the site\n⏰ Valid for {ttl_minutes} minutes"
    )


def render_status(state: SyncState | None, reachable: bool) -> str:
    if state is None:
        return NOT_LINKED_TEXT

    text = (
        "📊 *Status*\n\n"
        f"{'🟢' if reachable else '🔴'} Script: {'online' if reachable else 'offline'}\n"
    )
    if state.anime_title:
        text += f"🎬 {state.anime_title} S{state.current_season}E{state.current_episode}\n"
        text += "▶ Playing" if state.is_playing else "⏸ Paused"
        if state.video_time > 0:
            text += f" — {fmt_time(state.video_time)}"
        text += "\n"
    if state.marathon_on:
        text += f"\n🎬 Marathon: {state.marathon_idx + 1}/{len(state.marathon_queue)}"
    text += f"\n\n🔥 Today: {state.binge_today} episodes · {state.watch_minutes}m"
    return text


def render_marathon(state: SyncState, user_id: int) -> RenderedMessage:
    phase = phase_of(state)
    if phase is MarathonPhase.empty:
        return RenderedMessage("🎬 Marathon is empty\nAdd titles from the Mini App")

    running = phase is MarathonPhase.running
    lines = [f"🎬 *Marathon*{' ▶' if running else ''}\n"]
    for i, item in enumerate(state.marathon_queue):
        item = item if isinstance(item, dict) else {}
        marker = "▶ " if running and i == state.marathon_idx else ""
        lines.append(
            f"{marker}{i + 1}. {item.get('title', '?')} "
            f"S{item.get('season') or 1}E{item.get('ep') or 1}"
        )

    if running:
        actions = [[
            Action("⏭ Next", callback_data=f"mnext:{user_id}"),
            Action("⏹ Stop", callback_data=f"mstop:{user_id}"),
        ]]
    else:
        actions = [[
            Action("▶ Start", callback_data=f"mstart:{user_id}"),
            Action("🗑 Clear", callback_data=f"mclear:{user_id}"),
        ]]
    return RenderedMessage("\n".join(lines), actions)


def render_stats(state: SyncState | None) -> str:
    minutes = state.watch_minutes if state else 0
    episodes = state.binge_today if state else 0
    return f"📊 *Stats*\n\n🕐 Today: {minutes}m\n🔥 Episodes: {episodes}"
