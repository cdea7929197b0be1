"""Tests for notification templates."""

from __future__ import annotations

import pytest

from src.notify.templates import NOTIFY_SETTING, fmt_time, render


class TestFmtTime:
    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [(0, "0:00"), (5, "0:05"), (65, "1:05"), (1439.9, "23:59"), (3600, "60:00")],
    )
    def test_formats(self, seconds: float, expected: str) -> None:
        assert fmt_time(seconds) == expected


class TestRender:
    def test_video_crash_with_time(self) -> None:
        msg = render("video_crash", {"title": "Mushishi", "season": 1, "episode": 4, "time": 90}, 3)
        assert msg is not None
        assert "Mushishi S1E4" in msg.text
        assert "1:30" in msg.text
        assert [a.callback_data for row in msg.actions for a in row] == ["resume:3", "search:3"]

    def test_video_crash_without_time(self) -> None:
        msg = render("video_crash", {"title": "Mushishi"}, 3)
        assert "⏱" not in msg.text
        assert "S?E?" in msg.text

    def test_marathon_crash_buttons(self) -> None:
        msg = render("marathon_crash", {"title": "Monster", "idx": 2, "total": 5}, 9)
        assert "(2/5)" in msg.text
        assert [a.callback_data for a in msg.actions[0]] == ["mcont:9", "mstop:9"]

    def test_marathon_complete(self) -> None:
        msg = render("marathon_complete", {"total": 4, "time": "6h"}, 1)
        assert "4 anime, 6h" in msg.text

    def test_script_offline_includes_last_title(self) -> None:
        msg = render("script_offline", {"title": "Haikyu"}, 1)
        assert "Last: Haikyu" in msg.text
        assert msg.actions[0][0].callback_data == "check:1"

    def test_connection_lost_without_title(self) -> None:
        msg = render("connection_lost", {}, 1)
        assert "Last:" not in msg.text

    def test_non_mapping_payload_tolerated(self) -> None:
        assert render("video_crash", ["not", "a", "dict"], 1) is not None

    def test_garbage_numeric_fields_tolerated(self) -> None:
        msg = render("video_crash", {"time": "soon"}, 1)
        assert "⏱" not in msg.text

    def test_unknown_type(self) -> None:
        assert render("unknown", {}, 1) is None


def test_every_template_has_a_setting() -> None:
    for type_ in ("video_crash", "connection_lost", "marathon_crash", "marathon_complete",
                  "script_offline"):
        assert type_ in NOTIFY_SETTING
