"""
Contract tests for the ``myday`` CLI.

Each test points the CLI at its own settings file. Commands print a JSON
payload with ``status`` ``ok`` or ``error`` under ``--json`` and exit 1 on
errors.
"""

from __future__ import annotations

import json
import re

import pytest
from util.cli_utils import run_cli, run_cli_json

from myday.infra.settings import settings


@pytest.fixture
def data_file(tmp_path):
    return tmp_path / "settings.json"


def _task_ids(payload: dict) -> list[int]:
    return [task["taskId"] for task in payload["state"]["tasks"]]


# ---- day-key ----------------------------------------------------------------


class TestDayKeyCommand:
    def test_before_reset_hour(self, data_file):
        code, payload = run_cli_json(["day-key", "--at", "2025-07-15T04:59:00", "--reset-hour", "5"], data_file)

        assert code == 0
        assert payload == {"status": "ok", "day_key": "2025-07-14", "reset_hour": 5}

    def test_reset_hour_is_clamped(self, data_file):
        code, payload = run_cli_json(["day-key", "--at", "2025-07-15T22:00:00", "--reset-hour", "30"], data_file)

        assert code == 0
        assert payload["reset_hour"] == 23
        assert payload["day_key"] == "2025-07-14"

    def test_invalid_timestamp(self, data_file):
        code, payload = run_cli_json(["day-key", "--at", "yesterday"], data_file)

        assert code == 1
        assert payload["status"] == "error"
        assert payload["code"] == "VALIDATION_ERROR"


# ---- show / add / remove ----------------------------------------------------


class TestRosterCommands:
    def test_show_creates_empty_roster(self, data_file):
        code, payload = run_cli_json(["show"], data_file)

        assert code == 0
        assert payload["state"]["tasks"] == []
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}", payload["state"]["dayKey"])
        assert data_file.exists()

    def test_json_output_is_not_mixed_with_logs(self, data_file, monkeypatch):
        monkeypatch.setattr(settings, "log_level", "DEBUG")

        # First load repairs the missing roster, which logs at debug level
        code, stdout = run_cli(["show", "--json"], data_file)

        assert code == 0
        assert json.loads(stdout)["status"] == "ok"

    def test_show_human_output(self, data_file):
        code, stdout = run_cli(["show"], data_file)
        assert code == 0
        assert "no tasks" in stdout

        run_cli(["add", "10"], data_file)
        code, stdout = run_cli(["show"], data_file)
        assert code == 0
        assert "My Day" in stdout
        assert "10" in stdout

    def test_add_is_idempotent(self, data_file):
        code, first = run_cli_json(["add", "10", "--source", "5"], data_file)
        assert code == 0
        assert first["added"] is True
        assert first["state"]["tasks"][0]["sourceBlockId"] == 5

        code, second = run_cli_json(["add", "10"], data_file)
        assert code == 0
        assert second["added"] is False
        assert _task_ids(second) == [10]

    def test_add_keeps_order(self, data_file):
        for task_id in ("12", "10", "11"):
            run_cli_json(["add", task_id], data_file)

        _, payload = run_cli_json(["show"], data_file)
        assert _task_ids(payload) == [12, 10, 11]
        assert [t["order"] for t in payload["state"]["tasks"]] == [0, 1, 2]

    @pytest.mark.parametrize("task_id", ["0", "abc", "1.5", "00", "\N{SUPERSCRIPT TWO}"])
    def test_add_rejects_invalid_id(self, data_file, task_id):
        code, payload = run_cli_json(["add", task_id], data_file)

        assert code == 1
        assert payload["code"] == "VALIDATION_ERROR"
        assert "Invalid task id" in payload["message"]

    def test_remove(self, data_file):
        run_cli_json(["add", "10"], data_file)
        run_cli_json(["add", "11"], data_file)

        code, payload = run_cli_json(["remove", "10"], data_file)
        assert code == 0
        assert payload["removed"] is True
        assert _task_ids(payload) == [11]
        assert payload["state"]["tasks"][0]["order"] == 0

        code, payload = run_cli_json(["remove", "10"], data_file)
        assert code == 0
        assert payload["removed"] is False

    def test_prune(self, data_file):
        for task_id in ("10", "11", "12"):
            run_cli_json(["add", task_id], data_file)

        code, payload = run_cli_json(["prune", "--keep", "10, 12"], data_file)

        assert code == 0
        assert payload["removed"] == [11]
        assert _task_ids(payload) == [10, 12]

    def test_corrupt_settings_file(self, data_file):
        data_file.write_text("{not json", encoding="utf-8")

        code, payload = run_cli_json(["show"], data_file)

        assert code == 1
        assert payload["code"] == "PERSISTENCE_ERROR"

    def test_corrupt_roster_document_is_reset(self, data_file):
        data_file.write_text(json.dumps({"mlo-task/taskMyDay.v1": "{truncated"}), encoding="utf-8")

        code, payload = run_cli_json(["show"], data_file)

        assert code == 0
        assert payload["state"]["tasks"] == []


# ---- schedule / mode / lanes ------------------------------------------------


class TestScheduleCommands:
    def test_schedule_across_midnight(self, data_file):
        run_cli_json(["add", "10"], data_file)

        code, payload = run_cli_json(["schedule", "10", "--start", "23:00", "--end", "01:00"], data_file)

        assert code == 0
        assert payload["task"]["scheduleStart"] == 1380
        assert payload["task"]["scheduleEnd"] == 60

    def test_short_range_falls_back_to_one_hour(self, data_file):
        run_cli_json(["add", "10"], data_file)

        _, payload = run_cli_json(["schedule", "10", "--start", "09:00", "--end", "09:05"], data_file)

        assert (payload["task"]["scheduleStart"], payload["task"]["scheduleEnd"]) == (540, 600)

    def test_bad_time_format(self, data_file):
        run_cli_json(["add", "10"], data_file)

        code, payload = run_cli_json(["schedule", "10", "--start", "25:00", "--end", "26:00"], data_file)

        assert code == 1
        assert payload["code"] == "INVALID_TIME_FORMAT"

    def test_schedule_unknown_task(self, data_file):
        code, payload = run_cli_json(["schedule", "10", "--start", "09:00", "--end", "10:00"], data_file)

        assert code == 1
        assert payload["code"] == "TASK_NOT_FOUND"

    def test_unschedule(self, data_file):
        run_cli_json(["add", "10"], data_file)
        run_cli_json(["schedule", "10", "--start", "09:00", "--end", "10:00"], data_file)

        code, payload = run_cli_json(["unschedule", "10"], data_file)

        assert code == 0
        assert payload["task"]["scheduleStart"] is None
        assert payload["task"]["scheduleEnd"] is None

    def test_mode(self, data_file):
        code, payload = run_cli_json(["mode", "schedule"], data_file)
        assert code == 0
        assert payload["display_mode"] == "schedule"

        _, shown = run_cli_json(["show"], data_file)
        assert shown["state"]["displayMode"] == "schedule"

    def test_mode_rejects_unknown_value(self, data_file):
        code, payload = run_cli_json(["mode", "timeline"], data_file)

        assert code == 1
        assert payload["code"] == "VALIDATION_ERROR"

    def test_lanes(self, data_file):
        for task_id in ("10", "11", "12", "13"):
            run_cli_json(["add", task_id], data_file)
        run_cli_json(["schedule", "10", "--start", "00:00", "--end", "01:00"], data_file)
        run_cli_json(["schedule", "11", "--start", "00:30", "--end", "01:30"], data_file)
        run_cli_json(["schedule", "12", "--start", "01:40", "--end", "02:10"], data_file)

        code, payload = run_cli_json(["lanes"], data_file)

        assert code == 0
        assert payload["lanes"] == [
            {"taskId": 10, "schedule": "00:00-01:00", "laneIndex": 0, "laneCount": 2},
            {"taskId": 11, "schedule": "00:30-01:30", "laneIndex": 1, "laneCount": 2},
            {"taskId": 12, "schedule": "01:40-02:10", "laneIndex": 0, "laneCount": 1},
        ]

    def test_lanes_human_output(self, data_file):
        code, stdout = run_cli(["lanes"], data_file)
        assert code == 0
        assert "No scheduled tasks" in stdout
