"""Tests for the finishstrong command line interface.

Commands run against a throwaway home directory with no remote or
interpreter configured.
"""

import json

import pytest

from finishstrong.cli.__main__ import build_parser, main
from finishstrong.cli.commands.helpers import format_entry, format_session, validate_input
from finishstrong.types import Entry, Session


class TestParser:
    def test_requires_a_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_log_joins_words(self):
        args = build_parser().parse_args(["log", "bench", "80kg", "5x3"])
        assert args.command == "log"
        assert args.text == ["bench", "80kg", "5x3"]

    def test_entry_edit_options(self):
        args = build_parser().parse_args(
            ["entry", "edit", "abc", "--weight", "82.5", "--unit", "kg", "--reps", "5"]
        )
        assert (args.weight, args.unit, args.reps, args.sets) == (82.5, "kg", 5, None)

    def test_rejects_unknown_unit(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["entry", "edit", "abc", "--unit", "stone"])


class TestCommands:
    def test_seed_then_reseed(self, clean_settings, capsys):
        assert main(["seed"]) == 0
        assert "Seeded 30 exercises" in capsys.readouterr().out

        assert main(["seed"]) == 0
        assert "already populated" in capsys.readouterr().out

    def test_seed_json(self, clean_settings, capsys):
        assert main(["--json", "seed"]) == 0
        assert json.loads(capsys.readouterr().out) == {"inserted": 30}

    def test_session_show_without_session(self, clean_settings, capsys):
        assert main(["session", "show"]) == 0
        assert "No active session today" in capsys.readouterr().out

    def test_session_show_json_empty(self, clean_settings, capsys):
        assert main(["--json", "session"]) == 0
        assert json.loads(capsys.readouterr().out) == []

    def test_log_without_interpreter_fails(self, clean_settings):
        assert main(["log", "bench", "80kg"]) == 1

    def test_sync_without_remote_fails(self, clean_settings):
        assert main(["sync", "push"]) == 1

    def test_database_created_under_home(self, clean_settings):
        main(["seed"])
        assert (clean_settings / "finishstrong.db").exists()


class TestFormatting:
    def test_validate_input_strips_control_characters(self):
        assert validate_input("Leg\x00 Day", "name") == "Leg Day"

    def test_validate_input_length(self):
        with pytest.raises(ValueError):
            validate_input("x" * 11, "name", 10)

    def test_format_session(self):
        session = Session(
            id="0123456789abcdef",
            name="Morning Workout",
            date="2026-03-14",
            started_at="2026-03-14T09:30:00+00:00",
        )
        assert format_session(session) == "[01234567] Morning Workout - 2026-03-14 (active) *"

    def test_format_entry(self, storage, bench):
        class App:
            pass

        app = App()
        app.storage = storage
        entry = Entry(
            id="fedcba9876543210",
            exercise_id=bench.id,
            session_id="s1",
            weight=80.0,
            unit="kg",
            reps=5,
            sets=3,
            synced=True,
        )

        assert format_entry(app, entry) == "[fedcba98] Bench Press  80 kg  5 reps x 3 sets"
