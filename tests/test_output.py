"""Tests for the output formatting system.

Covers:
- OutputFormat resolution (auto -> rich/plain based on TTY)
- NO_COLOR / TERM=dumb color disabling
- stdout vs stderr discipline (tokens and status documents on stdout only)
- Quiet and verbose modes
- format_response and print_table in JSON and plain modes
- Global instance management
"""

from __future__ import annotations

import json

import pytest

from uxlint import output as output_module
from uxlint.output import (
    OutputFormat,
    OutputManager,
    _should_disable_color,
    get_output,
    reset_output,
    set_output,
)


@pytest.fixture()
def non_tty(monkeypatch):
    monkeypatch.setattr("uxlint.output._is_tty", lambda: False)


@pytest.fixture()
def tty(monkeypatch):
    monkeypatch.setattr("uxlint.output._is_tty", lambda: True)


class TestOutputFormatResolution:
    def test_auto_resolves_to_plain_when_not_tty(self, non_tty):
        assert OutputManager(format=OutputFormat.AUTO).format == OutputFormat.PLAIN

    def test_auto_resolves_to_rich_when_tty(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("TERM", raising=False)
        assert OutputManager(format=OutputFormat.AUTO).format == OutputFormat.RICH

    def test_auto_resolves_to_plain_when_no_color(self, tty):
        mgr = OutputManager(format=OutputFormat.AUTO, no_color=True)
        assert mgr.format == OutputFormat.PLAIN

    def test_explicit_json_stays_json(self, tty):
        assert OutputManager(format=OutputFormat.JSON).format == OutputFormat.JSON


class TestColorDisabling:
    def test_no_color_env_any_value(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color() is True

    def test_term_dumb(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color() is True

    def test_enabled_by_default(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert _should_disable_color() is False


class TestStreamDiscipline:
    def test_data_goes_to_stdout(self, capsys):
        OutputManager(format=OutputFormat.PLAIN, no_color=True).print_data("access-token")
        captured = capsys.readouterr()
        assert captured.out == "access-token\n"
        assert captured.err == ""

    def test_diagnostics_go_to_stderr(self, capsys):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.info("Opening browser")
        mgr.progress("Waiting for callback")
        mgr.success("Logged in")
        mgr.warning("careful")
        mgr.error("boom")
        mgr.suggest("uxlint auth login")
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "Opening browser" in captured.err
        assert "Waiting for callback" in captured.err
        assert "Warning: careful" in captured.err
        assert "Error: boom" in captured.err
        assert "→ uxlint auth login" in captured.err

    def test_quiet_keeps_errors_and_warnings(self, capsys):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        mgr.info("hidden")
        mgr.success("hidden")
        mgr.suggest("hidden")
        mgr.warning("shown")
        mgr.error("shown too")
        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "Warning: shown" in err
        assert "Error: shown too" in err

    def test_debug_only_when_verbose(self, capsys):
        OutputManager(format=OutputFormat.PLAIN, no_color=True).debug("quiet")
        OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True).debug("loud")
        err = capsys.readouterr().err
        assert "quiet" not in err
        assert "[debug] loud" in err


class TestFormatResponse:
    def test_json_mode(self, capsys):
        OutputManager(format=OutputFormat.JSON).format_response(
            {"authenticated": True, "user": "ada@example.com"}
        )
        assert json.loads(capsys.readouterr().out) == {
            "authenticated": True,
            "user": "ada@example.com",
        }

    def test_plain_mode_dict(self, capsys):
        OutputManager(format=OutputFormat.PLAIN, no_color=True).format_response(
            {"id": "user-123", "email_verified": True}
        )
        assert capsys.readouterr().out == "id\tuser-123\nemail_verified\tTrue\n"

    def test_plain_mode_list(self, capsys):
        OutputManager(format=OutputFormat.PLAIN, no_color=True).format_response(["a", "b"])
        assert capsys.readouterr().out == "a\nb\n"


class TestPrintTable:
    def test_json_mode(self, capsys):
        OutputManager(format=OutputFormat.JSON).print_table(
            ["Field", "Value"], [["User", "ada@example.com"]]
        )
        assert json.loads(capsys.readouterr().out) == [
            {"Field": "User", "Value": "ada@example.com"}
        ]

    def test_plain_mode(self, capsys):
        OutputManager(format=OutputFormat.PLAIN, no_color=True).print_table(
            ["Field", "Value"], [["User", "ada@example.com"], ["Expired", "no"]]
        )
        assert capsys.readouterr().out == "Field\tValue\nUser\tada@example.com\nExpired\tno\n"

    def test_rich_mode_renders_title(self, capsys):
        OutputManager(format=OutputFormat.RICH, no_color=True).print_table(
            ["Field", "Value"], [["User", "ada@example.com"]], title="UXLint Cloud Session"
        )
        out = capsys.readouterr().out
        assert "UXLint Cloud Session" in out
        assert "ada@example.com" in out


class TestGlobalInstance:
    def test_lazily_created(self):
        reset_output()
        assert isinstance(get_output(), OutputManager)

    def test_set_and_reset(self):
        mgr = OutputManager(format=OutputFormat.JSON)
        set_output(mgr)
        assert get_output() is mgr
        reset_output()
        assert get_output() is not mgr

    def test_convenience_functions_delegate(self, capsys):
        set_output(OutputManager(format=OutputFormat.PLAIN, no_color=True))
        output_module.print_data("tok")
        output_module.error("bad")
        captured = capsys.readouterr()
        assert captured.out == "tok\n"
        assert "Error: bad" in captured.err
