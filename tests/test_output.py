"""Tests for the output formatting system.

Covers:
- OutputFormat resolution (auto -> rich/plain based on TTY)
- NO_COLOR / TERM=dumb color disabling
- stdout vs stderr discipline
- Quiet and verbose modes
- JSON, plain and Rich rendering of response bodies
- print_table in all three modes
- Global instance management and convenience functions
"""

from __future__ import annotations

import json

import pytest

from fetchcache import output as output_module
from fetchcache.output import (
    OutputFormat,
    OutputManager,
    _should_disable_color,
    get_output,
    reset_output,
    set_output,
)


@pytest.fixture()
def non_tty(monkeypatch):
    """Patch stdout.isatty() to return False."""
    monkeypatch.setattr("fetchcache.output._is_tty", lambda: False)


@pytest.fixture()
def tty(monkeypatch):
    """Patch stdout.isatty() to return True."""
    monkeypatch.setattr("fetchcache.output._is_tty", lambda: True)


# ------------------------------------------------------------------ #
# OutputFormat resolution
# ------------------------------------------------------------------ #


class TestOutputFormatResolution:
    def test_auto_resolves_to_plain_when_not_tty(self, non_tty):
        assert OutputManager(format=OutputFormat.AUTO).format == OutputFormat.PLAIN

    def test_auto_resolves_to_rich_when_tty(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("TERM", raising=False)
        assert OutputManager(format=OutputFormat.AUTO).format == OutputFormat.RICH

    def test_auto_resolves_to_plain_with_no_color(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("TERM", raising=False)
        assert OutputManager(format=OutputFormat.AUTO, no_color=True).format == OutputFormat.PLAIN

    def test_explicit_json_stays_json(self, tty):
        assert OutputManager(format=OutputFormat.JSON).format == OutputFormat.JSON


class TestColorDisabling:
    def test_no_color_env_any_value(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color() is True

    def test_term_dumb_disables_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color() is True

    def test_normal_term_keeps_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert _should_disable_color() is False


# ------------------------------------------------------------------ #
# stdout vs stderr discipline
# ------------------------------------------------------------------ #


class TestStdoutStderrDiscipline:
    @pytest.mark.parametrize("method", ["info", "success", "warning", "error"])
    def test_diagnostics_go_to_stderr(self, capfd, non_tty, method):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        getattr(mgr, method)("diagnostic text")
        captured = capfd.readouterr()
        assert captured.out == ""
        assert "diagnostic text" in captured.err

    def test_print_data_goes_to_stdout(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.print_data("hello world")
        captured = capfd.readouterr()
        assert captured.out == "hello world\n"
        assert captured.err == ""

    def test_status_line_does_not_pollute_json(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON, no_color=True)
        mgr.info("HTTP 200 OK (cache hit, age 3s)")
        mgr.format_response({"id": 1})
        captured = capfd.readouterr()
        assert json.loads(captured.out) == {"id": 1}
        assert "cache hit" in captured.err

    def test_error_prefix(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN, no_color=True).error("boom")
        assert "Error: boom" in capfd.readouterr().err


class TestQuietAndVerbose:
    def test_quiet_suppresses_info_and_success(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        mgr.info("hidden")
        mgr.success("hidden")
        assert capfd.readouterr().err == ""

    def test_quiet_keeps_warnings_errors_and_data(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        mgr.warning("careful")
        mgr.error("broken")
        mgr.print_data("data")
        captured = capfd.readouterr()
        assert "careful" in captured.err
        assert "broken" in captured.err
        assert "data" in captured.out

    def test_debug_hidden_by_default(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN, no_color=True).debug("hidden")
        assert capfd.readouterr().err == ""

    def test_debug_shown_with_verbose(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True)
        mgr.debug("details")
        assert "[debug] details" in capfd.readouterr().err
        assert mgr.is_verbose is True


# ------------------------------------------------------------------ #
# Response bodies
# ------------------------------------------------------------------ #


class TestJsonFormat:
    def test_dict(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON, no_color=True).format_response({"a": [1, 2]})
        assert json.loads(capfd.readouterr().out) == {"a": [1, 2]}

    def test_json_string_reparsed(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON, no_color=True).format_response('{"key": "value"}')
        assert json.loads(capfd.readouterr().out) == {"key": "value"}

    def test_plain_string_passed_through(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON, no_color=True).format_response("<h1>Hi</h1>")
        assert capfd.readouterr().out == "<h1>Hi</h1>\n"

    def test_unserialisable_values_stringified(self, capfd, non_tty):
        class Feed:
            def __str__(self) -> str:
                return "feed"

        OutputManager(format=OutputFormat.JSON, no_color=True).format_response({"f": Feed()})
        assert json.loads(capfd.readouterr().out) == {"f": "feed"}


class TestPlainFormat:
    def test_dict_as_key_value(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN, no_color=True).format_response({"name": "Alice", "age": 30})
        assert capfd.readouterr().out.splitlines() == ["name\tAlice", "age\t30"]

    def test_list_of_dicts_as_rows(self, capfd, non_tty):
        data = [{"id": 1, "name": "Alice"}, {"id": 2, "name": "Bob"}]
        OutputManager(format=OutputFormat.PLAIN, no_color=True).format_response(data)
        assert capfd.readouterr().out.splitlines() == ["1\tAlice", "2\tBob"]

    def test_text(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN, no_color=True).format_response("plain body")
        assert "plain body" in capfd.readouterr().out


class TestRichFormat:
    def test_dict(self, capfd, non_tty):
        OutputManager(format=OutputFormat.RICH, no_color=True).format_response({"key": "value"})
        out = capfd.readouterr().out
        assert "key" in out
        assert "value" in out

    def test_html(self, capfd, non_tty):
        OutputManager(format=OutputFormat.RICH, no_color=True).format_response("<p>hi</p>", "text/html")
        assert "hi" in capfd.readouterr().out

    def test_text(self, capfd, non_tty):
        OutputManager(format=OutputFormat.RICH, no_color=True).format_response("just text", "text/plain")
        assert "just text" in capfd.readouterr().out


class TestPrintTable:
    def test_json_mode(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON, no_color=True)
        mgr.print_table(["key", "value"], [["size", "3"], ["pending", "0"]])
        assert json.loads(capfd.readouterr().out) == [
            {"key": "size", "value": "3"},
            {"key": "pending", "value": "0"},
        ]

    def test_plain_mode(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.print_table(["key", "value"], [["size", "3"]], title="Cache")
        assert capfd.readouterr().out.splitlines() == ["key\tvalue", "size\t3"]

    def test_rich_mode(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.RICH, no_color=True)
        mgr.print_table(["key", "value"], [["size", "3"]], title="Cache")
        out = capfd.readouterr().out
        assert "Cache" in out
        assert "size" in out


# ------------------------------------------------------------------ #
# Global instance
# ------------------------------------------------------------------ #


class TestGlobalInstance:
    def test_lazy_default(self):
        reset_output()
        assert get_output() is get_output()

    def test_set_output(self):
        mgr = OutputManager(format=OutputFormat.JSON)
        set_output(mgr)
        assert get_output() is mgr

    def test_module_functions_delegate(self, capfd, non_tty):
        set_output(OutputManager(format=OutputFormat.JSON, no_color=True))
        output_module.info("status")
        output_module.format_response([1])
        output_module.print_table(["a"], [["1"]])
        captured = capfd.readouterr()
        assert "status" in captured.err
        assert captured.out.startswith("[\n  1\n]")
