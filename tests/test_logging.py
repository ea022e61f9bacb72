"""Tests for the logging framework."""

from __future__ import annotations

import io

from pywitness.logging import LogEntry, LogLevel, WitnessLogger, configure_logging, get_logger, set_logger


def make_logger(level: LogLevel = LogLevel.NORMAL) -> tuple[WitnessLogger, io.StringIO]:
    stream = io.StringIO()
    return WitnessLogger(level=level, color=False, stream=stream), stream


class TestLevels:
    def test_records_above_the_level_are_kept_but_not_written(self):
        logger, stream = make_logger(LogLevel.VERBOSE)

        logger.log(LogLevel.NORMAL, "shown")
        logger.verbose("also shown", category="engine")
        logger.debug("hidden")

        output = stream.getvalue()
        assert "shown" in output
        assert "[engine] also shown" in output
        assert "hidden" not in output
        assert len(logger.get_entries()) == 3

    def test_warnings_are_written_unless_quiet(self):
        quiet, quiet_stream = make_logger(LogLevel.QUIET)
        normal, normal_stream = make_logger()

        quiet.warning("careful", category="config")
        normal.warning("careful")

        assert quiet_stream.getvalue() == ""
        assert [e.message for e in quiet.get_entries(LogLevel.NORMAL, "config")] == ["careful"]
        assert normal_stream.getvalue() == "⚠ careful\n"

    def test_entries_filter_by_level_and_category(self):
        logger, _ = make_logger(LogLevel.TRACE)
        logger.debug("a", category="resolver")
        logger.debug("b", category="synthesis")
        logger.trace("c", category="resolver")

        assert [e.message for e in logger.get_entries(category="resolver")] == ["a", "c"]
        assert [e.message for e in logger.get_entries(LogLevel.DEBUG, "synthesis")] == ["b"]

    def test_old_entries_are_dropped(self):
        logger = WitnessLogger(level=LogLevel.QUIET, stream=io.StringIO(), max_entries=2)
        for i in range(5):
            logger.trace(str(i))

        assert [e.message for e in logger.get_entries()] == ["3", "4"]


def test_context_is_formatted():
    entry = LogEntry(LogLevel.DEBUG, "expanded", category="synthesis", context={"queued": 3})

    assert entry.format(color=False, show_time=False) == "⚙ [synthesis] expanded (queued=3)"


def test_counters():
    logger, _ = make_logger()

    assert logger.count("states.unsat") == 1
    assert logger.count("states.unsat", 2) == 3
    logger.count("synthesis.attempts")

    assert logger.get_count("states.unsat") == 3
    assert logger.counters("states.") == {"states.unsat": 3}
    assert logger.get_count("states.exceptional") == 0


def test_timer_logs_elapsed_time():
    logger, _ = make_logger(LogLevel.VERBOSE)

    with logger.timer("verify", category="synthesis"):
        pass

    (entry,) = logger.get_entries(category="synthesis")
    assert entry.message.startswith("verify: ")
    assert entry.message.endswith("s")


def test_file_output(tmp_path):
    path = tmp_path / "witness.log"
    logger = WitnessLogger(level=LogLevel.DEBUG, color=False, stream=io.StringIO(), file_path=path)

    logger.debug("written", category="engine")
    logger.trace("skipped")
    logger.close()

    text = path.read_text(encoding="utf-8")
    assert "[engine] written" in text
    assert "skipped" not in text


def test_configure_replaces_the_global_logger(tmp_path):
    previous = get_logger()
    try:
        configured = configure_logging(LogLevel.DEBUG, color=False, file_path=tmp_path / "run.log")
        assert get_logger() is configured
        assert configured.level == LogLevel.DEBUG
        configured.close()
    finally:
        set_logger(previous)
