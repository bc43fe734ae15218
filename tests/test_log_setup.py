from __future__ import annotations

import io
import logging

import pytest

from arena_server.launcher.log_setup import LogInitializer, SeverityLevel


@pytest.mark.parametrize(
    "name, expected",
    [
        ("VERBOSE", SeverityLevel.VERBOSE),
        ("DEBUG", SeverityLevel.DEBUG),
        ("INFORMATION", SeverityLevel.INFORMATION),
        ("WARNING", SeverityLevel.WARNING),
        ("ERROR", SeverityLevel.ERROR),
        ("FATAL", SeverityLevel.FATAL),
    ],
)
def test_recognized_names(name, expected, log_initializer) -> None:
    assert log_initializer.set_level(name) is expected
    assert log_initializer.logger.level == int(expected)


@pytest.mark.parametrize("name", ["", "debug", "Information", "INFO", "CRITICAL", " ERROR", None, 30])
def test_unrecognized_names_resolve_to_information(name, log_initializer) -> None:
    assert log_initializer.set_level(name) is SeverityLevel.INFORMATION
    assert log_initializer.logger.level == logging.INFO


def test_severity_levels_are_ordered() -> None:
    assert (SeverityLevel.VERBOSE < SeverityLevel.DEBUG < SeverityLevel.INFORMATION
            < SeverityLevel.WARNING < SeverityLevel.ERROR < SeverityLevel.FATAL)


def test_threshold_filters_component_output() -> None:
    stream = io.StringIO()
    initializer = LogInitializer(logger_name="arena_test.threshold", stream=stream)
    initializer.set_level("WARNING")
    log = initializer.get_logger("GameServer")

    log.info("hidden")
    log.warning("shown")

    output = stream.getvalue()
    assert "hidden" not in output
    assert "WARNING] arena_test.threshold.GameServer: shown" in output


def test_verbose_records_use_their_own_level_name() -> None:
    stream = io.StringIO()
    initializer = LogInitializer(logger_name="arena_test.verbose", stream=stream)
    initializer.set_level("VERBOSE")

    initializer.get_logger("Console").log(SeverityLevel.VERBOSE, "very chatty")

    assert "VERBOSE] arena_test.verbose.Console: very chatty" in stream.getvalue()


def test_reinstalling_replaces_the_handler() -> None:
    initializer = LogInitializer(logger_name="arena_test.reinstall", stream=io.StringIO())

    initializer.set_level("DEBUG")
    initializer.set_level("ERROR")

    assert len(initializer.logger.handlers) == 1
    assert initializer.severity is SeverityLevel.ERROR
