"""Tests for console output."""

from __future__ import annotations

from tests.fakes import make_output, output_text


def test_warnings_are_recorded_and_printed():
    output = make_output()

    output.warn("first [not markup]")
    output.info("info")

    assert output.warnings == ["first [not markup]"]
    assert "first [not markup]" in output_text(output)


def test_debug_only_prints_when_verbose():
    quiet = make_output()
    quiet.debug("hidden")

    verbose = make_output()
    verbose.verbose = True
    verbose.debug("shown")

    assert "hidden" not in output_text(quiet)
    assert "shown" in output_text(verbose)
