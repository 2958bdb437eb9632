"""Tests for component loggers and the server output echo."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest

from kcdist.logging import (
    HarnessLogComponent,
    configure_logging,
    echo_server_line,
    get_logger,
)
from kcdist.utils import PrefixedLogHandler


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    yield
    configure_logging(level=logging.INFO, echo_server_output=True)


def test_components_are_harness_parts_only() -> None:
    assert {c.value for c in HarnessLogComponent} == {
        "supervisor",
        "distribution",
        "probe",
        "drain",
        "process_control",
    }


def test_configure_attaches_prefixed_handlers() -> None:
    configure_logging(level=logging.DEBUG)
    for component in HarnessLogComponent:
        logger = get_logger(component)
        assert logger.name == f"kcdist.{component.value}"
        assert logger.level == logging.DEBUG
        assert any(isinstance(h, PrefixedLogHandler) for h in logger.handlers)


def test_server_lines_are_echoed_with_prefix(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging()
    echo_server_line("listening on 8080")
    assert "[server]" in capsys.readouterr().out


def test_server_echo_can_be_disabled(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(echo_server_output=False)
    echo_server_line("listening on 8080")
    assert capsys.readouterr().out == ""
