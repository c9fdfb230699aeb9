"""Tests for the CLI entry point."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from rich.console import Console

from healthgate.health.engine import AggregateState, CheckResult, Outcome, Status
from healthgate.main import main, render_state


def test_render_state_lists_every_check() -> None:
    state = AggregateState(
        status=Status.DOWN,
        results={
            "database": CheckResult("database", Outcome.success(), 1.2),
            "upstream": CheckResult("upstream", Outcome.failure("returned status 502"), 40.0),
        },
        computed_at=datetime.now(timezone.utc),
    )
    console = Console(record=True, width=120)
    console.print(render_state(state))
    text = console.export_text()

    assert "DOWN" in text
    assert "database" in text
    assert "returned status 502" in text


def test_check_command_exit_code() -> None:
    with patch.object(sys, "argv", ["healthgate", "check"]), \
            patch("healthgate.main.run_check", return_value=1):
        with pytest.raises(SystemExit) as exc:
            main()
    assert exc.value.code == 1


def test_no_command_prints_help() -> None:
    with patch.object(sys, "argv", ["healthgate"]):
        with pytest.raises(SystemExit) as exc:
            main()
    assert exc.value.code == 1
