"""
Tests for the rich terminal front end.
"""

import io

import pytest
from rich.console import Console

from ai.schemas import Decision
from runner.terminal import TerminalUI


def _ui(answer=None, error=None):
    console = Console(file=io.StringIO(), width=120, color_system=None)

    def input_fn(prompt):
        if error is not None:
            raise error
        return answer

    return TerminalUI(console=console, input_fn=input_fn), console


def _output(console):
    return console.file.getvalue()


class TestRiskMenu:
    @pytest.mark.parametrize("answer,expected", [("1", "high"), ("2", "low"), (" 1 ", "high")])
    def test_valid_choices(self, answer, expected):
        ui, console = _ui(answer)
        assert ui.select_risk_profile() == expected
        assert "Invalid choice" not in _output(console)

    @pytest.mark.parametrize("answer", ["3", "", "high"])
    def test_invalid_choice_defaults_to_low(self, answer):
        ui, console = _ui(answer)
        assert ui.select_risk_profile() == "low"
        assert "Invalid choice. Defaulting to Low Risk." in _output(console)

    def test_eof_defaults_to_low(self):
        ui, _ = _ui(error=EOFError())
        assert ui.select_risk_profile() == "low"


class TestSummary:
    def test_no_positions(self, ledger):
        ui, console = _ui()
        ui.display_summary(ledger.close_all())
        assert "No open positions to close." in _output(console)

    def test_summary_table(self, ledger, high_profile):
        decision = Decision("bid:solana:ADDRWIN", "open", "long", 0.7, "r", 100.0)
        ledger.open(decision, high_profile)
        ui, console = _ui()

        ui.display_summary(ledger.close_all(lambda identifier: 110.0))

        output = _output(console)
        assert "POSITION CLOSURE SUMMARY" in output
        assert "solana/ADDRWIN" in output
        assert "Total Closed: 1 position(s)" in output
        assert "Total P&L: $3000.00" in output
