"""Integration test fixtures.

Provides a throwaway workspace (state file, paste files, rejects and
report directories) under tmp_path and a helper that invokes the CLI
against it.
"""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest
from click.testing import CliRunner

from booking_ops.cli import main

# ---------------------------------------------------------------------------
# Sample pastes
# ---------------------------------------------------------------------------

BOOKINGS_TSV = "\n".join([
    "\t".join([
        "2025-12-15", "a@b.com", "5051780387", "6635", "", "Hyatt Regency JFK Airport",
        "6,066.89", "2026-03-12", "2026-03-13", "120.00", "confirmed", "Genius Level 1",
    ]),
    "\t".join([
        "2025-12-20", "c@d.com", "5051780999", "12", "H9", "Harbor Inn",
        "210", "2026-01-02", "2026-01-04", "SPRING", "80", "completed", "2026-02-01", "Copa",
    ]),
    "this line is not a booking",
])

SETTINGS_YAML = textwrap.dedent("""\
    gold_threshold: 100
    cooldown_days: 5
""")


# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------

class Workspace:
    def __init__(self, root: Path) -> None:
        self.root = root
        self.state_path = root / "state" / "ops.json"
        self.rejects_path = root / "rejects" / "rejects.csv"
        self.report_dir = root / "reports"

    def write(self, name: str, text: str) -> Path:
        path = self.root / name
        path.write_text(text, encoding="utf-8")
        return path

    def invoke(self, *args: str, input: str | None = None):
        runner = CliRunner()
        return runner.invoke(main, [
            "--state-path", str(self.state_path),
            "--rejects-path", str(self.rejects_path),
            "--report-dir", str(self.report_dir),
            "--as-of", "2026-03-01",
            *args,
        ], input=input)


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    return Workspace(tmp_path)


@pytest.fixture
def bookings_paste(workspace: Workspace) -> Path:
    return workspace.write("bookings.tsv", BOOKINGS_TSV)


@pytest.fixture
def settings_file(workspace: Workspace) -> Path:
    return workspace.write("settings.yml", SETTINGS_YAML)
