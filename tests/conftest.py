"""
Pytest configuration and shared fixtures.
"""
import os
import sys

import pandas as pd
import pytest

# Add project root to path for imports
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)


CLUB_RESULTS_ROWS = [
    ["Spring Regatta 2026 - Club Results", None, None, None],
    [None, None, None, None],
    ["Helmet #", "Surname", "Given Name", "Team"],
    [12, "Smith", "Ann", "Rockets"],
    [None, None, None, None],
    ["DNF", "Jones", "Bob", "Comets"],
    [7, "Nguyen", "Linh", "Comets"],
]


@pytest.fixture
def club_results_raw():
    """Raw grid of the 'Club Results' sheet: title, blank, header, data."""
    return pd.DataFrame(CLUB_RESULTS_ROWS)


@pytest.fixture
def event_workbook(club_results_raw):
    """In-memory workbook shaped like pd.read_excel(sheet_name=None, header=None)."""
    return {
        "Info": pd.DataFrame([["Event", "Spring Regatta"], ["Date", "2026-04-18"]]),
        "Club Results": club_results_raw,
        "Raw": pd.DataFrame([["x", "y"], ["1", "2"]]),
    }


@pytest.fixture
def event_xlsx(tmp_path, event_workbook):
    """The same workbook written to a real .xlsx file."""
    path = tmp_path / "event.xlsx"
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for name, raw in event_workbook.items():
            raw.to_excel(writer, sheet_name=name, header=False, index=False)
    return path
