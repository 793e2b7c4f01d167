import pandas as pd
import pytest

import lynx_extract as lx


COLUMNS = ["Helmet", "Last Name", "First Name", "Club"]
BINDING = lx.ColumnBinding(helmet=0, last_name=1, first_name=2, club=3)


def _extract(rows, columns=COLUMNS, binding=BINDING):
    table = pd.DataFrame(rows, columns=columns, dtype=object)
    return lx.extract_participants(table, binding)


def test_scenario_rows(club_results_raw):
    table = lx.build_table(club_results_raw, 2)
    binding = lx.require_columns(list(table.columns))

    records = lx.extract_participants(table, binding)

    assert records == [
        lx.ParticipantRecord(12, "Smith", "Ann", "Rockets"),
        lx.ParticipantRecord(7, "Nguyen", "Linh", "Comets"),
    ]


def test_blank_and_incomplete_rows_are_skipped():
    records = _extract([
        ["", " ", "", "  "],
        ["5", "Smith", "", "Rockets"],
        ["6", "Jones", "Bob", "Comets"],
    ])

    assert [r.helmet for r in records] == [6]


@pytest.mark.parametrize("helmet", ["DNS", "1.5", "1_000", "12a", "", "99999999999"])
def test_unparseable_helmet_is_skipped(helmet):
    assert _extract([[helmet, "Smith", "Ann", "Rockets"]]) == []


@pytest.mark.parametrize("helmet,expected", [("42", 42), (" 42 ", 42), ("+7", 7), ("-3", -3), ("007", 7)])
def test_helmet_parsing(helmet, expected):
    records = _extract([[helmet, "Smith", "Ann", "Rockets"]])

    assert records[0].helmet == expected


def test_values_are_trimmed():
    records = _extract([[" 9", "  Smith ", "\tAnn", "Rockets  "]])

    assert records == [lx.ParticipantRecord(9, "Smith", "Ann", "Rockets")]


def test_duplicates_are_kept_in_row_order():
    records = _extract([
        ["3", "Smith", "Ann", "Rockets"],
        ["1", "Jones", "Bob", "Comets"],
        ["3", "Smith", "Ann", "Rockets"],
    ])

    assert [r.helmet for r in records] == [3, 1, 3]


def test_unbound_columns_are_ignored():
    columns = ["Notes", "Helmet", "Last Name", "First Name", "Club"]
    binding = lx.resolve_columns(columns)

    records = _extract([["", "8", "Smith", "Ann", "Rockets"]], columns=columns, binding=binding)

    assert records == [lx.ParticipantRecord(8, "Smith", "Ann", "Rockets")]


def test_incomplete_binding_raises():
    with pytest.raises(lx.MissingColumns):
        _extract([["1", "Smith", "Ann", "Rockets"]], binding=lx.ColumnBinding(helmet=0))
