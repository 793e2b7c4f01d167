#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
lynx_extract.py

Deterministic participant extractor for event-result workbooks of unknown layout.

Input:
- One .xlsx / .xlsm / .xls workbook
- Pick the participant sheet, detect the header row, bind columns to a strict
  four-field schema, extract and validate rows.

Output:
- Lynx.ppl (UTF-16 LE with BOM, comma-separated, CRLF, no header line)

Logs:
- Console + logs/lynx_extract.log

Output fields (ONLY these, in this order):
- helmet
- last_name
- first_name
- club

Sheet rules:
- an explicitly requested sheet wins if it exists
- otherwise the first sheet whose name contains "club" (case-insensitive)
- otherwise the first sheet

Header rules:
- scan at most the first 20 rows
- a row is the header if its cells hit at least 3 of the 4 keyword groups
- no such row -> treat row 0 as the header (degraded confidence)

Row rules:
- blank rows, incomplete rows and rows whose helmet is not an integer are
  skipped silently; duplicates are kept

Dependencies:
- pandas
- openpyxl (.xlsx / .xlsm)
- xlrd (.xls)
"""

from __future__ import annotations

import argparse
import logging
import os
import re
import sys
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd
from pandas.api.types import is_scalar


# -----------------------
# Output schema (ONLY)
# -----------------------

PPL_FIELDS = ["helmet", "last_name", "first_name", "club"]

# FinishLynx reads .ppl as UTF-16 little-endian with a byte-order mark
PPL_ENCODING = "utf-16-le"
PPL_BOM = "\ufeff"
PPL_LINE_TERMINATOR = "\r\n"

DEFAULT_OUTPUT_NAME = "Lynx.ppl"

# Sheet selection
PREFERRED_SHEET_WORD = "club"

# Header scan
HEADER_SCAN_MAX_ROWS = 20
HEADER_MIN_GROUP_HITS = 3

# Keyword groups for header detection (substring match on lowercased cells)
HEADER_KEYWORD_GROUPS: List[Tuple[str, Tuple[str, ...]]] = [
    ("helmet", ("helmet", "number", "#")),
    ("last_name", ("last", "surname")),
    ("first_name", ("first", "given")),
    ("club", ("club", "team", "organization")),
]

# Column aliases (case-insensitive exact match, first alias wins)
COLUMN_ALIASES: List[Tuple[str, Tuple[str, ...]]] = [
    ("helmet", ("Helmet", "Helmet Number", "Helmet #", "Number")),
    ("last_name", ("Last Name", "LastName", "Last", "Surname")),
    ("first_name", ("First Name", "FirstName", "First", "Given Name")),
    ("club", ("Club", "Club Name", "Team", "Organization")),
]

# Labels used when reporting unresolved fields
FIELD_LABELS = {
    "helmet": "Helmet/Number",
    "last_name": "Last Name",
    "first_name": "First Name",
    "club": "Club",
}

# Helmet numbers parse like a signed 32-bit integer
HELMET_REGEX = re.compile(r"^[+-]?[0-9]+$")
HELMET_MIN = -(2 ** 31)
HELMET_MAX = 2 ** 31 - 1

# Workbook engines by file suffix
EXCEL_ENGINES = {
    ".xlsx": "openpyxl",
    ".xlsm": "openpyxl",
    ".xls": "xlrd",
}


# -------------
# Data classes
# -------------

Workbook = Dict[str, pd.DataFrame]


@dataclass
class SheetChoice:
    strategy: str
    sheet_name: str
    raw: pd.DataFrame


@dataclass
class ColumnBinding:
    helmet: Optional[int] = None
    last_name: Optional[int] = None
    first_name: Optional[int] = None
    club: Optional[int] = None

    def missing(self) -> List[str]:
        return [FIELD_LABELS[f] for f in PPL_FIELDS if getattr(self, f) is None]


@dataclass
class ParticipantRecord:
    helmet: int
    last_name: str
    first_name: str
    club: str


# -------
# Errors
# -------

class ExtractionError(Exception):
    """Base class for fatal extraction failures."""


class SourceFileNotFound(ExtractionError, FileNotFoundError):
    pass


class UnreadableWorkbook(ExtractionError):
    pass


class NoSheetsFound(ExtractionError):
    pass


class MissingColumns(ExtractionError):
    def __init__(self, missing: List[str], available: List[str]):
        self.missing = list(missing)
        self.available = list(available)
        super().__init__(
            f"Missing required columns: {', '.join(self.missing)}. "
            f"Available columns: {', '.join(self.available)}"
        )


class WriteError(ExtractionError):
    pass


# ----------
# Logging
# ----------

LOGGER_NAME = "lynx_extract"

_module_logger = logging.getLogger(LOGGER_NAME)


def setup_logging(debug: bool, log_dir: Union[str, Path] = "logs") -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    if logger.handlers:
        return logger

    os.makedirs(log_dir, exist_ok=True)
    log_path = Path(log_dir) / "lynx_extract.log"

    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    fh = logging.FileHandler(log_path, encoding="utf-8")
    fh.setLevel(logging.DEBUG if debug else logging.INFO)
    fh.setFormatter(fmt)

    sh = logging.StreamHandler(sys.stdout)
    sh.setLevel(logging.DEBUG if debug else logging.INFO)
    sh.setFormatter(fmt)

    logger.addHandler(fh)
    logger.addHandler(sh)
    return logger


# -----------
# Cell values
# -----------

def is_na_scalar(v: Any) -> bool:
    """
    Safe NA check that never returns an array/Series.
    """
    if v is None:
        return True
    if is_scalar(v):
        return bool(pd.isna(v))
    return False


def cell_to_str(v: Any) -> str:
    """
    Render a decoded cell as text. Missing cells become "", and integral
    floats lose their trailing ".0" (xlrd reports every number as a float).
    """
    if is_na_scalar(v):
        return ""
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)


# -------------------------
# Workbook / sheet reading
# -------------------------

def _engine_for(path: Path) -> str:
    suffix = path.suffix.lower()
    engine = EXCEL_ENGINES.get(suffix)
    if engine is None:
        raise UnreadableWorkbook(
            f"Unsupported extension '{suffix}' for {path.name}; expected one of {sorted(EXCEL_ENGINES)}"
        )
    return engine


def _open_source(file_path: Union[str, Path], reader):
    """
    Run reader(path, engine) on an existing workbook file, turning decoder
    failures into UnreadableWorkbook.
    """
    path = Path(file_path)
    if not path.is_file():
        raise SourceFileNotFound(f"File '{path}' not found.")

    engine = _engine_for(path)
    try:
        return reader(path, engine)
    except Exception as e:
        raise UnreadableWorkbook(f"Failed to open workbook {path.name}: {e}") from e


def _read_all_sheets(path: Path, engine: str) -> Workbook:
    return pd.read_excel(path, sheet_name=None, header=None, engine=engine)


def _read_sheet_names(path: Path, engine: str) -> List[str]:
    with pd.ExcelFile(path, engine=engine) as xls:
        return [str(s) for s in xls.sheet_names]


def read_workbook(
    file_path: Union[str, Path],
    logger: Optional[logging.Logger] = None,
) -> Workbook:
    """
    Decode every sheet of the workbook header-less.
    Returns an ordered {sheet_name: raw grid} mapping.
    """
    logger = logger or _module_logger
    path = Path(file_path)

    sheets = _open_source(path, _read_all_sheets)

    if not sheets:
        raise NoSheetsFound(f"No sheets found in Excel file '{path.name}'.")

    logger.debug(f"{path.name}: sheets={list(sheets.keys())}")
    return dict(sheets)


def list_sheets(file_path: Union[str, Path]) -> List[str]:
    return _open_source(file_path, _read_sheet_names)


def default_sheet_name(sheet_names: Sequence[str]) -> Optional[str]:
    for name in sheet_names:
        if PREFERRED_SHEET_WORD in str(name).lower():
            return name
    return None


# ---------------
# Sheet selection
# ---------------

def select_sheet(
    workbook: Workbook,
    requested_name: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> SheetChoice:
    logger = logger or _module_logger

    if not workbook:
        raise NoSheetsFound("No sheets found in Excel file.")

    names = list(workbook.keys())

    if requested_name is not None:
        if requested_name in workbook:
            logger.info(f"Using requested sheet '{requested_name}'")
            return SheetChoice(strategy="requested", sheet_name=requested_name, raw=workbook[requested_name])
        logger.warning(f"Requested sheet '{requested_name}' not found in {names}; falling back")

    club = default_sheet_name(names)
    if club is not None:
        logger.info(f"Using sheet '{club}' (name contains '{PREFERRED_SHEET_WORD}')")
        return SheetChoice(strategy="name_contains_club", sheet_name=club, raw=workbook[club])

    first = names[0]
    logger.info(f"No sheet name contains '{PREFERRED_SHEET_WORD}'; using first sheet '{first}'")
    return SheetChoice(strategy="first_sheet", sheet_name=first, raw=workbook[first])


# --------------------
# Header row detection
# --------------------

def header_group_hits(cells: Sequence[Any]) -> List[str]:
    """
    Return the keyword groups hit by a row, in HEADER_KEYWORD_GROUPS order.
    """
    values = [cell_to_str(v).strip().lower() for v in cells]
    values = [v for v in values if v]

    hits: List[str] = []
    for group, patterns in HEADER_KEYWORD_GROUPS:
        if any(p in v for v in values for p in patterns):
            hits.append(group)
    return hits


def find_header_row(
    raw: pd.DataFrame,
    max_rows: int = HEADER_SCAN_MAX_ROWS,
    logger: Optional[logging.Logger] = None,
) -> Optional[int]:
    """
    First row (top to bottom, within max_rows) hitting at least
    HEADER_MIN_GROUP_HITS keyword groups, or None.
    """
    logger = logger or _module_logger

    nrows = min(max_rows, len(raw))
    for r in range(nrows):
        hits = header_group_hits(raw.iloc[r, :].tolist())
        if len(hits) >= HEADER_MIN_GROUP_HITS:
            logger.debug(f"header row {r}: groups={hits}")
            return r

    return None


# -------------------
# Table normalization
# -------------------

def build_table(
    raw: pd.DataFrame,
    header_row_idx: Optional[int],
    logger: Optional[logging.Logger] = None,
) -> pd.DataFrame:
    """
    Build the normalized table: header texts as column labels (duplicates
    kept), every following row as strings padded with "". No row filtering.
    """
    logger = logger or _module_logger

    if header_row_idx is None:
        logger.warning("No header row detected; using first row as header (degraded confidence)")
        header_row_idx = 0

    if raw.empty or header_row_idx >= len(raw):
        return pd.DataFrame(columns=[f"Column{i + 1}" for i in range(raw.shape[1])], dtype=object)

    headers: List[str] = []
    for i, h in enumerate(raw.iloc[header_row_idx, :].tolist()):
        name = cell_to_str(h).strip()
        headers.append(name if name else f"Column{i + 1}")

    rows = [
        [cell_to_str(v) for v in raw.iloc[r, :].tolist()]
        for r in range(header_row_idx + 1, len(raw))
    ]
    return pd.DataFrame(rows, columns=headers, dtype=object)


def load_table(
    raw: pd.DataFrame,
    logger: Optional[logging.Logger] = None,
) -> Tuple[pd.DataFrame, Optional[int]]:
    logger = logger or _module_logger

    header_idx = find_header_row(raw, logger=logger)
    if header_idx is not None:
        logger.info(f"Found header row at index {header_idx}")

    return build_table(raw, header_idx, logger=logger), header_idx


# ---------------
# Column binding
# ---------------

def _find_column(columns: Sequence[Any], aliases: Sequence[str]) -> Optional[int]:
    lowered = [str(c).lower() for c in columns]
    for alias in aliases:
        key = alias.lower()
        if key in lowered:
            return lowered.index(key)
    return None


def resolve_columns(columns: Sequence[Any]) -> ColumnBinding:
    binding = ColumnBinding()
    for field, aliases in COLUMN_ALIASES:
        setattr(binding, field, _find_column(columns, aliases))
    return binding


def require_columns(
    columns: Sequence[Any],
    logger: Optional[logging.Logger] = None,
) -> ColumnBinding:
    logger = logger or _module_logger

    columns = [str(c) for c in columns]
    binding = resolve_columns(columns)

    missing = binding.missing()
    if missing:
        raise MissingColumns(missing, columns)

    logger.info(
        'COLUMN_BINDING | helmet="%s" | last_name="%s" | first_name="%s" | club="%s"',
        columns[binding.helmet],
        columns[binding.last_name],
        columns[binding.first_name],
        columns[binding.club],
    )
    return binding


# -------------------
# Row extraction
# -------------------

def parse_helmet(v: str) -> Optional[int]:
    t = (v or "").strip()
    if not HELMET_REGEX.match(t):
        return None
    n = int(t)
    if n < HELMET_MIN or n > HELMET_MAX:
        return None
    return n


def extract_participants(
    table: pd.DataFrame,
    binding: ColumnBinding,
    logger: Optional[logging.Logger] = None,
) -> List[ParticipantRecord]:
    logger = logger or _module_logger

    positions = [getattr(binding, f) for f in PPL_FIELDS]
    if any(p is None for p in positions):
        raise MissingColumns(binding.missing(), [str(c) for c in table.columns])

    records: List[ParticipantRecord] = []
    skipped = {"blank": 0, "incomplete": 0, "bad_helmet": 0}

    for row in table.itertuples(index=False, name=None):
        helmet_s, last, first, club = (cell_to_str(row[p]).strip() for p in positions)
        values = (helmet_s, last, first, club)

        if not any(values):
            skipped["blank"] += 1
            continue
        if not all(values):
            skipped["incomplete"] += 1
            continue

        helmet = parse_helmet(helmet_s)
        if helmet is None:
            skipped["bad_helmet"] += 1
            continue

        records.append(ParticipantRecord(helmet=helmet, last_name=last, first_name=first, club=club))

    logger.debug(f"rows_in={len(table)} rows_out={len(records)} skipped={skipped}")
    return records


# -------------
# .ppl writing
# -------------

def records_to_frame(records: Sequence[ParticipantRecord]) -> pd.DataFrame:
    return pd.DataFrame([asdict(r) for r in records], columns=PPL_FIELDS)


def write_ppl(
    records: Sequence[ParticipantRecord],
    destination: Union[str, Path],
    logger: Optional[logging.Logger] = None,
) -> Path:
    """
    Write records to a .ppl file, replacing the destination atomically.
    A failed write leaves neither a partial destination nor the temp file.
    """
    logger = logger or _module_logger
    dest = Path(destination)
    tmp = dest.with_name(f".{dest.name}.tmp")

    df = records_to_frame(records)
    try:
        with open(tmp, "w", encoding=PPL_ENCODING, newline="") as fh:
            fh.write(PPL_BOM)
            df.to_csv(fh, index=False, header=False, lineterminator=PPL_LINE_TERMINATOR)
        os.replace(tmp, dest)
    except (OSError, UnicodeError) as e:
        raise WriteError(f"Failed writing '{dest}': {e}") from e
    finally:
        if tmp.exists():
            tmp.unlink()

    logger.info(f"Wrote {dest.resolve()} rows={len(df)}")
    return dest


def read_ppl(path: Union[str, Path]) -> List[ParticipantRecord]:
    try:
        df = pd.read_csv(
            path,
            header=None,
            names=PPL_FIELDS,
            encoding="utf-16",
            dtype=str,
            keep_default_na=False,
        )
    except pd.errors.EmptyDataError:
        return []

    return [
        ParticipantRecord(helmet=int(h), last_name=ln, first_name=fn, club=c)
        for h, ln, fn, c in df.itertuples(index=False, name=None)
    ]


# -------------------
# File-level pipeline
# -------------------

def run_extraction(
    input_file: Union[str, Path],
    sheet_name: Optional[str],
    output_file: Union[str, Path],
    logger: Optional[logging.Logger] = None,
) -> List[ParticipantRecord]:
    logger = logger or _module_logger
    input_path = Path(input_file)

    workbook = read_workbook(input_path, logger=logger)
    choice = select_sheet(workbook, sheet_name, logger=logger)

    table, header_idx = load_table(choice.raw, logger=logger)
    logger.debug(f"{input_path.name} | {choice.sheet_name}: header_row_idx={header_idx} columns={list(table.columns)}")

    binding = require_columns(list(table.columns), logger=logger)
    records = extract_participants(table, binding, logger=logger)

    write_ppl(records, output_file, logger=logger)
    return records


# -----
# Main
# -----

EXIT_OK = 0
EXIT_BAD_INPUT = 2
EXIT_MISSING_COLUMNS = 3
EXIT_WRITE_ERROR = 4


def _output_path(args: argparse.Namespace) -> Path:
    if args.out:
        return Path(args.out)
    out_dir = Path(args.out_dir) if args.out_dir else Path(args.input).resolve().parent
    return out_dir / DEFAULT_OUTPUT_NAME


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Extract FinishLynx participants (.ppl) from an event workbook.")
    parser.add_argument("input", help="Input workbook (.xlsx/.xlsm/.xls)")
    parser.add_argument("--sheet", default=None, help="Sheet to read (default: first sheet containing 'Club', else first sheet)")
    out = parser.add_mutually_exclusive_group()
    out.add_argument("--out-dir", default=None, help=f"Directory for {DEFAULT_OUTPUT_NAME} (default: next to the input file)")
    out.add_argument("--out", default=None, help="Explicit output file path")
    parser.add_argument("--list-sheets", action="store_true", help="List the workbook's sheets and exit")
    parser.add_argument("--debug", action="store_true", help="Enable DEBUG logging")
    args = parser.parse_args(argv)

    logger = setup_logging(args.debug)

    try:
        if args.list_sheets:
            names = list_sheets(args.input)
            default = default_sheet_name(names)
            for name in names:
                print(f"{'*' if name == default else ' '} {name}")
            return EXIT_OK

        output = _output_path(args)
        records = run_extraction(args.input, args.sheet, output, logger=logger)
    except MissingColumns as e:
        logger.error(str(e))
        return EXIT_MISSING_COLUMNS
    except WriteError as e:
        logger.error(str(e))
        return EXIT_WRITE_ERROR
    except ExtractionError as e:
        logger.error(str(e))
        return EXIT_BAD_INPUT

    logger.info(f"Created {output.name} with {len(records)} entries")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
