import argparse
from pathlib import Path

from lynx_extract import read_ppl, records_to_frame


DEFAULT_PPL_FILE = Path("Lynx.ppl")


def show_ppl(ppl_file: Path):
    if not ppl_file.is_file():
        raise ValueError(f"No .ppl file found at {ppl_file}")

    print(f"Reading {ppl_file.name}")
    records = read_ppl(ppl_file)
    df = records_to_frame(records)

    if not df.empty:
        print(df.to_string(index=False))

    print(f"\nTotal entries: {len(df)}")
    if not df.empty:
        print(f"Clubs: {df['club'].nunique()}")
    return records


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Print the participants stored in a .ppl file.")
    parser.add_argument("ppl_file", nargs="?", default=str(DEFAULT_PPL_FILE))
    args = parser.parse_args()
    show_ppl(Path(args.ppl_file))
