"""
Spreadsheet import: uploaded workbook -> list of book dicts.

Only the first sheet is read. Header names are matched exactly
("Title", "Author", "Cover").
"""
import os

import pandas as pd

DEFAULTS = {"Title": "Untitled", "Author": "Unknown", "Cover": ""}
CSV_EXTENSIONS = (".csv",)


class SpreadsheetError(Exception):
    pass


def read_rows(path: str) -> list[dict]:
    ext = os.path.splitext(path)[1].lower()
    try:
        if ext in CSV_EXTENSIONS:
            df = pd.read_csv(path, dtype=object)
        else:
            df = pd.read_excel(path, sheet_name=0, dtype=object)
    except Exception as e:
        raise SpreadsheetError(f"cannot read {os.path.basename(path)}: {e}") from e
    return df.to_dict(orient="records")


def _cell_text(value, default: str) -> str:
    if value is None:
        return default
    try:
        if pd.isna(value):
            return default
    except (TypeError, ValueError):
        pass
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or default


def row_to_book(row: dict) -> dict:
    return {
        "title": _cell_text(row.get("Title"), DEFAULTS["Title"]),
        "author": _cell_text(row.get("Author"), DEFAULTS["Author"]),
        "cover": _cell_text(row.get("Cover"), DEFAULTS["Cover"]),
    }


def read_books(path: str) -> list[dict]:
    return [row_to_book(r) for r in read_rows(path)]
