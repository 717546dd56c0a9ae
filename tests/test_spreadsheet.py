"""
Tests for spreadsheet row mapping.
"""
import pandas as pd
import pytest

from spreadsheet import read_books, row_to_book, SpreadsheetError


def test_row_defaults():
    assert row_to_book({}) == {"title": "Untitled", "author": "Unknown", "cover": ""}


def test_blank_and_nan_cells_take_defaults():
    row = {"Title": "  ", "Author": float("nan"), "Cover": None}
    assert row_to_book(row) == {"title": "Untitled", "author": "Unknown", "cover": ""}


def test_numeric_cells_become_text():
    assert row_to_book({"Title": 1984.0, "Author": "Orwell"})["title"] == "1984"


def test_read_xlsx(tmp_path):
    path = tmp_path / "books.xlsx"
    pd.DataFrame([
        {"Title": "Dune", "Author": "Herbert", "Cover": "dune.jpg"},
        {"Title": "Emma", "Author": None, "Cover": None},
    ]).to_excel(path, index=False)
    assert read_books(str(path)) == [
        {"title": "Dune", "author": "Herbert", "cover": "dune.jpg"},
        {"title": "Emma", "author": "Unknown", "cover": ""},
    ]


def test_read_csv_missing_column(tmp_path):
    path = tmp_path / "books.csv"
    path.write_text("Title,Author\nDune,Herbert\n,Austen\n")
    assert read_books(str(path)) == [
        {"title": "Dune", "author": "Herbert", "cover": ""},
        {"title": "Untitled", "author": "Austen", "cover": ""},
    ]


def test_garbage_raises(tmp_path):
    path = tmp_path / "books.xlsx"
    path.write_bytes(b"definitely not a workbook")
    with pytest.raises(SpreadsheetError):
        read_books(str(path))
