"""
Pytest fixtures for the book vote app.
"""
import io

import pandas as pd
import pytest

import app as book_vote

ADMIN_PASSWORD = "test-admin-password"


@pytest.fixture
def flask_app(tmp_path):
    """App wired to throwaway data, upload and cover directories."""
    book_vote.app.config.update(
        TESTING=True,
        ADMIN_PASSWORD=ADMIN_PASSWORD,
        DATA_DIR=str(tmp_path / "data"),
        UPLOAD_DIR=str(tmp_path / "uploads"),
        COVERS_DIR=str(tmp_path / "covers"),
    )
    book_vote.init_storage()
    yield book_vote.app


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture
def admin_headers():
    return {book_vote.ADMIN_HEADER: ADMIN_PASSWORD}


@pytest.fixture
def make_xlsx():
    """Build an in-memory workbook from a list of row dicts."""
    def _make(rows, columns=None):
        buf = io.BytesIO()
        pd.DataFrame(rows, columns=columns).to_excel(buf, index=False)
        buf.seek(0)
        return buf
    return _make


@pytest.fixture
def import_books(client, make_xlsx):
    def _import(rows, columns=None, filename="books.xlsx"):
        return client.post(
            "/admin",
            data={"password": ADMIN_PASSWORD, "excel": (make_xlsx(rows, columns), filename)},
            content_type="multipart/form-data",
        )
    return _import
