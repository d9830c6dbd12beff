import inspect
import io
from datetime import date

import pandas as pd
import pytest
from unittest.mock import patch

from folio import models
from folio.errors import PersistenceError, ValidationError
from folio.main import import_spreadsheet
from folio.utils.data_import_export import import_transactions

CSV_MIXED = (
    "Date,Quantity,Price,Fee\n"
    "2024-01-15,10,100.5,1\n"
    "2024-13-01,5,10,0\n"
    "2024-02-01,abc,10,0\n"
    "2024-02-02,5,-3,0\n"
    "2024-02-03,5,10,-1\n"
    "2024-02-04,5,10\n"
    "2024-03-01,2.5,110,0.5\n"
)


def make_excel(rows, columns=("Date", "Quantity", "Price", "Fee")):
    buffer = io.BytesIO()
    pd.DataFrame(rows, columns=list(columns)).to_excel(buffer, index=False)
    return buffer.getvalue()


def test_import_csv_reports_each_bad_row(db_session):
    result = import_transactions(db_session, CSV_MIXED.encode(), "trades.csv", " aapl ", "")

    assert result.imported == 2
    assert result.failed == 5
    assert [(e.row, e.message) for e in result.errors] == [
        (3, "Invalid date '2024-13-01'. Expected format: YYYY-MM-DD"),
        (4, "Invalid quantity 'abc'. Must be a positive number"),
        (5, "Invalid price '-3'. Must be a positive number"),
        (6, "Invalid fee '-1'. Must be a non-negative number"),
        (7, "Expected 4 columns (Date, Quantity, Price, Fee), got 3"),
    ]

    stored = db_session.query(models.Transaction).order_by(models.Transaction.date).all()
    assert [(t.symbol, t.type, t.currency, t.date, t.quantity, t.price, t.fee) for t in stored] == [
        ("AAPL", "BUY", "USD", date(2024, 1, 15), 10.0, 100.5, 1.0),
        ("AAPL", "BUY", "USD", date(2024, 3, 1), 2.5, 110.0, 0.5),
    ]


def test_import_csv_tolerates_extra_trailing_fields(db_session):
    content = (
        b"Date,Quantity,Price,Fee\n"
        b"2024-01-15,10,100,1\n"
        b"2024-01-16,10,100,1,bought on dip\n"
        b"2024-01-17,5,100,0\n"
    )

    result = import_transactions(db_session, content, "trades.csv", "AAPL", "USD")

    assert result.imported == 3
    assert result.failed == 0
    assert db_session.query(models.Transaction).count() == 3


def test_import_excel(db_session):
    content = make_excel([
        ["2024-01-15", 10, 30.5, 2],
        ["2024-02-15", 5, 31, 0],
    ])

    result = import_transactions(db_session, content, "PETR4.xlsx", "petr4", "brl")

    assert result.imported == 2
    assert result.failed == 0
    assert {(t.symbol, t.currency) for t in db_session.query(models.Transaction).all()} == {("PETR4", "BRL")}


def test_import_excel_with_date_cells(db_session):
    content = make_excel([[pd.Timestamp("2024-05-02"), 1, 10, 0]])

    result = import_transactions(db_session, content, "lots.xlsx", "VALE3", "BRL")

    assert result.imported == 1
    assert db_session.query(models.Transaction).one().date == date(2024, 5, 2)


def test_import_requires_symbol(db_session):
    with pytest.raises(ValidationError):
        import_transactions(db_session, CSV_MIXED.encode(), "trades.csv", "  ", "USD")


def test_import_rejects_unknown_file_type(db_session):
    with pytest.raises(ValidationError):
        import_transactions(db_session, b"whatever", "trades.pdf", "AAPL", "USD")


def test_import_rejects_unreadable_excel(db_session):
    with pytest.raises(ValidationError):
        import_transactions(db_session, b"not really a workbook", "trades.xlsx", "AAPL", "USD")


def test_database_error_fails_only_that_row(db_session):
    content = b"Date,Quantity,Price,Fee\n2024-01-15,10,100,1\n"

    with patch("folio.utils.data_import_export.crud.create_transaction", side_effect=PersistenceError("locked")):
        result = import_transactions(db_session, content, "trades.csv", "AAPL", "USD")

    assert result.imported == 0
    assert [(e.row, e.message) for e in result.errors] == [(2, "Database error saving transaction")]


def test_import_endpoint_success(client, quote_provider):
    quote_provider.prices = {"AAPL": 150.0}
    content = b"Date,Quantity,Price,Fee\n2024-01-15,10,100,1\n"

    response = client.post(
        "/transactions/import",
        files={"file": ("trades.csv", content, "text/csv")},
        data={"symbol": "aapl"},
    )

    assert response.status_code == 200
    assert response.json() == {"imported": 1, "failed": 0, "errors": []}
    assert [(p["symbol"], p["price"]) for p in client.get("/prices").json()] == [("AAPL", 150.0)]
    assert client.get("/transactions").json()[0]["pnl"] == pytest.approx(499.0)


def test_import_endpoint_all_rows_failing_is_bad_request(client):
    content = b"Date,Quantity,Price,Fee\nyesterday,10,100,1\n"

    response = client.post(
        "/transactions/import",
        files={"file": ("trades.csv", content, "text/csv")},
        data={"symbol": "AAPL", "currency": "USD"},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["imported"] == 0
    assert body["failed"] == 1
    assert body["errors"][0]["row"] == 2
    # Nothing imported, so no cache entry either
    assert client.get("/prices").json() == []


def test_import_endpoint_header_only_is_ok(client):
    response = client.post(
        "/transactions/import",
        files={"file": ("trades.csv", b"Date,Quantity,Price,Fee\n", "text/csv")},
        data={"symbol": "AAPL"},
    )

    assert response.status_code == 200
    assert response.json() == {"imported": 0, "failed": 0, "errors": []}


def test_import_endpoint_missing_symbol(client):
    response = client.post(
        "/transactions/import",
        files={"file": ("trades.csv", b"Date,Quantity,Price,Fee\n", "text/csv")},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Symbol is required"


def test_import_endpoint_is_synchronous():
    # Blocking DB and provider work must run in the threadpool, not the event loop
    assert not inspect.iscoroutinefunction(import_spreadsheet)
