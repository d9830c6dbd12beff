import io
import logging
import math
from datetime import date, datetime
from typing import Any, List, Optional

import pandas as pd
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..errors import PersistenceError, ValidationError
from .portfolio_calculator import compute_view

logger = logging.getLogger(__name__)

IMPORT_COLUMNS = ("Date", "Quantity", "Price", "Fee")
EXCEL_EXTENSIONS = (".xlsx", ".xls")
CSV_EXTENSIONS = (".csv",)

EXPORT_COLUMNS = [
    "id", "date", "symbol", "type", "quantity", "price", "currency", "fee",
    "current_price", "market_value", "pnl", "pnl_percent", "note",
]


class RowError(ValueError):
    pass


def export_transactions_to_csv(db: Session) -> str:
    """
    Export all transactions, enriched with current price and P&L, to CSV.
    Returns CSV string
    """
    view = compute_view(crud.get_transactions(db), crud.get_stock_prices(db))
    data = [tx.model_dump(include=set(EXPORT_COLUMNS)) for tx in view]
    df = pd.DataFrame(data, columns=EXPORT_COLUMNS)
    return df.to_csv(index=False)


def read_spreadsheet(content: bytes, filename: str) -> pd.DataFrame:
    """
    Read the first sheet of an Excel file, or a CSV file, without treating
    any row as a header.
    """
    name = (filename or "").lower()
    try:
        if name.endswith(EXCEL_EXTENSIONS):
            return pd.read_excel(io.BytesIO(content), sheet_name=0, header=None)
        if name.endswith(CSV_EXTENSIONS):
            # Rows may be ragged; size the frame to the widest line so extra
            # trailing fields never reject the whole file
            width = max((line.count(b",") + 1 for line in content.splitlines()), default=len(IMPORT_COLUMNS))
            return pd.read_csv(
                io.BytesIO(content),
                header=None,
                names=list(range(max(width, len(IMPORT_COLUMNS)))),
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=False,
            )
    except Exception as e:
        logger.warning(f"Could not read uploaded spreadsheet {filename}: {e}")
        raise ValidationError("Invalid spreadsheet file") from e
    raise ValidationError("File must be an Excel (.xlsx, .xls) or CSV file")


def _cell(value: Any) -> Any:
    if value is None or value is pd.NaT:
        return ""
    if isinstance(value, (datetime, date)):
        return value
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


def _row_cells(row) -> List[Any]:
    cells = [_cell(value) for value in row]
    while cells and cells[-1] == "":
        cells.pop()
    return cells


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise RowError(f"Invalid date '{value}'. Expected format: YYYY-MM-DD")


def _parse_number(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _parse_row(cells: List[Any]) -> dict:
    if len(cells) < len(IMPORT_COLUMNS):
        raise RowError(f"Expected 4 columns (Date, Quantity, Price, Fee), got {len(cells)}")

    transaction_date = _parse_date(cells[0])

    quantity = _parse_number(cells[1])
    if quantity is None or quantity <= 0:
        raise RowError(f"Invalid quantity '{cells[1]}'. Must be a positive number")

    price = _parse_number(cells[2])
    if price is None or price <= 0:
        raise RowError(f"Invalid price '{cells[2]}'. Must be a positive number")

    fee = _parse_number(cells[3])
    if fee is None or fee < 0:
        raise RowError(f"Invalid fee '{cells[3]}'. Must be a non-negative number")

    return {"date": transaction_date, "quantity": quantity, "price": price, "fee": fee}


def import_transactions(
    db: Session, content: bytes, filename: str, symbol: str, currency: Optional[str] = None
) -> schemas.ImportResult:
    """
    Import BUY transactions for one symbol from a spreadsheet with the columns
    Date, Quantity, Price, Fee. The first row is a header. Each valid row is
    committed on its own; invalid rows are reported with their 1-based row number.
    """
    symbol = (symbol or "").strip().upper()
    currency = (currency or "").strip().upper() or models.DEFAULT_CURRENCY
    if not symbol:
        raise ValidationError("Symbol is required")

    df = read_spreadsheet(content, filename)
    result = schemas.ImportResult()

    for index, row in enumerate(df.itertuples(index=False, name=None)):
        # Skip header row
        if index == 0:
            continue
        row_number = index + 1

        try:
            data = _parse_row(_row_cells(row))
        except RowError as e:
            result.failed += 1
            result.errors.append(schemas.ImportRowError(row=row_number, message=str(e)))
            continue

        tx = schemas.TransactionCreate(symbol=symbol, type=models.BUY, currency=currency, **data)
        try:
            crud.create_transaction(db, tx)
        except PersistenceError:
            result.failed += 1
            result.errors.append(schemas.ImportRowError(row=row_number, message="Database error saving transaction"))
            continue

        result.imported += 1

    logger.info(f"Spreadsheet import for {symbol}: {result.imported} imported, {result.failed} failed")
    return result
