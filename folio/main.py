import logging

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from . import crud, models, schemas
from .config import configure_logging, get_settings
from .database import engine, get_db
from .errors import NotFoundError, PersistenceError, ValidationError, transaction_not_found
from .utils.data_import_export import export_transactions_to_csv, import_transactions
from .utils.portfolio_calculator import compute_view, summarize_holdings
from .utils.price_refresher import PriceRefresher
from .utils.quote_provider import AlphaVantageClient, QuoteProvider

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Folio")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Create DB tables
models.Base.metadata.create_all(bind=engine)


# --- Dependencies ---

def get_quote_provider() -> QuoteProvider:
    return AlphaVantageClient(
        api_key=settings.alpha_api_key,
        base_url=settings.alpha_base_url,
        timeout_seconds=settings.quote_timeout_seconds,
    )


def get_price_refresher(
    db: Session = Depends(get_db), provider: QuoteProvider = Depends(get_quote_provider)
) -> PriceRefresher:
    return PriceRefresher(db, provider, delay_seconds=settings.refresh_delay_seconds)


# --- Error handlers ---

@app.exception_handler(ValidationError)
async def handle_validation_error(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def handle_not_found(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
async def handle_persistence_error(request: Request, exc: PersistenceError):
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))
    return JSONResponse(status_code=400, content={"detail": "; ".join(messages) or "Invalid request payload"})


# --- Routes ---

@app.get("/")
def root():
    return {"message": "Folio backend is running."}


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/transactions", response_model=schemas.Transaction, status_code=201)
def create_transaction(
    tx: schemas.TransactionCreate,
    db: Session = Depends(get_db),
    refresher: PriceRefresher = Depends(get_price_refresher),
):
    created = crud.create_transaction(db, tx)
    # Best effort; a failed price lookup never fails the transaction
    refresher.ensure_price_entry(created.symbol, created.currency)
    return created


@app.get("/transactions", response_model=list[schemas.EnrichedTransaction])
def read_transactions(db: Session = Depends(get_db)):
    return compute_view(crud.get_transactions(db), crud.get_stock_prices(db))


@app.get("/transactions/export/csv")
def export_csv(db: Session = Depends(get_db)):
    """
    Export all transactions, with current P&L, to CSV format
    """
    return Response(
        content=export_transactions_to_csv(db),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=transactions.csv"},
    )


@app.post("/transactions/import", response_model=schemas.ImportResult)
def import_spreadsheet(
    file: UploadFile = File(...),
    symbol: str = Form(""),
    currency: str = Form(""),
    db: Session = Depends(get_db),
    refresher: PriceRefresher = Depends(get_price_refresher),
):
    """
    Import BUY transactions for one symbol from an Excel or CSV file
    (columns: Date, Quantity, Price, Fee; header row skipped)
    """
    content = file.file.read()
    result = import_transactions(db, content, file.filename, symbol, currency)

    if result.imported > 0:
        refresher.ensure_price_entry(symbol.strip().upper(), currency.strip().upper() or models.DEFAULT_CURRENCY)

    status_code = 400 if result.imported == 0 and result.failed > 0 else 200
    return JSONResponse(status_code=status_code, content=result.model_dump())


@app.get("/transactions/{transaction_id}", response_model=schemas.Transaction)
def get_transaction(transaction_id: str, db: Session = Depends(get_db)):
    """Get a single transaction by ID"""
    tx = crud.get_transaction_by_id(db, transaction_id)
    if tx is None:
        raise NotFoundError(transaction_not_found(transaction_id))
    return tx


@app.put("/transactions/{transaction_id}", response_model=schemas.Transaction)
def update_transaction(
    transaction_id: str,
    tx: schemas.TransactionUpdate,
    db: Session = Depends(get_db),
    refresher: PriceRefresher = Depends(get_price_refresher),
):
    updated = crud.update_transaction(db, transaction_id, tx)
    refresher.ensure_price_entry(updated.symbol, updated.currency)
    return updated


@app.delete("/transactions/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: str, db: Session = Depends(get_db)):
    crud.delete_transaction(db, transaction_id)
    return Response(status_code=204)


@app.post("/prices/refresh", response_model=schemas.RefreshSummary)
def refresh_prices(refresher: PriceRefresher = Depends(get_price_refresher)):
    """
    Refresh every cached price from the quote provider. Per-symbol failures
    are reported in the summary; the run itself always completes.
    """
    return refresher.refresh_all()


@app.get("/prices", response_model=list[schemas.StockPrice])
def read_prices(db: Session = Depends(get_db)):
    return crud.get_stock_prices(db)


@app.put("/prices/{symbol}", response_model=schemas.StockPrice)
def update_price(symbol: str, update: schemas.StockPriceUpdate, db: Session = Depends(get_db)):
    return crud.update_stock_price(db, symbol, update)


@app.get("/portfolio/summary", response_model=schemas.PortfolioSummary)
def portfolio_summary(db: Session = Depends(get_db)):
    return summarize_holdings(crud.get_transactions(db), crud.get_stock_prices(db))


@app.get("/goal", response_model=schemas.PortfolioGoal)
def read_goal(db: Session = Depends(get_db)):
    goal = crud.get_goal(db)
    if goal is None:
        raise NotFoundError("no goal found")
    return goal


@app.post("/goal", response_model=schemas.PortfolioGoal, status_code=201)
def save_goal(goal: schemas.GoalSave, db: Session = Depends(get_db)):
    return crud.replace_goal(db, goal)
