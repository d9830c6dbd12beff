# folio/utils/portfolio_calculator.py

from collections import defaultdict
from typing import Dict, Iterable, List

from .. import models, schemas


def build_price_map(price_snapshot: Iterable) -> Dict[str, float]:
    return {entry.symbol: entry.price or 0.0 for entry in price_snapshot}


def calculate_pnl(current_price: float, quantity: float, price: float, fee: float) -> Dict[str, float]:
    """
    Market value and unrealized P&L of one transaction.
    A current price of 0 means the symbol was never fetched, so everything stays 0.
    """
    market_value = 0.0
    pnl = 0.0
    pnl_percent = 0.0

    if current_price > 0:
        market_value = current_price * quantity
        cost_basis = price * quantity
        pnl = market_value - cost_basis - fee
        if cost_basis > 0:
            pnl_percent = (pnl / cost_basis) * 100

    return {
        "current_price": current_price,
        "market_value": market_value,
        "pnl": pnl,
        "pnl_percent": pnl_percent,
    }


def compute_view(transactions: Iterable, price_snapshot: Iterable) -> List[schemas.EnrichedTransaction]:
    """
    Join transactions with the cached prices, one enriched record per
    transaction in input order. Symbols missing from the snapshot count as price 0.
    """
    price_map = build_price_map(price_snapshot)

    view = []
    for tx in transactions:
        current_price = price_map.get(tx.symbol, 0.0)
        base = schemas.Transaction.model_validate(tx).model_dump()
        pnl = calculate_pnl(current_price, tx.quantity, tx.price, tx.fee or 0.0)
        view.append(schemas.EnrichedTransaction(**base, **pnl))
    return view


def summarize_holdings(transactions: Iterable, price_snapshot: Iterable) -> schemas.PortfolioSummary:
    """
    Aggregate transactions into open positions per symbol. Totals are kept
    per currency; no conversion is attempted.
    """
    entries = {entry.symbol: entry for entry in price_snapshot}
    positions = {}

    for tx in transactions:
        position = positions.get(tx.symbol)
        if position is None:
            position = {
                "buy_quantity": 0.0,
                "sell_quantity": 0.0,
                "total_buy_cost": 0.0,
                "total_fees": 0.0,
                "currency": tx.currency or models.DEFAULT_CURRENCY,
            }
            positions[tx.symbol] = position

        if tx.type == models.BUY:
            position["buy_quantity"] += tx.quantity
            position["total_buy_cost"] += tx.quantity * tx.price
        elif tx.type == models.SELL:
            position["sell_quantity"] += tx.quantity
        position["total_fees"] += tx.fee or 0.0

    holdings = []
    totals = defaultdict(lambda: {"cost_basis": 0.0, "market_value": 0.0, "pnl": 0.0, "categories": defaultdict(float)})

    for symbol, position in positions.items():
        quantity = position["buy_quantity"] - position["sell_quantity"]
        # Return only symbols with positive quantities
        if quantity <= 0:
            continue

        entry = entries.get(symbol)
        current_price = entry.price if entry is not None and entry.price else 0.0
        category = (entry.category if entry is not None else "") or "Other"
        currency = position["currency"]

        average_buy_price = (
            position["total_buy_cost"] / position["buy_quantity"] if position["buy_quantity"] > 0 else 0.0
        )
        cost_basis = quantity * average_buy_price + position["total_fees"]
        market_value = quantity * current_price
        pnl = market_value - cost_basis if current_price > 0 else 0.0
        pnl_percent = (pnl / cost_basis * 100) if cost_basis > 0 and current_price > 0 else 0.0

        holdings.append(schemas.Holding(
            symbol=symbol,
            currency=currency,
            category=category,
            quantity=quantity,
            average_buy_price=round(average_buy_price, 2),
            total_fees=round(position["total_fees"], 2),
            cost_basis=round(cost_basis, 2),
            current_price=current_price,
            market_value=round(market_value, 2),
            pnl=round(pnl, 2),
            pnl_percent=round(pnl_percent, 2),
        ))

        bucket = totals[currency]
        bucket["cost_basis"] += cost_basis
        bucket["market_value"] += market_value
        bucket["pnl"] += pnl
        bucket["categories"][category] += market_value

    currency_totals = {}
    for currency, bucket in totals.items():
        cost_basis = bucket["cost_basis"]
        currency_totals[currency] = schemas.CurrencyTotals(
            cost_basis=round(cost_basis, 2),
            market_value=round(bucket["market_value"], 2),
            pnl=round(bucket["pnl"], 2),
            pnl_percent=round((bucket["pnl"] / cost_basis * 100) if cost_basis > 0 else 0.0, 2),
            categories={name: round(value, 2) for name, value in bucket["categories"].items()},
        )

    return schemas.PortfolioSummary(holdings=holdings, totals=currency_totals)
