BRAZIL_SUFFIX = ".SAO"
BRAZIL_CURRENCY = "BRL"
PAIR_DELIMITER = "/"


def build_query_symbol(symbol: str, currency: str) -> str:
    """
    Convert an internal symbol to the quote provider's query symbol.
    Pairs like BTC/USD become BTCUSD; BRL-listed symbols get the .SAO suffix.
    A pair quoted in another currency (BTC/USD) keeps no suffix whatever the
    currency of the entry.
    """
    query_symbol = symbol.replace(PAIR_DELIMITER, "")

    if PAIR_DELIMITER in symbol:
        quote_currency = symbol.rsplit(PAIR_DELIMITER, 1)[1].strip().upper()
        if quote_currency != BRAZIL_CURRENCY:
            return query_symbol

    if currency == BRAZIL_CURRENCY and not query_symbol.endswith(BRAZIL_SUFFIX):
        return query_symbol + BRAZIL_SUFFIX
    return query_symbol
