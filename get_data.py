# get_data.py
'''
Purpose:
    Market data client used by the portfolio pipeline.
        - quotes(tickers)            -> {ticker: Quote(market_cap, earnings, revenue)}
        - historical_prices(ticker)  -> HistTable (daily OHLCV + cash dividends)

    Prices come from Stooq (pandas_datareader), dividends and fundamentals
    from Yahoo Finance (yfinance). With a cache_dir, fetched tables are kept
    as CSV files (<cache_dir>/<TICKER>.csv) and re-read on later runs
    until they no longer cover the requested end date.

    Network errors are logged with the ticker and re-raised unchanged.
'''

import os
from dataclasses import dataclass
from datetime import date
import pandas as pd
import yfinance as yf
from pandas_datareader import data as pdr
from loguru import logger

from hist_table import HistTable, ISO_FMT, to_date
from data_io import load_hist_csv, write_hist_csv

# ---------- defaults (used when user just hits ENTER) ----------
DEFAULT_TICKERS = ["AAPL", "MSFT", "AMZN", "SPY", "IWM"]
DEFAULT_HISTORY_START = "2000-01-01"
OUTDIR = "data"

# yfinance `info` keys for each Quote field
QUOTE_FIELDS = {
    "market_cap": "marketCap",
    "earnings": "netIncomeToCommon",
    "revenue": "totalRevenue",
}
# ---------------------------------------------------------------


# ----------------------- input helpers -------------------------
def is_valid_ticker(s: str) -> bool:
    '''Allow letters, digits, dot, hyphen, underscore; at least 1 char.'''
    if s == "":
        return False
    for char in s:
        if char.isalnum() or char in "._-":
            continue
        return False
    return True


def parse_tickers(raw: str) -> list[str]:
    '''
    Split comma-separated tickers: uppercase, strip, drop empty,
    de-duplicate (keep order). Raises ValueError on an invalid symbol.
    '''
    seen = set()
    tickers = []
    for p in raw.split(","):
        cleaned = p.strip().upper()
        if cleaned == "" or cleaned in seen:
            continue
        seen.add(cleaned)
        tickers.append(cleaned)

    bad = [t for t in tickers if not is_valid_ticker(t)]
    if bad:
        raise ValueError(f"invalid ticker(s): {bad}. Allowed: letters/digits/._-")
    return tickers


def ask_tickers(default: list[str]) -> list[str]:
    '''Ask user for comma-separated tickers. Empty input(Enter) -> default.'''
    while True:
        raw = input(
            f"Tickers (comma-separated) [Enter = default: {', '.join(default)}]: "
        ).strip()
        if raw == "":
            return default[:]
        try:
            tickers = parse_tickers(raw)
        except ValueError as e:
            print(f"Error: {e}")
            continue
        if len(tickers) == 0:
            print("Error: please enter at least one ticker, or press ENTER for default.")
            continue
        return tickers


def ask_date(prompt: str, default: str) -> str:
    '''
    Ask for date in YYYY-MM-DD.
    Empty input(Enter) -> default.
    Validate using pandas.to_datetime with a fixed format.
    '''
    while True:
        raw = input(f"{prompt} [Enter = default: {default}]: ").strip()
        if raw == "":
            return default
        try:
            dt = pd.to_datetime(raw, format=ISO_FMT)  # strict format
            return dt.strftime(ISO_FMT)
        except ValueError:
            print("Error: please enter date as YYYY-MM-DD (e.g., 2019-03-31).")
# ---------------------------------------------------------------


@dataclass(frozen=True)
class Quote:
    ticker: str
    market_cap: float
    earnings: float
    revenue: float


class MarketDataClient:
    '''Stooq prices + Yahoo dividends/fundamentals, with an optional CSV cache.'''

    def __init__(self, cache_dir=None, start=DEFAULT_HISTORY_START, end=None):
        self.cache_dir = cache_dir
        self.start = start
        self.end = end

    # ---------- quotes ----------

    def quotes(self, tickers) -> dict[str, Quote]:
        '''One batched Yahoo request for all tickers.'''
        tickers = list(dict.fromkeys(tickers))
        batch = yf.Tickers(" ".join(tickers))
        out = {}
        for t in tickers:
            try:
                info = batch.tickers[t].info
            except Exception as e:
                logger.error(f"quotes: fetching {t} failed: {e}")
                raise
            values = {}
            for field, key in QUOTE_FIELDS.items():
                v = info.get(key)
                if v is None:
                    raise ValueError(f"{t}: quote has no '{key}' field.")
                values[field] = float(v)
            out[t] = Quote(ticker=t, **values)
        logger.info(f"Fetched {len(out)} quotes")
        return out

    # ---------- history ----------

    def cache_path(self, ticker: str) -> str:
        return os.path.join(self.cache_dir, f"{ticker}.csv")

    def cache_is_stale(self, table: HistTable, start_d, end_d) -> bool:
        '''
        A cached table is reused only if it reaches back to start_d (or the
        configured history start) and either covers end_d or was written today (the
        last trading day can be before end_d on weekends and holidays).
        '''
        if len(table) == 0:
            return True
        if start_d < to_date(self.start) and start_d < table.first_date():
            return True
        if table.last_date() >= end_d:
            return False
        written = date.fromtimestamp(os.path.getmtime(self.cache_path(table.ticker)))
        return written < date.today()

    def historical_prices(self, ticker: str, start=None, end=None) -> HistTable:
        '''
        Daily OHLCV with cash dividends, ascending by date, restricted to
        [start, end]. The cache always holds the full history from
        self.start (or the earlier requested start) up to the fetch day.
        '''
        start_d = to_date(pd.to_datetime(start or self.start))
        end_d = to_date(pd.to_datetime(end or self.end or pd.Timestamp.today().normalize()))

        table = None
        if self.cache_dir is not None and os.path.exists(self.cache_path(ticker)):
            cached = load_hist_csv(self.cache_path(ticker), ticker)
            if self.cache_is_stale(cached, start_d, end_d):
                logger.info(f"{ticker}: cached history ends {cached.last_date() if len(cached) else None}, refreshing")
            else:
                logger.debug(f"{ticker}: reading cached history")
                table = cached

        if table is None:
            table = self.fetch_history(ticker, min(start_d, to_date(self.start)),
                                       max(end_d, date.today()))
            if self.cache_dir is not None:
                os.makedirs(self.cache_dir, exist_ok=True)
                write_hist_csv(table, self.cache_path(ticker))

        return table.with_rows(r for r in table.rows if start_d <= r.date <= end_d)

    def fetch_history(self, ticker: str, start_d, end_d) -> HistTable:
        prices = self.fetch_stooq(ticker, pd.Timestamp(start_d), pd.Timestamp(end_d))
        try:
            dividends = yf.Ticker(ticker).dividends
        except Exception as e:
            logger.error(f"historical_prices: dividends for {ticker} failed: {e}")
            raise

        table = HistTable.from_frame(ticker, prices, dividends=dividends)
        logger.info(f"{ticker}: {len(table)} rows, {int((table.dividend_array() > 0).sum())} dividends")
        return table

    def fetch_stooq(self, ticker, start_dt, end_dt) -> pd.DataFrame:
        '''Try symbol as-is, then with '.US' suffix (some envs need it).'''
        last_error = None
        for sym in (ticker, f"{ticker}.US"):
            try:
                df = pdr.DataReader(sym, "stooq", start_dt, end_dt)
            except Exception as e:
                last_error = e
                continue  # this attempt failed; try the next variant
            if (df is not None) and (len(df) > 0):
                return df.sort_index()

        if last_error is not None:
            logger.error(f"historical_prices: Stooq fetch for {ticker} failed: {last_error}")
            raise last_error
        raise ValueError(f"Failed to fetch data for {ticker} from Stooq.")
