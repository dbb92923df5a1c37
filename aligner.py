# aligner.py
'''
Historical table alignment.

What this module provides:
   1) merge(tables)                   -> tables on the common date axis
   2) sub_range(table, begin, end)    -> rows with begin <= date <= end
   3) adjust_with_reinvestment(table) -> dividend-reinvested total-return table

Every function returns new HistTable objects; inputs are never modified.
'''

import pandas as pd
from loguru import logger

from errors import AlignmentError, RangeError
from hist_table import HistTable, to_date


# ---------- 1) merge onto the date intersection ----------

def merge(tables) -> list[HistTable]:
    '''
    Restrict every table to the dates present in ALL tables.

    Input:
        tables : sequence of HistTable (one per ticker, independently dated)
    Output:
        list of HistTable in the same order, identical date axes, so that
        row i of every table refers to the same trading day
    Raises:
        AlignmentError if no tables, a table is empty, or no common date.
    '''
    tables = list(tables)
    if len(tables) == 0:
        raise AlignmentError("Need at least one table to merge.")
    for t in tables:
        if len(t) == 0:
            raise AlignmentError(f"No historical data for {t.ticker}.")

    common_idx = pd.DatetimeIndex(tables[0].dates())
    for t in tables[1:]:
        common_idx = common_idx.intersection(pd.DatetimeIndex(t.dates()))

    if len(common_idx) == 0:
        tickers = ", ".join(t.ticker for t in tables)
        raise AlignmentError(f"Tables share no common trading dates: {tickers}.")

    keep = set(to_date(ts) for ts in common_idx)
    merged = []
    for t in tables:
        rows = [r for r in t.rows if r.date in keep]
        if len(rows) != len(t):
            logger.debug(f"merge: {t.ticker} {len(t)} -> {len(rows)} rows")
        merged.append(t.with_rows(rows))

    logger.info(
        f"Merged {len(tables)} tables on {len(keep)} common dates "
        f"({merged[0].first_date()} -> {merged[0].last_date()})"
    )
    return merged


# ---------- 2) date window ----------

def sub_range(table: HistTable, begin, end) -> HistTable:
    '''
    Rows with begin <= date <= end, in original order.

    Whether begin/end make sense for the data on hand is left to the caller;
    only an inverted or empty window is rejected.
    '''
    b = to_date(begin)
    e = to_date(end)
    if b > e:
        raise RangeError(f"begin ({b}) is after end ({e}).")

    rows = [r for r in table.rows if b <= r.date <= e]
    if len(rows) == 0:
        raise RangeError(f"{table.ticker}: no rows between {b} and {e}.")
    return table.with_rows(rows)


# ---------- 3) dividend reinvestment ----------

def adjust_with_reinvestment(table: HistTable) -> HistTable:
    '''
    Convert raw prices into a total-return series.

    Each cash dividend buys more of the same instrument at the ex-date close:
        shares *= 1 + dividend / close
    and every row's OHLC is multiplied by the share count held at its close.
    Output rows carry dividend = 0, so adjusting twice changes nothing.
    '''
    shares = 1.0
    rows = []
    for r in table.rows:
        if r.dividend != 0.0:
            if r.close <= 0.0:
                raise ValueError(f"{table.ticker} {r.date}: close must be > 0 to reinvest.")
            shares *= 1.0 + r.dividend / r.close
        rows.append(r.scaled(shares))

    if shares != 1.0:
        logger.debug(f"{table.ticker}: reinvestment factor {shares:.6f}")
    return table.with_rows(rows)
