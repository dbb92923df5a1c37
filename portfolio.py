# portfolio.py
'''
Core portfolio math using NumPy

What this module provides:
   1) total_return(closes)                       -> (last - first) / first
   2) weighted_linear_combination(values, w)     -> sum(values[i] * w[i])
   3) portfolio_total_return(tables, weights)    -> weighted per-ticker total returns
   4) market_cap / earnings / revenue aggregates -> weighted quote fields
   5) backtest math: simple_returns_from_prices, portfolio_returns,
      wealth_path_from_returns, max_drawdown, compute_stats

Notes:
   - prices: 2D array shape (T, N) with T trading days and N assets (floats)
   - returns: 2D array shape (T-1, N) = day-over-day simple returns
   - weights: 1D array length N; expected to sum to ~1 but NOT enforced.
     A sum off by more than WEIGHT_SUM_TOLERANCE is only logged.
   - Daily data by default (freq=252).
   - The Portfolio class (items, fetching, orchestration) lives in
     holdings.py; this module holds only the math it calls.
'''

import math
import numpy as np
from loguru import logger

from errors import DimensionMismatchError, InsufficientDataError

WEIGHT_SUM_TOLERANCE = 1e-3
TRADING_DAYS = 252


# ---------- user input helpers ----------

def ask_initial_capital(default: float = 10000.0) -> float:
    '''
    Ask user for initial capital. Empty input(Enter) uses the default.

    Output:
        capital : float > 0
    '''
    while True:
        raw = input(f"Initial capital [Enter = default: {default}]: ").strip()
        if raw == "":
            return float(default)
        try:
            x = float(raw)
        except ValueError:
            print("Please enter a valid number.")
            continue
        if not np.isfinite(x) or x <= 0.0:
            print("Initial capital must be a positive finite number.")
            continue
        return float(x)


def ask_rebalance(default: bool = True) -> bool:
    '''Ask user whether to rebalance daily (y/n). Empty input(Enter) uses the default.'''
    if default:
        yn = "y"
    else:
        yn = "n"

    while True:
        raw = input(f"Daily rebalance? (y/n) [Enter = default: {yn}]: ").strip().lower()
        if raw == "":
            return bool(default)
        if raw in ("y", "yes"):
            return True
        if raw in ("n", "no"):
            return False
        print("Please answer with 'y' or 'n'.")


# ---------- helpers ----------

def as_2d_float(a):
    '''Convert to a 2D float NumPy array (copy), or raise ValueError.'''
    arr = np.array(a, dtype=float)
    if arr.ndim != 2:
        raise ValueError("Expected a 2D array (rows: time, cols: assets).")
    return arr


def as_1d_float(a):
    '''Convert to a 1D float NumPy array (copy), or raise ValueError.'''
    arr = np.array(a, dtype=float)
    if arr.ndim != 1:
        raise ValueError("Expected a 1D array.")
    return arr


# ---------- 1) total return ----------

def total_return(closes) -> float:
    '''
    Fractional price change over the series.

    Input:
        closes : 1D array-like of (dividend-adjusted) closes, ascending in time
    Output:
        (closes[-1] - closes[0]) / closes[0]
    '''
    c = as_1d_float(closes)
    if c.shape[0] < 2:
        raise InsufficientDataError(f"Need at least two prices, got {c.shape[0]}.")
    if c[0] == 0.0:
        raise ValueError("First price must be non-zero.")
    return float((c[-1] - c[0]) / c[0])


# ---------- 2) linear combination ----------

def weighted_linear_combination(values, weights) -> float:
    '''Sum of values[i] * weights[i]; both sequences must have the same length.'''
    v = as_1d_float(values)
    w = as_1d_float(weights)
    if v.shape[0] != w.shape[0]:
        raise DimensionMismatchError(
            f"values length ({v.shape[0]}) != weights length ({w.shape[0]})."
        )
    return float(np.dot(v, w))


def check_weight_sum(weights) -> float:
    '''Return the weight sum; log a warning when it is not ~1 (never raises on that).'''
    w = as_1d_float(weights)
    total = weighted_linear_combination(np.ones(w.shape[0]), w)
    if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
        logger.warning(f"Weights sum to {total:.6f}, not 1.")
    else:
        logger.debug(f"Weights sum to {total:.6f}")
    return total


# ---------- 3) portfolio total return ----------

def asset_total_returns(tables) -> np.ndarray:
    '''Total return of each table's close series.'''
    out = []
    for t in tables:
        try:
            out.append(total_return(t.close_array()))
        except InsufficientDataError as e:
            raise InsufficientDataError(f"{t.ticker}: {e}") from e
    return np.array(out, dtype=float)


def portfolio_total_return(tables, weights) -> float:
    '''
    Weighted total return of already aligned, adjusted tables.

    Input:
        tables  : sequence of HistTable, same order as weights
        weights : 1D array-like, length == len(tables)
    '''
    tables = list(tables)
    w = as_1d_float(weights)
    if len(tables) != w.shape[0]:
        raise DimensionMismatchError(
            f"tables ({len(tables)}) != weights ({w.shape[0]})."
        )
    check_weight_sum(w)
    return weighted_linear_combination(asset_total_returns(tables), w)


def total_log_return(tables, weights) -> float:
    '''
    log(1 + R) of the weighted portfolio total return R.

    Earlier versions passed the simple return R itself to the optimizer
    under this name; the optimizer now receives the log return.
    '''
    r = portfolio_total_return(tables, weights)
    if r <= -1.0:
        raise ValueError(f"Portfolio total return {r:.6f} has no log return.")
    return math.log1p(r)


# ---------- 4) quote aggregates ----------

def quote_aggregate(client, tickers, weights, field: str) -> float:
    '''
    Fetch quotes for all tickers in one batch and sum weight * quote.<field>.
    Client errors propagate unchanged.
    '''
    tickers = list(tickers)
    w = as_1d_float(weights)
    if len(tickers) != w.shape[0]:
        raise DimensionMismatchError(
            f"tickers ({len(tickers)}) != weights ({w.shape[0]})."
        )
    quotes = client.quotes(tickers)
    values = [float(getattr(quotes[t], field)) for t in tickers]
    return weighted_linear_combination(values, w)


def market_cap_aggregate(client, tickers, weights) -> float:
    return quote_aggregate(client, tickers, weights, "market_cap")


def earnings_aggregate(client, tickers, weights) -> float:
    return quote_aggregate(client, tickers, weights, "earnings")


def revenue_aggregate(client, tickers, weights) -> float:
    return quote_aggregate(client, tickers, weights, "revenue")


# ---------- 5) backtest: returns from prices ----------

def price_matrix(tables) -> np.ndarray:
    '''Stack aligned tables' closes into a (T, N) matrix.'''
    cols = [t.close_array() for t in tables]
    lengths = set(c.shape[0] for c in cols)
    if len(lengths) != 1:
        raise DimensionMismatchError("Tables are not aligned (different row counts).")
    return np.column_stack(cols)


def simple_returns_from_prices(prices):
    '''
    Compute simple period-over-period returns from price matrix.

    Input:
        prices : ndarray (T, N)  ascending in time
    Output:
        returns: ndarray (T-1, N)  where r[t, j] = prices[t+1, j]/prices[t, j] - 1
    '''
    P = as_2d_float(prices)
    T, N = P.shape
    if T < 2:
        raise InsufficientDataError("Need at least two rows to compute returns.")
    if np.any(P <= 0.0):
        raise ValueError("Prices must be > 0.")

    # vectorized percent change
    r = P[1:, :] / P[:-1, :] - 1.0
    return r


def portfolio_returns(returns, weights, rebalance=True):
    '''
    Compute portfolio period returns from asset returns and weights.

    Input:
        returns : ndarray (T-1, N) asset simple returns
        weights : ndarray (N,)
        rebalance: if True (default), same weights every period.
                   If False, buy-and-hold (weights drift with prices).
    Output:
        r_p : ndarray (T-1,) portfolio returns
    '''
    R = as_2d_float(returns)
    w = as_1d_float(weights)

    Tm1, N = R.shape
    if w.shape[0] != N:
        raise DimensionMismatchError(f"weights length ({w.shape[0]}) != number of assets ({N}).")

    if rebalance:
        return R @ w

    r_p = np.zeros(Tm1, dtype=float)
    # capital fractions, scaled so drift keeps the original gross exposure
    w_curr = w.copy()
    for t in range(Tm1):
        r_p[t] = float(np.sum(w_curr * R[t, :]))
        growth = (1.0 + R[t, :]) * w_curr
        total = float(np.sum(growth))
        if total == 0.0:
            # everything lost; r_p[t] already holds -sum(w_curr)
            r_p[t + 1:] = 0.0
            break
        w_curr = growth / total * float(np.sum(w))
    return r_p


def wealth_path_from_returns(r_p, initial_capital=10000.0):
    '''
    Convert portfolio returns into a wealth (value) path.

    Output:
        wealth : ndarray (T,) where wealth[0] = initial_capital
                 and wealth[t] = wealth[t-1] * (1 + r_p[t-1]) for t>=1
    '''
    rp = as_1d_float(r_p)
    if initial_capital <= 0.0:
        raise ValueError("initial_capital must be > 0.")

    Tm1 = rp.shape[0]
    wealth = np.zeros(Tm1 + 1, dtype=float)
    wealth[0] = float(initial_capital)
    for t in range(1, Tm1 + 1):
        wealth[t] = wealth[t - 1] * (1.0 + rp[t - 1])
    return wealth


def max_drawdown(wealth):
    '''
    Compute maximum drawdown from a wealth path.
    Output:
        max_dd : float (non-positive), e.g., -0.25 means -25%
    '''
    W = as_1d_float(wealth)
    if W.shape[0] < 2:
        return 0.0
    peak = W[0]
    max_dd = 0.0
    for t in range(1, W.shape[0]):
        if W[t] > peak:
            peak = W[t]
            continue
        dd = W[t] / peak - 1.0
        if dd < max_dd:
            max_dd = dd
    return float(max_dd)


def compute_stats(wealth, r_p, rf=None, freq=TRADING_DAYS):
    '''
    Compute common performance statistics.

    Input:
        wealth : ndarray (T,)  wealth path from wealth_path_from_returns
        r_p    : ndarray (T-1,) portfolio period returns
        rf     : ndarray (T-1,) risk-free period returns, or None for 0
        freq   : periods per year (252 for daily)
    Output:
        stats : dict with keys 'final', 'CAGR', 'vol_ann', 'sharpe', 'max_drawdown'
    '''
    W = as_1d_float(wealth)
    T = W.shape[0]
    if T < 2:
        raise InsufficientDataError("Wealth path must have at least 2 points.")

    years = (T - 1) / float(freq)
    final_val = float(W[-1])
    cagr = float((final_val / W[0]) ** (1.0 / years) - 1.0)

    rp = as_1d_float(r_p)
    if rf is None:
        rf_arr = np.zeros(rp.shape[0], dtype=float)
    else:
        rf_arr = as_1d_float(rf)
    if rf_arr.shape[0] != rp.shape[0]:
        raise DimensionMismatchError("Length of rf must match returns length.")
    ex = rp - rf_arr

    # volatility: sample std * sqrt(freq)
    if rp.shape[0] >= 2:
        vol_ann = float(np.std(rp, ddof=1) * np.sqrt(freq))
    else:
        vol_ann = 0.0

    # sharpe ratio: mean(excess) * sqrt(freq) / std(raw)
    if vol_ann > 0.0:
        sharpe = float(np.mean(ex) * np.sqrt(freq) / np.std(rp, ddof=1))
    else:
        sharpe = 0.0

    return {
        "final": final_val,
        "CAGR": cagr,
        "vol_ann": vol_ann,
        "sharpe": sharpe,
        "max_drawdown": max_drawdown(W),
    }
