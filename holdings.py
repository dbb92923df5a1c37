# holdings.py
'''
Portfolio of (ticker, weight) items and the operations that fetch data
for it and aggregate over it.

Every operation re-fetches its tables from the client:
    fetch -> merge -> [sub_range] -> adjust_with_reinvestment -> aggregate
Sub-ranging always happens BEFORE the reinvestment adjustment, so only
dividends inside the window are reinvested.
'''

from dataclasses import dataclass
import numpy as np
from loguru import logger

import aligner
from data_io import load_holdings
from errors import DimensionMismatchError
from optimizer import mean_variance_weights
from portfolio import (
    market_cap_aggregate,
    earnings_aggregate,
    revenue_aggregate,
    portfolio_total_return,
    total_log_return,
    price_matrix,
    simple_returns_from_prices,
    portfolio_returns,
    wealth_path_from_returns,
    compute_stats,
)


@dataclass(frozen=True)
class Item:
    ticker: str
    weight: float


@dataclass
class BacktestResult:
    dates: list
    tickers: list
    weights: np.ndarray
    prices: np.ndarray      # (T, N) reinvested closes
    returns: np.ndarray     # (T-1,) portfolio returns
    wealth: np.ndarray      # (T,)
    stats: dict
    initial_capital: float
    rebalance: bool


class Portfolio:
    def __init__(self, client=None, items=()):
        self.client = client
        self._items: list[Item] = []
        for it in items:
            self.add(it)

    @classmethod
    def from_holdings_csv(cls, path: str, client=None) -> "Portfolio":
        p = cls(client)
        for ticker, weight in load_holdings(path):
            p.add(Item(ticker, weight))
        logger.info(f"Loaded {len(p)} holdings from {path}")
        return p

    def add(self, item: Item) -> None:
        self._items.append(item)

    @property
    def items(self) -> tuple:
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    def __repr__(self) -> str:
        inner = ", ".join(f"({it.ticker}, {it.weight:.4f})" for it in self._items)
        return f"Portfolio([{inner}])"

    def tickers(self) -> list[str]:
        return [it.ticker for it in self._items]

    def weights(self) -> np.ndarray:
        return np.array([it.weight for it in self._items], dtype=float)

    # ---------- quote aggregates ----------

    def market_cap(self) -> float:
        return market_cap_aggregate(self.client, self.tickers(), self.weights())

    def earnings(self) -> float:
        return earnings_aggregate(self.client, self.tickers(), self.weights())

    def revenue(self) -> float:
        return revenue_aggregate(self.client, self.tickers(), self.weights())

    # ---------- table preparation ----------

    def tables(self) -> list:
        '''One raw table per item, in item order.'''
        return [self.client.historical_prices(it.ticker) for it in self._items]

    def prepared_tables(self, begin=None, end=None) -> list:
        '''merge -> optional sub_range -> reinvestment adjustment.'''
        tables = aligner.merge(self.tables())
        if begin is not None or end is not None:
            if begin is None or end is None:
                raise ValueError("Give both begin and end, or neither.")
            tables = [aligner.sub_range(t, begin, end) for t in tables]
        return [aligner.adjust_with_reinvestment(t) for t in tables]

    # ---------- returns ----------

    def total_return(self, begin=None, end=None) -> float:
        '''Weighted dividend-reinvested total return, whole history or [begin, end].'''
        tables = self.prepared_tables(begin, end)
        return portfolio_total_return(tables, self.weights())

    def markowitz_optimize(self, begin, end, optimizer=mean_variance_weights) -> "Portfolio":
        '''
        New portfolio with the same tickers and weights chosen by optimizer.

        optimizer(tables, target) receives the prepared tables and the
        absolute total log return of this portfolio over [begin, end].
        '''
        tables = self.prepared_tables(begin, end)
        target = abs(total_log_return(tables, self.weights()))
        return reassign_weights(self, optimizer(tables, target))

    def backtest(self, begin, end, initial_capital=10000.0, rebalance=True) -> BacktestResult:
        '''Constant-weight backtest over [begin, end] on reinvested prices.'''
        tables = self.prepared_tables(begin, end)
        w = self.weights()
        P = price_matrix(tables)
        r_p = portfolio_returns(simple_returns_from_prices(P), w, rebalance=rebalance)
        wealth = wealth_path_from_returns(r_p, initial_capital=initial_capital)
        return BacktestResult(
            dates=tables[0].dates(),
            tickers=self.tickers(),
            weights=w,
            prices=P,
            returns=r_p,
            wealth=wealth,
            stats=compute_stats(wealth, r_p),
            initial_capital=float(initial_capital),
            rebalance=bool(rebalance),
        )


def reassign_weights(portfolio: Portfolio, weights) -> Portfolio:
    '''Same tickers in the same order with new weights; same client.'''
    w = np.asarray(weights, dtype=float).ravel()
    if w.shape[0] != len(portfolio):
        raise DimensionMismatchError(
            f"got {w.shape[0]} weights for {len(portfolio)} items."
        )
    ret = Portfolio(portfolio.client)
    for it, x in zip(portfolio, w):
        ret.add(Item(it.ticker, float(x)))
    return ret
