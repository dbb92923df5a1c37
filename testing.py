'''
Unit tests for Portfolio Analytics.
Run:
    python3 testing.py
'''

import os
import unittest
import tempfile
from types import SimpleNamespace
from unittest import mock
from datetime import date, datetime, timedelta
import numpy as np
import pandas as pd
from loguru import logger

# modules under test
import aligner
import get_data
from errors import (
    AlignmentError,
    RangeError,
    InsufficientDataError,
    DimensionMismatchError,
)
from hist_table import HistRow, HistTable, subtract_years
from holdings import Item, Portfolio, reassign_weights
from get_data import MarketDataClient, Quote, parse_tickers
from data_io import load_holdings, load_hist_csv, write_hist_csv
from optimizer import mean_variance_weights
from portfolio import (
    total_return,
    weighted_linear_combination,
    check_weight_sum,
    portfolio_total_return,
    market_cap_aggregate,
    earnings_aggregate,
    revenue_aggregate,
    simple_returns_from_prices,
    portfolio_returns,
    wealth_path_from_returns,
    max_drawdown,
    compute_stats,
)


# ------------------------- fixtures -------------------------

D0 = date(2024, 1, 2)


def make_table(ticker, closes, start=D0, dividends=None, skip=()):
    '''Table with one row per day from `start`; day offsets in `skip` are left out.'''
    dividends = dividends or {}
    rows = []
    for i, c in enumerate(closes):
        if i in skip:
            continue
        rows.append(HistRow(start + timedelta(days=i), c, c, c, c, 1000.0, dividends.get(i, 0.0)))
    return HistTable(ticker, tuple(rows))


class StubClient:
    '''In-memory stand-in for get_data.MarketDataClient.'''

    def __init__(self, tables=None, quotes=None):
        self.table_map = tables or {}
        self.quote_map = quotes or {}
        self.quote_calls = 0

    def quotes(self, tickers):
        self.quote_calls += 1
        return {t: self.quote_map[t] for t in tickers}

    def historical_prices(self, ticker):
        return self.table_map[ticker]


# ------------------------- aggregator math -------------------------

class TestAggregator(unittest.TestCase):
    def test_total_return(self):
        self.assertAlmostEqual(total_return([100.0, 110.0, 121.0]), 0.21, places=12)

    def test_total_return_single_point_negative(self):
        with self.assertRaises(InsufficientDataError):
            total_return([100.0])

    def test_linear_combination_half_half(self):
        r1, r2 = 0.12, -0.04
        self.assertAlmostEqual(weighted_linear_combination([r1, r2], [0.5, 0.5]), (r1 + r2) / 2)

    def test_linear_combination_mismatch_negative(self):
        with self.assertRaises(DimensionMismatchError):
            weighted_linear_combination([0.1, 0.2], [1.0])

    def test_weight_sum_off_is_not_rejected(self):
        # only logged, never raised
        messages = []
        sink = logger.add(messages.append, level="WARNING", format="{message}")
        try:
            total = check_weight_sum([0.5, 0.4])
            check_weight_sum([0.5, 0.5])
        finally:
            logger.remove(sink)
        self.assertAlmostEqual(total, 0.9)
        self.assertEqual(len(messages), 1)
        self.assertIn("0.900000", messages[0])

    def test_market_cap_aggregate_weighted_sum(self):
        client = StubClient(quotes={
            "A": Quote("A", 100.0, 10.0, 50.0),
            "B": Quote("B", 300.0, 20.0, 70.0),
        })
        got = market_cap_aggregate(client, ["A", "B"], [0.25, 0.75])
        self.assertAlmostEqual(got, 0.25 * 100.0 + 0.75 * 300.0)
        self.assertEqual(client.quote_calls, 1)

    def test_earnings_and_revenue_aggregates(self):
        client = StubClient(quotes={
            "A": Quote("A", 100.0, 10.0, 50.0),
            "B": Quote("B", 300.0, 20.0, 70.0),
        })
        self.assertAlmostEqual(earnings_aggregate(client, ["A", "B"], [0.25, 0.75]), 0.25 * 10.0 + 0.75 * 20.0)
        self.assertAlmostEqual(revenue_aggregate(client, ["A", "B"], [0.25, 0.75]), 0.25 * 50.0 + 0.75 * 70.0)
        self.assertEqual(client.quote_calls, 2)

    def test_quote_errors_propagate_unchanged(self):
        err = IOError("quote service down")

        class Boom(StubClient):
            def quotes(self, tickers):
                raise err

        for agg in (market_cap_aggregate, earnings_aggregate, revenue_aggregate):
            with self.assertRaises(IOError) as ctx:
                agg(Boom(), ["A"], [1.0])
            self.assertIs(ctx.exception, err)

    def test_portfolio_total_return_mismatch_negative(self):
        tables = [make_table("A", [1.0, 2.0])]
        with self.assertRaises(DimensionMismatchError):
            portfolio_total_return(tables, [0.5, 0.5])


# ------------------------- aligner -------------------------

class TestAligner(unittest.TestCase):
    def test_merge_intersects_dates(self):
        a = make_table("A", [1, 2, 3, 4], skip=(1,))
        b = make_table("B", [5, 6, 7, 8], skip=(3,))
        ma, mb = aligner.merge([a, b])
        self.assertEqual(ma.dates(), [D0, D0 + timedelta(days=2)])
        self.assertEqual(ma.dates(), mb.dates())
        self.assertEqual(ma.close_array().tolist(), [1.0, 3.0])
        self.assertEqual(mb.close_array().tolist(), [5.0, 7.0])
        # inputs untouched
        self.assertEqual(len(a), 3)

    def test_merge_no_common_dates_negative(self):
        a = make_table("A", [1, 2])
        b = make_table("B", [1, 2], start=D0 + timedelta(days=10))
        with self.assertRaises(AlignmentError):
            aligner.merge([a, b])

    def test_merge_empty_table_negative(self):
        with self.assertRaises(AlignmentError):
            aligner.merge([make_table("A", [1, 2]), HistTable("B", ())])

    def test_sub_range_inclusive_and_ordered(self):
        t = make_table("A", [10, 11, 12, 13, 14])
        sub = aligner.sub_range(t, D0 + timedelta(days=1), D0 + timedelta(days=3))
        self.assertEqual(sub.close_array().tolist(), [11.0, 12.0, 13.0])
        for r in sub:
            self.assertTrue(D0 + timedelta(days=1) <= r.date <= D0 + timedelta(days=3))

    def test_sub_range_accepts_iso_strings(self):
        t = make_table("A", [10, 11, 12])
        sub = aligner.sub_range(t, "2024-01-03", "2024-01-04")
        self.assertEqual(len(sub), 2)

    def test_sub_range_empty_window_negative(self):
        t = make_table("A", [10, 11, 12])
        with self.assertRaises(RangeError):
            aligner.sub_range(t, date(2023, 1, 1), date(2023, 6, 1))

    def test_sub_range_inverted_negative(self):
        t = make_table("A", [10, 11, 12])
        with self.assertRaises(RangeError):
            aligner.sub_range(t, D0 + timedelta(days=2), D0)

    def test_adjust_no_dividends_idempotent(self):
        t = make_table("A", [100, 101, 99, 104])
        once = aligner.adjust_with_reinvestment(t)
        twice = aligner.adjust_with_reinvestment(once)
        self.assertEqual(once.close_array().tolist(), t.close_array().tolist())
        self.assertEqual(twice.close_array().tolist(), once.close_array().tolist())

    def test_adjust_reinvests_dividend(self):
        # $2 dividend at a $100 close -> 1.02 shares from that day on
        t = make_table("A", [100, 100, 100, 110], dividends={2: 2.0})
        adj = aligner.adjust_with_reinvestment(t)
        self.assertTrue(np.allclose(adj.close_array(), [100.0, 100.0, 102.0, 112.2]))
        self.assertTrue(np.all(adj.dividend_array() == 0.0))
        # original table unchanged
        self.assertEqual(t.rows[2].dividend, 2.0)
        self.assertEqual(t.rows[3].close, 110.0)

    def test_unsorted_rows_rejected(self):
        with self.assertRaises(ValueError):
            HistTable("A", (HistRow(D0, 1, 1, 1, 1), HistRow(D0, 1, 1, 1, 1)))


# ------------------------- portfolio orchestration -------------------------

class TestPortfolio(unittest.TestCase):
    def setUp(self):
        self.client = StubClient(tables={
            "A": make_table("A", [100.0, 110.0, 121.0]),
            "B": make_table("B", [50.0, 55.0, 60.5]),
        })
        self.p = Portfolio(self.client, [Item("A", 0.5), Item("B", 0.5)])

    def test_total_return_end_to_end(self):
        self.assertAlmostEqual(self.p.total_return(), 0.21, places=12)

    def test_total_return_window(self):
        r = self.p.total_return(D0, D0 + timedelta(days=1))
        self.assertAlmostEqual(r, 0.10, places=12)

    def test_window_only_reinvests_dividends_inside(self):
        # dividend on day 0 lies outside the window [day 1, day 2]
        client = StubClient(tables={"A": make_table("A", [100.0, 100.0, 110.0], dividends={0: 5.0})})
        p = Portfolio(client, [Item("A", 1.0)])
        self.assertAlmostEqual(p.total_return(D0 + timedelta(days=1), D0 + timedelta(days=2)), 0.10)

    def test_reassign_weights_keeps_order(self):
        p = Portfolio(self.client, [Item("A", 0.3), Item("B", 0.7)])
        q = reassign_weights(p, [0.4, 0.6])
        self.assertEqual([(it.ticker, it.weight) for it in q], [("A", 0.4), ("B", 0.6)])
        # source untouched
        self.assertEqual([it.weight for it in p], [0.3, 0.7])

    def test_reassign_weights_mismatch_negative(self):
        with self.assertRaises(DimensionMismatchError):
            reassign_weights(self.p, [1.0])

    def test_markowitz_passes_optimizer_output_through(self):
        seen = {}

        def fake_optimizer(tables, target):
            seen["target"] = target
            seen["n"] = len(tables)
            return [0.9, 0.1]

        q = self.p.markowitz_optimize(D0, D0 + timedelta(days=2), optimizer=fake_optimizer)
        self.assertEqual([it.weight for it in q], [0.9, 0.1])
        self.assertEqual(q.tickers(), ["A", "B"])
        self.assertEqual(seen["n"], 2)
        self.assertAlmostEqual(seen["target"], np.log(1.21))

    def test_quote_aggregates_from_portfolio(self):
        client = StubClient(quotes={
            "A": Quote("A", 100.0, 10.0, 50.0),
            "B": Quote("B", 300.0, 20.0, 70.0),
        })
        p = Portfolio(client, [Item("A", 0.5), Item("B", 0.5)])
        self.assertAlmostEqual(p.market_cap(), 200.0)
        self.assertAlmostEqual(p.earnings(), 15.0)
        self.assertAlmostEqual(p.revenue(), 60.0)

    def test_client_errors_propagate_unchanged(self):
        class Boom(StubClient):
            def historical_prices(self, ticker):
                raise IOError("network down")

        p = Portfolio(Boom(), [Item("A", 1.0)])
        with self.assertRaises(IOError):
            p.total_return()

    def test_backtest_wealth_path(self):
        result = self.p.backtest(D0, D0 + timedelta(days=2), initial_capital=1000.0)
        self.assertTrue(np.allclose(result.wealth, [1000.0, 1100.0, 1210.0]))
        self.assertEqual(result.dates[0], D0)
        self.assertAlmostEqual(result.stats["max_drawdown"], 0.0)


# ------------------------- optimizer -------------------------

class TestOptimizer(unittest.TestCase):
    def test_prefers_low_variance_asset_that_meets_target(self):
        steady = make_table("S", [100.0 * 1.001 ** i for i in range(30)])
        noisy = make_table("N", [100.0 * (1.05 if i % 2 else 0.96) * 1.001 ** i for i in range(30)])
        w = mean_variance_weights([steady, noisy], target=0.0)
        self.assertAlmostEqual(float(np.sum(w)), 1.0, places=6)
        self.assertGreater(w[0], 0.9)
        self.assertTrue(np.all(w >= 0.0))


# ------------------------- backtest math -------------------------

class TestBacktestMath(unittest.TestCase):
    def test_simple_returns_positive(self):
        P = np.array([[100.0, 200.0],
                      [110.0, 220.0],
                      [121.0, 242.0]], dtype=float)
        r = simple_returns_from_prices(P)
        self.assertTrue(np.allclose(r, np.full((2, 2), 0.10)))

    def test_portfolio_returns_rebalance_true(self):
        R = np.array([[0.10, 0.20]], dtype=float)
        rp = portfolio_returns(R, [0.25, 0.75], rebalance=True)
        self.assertAlmostEqual(float(rp[0]), 0.10 * 0.25 + 0.20 * 0.75, places=10)

    def test_portfolio_returns_buy_and_hold_drift(self):
        R = np.array([[1.0, 0.0], [0.0, 1.0]], dtype=float)
        rp = portfolio_returns(R, [0.5, 0.5], rebalance=False)
        # after period 1 the split is 2/3 : 1/3
        self.assertTrue(np.allclose(rp, [0.5, 1.0 / 3.0]))

    def test_portfolio_returns_buy_and_hold_total_loss(self):
        # weights need not sum to 1; a wipe-out loses exactly their sum
        R = np.array([[-1.0, -1.0], [0.5, 0.5]], dtype=float)
        rp = portfolio_returns(R, [0.5, 0.25], rebalance=False)
        self.assertTrue(np.allclose(rp, [-0.75, 0.0]))

    def test_portfolio_returns_weight_length_mismatch(self):
        R = np.array([[0.02, 0.01]], dtype=float)
        with self.assertRaises(DimensionMismatchError):
            portfolio_returns(R, [1.0], rebalance=True)

    def test_wealth_path_edge_single_period(self):
        W = wealth_path_from_returns(np.array([0.10]), initial_capital=100.0)
        self.assertTrue(np.allclose(W, np.array([100.0, 110.0])))

    def test_max_drawdown_corner(self):
        W = np.array([100.0, 110.0, 120.0, 90.0, 95.0], dtype=float)
        self.assertAlmostEqual(max_drawdown(W), -0.25, places=6)

    def test_compute_stats_rf_length_mismatch_negative(self):
        W = np.array([100.0, 105.0, 110.25], dtype=float)
        rp = np.array([0.05, 0.05], dtype=float)
        with self.assertRaises(DimensionMismatchError):
            compute_stats(W, rp, np.array([0.0]), freq=12)


# --------------------------- data I/O ---------------------------

class TestDataIO(unittest.TestCase):
    '''Use temporary CSV files for holdings and history tables.'''

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmp.cleanup()

    def write(self, name, text):
        path = os.path.join(self.tmp.name, name)
        with open(path, "w") as f:
            f.write(text)
        return path

    def test_load_holdings_percent_to_fraction(self):
        path = self.write("holdings.csv", (
            "Index,Ticker,Weight\n"
            "1,aapl,25.5\n"
            "\n"
            "2,MSFT,74.5%\n"
        ))
        self.assertEqual(load_holdings(path), [("AAPL", 0.255), ("MSFT", 0.745)])

    def test_portfolio_from_holdings_csv(self):
        path = self.write("holdings.csv", "Index,Ticker,Weight\n1,A,40\n2,B,60\n")
        p = Portfolio.from_holdings_csv(path)
        self.assertEqual(p.tickers(), ["A", "B"])
        self.assertTrue(np.allclose(p.weights(), [0.4, 0.6]))

    def test_load_holdings_bad_weight_negative(self):
        path = self.write("holdings.csv", "Index,Ticker,Weight\n1,A,abc\n")
        with self.assertRaises(ValueError):
            load_holdings(path)

    def test_hist_csv_keeps_dividends(self):
        t = make_table("A", [10.0, 11.0, 12.0], dividends={1: 0.25})
        path = os.path.join(self.tmp.name, "A.csv")
        write_hist_csv(t, path)
        back = load_hist_csv(path, "A")
        self.assertEqual(back.dates(), t.dates())
        self.assertEqual(back.dividend_array().tolist(), [0.0, 0.25, 0.0])

    def test_load_hist_csv_non_ascending_negative(self):
        path = self.write("bad.csv", (
            "Date,Open,High,Low,Close,Volume,Dividend\n"
            "2024-01-31,1,1,1,1,0,0\n"
            "2024-01-15,1,1,1,1,0,0\n"
        ))
        with self.assertRaises(ValueError):
            load_hist_csv(path, "A")



# --------------------------- market data client ---------------------------

class TestMarketDataClient(unittest.TestCase):
    '''Yahoo and Stooq are replaced with mocks; the CSV cache lives in a temp dir.'''

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.client = MarketDataClient(cache_dir=self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def write_cache(self, table, mtime=None):
        path = self.client.cache_path(table.ticker)
        write_hist_csv(table, path)
        if mtime is not None:
            ts = mtime.timestamp()
            os.utime(path, (ts, ts))
        return path

    def test_quotes_single_batch_maps_fields(self):
        infos = {
            "A": {"marketCap": 100, "netIncomeToCommon": 10, "totalRevenue": 50},
            "B": {"marketCap": 300, "netIncomeToCommon": 20, "totalRevenue": 70},
        }
        with mock.patch.object(get_data, "yf") as fake_yf:
            fake_yf.Tickers.return_value.tickers = {
                t: SimpleNamespace(info=info) for t, info in infos.items()
            }
            quotes = MarketDataClient().quotes(["A", "B", "A"])
        fake_yf.Tickers.assert_called_once_with("A B")
        self.assertEqual(quotes["A"], Quote("A", 100.0, 10.0, 50.0))
        self.assertEqual(quotes["B"], Quote("B", 300.0, 20.0, 70.0))

    def test_quotes_missing_field_negative(self):
        with mock.patch.object(get_data, "yf") as fake_yf:
            fake_yf.Tickers.return_value.tickers = {
                "A": SimpleNamespace(info={"marketCap": 100, "netIncomeToCommon": 10}),
            }
            with self.assertRaises(ValueError):
                MarketDataClient().quotes(["A"])

    def test_cached_history_is_sliced_to_window(self):
        rows = [
            HistRow(date(2010, 1, 4), 1, 1, 1, 1),
            HistRow(date(2010, 1, 6), 1, 1, 1, 1),
            HistRow(date(2024, 3, 1), 2, 2, 2, 2),
            HistRow(date(2024, 12, 31), 3, 3, 3, 3),
        ]
        self.write_cache(HistTable("A", tuple(rows)))
        with mock.patch.object(MarketDataClient, "fetch_history") as fetch:
            t = self.client.historical_prices("A", start="2024-01-01", end="2024-12-31")
        fetch.assert_not_called()
        self.assertEqual(t.dates(), [date(2024, 3, 1), date(2024, 12, 31)])

    def test_stale_cache_is_refetched(self):
        old = HistTable("A", (HistRow(date(2010, 1, 4), 1, 1, 1, 1),
                              HistRow(date(2010, 1, 6), 1, 1, 1, 1)))
        path = self.write_cache(old, mtime=datetime(2011, 1, 1))
        fresh = make_table("A", [10.0, 11.0, 12.0], start=date(2024, 1, 2))
        with mock.patch.object(MarketDataClient, "fetch_history", return_value=fresh) as fetch:
            t = self.client.historical_prices("A", start="2024-01-01", end="2024-01-03")
        fetch.assert_called_once()
        self.assertEqual(fetch.call_args[0][1], date(2000, 1, 1))
        self.assertEqual(t.dates(), [date(2024, 1, 2), date(2024, 1, 3)])
        # cache now holds the refreshed history
        self.assertEqual(load_hist_csv(path, "A").last_date(), date(2024, 1, 4))


class TestHelpers(unittest.TestCase):
    def test_from_frame_sorts_and_joins_dividends(self):
        # Stooq returns newest first; Yahoo dividends carry a tz-aware index
        idx = pd.DatetimeIndex(["2024-01-04", "2024-01-03", "2024-01-02"])
        df = pd.DataFrame({
            "Open": [3.0, 2.0, 1.0], "High": [3.0, 2.0, 1.0],
            "Low": [3.0, 2.0, 1.0], "Close": [3.0, 2.0, 1.0],
            "Volume": [30, 20, 10],
        }, index=idx)
        divs = pd.Series([0.5], index=pd.DatetimeIndex(["2024-01-03"]).tz_localize("America/New_York"))
        t = HistTable.from_frame("A", df, dividends=divs)
        self.assertEqual(t.dates(), [date(2024, 1, 2), date(2024, 1, 3), date(2024, 1, 4)])
        self.assertEqual(t.close_array().tolist(), [1.0, 2.0, 3.0])
        self.assertEqual(t.dividend_array().tolist(), [0.0, 0.5, 0.0])

    def test_subtract_years_leap_day(self):
        self.assertEqual(subtract_years(date(2024, 2, 29), 1), date(2023, 2, 28))
        self.assertEqual(subtract_years(date(2024, 6, 14), 1), date(2023, 6, 14))

    def test_parse_tickers_dedup_and_validate(self):
        self.assertEqual(parse_tickers(" aapl, msft ,AAPL,,"), ["AAPL", "MSFT"])
        with self.assertRaises(ValueError):
            parse_tickers("AA$PL")


if __name__ == "__main__":
    unittest.main()
