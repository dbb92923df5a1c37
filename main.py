# main.py
'''
Portfolio Analytics: main entry

Flow:
  1) Interactive inputs: holdings CSV (or tickers with equal weights)
  2) Fetch daily history (Stooq + Yahoo dividends), cached under ./data
  3) Default window: the last year of the common history; user may override
  4) Dividend-reinvested total return (window and full history)
  5) Optional: weighted market cap / earnings / revenue (Yahoo quotes)
  6) Mean-variance weight reassignment over the window
  7) Backtest with initial capital and rebalance choice -> report files

Run:
    $ python3 main.py
'''

import os
import sys
from loguru import logger

import get_data as gd
import aligner
from hist_table import ISO_FMT, subtract_years
from holdings import Item, Portfolio
from errors import OptimizationError
from portfolio import ask_initial_capital, ask_rebalance
import report

# ---------------------------------------------------------------
DEFAULT_HOLDINGS = "DIA_All_Holdings.csv"
DEFAULT_LOOKBACK_YEARS = 1
REPORT_DIR = "outputs"
LOG_LEVEL = os.environ.get("PORTFOLIO_LOG_LEVEL", "INFO")
# ---------------------------------------------------------------


# --------------------------- helpers ---------------------------

def setup_logging(level: str = LOG_LEVEL) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level,
               format="<green>{time:HH:mm:ss}</green> | <level>{level: <7}</level> | {message}")


def print_header() -> None:
    print("=== Portfolio Analytics ===\n")


def ask_yes_no(prompt: str, default: bool) -> bool:
    yn = "y" if default else "n"
    while True:
        raw = input(f"{prompt} (y/n) [Enter = default: {yn}]: ").strip().lower()
        if raw == "":
            return default
        if raw in ("y", "yes"):
            return True
        if raw in ("n", "no"):
            return False
        print("Please answer with 'y' or 'n'.")


def ask_portfolio(client) -> Portfolio:
    '''Holdings CSV path, or Enter to type tickers (equal weights).'''
    while True:
        raw = input(
            f"Holdings CSV [Enter = type tickers; e.g. {DEFAULT_HOLDINGS}]: "
        ).strip()
        if raw == "":
            tickers = gd.ask_tickers(gd.DEFAULT_TICKERS)
            n = len(tickers)
            return Portfolio(client, [Item(t, 1.0 / n) for t in tickers])
        if not os.path.exists(raw):
            print(f"Error: file not found: {raw}")
            continue
        try:
            return Portfolio.from_holdings_csv(raw, client)
        except ValueError as e:
            print(f"Error: {e}")


def fmt_pct(x: float) -> str:
    return f"{x:.2%}"


# ------------------------------ main ------------------------------

def main() -> None:
    setup_logging()
    print_header()

    client = gd.MarketDataClient(cache_dir=gd.OUTDIR)
    p = ask_portfolio(client)
    print(f"Holdings: {len(p)}  (weight sum = {p.weights().sum():.4f})\n")

    # ---- default window: last year of the common history ----
    first = aligner.merge(p.tables())[0]
    end_default = first.last_date()
    begin_default = subtract_years(end_default, DEFAULT_LOOKBACK_YEARS)
    while True:
        begin = gd.ask_date("Begin date (YYYY-MM-DD)", begin_default.strftime(ISO_FMT))
        end = gd.ask_date("End date   (YYYY-MM-DD)", end_default.strftime(ISO_FMT))
        if begin <= end:
            break
        print("Error: begin date must be <= end date. Please re-enter.\n")

    window = aligner.sub_range(first, begin, end)
    print(f"\n{first.ticker} in window: {len(window)} rows "
          f"({window.first_date()} -> {window.last_date()})")

    # ---- total returns ----
    print("\n=== Total Return (dividends reinvested) ===")
    print(f"Window {begin} -> {end} : {fmt_pct(p.total_return(begin, end))}")
    print(f"Full common history    : {fmt_pct(p.total_return())}")

    # ---- fundamentals ----
    if ask_yes_no("\nFetch weighted fundamentals?", default=False):
        print("\n=== Weighted Fundamentals ===")
        print(f"Market Cap : {p.market_cap():,.0f}")
        print(f"Earnings   : {p.earnings():,.0f}")
        print(f"Revenue    : {p.revenue():,.0f}")

    # ---- mean-variance reassignment ----
    print("\n=== Mean-Variance Weights ===")
    try:
        opt = p.markowitz_optimize(begin, end)
    except OptimizationError as e:
        print(f"Skipped: {e}")
    else:
        for old, new in zip(p, opt):
            print(f"  {old.ticker:<8} {old.weight:8.4f} -> {new.weight:8.4f}")
        print(f"Optimized window return: {fmt_pct(opt.total_return(begin, end))}")

    # ---- backtest & report ----
    print("")
    c0 = ask_initial_capital()
    reb = ask_rebalance()
    result = p.backtest(begin, end, initial_capital=c0, rebalance=reb)
    out_paths = report.generate_report(result, outdir=REPORT_DIR)

    print("\n" + "\n".join(report.summary_lines(result)))
    print("\n=== Done. Files written ===")
    for key, value in out_paths.items():
        print(f"- {key}: {value}")
    print("")


# start
if __name__ == "__main__":
    main()
