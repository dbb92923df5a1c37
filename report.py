# report.py
'''
Produce plots and a text summary for a portfolio backtest.

Outputs (under ./outputs by default):
  - summary.txt
  - portfolio_path.csv           # two columns: Date, Wealth
  - prices_index_plot.png        # all assets indexed to 100 + portfolio index
  - portfolio_wealth.png         # wealth path
  - portfolio_drawdown.png       # drawdown series
'''
import os
import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from hist_table import ISO_FMT

# ---------------------------------------------------------------
DEFAULT_OUTDIR = "outputs"
MAX_LEGEND_ASSETS = 10   # holdings files can list dozens of tickers


# -------------------------- helpers ----------------------------

def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def drawdown_series(wealth: np.ndarray) -> np.ndarray:
    '''Return drawdown series (<=0): W/rolling_max - 1.'''
    W = np.asarray(wealth, dtype=float)
    if W.ndim != 1 or W.size < 2:
        return np.zeros_like(W, dtype=float)

    rollmax = np.maximum.accumulate(W)
    return W / rollmax - 1.0


def save_prices_index_plot(prices, wealth, dates, tickers, path: str) -> None:
    '''Plot each asset indexed to 100 at t0, plus portfolio wealth indexed to 100.'''
    P = np.asarray(prices, dtype=float)
    W = np.asarray(wealth, dtype=float)
    if P.ndim != 2 or W.ndim != 1:
        raise ValueError("prices must be (T,N) and wealth must be (T,).")
    T, N = P.shape
    if W.shape[0] != T or len(dates) != T or len(tickers) != N:
        raise ValueError("Inconsistent lengths among prices/wealth/dates/tickers.")

    idx_prices = (P / P[0, :].reshape(1, -1)) * 100.0
    idx_port = (W / W[0]) * 100.0

    plt.figure(figsize=(9.5, 5.3), dpi=140)
    for j in range(N):
        label = tickers[j] if j < MAX_LEGEND_ASSETS else None
        plt.plot(dates, idx_prices[:, j], linewidth=1.0, alpha=0.7, label=label)
    plt.plot(dates, idx_port, linewidth=2.2, label="PORTFOLIO", color="black")

    plt.title("Indexed Total Return (Start = 100, dividends reinvested)")
    plt.ylabel("Index (=100 at start)")
    plt.grid(True, linestyle=':', alpha=0.6)
    plt.legend(ncol=min(5, min(N, MAX_LEGEND_ASSETS) + 1), fontsize=8)
    plt.tight_layout()
    plt.savefig(path)
    plt.close()


def save_wealth_plot(wealth, dates, path: str) -> None:
    plt.figure(figsize=(9.5, 4.8), dpi=140)
    plt.plot(dates, np.asarray(wealth, dtype=float), linewidth=2.0)
    plt.title("Portfolio Wealth")
    plt.ylabel("Wealth ($)")
    plt.grid(True, linestyle=':', alpha=0.6)
    plt.tight_layout()
    plt.savefig(path)
    plt.close()


def save_drawdown_plot(wealth, dates, path: str) -> None:
    dd = drawdown_series(wealth)
    plt.figure(figsize=(9.5, 3.8), dpi=140)
    plt.plot(dates, dd, linewidth=1.6)
    plt.fill_between(dates, dd, 0, alpha=0.25)
    plt.title("Portfolio Drawdown")
    plt.ylabel("Drawdown")
    plt.grid(True, linestyle=':', alpha=0.6)
    plt.tight_layout()
    plt.savefig(path)
    plt.close()


def write_portfolio_path_csv(dates, wealth, path: str) -> None:
    with open(path, "w") as f:
        f.write("Date,Wealth\n")
        for d, w in zip(dates, wealth):
            f.write(f"{d.strftime(ISO_FMT)},{w:.6f}\n")


def weights_as_str(tickers: list[str], weights: np.ndarray) -> str:
    parts = []
    for t, w in zip(tickers, weights):
        parts.append(f"{t}:{float(w):.4f}")
    return "  ".join(parts)


# decimal to percentage
def fmt_pct(x: float) -> str:
    return f"{x:.2%}"


# us dollar
def fmt_dollar(x: float) -> str:
    return f"${x:,.2f}"


def summary_lines(result) -> list[str]:
    stats = result.stats
    start, end = result.dates[0].strftime(ISO_FMT), result.dates[-1].strftime(ISO_FMT)
    w_sum = float(np.sum(result.weights))
    lines = []
    lines.append("=== Portfolio Report ===")
    lines.append(f"Period     : {start} -> {end}  (trading days: {len(result.dates)-1})")
    lines.append(f"Tickers    : {', '.join(result.tickers)}")
    lines.append(f"Weights    : {weights_as_str(result.tickers, result.weights)}  (sum={w_sum:.4f})")
    lines.append(f"Rebalance  : {'Daily' if result.rebalance else 'Buy-and-hold (drift)'}")
    lines.append(f"Initial    : {fmt_dollar(result.initial_capital)}")
    lines.append("")
    lines.append("--- Performance (daily data, dividends reinvested, annualized where relevant) ---")
    lines.append(f"Final Wealth                          : {fmt_dollar(stats['final'])}")
    lines.append(f"Compound Annual Growth Rate           : {fmt_pct(stats['CAGR'])}")
    lines.append(f"Volatility (annual)                   : {fmt_pct(stats['vol_ann'])}")
    lines.append(f"Sharpe Ratio (risk-free = 0)          : {stats['sharpe']:.4f}")
    lines.append(f"Max Drawdown                          : {fmt_pct(stats['max_drawdown'])}")
    lines.append("")
    lines.append("Notes:")
    lines.append("- This report is for simulation; not investment advice.")
    return lines
# -------------------------------------------------------------


def generate_report(result, outdir: str = DEFAULT_OUTDIR) -> dict[str, str]:
    '''
    Create all report files for a holdings.BacktestResult and return their paths.

    Returns dict with keys:
        summary_txt, portfolio_csv, prices_index_png, wealth_png, drawdown_png
    '''
    ensure_dir(outdir)

    paths = {
        "summary_txt":        os.path.join(outdir, "summary.txt"),
        "portfolio_csv":      os.path.join(outdir, "portfolio_path.csv"),
        "prices_index_png":   os.path.join(outdir, "prices_index_plot.png"),
        "wealth_png":         os.path.join(outdir, "portfolio_wealth.png"),
        "drawdown_png":       os.path.join(outdir, "portfolio_drawdown.png"),
    }

    save_prices_index_plot(result.prices, result.wealth, result.dates, result.tickers, paths["prices_index_png"])
    save_wealth_plot(result.wealth, result.dates, paths["wealth_png"])
    save_drawdown_plot(result.wealth, result.dates, paths["drawdown_png"])

    write_portfolio_path_csv(result.dates, result.wealth, paths["portfolio_csv"])
    with open(paths["summary_txt"], "w") as f:
        f.write("\n".join(summary_lines(result)))

    return paths
