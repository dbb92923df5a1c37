# hist_table.py
'''
Immutable historical price tables.

   - HistRow   : one trading day (date, OHLC, volume, cash dividend)
   - HistTable : one ticker's rows, dates strictly ascending
   - date helpers: to_date(x), subtract_years(d, n)

Tables are never changed in place; every transform in aligner.py builds a
new HistTable.
'''

from dataclasses import dataclass, replace
from datetime import date, datetime
import numpy as np
import pandas as pd

ISO_FMT = "%Y-%m-%d"
COLUMNS = ["Open", "High", "Low", "Close", "Volume", "Dividend"]


# ---------- dates ----------

def to_date(x) -> date:
    '''Turn a date, datetime, pandas Timestamp or 'YYYY-MM-DD' string into a date.'''
    if isinstance(x, str):
        return datetime.strptime(x.strip(), ISO_FMT).date()
    if isinstance(x, pd.Timestamp):
        return x.date()
    if isinstance(x, datetime):
        return x.date()
    if isinstance(x, date):
        return x
    raise TypeError(f"Cannot convert {x!r} to a date.")


def subtract_years(d: date, years: int) -> date:
    '''Same calendar day `years` earlier; Feb 29 falls back to Feb 28.'''
    try:
        return d.replace(year=d.year - years)
    except ValueError:
        return d.replace(year=d.year - years, day=28)


# ---------- rows and tables ----------

@dataclass(frozen=True)
class HistRow:
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    dividend: float = 0.0   # cash dividend with ex-date == date

    def scaled(self, factor: float) -> "HistRow":
        '''Copy with OHLC multiplied by factor and the dividend cleared.'''
        return replace(
            self,
            open=self.open * factor,
            high=self.high * factor,
            low=self.low * factor,
            close=self.close * factor,
            dividend=0.0,
        )

    def __str__(self) -> str:
        return (
            f"{self.date.strftime(ISO_FMT)} O={self.open:.4f} H={self.high:.4f} "
            f"L={self.low:.4f} C={self.close:.4f} V={self.volume:.0f} D={self.dividend:.4f}"
        )


@dataclass(frozen=True)
class HistTable:
    ticker: str
    rows: tuple = ()

    def __post_init__(self):
        rows = tuple(self.rows)
        object.__setattr__(self, "rows", rows)
        for i in range(1, len(rows)):
            if rows[i].date <= rows[i - 1].date:
                raise ValueError(
                    f"{self.ticker}: dates must be strictly ascending "
                    f"({rows[i].date} <= {rows[i - 1].date})."
                )

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self):
        return iter(self.rows)

    def with_rows(self, rows) -> "HistTable":
        return HistTable(self.ticker, tuple(rows))

    def dates(self) -> list[date]:
        return [r.date for r in self.rows]

    def first_date(self) -> date:
        return self.rows[0].date

    def last_date(self) -> date:
        return self.rows[-1].date

    def close_array(self) -> np.ndarray:
        return np.array([r.close for r in self.rows], dtype=float)

    def dividend_array(self) -> np.ndarray:
        return np.array([r.dividend for r in self.rows], dtype=float)

    @classmethod
    def from_frame(cls, ticker: str, df: pd.DataFrame, dividends=None) -> "HistTable":
        '''
        Build a table from an OHLCV DataFrame indexed by date (any order).

        Input:
            df        : columns Open, High, Low, Close, optional Volume/Dividend
            dividends : optional Series of cash dividends indexed by ex-date;
                        amounts on dates missing from df are dropped
        '''
        frame = df.sort_index()
        frame = frame[~frame.index.duplicated(keep="last")]

        div_by_day: dict[date, float] = {}
        if "Dividend" in frame.columns:
            for ts, d in frame["Dividend"].items():
                if pd.notna(d) and d != 0.0:
                    div_by_day[to_date(ts)] = float(d)
        if dividends is not None:
            for ts, d in dividends.items():
                if pd.notna(d):
                    day = pd.Timestamp(ts).date()   # yfinance index is tz-aware
                    div_by_day[day] = div_by_day.get(day, 0.0) + float(d)

        rows = []
        for ts, rec in frame.iterrows():
            if pd.isna(rec["Close"]):
                continue
            day = to_date(ts)
            volume = rec["Volume"] if "Volume" in frame.columns else 0.0
            rows.append(HistRow(
                date=day,
                open=float(rec["Open"]),
                high=float(rec["High"]),
                low=float(rec["Low"]),
                close=float(rec["Close"]),
                volume=0.0 if pd.isna(volume) else float(volume),
                dividend=div_by_day.get(day, 0.0),
            ))
        return cls(ticker, tuple(rows))
