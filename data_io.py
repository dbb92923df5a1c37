# data_io.py
'''
Purpose:
    1) Read a holdings CSV (header row, then: index, ticker, weight in %)
       into (ticker, weight) pairs with weight = percent / 100.
    2) Read and write HistTable CSV files:
        Date,Open,High,Low,Close,Volume,Dividend
'''

from hist_table import HistRow, HistTable, ISO_FMT, COLUMNS, to_date

HOLDINGS_MIN_COLS = 3
HIST_HEADER = ["Date"] + COLUMNS


def read_csv_rows(path: str) -> list[list[str]]:
    '''Read a CSV into a list of rows (list of strings), skipping blank lines.'''
    rows = []
    with open(path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if line == "":
                continue  # skip empty lines

            parts = line.split(',')
            cleaned = []
            for cell in parts:
                cleaned.append(cell.strip().strip('"'))

            rows.append(cleaned)
    return rows


def load_holdings(path: str) -> list[tuple[str, float]]:
    '''
    Read a holdings file and return [(ticker, weight), ...] in file order.
    Weights are NOT required to sum to 1.
    '''
    rows = read_csv_rows(path)
    if not rows:
        raise ValueError(f"{path} is empty.")

    holdings: list[tuple[str, float]] = []
    for i, row in enumerate(rows[1:], start=2):   # skip the header
        if len(row) < HOLDINGS_MIN_COLS:
            raise ValueError(f"Row {i}: expected index, ticker, weight.")
        ticker = row[1].upper()
        if ticker == "":
            raise ValueError(f"Row {i}: empty ticker.")
        cell = row[2].rstrip("%")
        try:
            pct = float(cell)
        except ValueError:
            raise ValueError(f"Row {i}: weight is not a number -> {row[2]}")
        holdings.append((ticker, pct / 100.0))

    if not holdings:
        raise ValueError(f"{path} has no holdings rows.")
    return holdings


def write_hist_csv(table: HistTable, path: str) -> None:
    '''Write a table with Date as the first column and 6-decimal floats.'''
    with open(path, "w", encoding="utf-8") as f:
        f.write(",".join(HIST_HEADER) + "\n")
        for r in table.rows:
            f.write(
                f"{r.date.strftime(ISO_FMT)},{r.open:.6f},{r.high:.6f},{r.low:.6f},"
                f"{r.close:.6f},{r.volume:.0f},{r.dividend:.6f}\n"
            )


def load_hist_csv(path: str, ticker: str) -> HistTable:
    '''Read a file written by write_hist_csv; dates must be strictly ascending.'''
    rows = read_csv_rows(path)
    if not rows:
        raise ValueError(f"{path} is empty.")
    header = rows[0]
    if header != HIST_HEADER:
        raise ValueError(f"Header must be exactly: {','.join(HIST_HEADER)}")

    out = []
    for i, row in enumerate(rows[1:], start=2):
        if len(row) != len(header):
            raise ValueError(f"Row {i}: column count mismatch.")
        try:
            nums = [float(cell) for cell in row[1:]]
        except ValueError:
            raise ValueError(f"Row {i}: not a number in {row[1:]}")
        out.append(HistRow(to_date(row[0]), *nums))

    # HistTable checks the strictly ascending order
    return HistTable(ticker, tuple(out))
