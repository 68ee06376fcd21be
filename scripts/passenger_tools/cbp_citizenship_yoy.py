"""Summarize CBP passenger counts by citizenship and compare against the prior year.

Reads the Airport Wait Times (A041) exports published by Customs and Border
Protection (https://awt.cbp.gov/), totals daily flight rows into monthly
U.S.-citizen and non-U.S.-citizen passenger counts, and joins every month
to the same month one year earlier to report year-over-year (YoY) change.

Steps:
    - Read each configured workbook and map the agency columns onto
      flight_date / total / domestic / foreign passengers.
    - Combine all sources and derive calendar year and month.
    - Aggregate to one row per month (blank counts add nothing).
    - Look up the month twelve months earlier and compute absolute and
      percentage change. Missing baselines stay blank; a zero baseline
      yields a blank percentage.
    - Export the monthly table to CSV and plot the YoY change for a
      configurable year range.

Outputs:
    - OUTPUT_CSV  (year, month, totals, prior-year totals, change, pct, label)
    - PLOT_PATH   (line + point chart of YoY change per passenger type)

Usage:
    python -m scripts.passenger_tools.cbp_citizenship_yoy \
        -i data/export_2023_2025.xlsx data/export_2022.xlsx \
        -o output/monthly_changes.csv -p output/pax_yoy_change.png
"""

from __future__ import annotations

import argparse
import logging
import re
from dataclasses import dataclass, field, fields
from datetime import date
from pathlib import Path
from typing import Any, Final, Iterable, Sequence

import matplotlib.dates as mdates
import matplotlib.pyplot as plt
import pandas as pd

from scripts.utils.logging_helper import setup_logging

# =============================================================================
# CONFIGURATION
# =============================================================================

INPUT_FILES: Final[list[Path]] = [
    Path("data/Awt.cbp.gov_A041_2023-01-01-2025-31-03.xlsx"),
    Path("data/Awt.cbp.gov_A041_2022-01-05-2022-31-12.xlsx"),
]
OUTPUT_CSV: Final[Path] = Path("output/monthly_changes.csv")
PLOT_PATH: Final[Path] = Path("output/pax_yoy_change.png")

# Normalized source column -> canonical field.
COLUMN_MAP: Final[dict[str, str]] = {
    "flight_date": "flight_date",
    "total_passenger_count": "total_passengers",
    "usa_passenger_count": "domestic_passengers",
    "non_usa_passenger_count": "foreign_passengers",
}

# Inclusive year range shown on the chart.
PLOT_START_YEAR: Final[int] = 2024
PLOT_END_YEAR: Final[int] = 2025

# YoY change column -> legend label.
CATEGORY_LABELS: Final[dict[str, str]] = {
    "domestic_yoy_change": "US Passengers",
    "foreign_yoy_change": "Foreign Passengers",
}

PLOT_CAPTION: Final[str] = "Source: Customs and Border Protection"

PLOT_STYLE: Final[dict[str, Any]] = {
    "figsize": (10, 5),
    "marker": "o",
    "markersize": 5,
    "linestyle": "-",
    "linewidth": 2,
    "colors": ["#008fd5", "#fc4f30", "#e5ae38", "#6d904f"],
    "rotation": 45,
    "tick_fontsize": 9,
    "dpi": 150,
}

# Logging level (INFO recommended; DEBUG lists months without a baseline).
LOG_LEVEL: Final[int] = logging.INFO

EXCEL_SUFFIXES: Final[frozenset[str]] = frozenset({".xlsx", ".xlsm"})
CSV_SUFFIXES: Final[frozenset[str]] = frozenset({".csv"})

OUTPUT_COLUMNS: Final[list[str]] = [
    "year",
    "month",
    "domestic_total",
    "foreign_total",
    "domestic_total_prev_year",
    "foreign_total_prev_year",
    "domestic_yoy_change",
    "foreign_yoy_change",
    "domestic_yoy_pct",
    "foreign_yoy_pct",
    "display_label",
]
PCT_COLUMNS: Final[frozenset[str]] = frozenset({"domestic_yoy_pct", "foreign_yoy_pct"})
LONG_COLUMNS: Final[list[str]] = ["date", "category_label", "value"]

MONTH_ABBR: Final[tuple[str, ...]] = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

# =============================================================================
# RECORD TYPES
# =============================================================================


@dataclass(frozen=True)
class FlightRecord:
    """One flight row from a CBP export."""

    flight_date: date
    total_passengers: int | None
    domestic_passengers: int | None
    foreign_passengers: int | None
    source: str = ""


@dataclass(frozen=True)
class NormalizedRecord(FlightRecord):
    """Flight row with calendar year and month taken from ``flight_date``."""

    year: int = field(init=False)
    month: int = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "year", self.flight_date.year)
        object.__setattr__(self, "month", self.flight_date.month)

    @classmethod
    def from_flight(cls, record: FlightRecord) -> NormalizedRecord:
        return cls(**{f.name: getattr(record, f.name) for f in fields(FlightRecord)})


@dataclass(frozen=True)
class MonthlyAggregate:
    """Domestic and foreign passenger totals for one calendar month."""

    year: int
    month: int
    domestic_total: int
    foreign_total: int

    @property
    def period_key(self) -> date:
        return date(self.year, self.month, 1)


@dataclass(frozen=True)
class YoYRow:
    """A month's totals next to the same month a year earlier.

    Prior-year, change and percentage fields are ``None`` when no baseline
    month exists. Percentages are also ``None`` for a zero baseline.
    """

    year: int
    month: int
    domestic_total: int
    foreign_total: int
    domestic_total_prev_year: int | None
    foreign_total_prev_year: int | None
    domestic_yoy_change: int | None
    foreign_yoy_change: int | None
    domestic_yoy_pct: float | None
    foreign_yoy_pct: float | None
    display_label: str

    @property
    def period_key(self) -> date:
        return date(self.year, self.month, 1)


class DuplicatePeriodError(ValueError):
    """Two monthly aggregates share the same (year, month)."""


# =============================================================================
# HELPERS
# =============================================================================


def normalise_column_name(name: Any) -> str:
    """Lower-case *name* and collapse runs of non-alphanumerics into '_'.

    ``"Non-USA Passenger Count"`` becomes ``"non_usa_passenger_count"``.
    """
    s = str(name).strip().lower()
    s = re.sub(r"[^a-z0-9]+", "_", s)
    return s.strip("_")


def normalise_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Return a copy of *df* with snake_case column names."""
    out = df.copy()
    out.columns = [normalise_column_name(c) for c in out.columns]
    return out


def safe_int(value: Any) -> int | None:
    """Return int if *value* is a whole number; else ``None``.

    Integral floats ("100.0", 12.0) are accepted. Fractional counts are
    rejected with a warning rather than truncated.
    """
    if value is None or pd.isna(value):
        return None
    s = str(value).strip().replace(",", "")
    if not s:
        return None
    try:
        return int(s)
    except ValueError:
        pass
    try:
        num = float(s)
    except ValueError:
        return None
    if not num.is_integer():
        logging.warning("Ignoring non-integer passenger count: %r", value)
        return None
    return int(num)


def format_label(year: int, month: int) -> str:
    """Short period label, e.g. (2024, 1) -> 'Jan24'. Locale-independent."""
    return f"{MONTH_ABBR[month - 1]}{year % 100:02d}"


def check_year_range(start_year: int, end_year: int) -> None:
    """Raise ValueError if the inclusive year range is reversed."""
    if start_year > end_year:
        raise ValueError(f"start year {start_year} is after end year {end_year}")


# =============================================================================
# IO + TRANSFORM
# =============================================================================


def read_table(path: Path) -> pd.DataFrame:
    """Read one export (Excel or CSV) into a raw DataFrame."""
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")

    suffix = path.suffix.lower()
    if suffix not in EXCEL_SUFFIXES | CSV_SUFFIXES:
        raise ValueError(f"Unsupported input file type '{path.suffix}': {path}")

    try:
        if suffix in CSV_SUFFIXES:
            return pd.read_csv(path, dtype=str)
        return pd.read_excel(path, sheet_name=0)
    except Exception as exc:
        logging.error("Failed to read input file: %s", path)
        raise ValueError(f"Could not read input file {path}: {exc}") from exc


def frame_to_records(df: pd.DataFrame, source: str) -> list[FlightRecord]:
    """Convert a renamed export frame to FlightRecords, dropping undated rows."""
    # Exports mix ISO, US and timestamp strings; parse each value on its own.
    dates = pd.to_datetime(df["flight_date"], errors="coerce", format="mixed")
    undated = int(dates.isna().sum())
    if undated:
        logging.warning(
            "%s: dropped %d row(s) with a missing or unparseable flight_date", source, undated
        )

    records: list[FlightRecord] = []
    for flight_dt, total, domestic, foreign in zip(
        dates,
        df["total_passengers"],
        df["domestic_passengers"],
        df["foreign_passengers"],
        strict=True,
    ):
        if pd.isna(flight_dt):
            continue
        records.append(
            FlightRecord(
                flight_date=flight_dt.date(),
                total_passengers=safe_int(total),
                domestic_passengers=safe_int(domestic),
                foreign_passengers=safe_int(foreign),
                source=source,
            )
        )
    return records


def load_flight_records(
    path: Path, column_map: dict[str, str] | None = None
) -> list[FlightRecord]:
    """Read one export and return its rows as FlightRecords.

    Args:
        path: Excel or CSV export.
        column_map: Normalized source column -> canonical field. Defaults to
            COLUMN_MAP.

    Raises:
        FileNotFoundError: *path* does not exist.
        ValueError: *path* has an unsupported type or cannot be parsed.
        KeyError: a mapped column is absent after normalization.
    """
    column_map = COLUMN_MAP if column_map is None else column_map
    path = Path(path)

    df = normalise_columns(read_table(path))

    missing = [c for c in column_map if c not in df.columns]
    if missing:
        raise KeyError(
            f"Input file '{path}' is missing required column(s): {', '.join(missing)}"
        )

    df = df[list(column_map)].rename(columns=column_map)
    records = frame_to_records(df, path.name)
    logging.info("Loaded %s: %d flight rows", path.name, len(records))
    return records


def combine_records(sources: Iterable[Sequence[FlightRecord]]) -> list[NormalizedRecord]:
    """Concatenate records from every source and attach year/month."""
    combined: list[NormalizedRecord] = []
    for records in sources:
        combined.extend(NormalizedRecord.from_flight(r) for r in records)
    logging.info("Combined %d flight rows", len(combined))
    return combined


def aggregate_monthly(records: Iterable[NormalizedRecord]) -> list[MonthlyAggregate]:
    """Sum domestic and foreign passengers per (year, month).

    Blank counts add zero. The result is sorted chronologically.
    """
    totals: dict[tuple[int, int], list[int]] = {}
    for rec in records:
        acc = totals.setdefault((rec.year, rec.month), [0, 0])
        acc[0] += rec.domestic_passengers or 0
        acc[1] += rec.foreign_passengers or 0

    aggregates = [
        MonthlyAggregate(year=year, month=month, domestic_total=dom, foreign_total=frn)
        for (year, month), (dom, frn) in totals.items()
    ]
    aggregates.sort(key=lambda a: a.period_key)
    logging.info("Aggregated %d month(s)", len(aggregates))
    return aggregates


def index_by_period(
    aggregates: Iterable[MonthlyAggregate],
) -> dict[tuple[int, int], MonthlyAggregate]:
    """Map (year, month) to its aggregate; duplicates are an error."""
    lookup: dict[tuple[int, int], MonthlyAggregate] = {}
    for agg in aggregates:
        key = (agg.year, agg.month)
        if key in lookup:
            raise DuplicatePeriodError(
                f"More than one monthly aggregate for {agg.year}-{agg.month:02d}"
            )
        lookup[key] = agg
    return lookup


def join_prior_year(
    aggregates: Sequence[MonthlyAggregate],
) -> list[tuple[MonthlyAggregate, MonthlyAggregate | None]]:
    """Pair each month with the same month one year earlier (left join).

    Every aggregate appears exactly once, in input order. The partner is
    ``None`` when the prior-year month is not in *aggregates*.
    """
    lookup = index_by_period(aggregates)
    for earlier, later in zip(aggregates, aggregates[1:]):
        if earlier.period_key >= later.period_key:
            raise ValueError(
                "Monthly aggregates must be in ascending order; "
                f"{later.period_key:%Y-%m} follows {earlier.period_key:%Y-%m}"
            )

    pairs: list[tuple[MonthlyAggregate, MonthlyAggregate | None]] = []
    for agg in aggregates:
        prev = lookup.get((agg.year - 1, agg.month))
        if prev is None:
            logging.debug("No prior-year baseline for %s", format_label(agg.year, agg.month))
        pairs.append((agg, prev))
    return pairs


def yoy_change(current: int, previous: int | None) -> int | None:
    """Current minus previous, or None without a baseline."""
    if previous is None:
        return None
    return current - previous


def yoy_pct(change: int | None, previous: int | None) -> float | None:
    """Change as a percentage of *previous*, rounded to one decimal.

    ``None`` when the baseline is missing or zero. Small declines that round
    to zero come back as 0.0, never -0.0.
    """
    if change is None or previous is None or previous == 0:
        return None
    return round(change / previous * 100, 1) + 0.0


def build_yoy_rows(
    pairs: Iterable[tuple[MonthlyAggregate, MonthlyAggregate | None]],
) -> list[YoYRow]:
    """Derive change and percentage columns for each joined month."""
    rows: list[YoYRow] = []
    for cur, prev in pairs:
        dom_prev = prev.domestic_total if prev is not None else None
        frn_prev = prev.foreign_total if prev is not None else None
        dom_change = yoy_change(cur.domestic_total, dom_prev)
        frn_change = yoy_change(cur.foreign_total, frn_prev)
        rows.append(
            YoYRow(
                year=cur.year,
                month=cur.month,
                domestic_total=cur.domestic_total,
                foreign_total=cur.foreign_total,
                domestic_total_prev_year=dom_prev,
                foreign_total_prev_year=frn_prev,
                domestic_yoy_change=dom_change,
                foreign_yoy_change=frn_change,
                domestic_yoy_pct=yoy_pct(dom_change, dom_prev),
                foreign_yoy_pct=yoy_pct(frn_change, frn_prev),
                display_label=format_label(cur.year, cur.month),
            )
        )
    return rows


def compute_yoy(aggregates: Sequence[MonthlyAggregate]) -> list[YoYRow]:
    """Join prior-year months and derive YoY metrics."""
    return build_yoy_rows(join_prior_year(aggregates))


# =============================================================================
# EXPORT + PLOTTING
# =============================================================================


def yoy_rows_to_frame(rows: Sequence[YoYRow]) -> pd.DataFrame:
    """Tabulate *rows* in OUTPUT_COLUMNS order with nullable integer columns."""
    data: dict[str, Any] = {}
    for col in OUTPUT_COLUMNS:
        values = [getattr(r, col) for r in rows]
        if col == "display_label":
            data[col] = pd.Series(values, dtype="object")
        elif col in PCT_COLUMNS:
            data[col] = pd.Series(values, dtype="float64")
        else:
            data[col] = pd.Series(pd.array(values, dtype="Int64"))
    return pd.DataFrame(data, columns=OUTPUT_COLUMNS)


def write_yoy_csv(rows: Sequence[YoYRow], out_path: Path) -> Path:
    """Write the monthly YoY table to CSV; blank cells mark missing values."""
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    yoy_rows_to_frame(rows).to_csv(
        out_path,
        index=False,
        na_rep="",
        float_format="%.1f",
        lineterminator="\n",
        encoding="utf-8",
    )
    logging.info("Wrote %d month(s) to %s", len(rows), out_path)
    return out_path


def to_long_series(
    rows: Iterable[YoYRow],
    start_year: int,
    end_year: int,
    labels: dict[str, str] | None = None,
) -> pd.DataFrame:
    """Reshape YoY change columns into (date, category_label, value) rows.

    Only rows whose year falls in [start_year, end_year] are kept. Each month
    contributes one row per entry in *labels* (default CATEGORY_LABELS).
    """
    check_year_range(start_year, end_year)
    labels = CATEGORY_LABELS if labels is None else labels

    records: list[dict[str, Any]] = []
    for row in rows:
        if not start_year <= row.year <= end_year:
            continue
        for col, label in labels.items():
            records.append(
                {
                    "date": pd.Timestamp(row.year, row.month, 1),
                    "category_label": label,
                    "value": getattr(row, col),
                }
            )

    series = pd.DataFrame(records, columns=LONG_COLUMNS)
    series["value"] = pd.to_numeric(series["value"], errors="coerce")
    return series


def plot_yoy_change(series: pd.DataFrame, out_path: Path) -> Path | None:
    """Plot YoY change per passenger category as lines with point markers."""
    if series.empty:
        logging.warning("No rows in the plot year range; chart not written.")
        return None

    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots(figsize=PLOT_STYLE["figsize"])
    colors = PLOT_STYLE["colors"]

    for i, (label, grp) in enumerate(series.groupby("category_label", sort=False)):
        ax.plot(
            grp["date"],
            grp["value"],
            marker=PLOT_STYLE["marker"],
            markersize=PLOT_STYLE["markersize"],
            linestyle=PLOT_STYLE["linestyle"],
            linewidth=PLOT_STYLE["linewidth"],
            color=colors[i % len(colors)],
            label=label,
        )

    ax.axhline(0, color="black", linestyle="--", linewidth=1)

    start, end = series["date"].min(), series["date"].max()
    ax.set_title(f"Pax Increase from previous year ({start:%b %Y} – {end:%b %Y})")
    ax.set_xlabel("")
    ax.set_ylabel("Passenger Change")
    ax.xaxis.set_major_locator(mdates.MonthLocator(interval=1))
    ax.xaxis.set_major_formatter(mdates.DateFormatter("%b%y"))
    ax.tick_params(axis="x", labelsize=PLOT_STYLE["tick_fontsize"], rotation=PLOT_STYLE["rotation"])
    ax.grid(False)
    ax.set_facecolor("white")
    fig.patch.set_facecolor("white")
    for side in ("top", "right"):
        ax.spines[side].set_visible(False)
    ax.legend(title="Passenger Type")

    fig.text(0.99, 0.01, PLOT_CAPTION, ha="right", va="bottom", fontsize=8)
    fig.tight_layout()
    fig.savefig(out_path, dpi=PLOT_STYLE["dpi"])
    plt.close(fig)

    logging.info("Saved chart to %s", out_path)
    return out_path


# =============================================================================
# MAIN
# =============================================================================


def run_pipeline(
    inputs: Sequence[Path],
    output_csv: Path = OUTPUT_CSV,
    plot_path: Path | None = PLOT_PATH,
    start_year: int = PLOT_START_YEAR,
    end_year: int = PLOT_END_YEAR,
) -> list[YoYRow]:
    """Load, aggregate, compare, export and plot. Returns the YoY rows."""
    if plot_path is not None:
        check_year_range(start_year, end_year)

    sources = [load_flight_records(Path(p)) for p in inputs]
    records = combine_records(sources)
    aggregates = aggregate_monthly(records)
    rows = compute_yoy(aggregates)

    write_yoy_csv(rows, output_csv)

    if plot_path is not None:
        plot_yoy_change(to_long_series(rows, start_year, end_year), plot_path)

    return rows


def build_argparser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    p = argparse.ArgumentParser(
        description=(
            "Aggregate CBP passenger counts by month and citizenship, "
            "and compare each month with the prior year."
        )
    )
    p.add_argument(
        "-i",
        "--input",
        nargs="+",
        default=[str(f) for f in INPUT_FILES],
        metavar="PATH",
        help="CBP export(s) (.xlsx or .csv).",
    )
    p.add_argument("-o", "--output", default=str(OUTPUT_CSV), help="Destination CSV.")
    p.add_argument("-p", "--plot", default=str(PLOT_PATH), help="Destination chart (PNG).")
    p.add_argument("--no-plot", action="store_true", help="Skip the chart.")
    p.add_argument(
        "--start-year", type=int, default=PLOT_START_YEAR, help="First year shown on the chart."
    )
    p.add_argument(
        "--end-year", type=int, default=PLOT_END_YEAR, help="Last year shown on the chart."
    )
    p.add_argument(
        "--log-level",
        default=logging.getLevelName(LOG_LEVEL),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    return p


def main(argv: Sequence[str] | None = None) -> None:
    """Run the end-to-end YoY workflow."""
    args = build_argparser().parse_args(argv)
    setup_logging(args.log_level)

    plot_path = None if args.no_plot else Path(args.plot)
    try:
        run_pipeline(
            [Path(p) for p in args.input],
            Path(args.output),
            plot_path,
            args.start_year,
            args.end_year,
        )
    except (FileNotFoundError, KeyError, ValueError) as exc:
        logging.error("Run aborted: %s", exc)
        raise

    logging.info("Done.")


if __name__ == "__main__":
    main()
