from __future__ import annotations

"""
EpiView report generator
------------------------
This module writes a DOCX summary of the engine's current results.

Design goals:
- Keep EpiView usable even if report dependencies are missing (lazy imports).
- Report on exactly what the engine evaluated: one formula, one value per
  complete region.
- Charts: distribution of values across regions, and the daily series of the
  top regions over the table's date range.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
import math
import os
import tempfile

from .engine import EpiView, format_value


# -----------------------------
# Configuration / citation types
# -----------------------------

@dataclass
class DatasetCitation:
    """Where the joined datasets came from."""
    population: str = "U.S. Census Bureau, county population estimates"
    bounds: str = "U.S. Census Bureau, cartographic boundary files"
    counts: str = "The New York Times, COVID-19 data (https://github.com/nytimes/covid-19-data)"


@dataclass
class ReportConfig:
    """High-level knobs to control how the report is written."""
    title: str = "EpiView Report"
    subtitle: str = "Regional epidemic summary"
    citation: DatasetCitation = field(default_factory=DatasetCitation)

    # Rows in the ranking table
    top_n: int = 15

    # Regions plotted in the time-series chart
    series_n: int = 5

    # Optional: CLI commands that led to the current formula
    command_log: Optional[List[str]] = None


# -----------------------------
# Helpers for clean numeric plots
# -----------------------------

def _finite(values: Sequence[float]) -> List[float]:
    return [float(v) for v in values if v is not None and math.isfinite(float(v))]


def _choose_bins(n: int) -> int:
    """Simple bin heuristic (keeps charts readable for small samples)."""
    if n <= 20:
        return 10
    if n <= 100:
        return 15
    return 30


# -----------------------------
# Main entry point used by CLI
# -----------------------------

def generate_docx_report(
    engine: EpiView,
    out_path: str,
    *,
    config: Optional[ReportConfig] = None,
) -> str:
    """Generate a DOCX report + charts for the engine's current results."""
    config = config or ReportConfig()

    # Lazy imports: only required when "report" is used.
    try:
        from docx import Document
        from docx.shared import Pt, Inches
        from docx.enum.text import WD_ALIGN_PARAGRAPH
    except ImportError as e:
        raise ImportError(
            "Missing dependency: python-docx.\n"
            "Install it with: python -m pip install python-docx"
        ) from e

    try:
        import matplotlib
        matplotlib.use("Agg")
        import matplotlib.pyplot as plt
    except ImportError as e:
        raise ImportError(
            "Missing dependency: matplotlib.\n"
            "Install with: python -m pip install matplotlib"
        ) from e

    if engine.formula is None or not engine.results:
        raise ValueError("No results to report on (evaluate a formula first).")

    formula = engine.formula
    ranked = engine.sort()
    values = _finite([r.value for r in ranked])
    table = engine.table

    # -----------------------------
    # 1) Charts
    # -----------------------------
    tmpdir = tempfile.mkdtemp(prefix="epiview_report_")
    chart_paths: List[Tuple[str, str]] = []

    def _save(filename: str) -> str:
        path = os.path.join(tmpdir, filename)
        plt.tight_layout()
        plt.savefig(path, dpi=200)
        plt.close()
        return path

    if values:
        title = f"Distribution of {formula.numerator} {formula.denominator} across regions"
        plt.figure()
        plt.hist(values, bins=_choose_bins(len(values)), edgecolor="black", linewidth=0.8)
        plt.title(title)
        plt.xlabel(formula.describe())
        plt.ylabel("Regions")
        chart_paths.append((title, _save("hist_values.png")))

    top_series = ranked[:config.series_n]
    if top_series and table.date_range is not None:
        title = f"Daily {formula.numerator} {formula.denominator}, top {len(top_series)} regions"
        plt.figure()
        for r in top_series:
            pts = engine.series(r.key, formula.numerator, formula.denominator)
            plt.plot([d for d, _ in pts], [v for _, v in pts], label=table[r.key].name)
        plt.title(title)
        plt.xticks(rotation=45, ha="right")
        plt.legend(fontsize=7)
        chart_paths.append((title, _save("series_top.png")))

    # -----------------------------
    # 2) Build DOCX report
    # -----------------------------
    doc = Document()
    style = doc.styles["Normal"]
    style.font.name = "Calibri"
    style.font.size = Pt(11)

    def _center_title(text: str, size: int, bold: bool = False, italic: bool = False) -> None:
        p = doc.add_paragraph()
        r = p.add_run(text)
        r.bold = bold
        r.italic = italic
        r.font.size = Pt(size)
        p.alignment = WD_ALIGN_PARAGRAPH.CENTER

    def _kv(key: str, value: str) -> None:
        p = doc.add_paragraph()
        r = p.add_run(f"{key}: ")
        r.bold = True
        p.add_run(value)

    _center_title(config.title, 22, bold=True)
    _center_title(config.subtitle, 12, italic=True)

    doc.add_paragraph("")
    _kv("Formula", formula.describe())
    _kv("Regions in table", str(len(table)))
    _kv("Regions evaluated (complete)", str(len(engine.results)))
    if table.date_range is not None:
        _kv("Case count dates", f"{table.min_date} to {table.max_date}")

    doc.add_paragraph("")
    doc.add_heading("Data sources", level=1)
    for label, text in [("Population", config.citation.population),
                        ("Boundaries and land area", config.citation.bounds),
                        ("Case counts", config.citation.counts)]:
        _kv(label, text)

    if config.command_log:
        doc.add_paragraph("")
        doc.add_heading("Command log", level=1)
        for line in config.command_log:
            doc.add_paragraph(line, style="List Bullet")

    doc.add_paragraph("")
    doc.add_heading(f"Top {min(config.top_n, len(ranked))} regions", level=1)
    t = doc.add_table(rows=1, cols=4)
    h = t.rows[0].cells
    h[0].text = "Rank"
    h[1].text = "Region"
    h[2].text = "Key"
    h[3].text = "Value"
    for i, r in enumerate(ranked[:config.top_n], start=1):
        row = t.add_row().cells
        row[0].text = str(i)
        row[1].text = r.label
        row[2].text = r.key
        row[3].text = format_value(r.value)

    if chart_paths:
        doc.add_paragraph("")
        doc.add_heading("Charts", level=1)
        for title, path in chart_paths:
            doc.add_paragraph(title)
            doc.add_picture(path, width=Inches(6.5))

    doc.add_heading("Notes", level=1)
    doc.add_paragraph(
        "Regions missing population, land area, boundaries or case counts are "
        "not evaluated. Values use the latest report on or before each date; "
        "a zero denominator yields 0."
    )

    from datetime import datetime as _dt
    from . import __version__
    doc.add_paragraph(f"EpiView version: {__version__}")
    doc.add_paragraph(f"Report generated at: {_dt.now().isoformat(timespec='seconds')}")

    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    doc.save(out_path)
    return out_path
