"""
EpiView Command Line Interface (CLI)
====================================

Interactive terminal program you run like:

    python -m epiview.cli --population co-est2019-alldata.csv \
        --bounds cb_2018_us_county_20m.json

It:
- Parses the dataset options (argparse, falling back to EPIVIEW_* env vars)
- Compiles the joined table once
- Runs a REPL where each command edits the formula or inspects results

The formula starts as "cases per 1000 cap. on <latest date>" and every edit
triggers a recompute.
"""

from __future__ import annotations
import argparse
import logging
import shlex

from .config import DatasetConfig
from .engine import EpiView, format_value
from .errors import MissingData
from .formula import DENOMINATORS, MODES, NUMERATORS, Formula, parse_formula
from .loader import compile_table
from .logging_config import set_level, silence_library_loggers

HELP = f"""
Commands:
  help
  stats

  formula "<text>"        (example: formula "new cases per 1000 cap. averaged between 2020-04-07 and 2020-04-01")
  numerator <term>        one of: {", ".join(NUMERATORS)}
  denominator <term>      one of: {", ".join(DENOMINATORS)}
  mode <term>             one of: {", ".join(MODES)}
  date <YYYY-MM-DD>
  ref <YYYY-MM-DD>

  top [k]                 highest values (default 10)
  show [n]                lowest values first (default 10)
  inspect <key> [date]    one region's record and effective date
  export csv|json "<path>"
  report "<path.docx>"
  quit
"""

# Commands that change the formula (logged for the report)
_EDIT_COMMANDS = ("formula", "numerator", "denominator", "mode", "date", "ref")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="epiview", description="Regional epidemic formula explorer")
    ap.add_argument("--variant", help="Dataset variant: united-states | los-angeles")
    ap.add_argument("--population", help="Population table (CSV or JSON list)")
    ap.add_argument("--bounds", help="Boundary GeoJSON FeatureCollection")
    ap.add_argument("--counts", help="Case count CSV (URL or path)")
    ap.add_argument("--composite-counts", choices=("sum", "none"),
                    help="How composite regions get case counts")
    ap.add_argument("--env-file", help="Read EPIVIEW_* settings from this .env file")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return ap


def main(argv=None):
    """Entry point for the EpiView CLI.

    1) Load and join datasets
    2) Evaluate the default formula
    3) Start an interactive REPL
    """
    args = build_parser().parse_args(argv)
    silence_library_loggers()

    config = DatasetConfig.from_env(
        args.env_file,
        variant=args.variant,
        population_path=args.population,
        bounds_path=args.bounds,
        counts_url=args.counts,
        composite_counts=args.composite_counts,
    )

    if args.verbose:
        set_level(logging.DEBUG)
    print("Loading datasets...")
    table = compile_table(config)
    engine = EpiView(table=table)
    command_log = []

    if table.max_date is None:
        print("No case counts loaded; every region is incomplete.")
    else:
        engine.recompute(Formula("cases", "per 1000 cap.", "on", table.max_date))
        print(f"Loaded {len(table)} regions ({len(engine.results)} complete), "
              f"dates {table.min_date}..{table.max_date}. Type 'help' for commands.")
        print(f"Formula: {engine.formula.describe()}")

    while True:
        try:
            line = input("epiview> ")
        except EOFError:
            break
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.lower() in ("quit", "exit"):
            break
        if stripped.split()[0].lower() in _EDIT_COMMANDS:
            command_log.append(stripped)
        try:
            handle(engine, stripped, command_log)
        except Exception as e:
            print(f"Error: {e}")


def handle(engine: EpiView, line: str, command_log=None) -> None:
    """Handle one CLI command line."""
    parts = shlex.split(line)
    cmd = parts[0].lower()
    rest = " ".join(parts[1:])

    if cmd == "help":
        print(HELP)
        return

    if cmd == "stats":
        table = engine.table
        print(f"Regions: {len(table)} | complete: {sum(1 for _ in table.complete_items())} "
              f"| dates: {table.min_date}..{table.max_date}")
        if engine.formula is not None:
            print(f"Formula: {engine.formula.describe()}")
        return

    if cmd == "formula":
        _apply(engine, parse_formula(rest))
        return

    if cmd in ("numerator", "denominator", "mode", "date", "ref"):
        if engine.formula is None:
            raise ValueError("No formula yet; set one with: formula \"<text>\"")
        field = {"date": "date", "ref": "ref_date"}.get(cmd, cmd)
        _apply(engine, engine.formula.with_changes(**{field: rest}))
        return

    if cmd in ("top", "show"):
        n = int(parts[1]) if len(parts) >= 2 else 10
        rows = engine.topk(n) if cmd == "top" else engine.sort(reverse=False)[:n]
        for i, r in enumerate(rows, start=1):
            print(f"{i:>3}. [{r.key}] {r.display}")
        return

    if cmd == "inspect":
        if len(parts) < 2:
            print("Usage: inspect <key> [date]")
            return
        key = parts[1]
        entry = engine.table[key]
        print(f"[{key}] {entry.label}")
        print(f"  population={entry.population:,} area={entry.area:,.2f} sq mi "
              f"polygons={len(entry.bounds)} dates={len(entry.counts)} complete={entry.complete()}")
        on = parts[2] if len(parts) >= 3 else engine.table.max_date
        if on is not None:
            try:
                d = entry.effective_date(on, strict=True)
                c = entry.counts[d]
                print(f"  effective date for {on}: {d} (cases={c.cases:,} deaths={c.deaths:,})")
            except MissingData as e:
                print(f"  {e}")
        if key in engine.results:
            print(f"  value: {format_value(engine.results[key])}")
        return

    if cmd == "export":
        if len(parts) < 3:
            print('Usage: export csv "out.csv"  OR  export json "out.json"')
            return
        fmt, out_path = parts[1].lower(), parts[2]
        if not engine.results:
            print("Nothing to export: no complete regions evaluated.")
            return
        if fmt == "csv":
            engine.export_csv(out_path)
        elif fmt == "json":
            engine.export_json(out_path)
        else:
            print("Unknown export format. Use: csv or json")
            return
        print(f"Exported {fmt.upper()} to {out_path}")
        return

    if cmd == "report":
        if len(parts) < 2:
            print('Usage: report "out.docx"')
            return
        from .report import generate_docx_report, ReportConfig
        cfg = ReportConfig(command_log=list(command_log or []))
        generate_docx_report(engine, parts[1], config=cfg)
        print(f"Report written to {parts[1]}")
        return

    print("Unknown command. Type 'help'.")


def _apply(engine: EpiView, formula: Formula) -> None:
    engine.recompute(formula)
    print(f"Formula: {formula.describe()} ({len(engine.results)} regions)")


if __name__ == "__main__":
    main()
