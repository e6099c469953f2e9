"""
EpiView package
===============

This package joins per-region population, boundary and case count data into
one in-memory table and evaluates epidemic formulas against it.

- Dates and day arithmetic are in `epiview/dates.py`.
- The per-region record (`Entry`) is in `epiview/models.py`.
- The join engine (`EntryStore`, composite regions) is in `epiview/table.py`.
- Formula evaluation is in `epiview/evaluator.py`.
- Dataset loading is in `epiview/loader.py`; the CLI is in `epiview/cli.py`.
"""

__version__ = '0.3.1'
