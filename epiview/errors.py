"""
Error kinds
===========

- `InvalidArgument`: a caller bug (unknown formula term, bad date range).
- `MissingData`: no data on or before a date. The evaluator absorbs this and
  returns 0; only strict lookups raise it.
- `MalformedRecord`: one source row/feature has the wrong shape. The merge
  passes skip it and keep going.
- `IngestionError`: a dataset could not be read or downloaded.
"""


class EpiViewError(Exception):
    """Base class for all EpiView errors."""


class InvalidArgument(EpiViewError, ValueError):
    pass


class MissingData(EpiViewError, LookupError):
    pass


class MalformedRecord(EpiViewError, ValueError):
    pass


class IngestionError(EpiViewError):
    pass
