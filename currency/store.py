"""In-memory currency dataset.

The store is built once at startup and never mutated afterwards, so every
connection handler can read it concurrently without locking.
"""
import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterator, Tuple, Union

from currency.errors import DatasetError

log = logging.getLogger(__name__)

DEFAULT_DATASET = Path(__file__).resolve().parent / "data" / "currencies.csv"
WILDCARD = "*"
FIELDS = ("code", "name", "country", "symbol")


@dataclass(frozen=True)
class Record:
    code: str
    name: str
    country: str
    symbol: str

    def to_dict(self) -> dict:
        return {"code": self.code, "name": self.name, "country": self.country, "symbol": self.symbol}


class CurrencyStore:
    """Ordered, read-only collection of records.

    Matching policy for ``find``:
      - ``*`` returns every record in load order
      - otherwise the selector is compared case-insensitively: equal to the
        code, or contained in the name or the country
      - a blank selector matches nothing
    """

    def __init__(self, records):
        self._records: Tuple[Record, ...] = tuple(records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Record]:
        return iter(self._records)

    @property
    def records(self) -> Tuple[Record, ...]:
        return self._records

    def find(self, selector: str) -> Tuple[Record, ...]:
        term = selector.strip()
        if term == WILDCARD:
            return self._records
        if not term:
            return ()
        term = term.casefold()
        return tuple(
            r for r in self._records
            if r.code.casefold() == term
            or term in r.name.casefold()
            or term in r.country.casefold()
        )


def _read_rows(fh: IO[str], origin: str):
    reader = csv.DictReader(fh)
    if reader.fieldnames is None:
        raise DatasetError(f"{origin}: empty dataset")
    columns = {name.strip().lower(): name for name in reader.fieldnames if name}
    missing = [f for f in FIELDS if f not in columns]
    if missing:
        raise DatasetError(f"{origin}: missing column(s) {', '.join(missing)}")

    for lineno, row in enumerate(reader, start=2):
        values = {f: (row.get(columns[f]) or "").strip() for f in FIELDS}
        if not values["code"]:
            log.warning("%s:%d: skipping row without a currency code", origin, lineno)
            continue
        yield Record(**values)


def load(source: Union[str, Path, IO[str]] = DEFAULT_DATASET) -> CurrencyStore:
    """Build a store from a CSV file path or an open text stream.

    The CSV needs a header with ``code,name,country,symbol`` columns
    (any order, case-insensitive). Failures raise ``DatasetError``.
    """
    if hasattr(source, "read"):
        origin = getattr(source, "name", "<stream>")
        try:
            store = CurrencyStore(_read_rows(source, origin))
        except csv.Error as err:
            raise DatasetError(f"{origin}: {err}") from err
    else:
        origin = str(source)
        try:
            with open(source, newline="", encoding="utf-8") as fh:
                store = CurrencyStore(_read_rows(fh, origin))
        except (OSError, UnicodeDecodeError, csv.Error) as err:
            raise DatasetError(f"cannot load dataset {origin}: {err}") from err

    log.info("loaded %d currencies from %s", len(store), origin)
    return store
