import csv
import hashlib
import io
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterator, List

import pandas as pd

from ..errors import ParseError

# ─────────────────────────────────────────────────────────────
# Spreadsheet export dialect
# ─────────────────────────────────────────────────────────────
# The back-office export starts with a report preamble (store name, date
# range, printed-by lines). The real data begins after the row whose first
# cell is the header marker; from there on rows are positional.

HEADER_MARKER = "Date"

SPREADSHEET_COLUMNS = [
    "Date",
    "Transaction Type",
    "Tender",
    "Gross Sales",
    "Discount",
    "Tax",
    "Net Sales",
    "Tip",
    "Online Charges",
    "Cashier",
    "Transaction #",
]

SECTION_TITLES = {"sale transactions", "total", "grand total", "summary"}

DELIMITED_EXTENSIONS = {"csv", "txt"}
SPREADSHEET_EXTENSIONS = {"xls", "xlsx"}


def get_content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def get_extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lstrip(".").lower()


class BaseParser(ABC):
    @abstractmethod
    def parse(self, data: bytes) -> Iterator[Dict[str, str]]:
        """Decode `data` eagerly and return a lazy iterator of raw rows."""
        pass


class CSVParser(BaseParser):
    def parse(self, data: bytes) -> Iterator[Dict[str, str]]:
        try:
            df = pd.read_csv(
                io.BytesIO(data),
                index_col=False,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                skipinitialspace=True,
            )
        except pd.errors.EmptyDataError:
            logging.info("Delimited upload is empty")
            return iter(())
        except (UnicodeDecodeError, pd.errors.ParserError, ValueError) as e:
            raise ParseError(f"Could not read delimited file: {e}") from e

        df.columns = [str(c).strip() for c in df.columns]
        df = df.fillna("")
        logging.info(f"Delimited upload read: {len(df)} rows, columns={list(df.columns)}")
        return self._rows(df)

    def _rows(self, df: pd.DataFrame) -> Iterator[Dict[str, str]]:
        columns = list(df.columns)
        for values in df.itertuples(index=False, name=None):
            row = {col: str(val).strip() for col, val in zip(columns, values)}
            if not any(row.values()):
                continue
            yield row


class SpreadsheetParser(BaseParser):
    """
    Parser for the legacy back-office spreadsheet export.

    The first sheet is flattened to a delimited intermediate form in memory,
    then scanned for the header marker. Everything above the marker is report
    preamble; everything below is mapped positionally onto SPREADSHEET_COLUMNS.
    A file without the marker yields no rows.
    """

    def __init__(self, extension: str = "xls"):
        self.engine = "xlrd" if extension == "xls" else "openpyxl"

    def parse(self, data: bytes) -> Iterator[Dict[str, str]]:
        try:
            sheet = pd.read_excel(
                io.BytesIO(data),
                sheet_name=0,
                header=None,
                dtype=object,
                engine=self.engine,
            )
        except Exception as e:
            raise ParseError(f"Could not read spreadsheet: {e}") from e

        intermediate = self._to_delimited(sheet)
        return self._rows(intermediate)

    def _to_delimited(self, sheet: pd.DataFrame) -> str:
        sheet = sheet.apply(lambda col: col.map(self._cell_to_str))
        buffer = io.StringIO()
        sheet.to_csv(buffer, index=False, header=False)
        return buffer.getvalue()

    @staticmethod
    def _cell_to_str(value: Any) -> str:
        if value is None or (isinstance(value, float) and pd.isna(value)):
            return ""
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        if isinstance(value, (datetime, pd.Timestamp)):
            return value.isoformat(sep=" ")
        return str(value).strip()

    def _rows(self, intermediate: str) -> Iterator[Dict[str, str]]:
        found_marker = False
        for cells in csv.reader(io.StringIO(intermediate)):
            cells = [c.strip() for c in cells]
            first = cells[0] if cells else ""

            if not found_marker:
                if first.lower() == HEADER_MARKER.lower():
                    found_marker = True
                continue

            if self._is_skippable(cells):
                continue
            yield self._map_positional(cells)

        if not found_marker:
            logging.warning(f"Spreadsheet header marker '{HEADER_MARKER}' not found; no rows emitted")

    def _is_skippable(self, cells: List[str]) -> bool:
        first = cells[0] if len(cells) > 0 else ""
        second = cells[1] if len(cells) > 1 else ""
        if not first and not second:
            return True
        if first.lower() == HEADER_MARKER.lower():
            return True
        return first.lower() in SECTION_TITLES

    def _map_positional(self, cells: List[str]) -> Dict[str, str]:
        padded = cells + [""] * (len(SPREADSHEET_COLUMNS) - len(cells))
        return dict(zip(SPREADSHEET_COLUMNS, padded))


class ParserFactory:
    @staticmethod
    def get_parser(filename: str) -> BaseParser:
        ext = get_extension(filename)
        if ext in DELIMITED_EXTENSIONS:
            return CSVParser()
        elif ext in SPREADSHEET_EXTENSIONS:
            return SpreadsheetParser(ext)
        else:
            raise ParseError(f"Unsupported file type: {ext or filename}")
