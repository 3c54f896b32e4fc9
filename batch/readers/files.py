"""
File readers: delimited text, JSON arrays and XML fragments.

All file readers are strict by default: a missing file raises
ResourceNotFoundError. With strict=False a missing file is read as an empty
source and only logged.
"""

from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Type, Union
from pydantic import BaseModel
from batch.readers.base import CountingItemReader, ReaderHints, RowMapper
from core.exceptions import DataFormatError, ResourceNotFoundError
import json
import logging
import re
import xml.etree.ElementTree as ET

import pandas as pd

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# pandas tokenizer errors name the physical line: "Expected 4 fields in line 7, saw 6"
_PARSER_ERROR_LINE = re.compile(r"\bline (\d+)")


class FileItemReader(CountingItemReader):
    """
    Base for readers over a single file resource.

    Subclasses implement _iter_rows(), a generator of raw rows. The
    generator is created on open and consumed one row per read.
    """

    def __init__(
        self,
        name: str,
        path: PathLike,
        record_type: Optional[Type[BaseModel]] = None,
        row_mapper: Optional[RowMapper] = None,
        strict: bool = True,
    ):
        super().__init__(name, record_type=record_type, row_mapper=row_mapper)
        self.path = Path(path)
        self.strict = strict
        self._rows: Optional[Iterator[Dict[str, Any]]] = None

    def _iter_rows(self) -> Iterator[Dict[str, Any]]:
        raise NotImplementedError

    def _position(self) -> Dict[str, Any]:
        return {"item_number": self.read_count + 1}

    def _describe_position(self) -> Dict[str, Any]:
        context = {"reader": self.name, "resource": str(self.path)}
        context.update(self._position())
        return context

    async def _do_open(self) -> None:
        if not self.path.exists():
            if self.strict:
                raise ResourceNotFoundError(
                    "Input resource does not exist",
                    context={"reader": self.name, "resource": str(self.path)},
                )
            logger.warning(f"{self.name}: resource not found, reading as empty: {self.path}")
            self._rows = iter(())
            return

        logger.info(f"{self.name}: reading {self.path}")
        self._rows = self._iter_rows()

    async def _do_read(self) -> Optional[Dict[str, Any]]:
        if self._rows is None:
            return None
        try:
            return next(self._rows)
        except StopIteration:
            return None

    async def _do_close(self) -> None:
        if self._rows is not None:
            close = getattr(self._rows, "close", None)
            if close is not None:
                close()
            self._rows = None


class FlatFileItemReader(FileItemReader):
    """
    Read delimited text (CSV) with pandas, one block of fetch_size lines at a time.

    Supports:
    - Explicit column names with a number of header lines to skip
    - Header-derived column names (normalized: stripped, lowercased, snake_case)
    - Resume by discarding already-read records before they are mapped

    Blank lines are not records, so read_count counts parsed records rather
    than physical lines.
    """

    def __init__(
        self,
        name: str,
        path: PathLike,
        record_type: Optional[Type[BaseModel]] = None,
        row_mapper: Optional[RowMapper] = None,
        names: Optional[Sequence[str]] = None,
        lines_to_skip: int = 0,
        delimiter: str = ",",
        strict: bool = True,
        hints: Optional[ReaderHints] = None,
    ):
        super().__init__(name, path, record_type=record_type, row_mapper=row_mapper, strict=strict)
        self.names = list(names) if names else None
        self.lines_to_skip = lines_to_skip
        self.delimiter = delimiter
        self.hints = hints or ReaderHints()

    def _position(self) -> Dict[str, Any]:
        header_lines = self.lines_to_skip if self.names else 1
        return {"line_number": header_lines + self.read_count + 1}

    def _parser_error_context(self, error: Exception) -> Dict[str, Any]:
        context = {"reader": self.name, "resource": str(self.path)}
        match = _PARSER_ERROR_LINE.search(str(error))
        if match:
            context["line_number"] = int(match.group(1))
        else:
            # The failing block starts at the next unread record
            context["block_start_record"] = self.read_count + 1
        return context

    def _iter_rows(self) -> Iterator[Dict[str, Any]]:
        options = dict(
            sep=self.delimiter,
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
            chunksize=self.hints.fetch_size,
        )
        if self.names:
            options.update(header=None, names=self.names, skiprows=self.lines_to_skip)
        else:
            options.update(header=0)

        try:
            blocks = pd.read_csv(self.path, **options)
        except pd.errors.EmptyDataError:
            return

        with blocks:
            while True:
                try:
                    frame = next(blocks)
                except StopIteration:
                    return
                except pd.errors.EmptyDataError:
                    return
                except pd.errors.ParserError as e:
                    raise DataFormatError(
                        "Malformed delimited line",
                        context=self._parser_error_context(e),
                        original_exception=e,
                    )

                if not self.names:
                    # Normalize column names (strip whitespace, lowercase)
                    frame.columns = frame.columns.str.strip().str.lower().str.replace(" ", "_")

                # Missing trailing fields come back as NaN
                frame = frame.astype(object).where(pd.notna(frame), None)
                for row in frame.to_dict(orient="records"):
                    yield row


class JsonItemReader(FileItemReader):
    """
    Read a JSON document whose top level is an array of objects.

    The array is decoded in one pass; use the flat file or XML readers for
    inputs that must be streamed.
    """

    def _iter_rows(self) -> Iterator[Dict[str, Any]]:
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                document = json.load(fh)
        except json.JSONDecodeError as e:
            raise DataFormatError(
                "Malformed JSON document",
                context={"reader": self.name, "resource": str(self.path), "line_number": e.lineno},
                original_exception=e,
            )

        if not isinstance(document, list):
            raise DataFormatError(
                "JSON document must be an array of objects",
                context={"reader": self.name, "resource": str(self.path)},
            )

        for index, item in enumerate(document):
            if not isinstance(item, dict):
                raise DataFormatError(
                    "JSON array element is not an object",
                    context={"reader": self.name, "resource": str(self.path), "index": index},
                )
            yield item


class XmlItemReader(FileItemReader):
    """
    Stream XML fragments with iterparse.

    Every element named fragment_root becomes one row: its child elements'
    tags and text. Parsed fragments are cleared to keep memory flat.
    """

    def __init__(
        self,
        name: str,
        path: PathLike,
        fragment_root: str,
        record_type: Optional[Type[BaseModel]] = None,
        row_mapper: Optional[RowMapper] = None,
        strict: bool = True,
    ):
        super().__init__(name, path, record_type=record_type, row_mapper=row_mapper, strict=strict)
        self.fragment_root = fragment_root

    def _iter_rows(self) -> Iterator[Dict[str, Any]]:
        events = ET.iterparse(str(self.path), events=("end",))
        try:
            for _, element in events:
                if element.tag != self.fragment_root:
                    continue
                row = {child.tag: (child.text or "").strip() for child in element}
                element.clear()
                yield row
        except ET.ParseError as e:
            line, column = e.position
            raise DataFormatError(
                "Malformed XML document",
                context={"reader": self.name, "resource": str(self.path), "line_number": line, "column": column},
                original_exception=e,
            )
        finally:
            close = getattr(events, "close", None)
            if close is not None:
                close()


def list_resources(directory: PathLike, pattern: str) -> List[Path]:
    """Resources matching a glob, sorted by file name"""
    return sorted(Path(directory).glob(pattern), key=lambda p: p.name)
