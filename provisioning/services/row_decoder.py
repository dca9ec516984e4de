"""
Row decoder for uploaded roster files.
Turns a CSV byte stream into numbered raw rows keyed by recognized column headers.
"""
import csv
import logging
from typing import BinaryIO, Dict, Iterator, List, Optional, Tuple

from provisioning.core.exceptions import CSVProcessingException
from provisioning.models.upload_job import EntityKind

logger = logging.getLogger(__name__)


class RecordSchema:
    """Recognized columns for one target entity kind."""

    def __init__(self, kind: EntityKind, required: Tuple[str, ...], optional: Tuple[str, ...], example: Tuple[str, ...]):
        self.kind = kind
        self.required = required
        self.optional = optional
        self.example = example

    @property
    def columns(self) -> Tuple[str, ...]:
        return self.required + self.optional


STUDENT_SCHEMA = RecordSchema(
    kind=EntityKind.STUDENT,
    required=("Full Name", "Email", "Roll Number"),
    optional=("Degree", "Branch", "Year"),
    example=("John Doe", "john.doe@college.edu", "CS2024001", "B.Tech", "Computer Science", "3"),
)

TRAINER_SCHEMA = RecordSchema(
    kind=EntityKind.TRAINER,
    required=("Full Name", "Email"),
    optional=("Department", "Specialization"),
    example=("Dr. Robert Smith", "robert.smith@college.edu", "Computer Science", "Machine Learning"),
)

SCHEMAS = {
    EntityKind.STUDENT: STUDENT_SCHEMA,
    EntityKind.TRAINER: TRAINER_SCHEMA,
}


def schema_for(kind: EntityKind) -> RecordSchema:
    return SCHEMAS[EntityKind(kind)]


def generate_template(kind: EntityKind) -> bytes:
    """Static two-line CSV (header + example row) for the given kind."""
    schema = schema_for(kind)
    return (",".join(schema.columns) + "\n" + ",".join(schema.example) + "\n").encode("utf-8")


class DecodedRow:
    """One data row of the source file, or the reason it could not be read."""

    def __init__(self, row_number: int, fields: Dict[str, str], error: Optional[str] = None):
        self.row_number = row_number
        self.fields = fields
        self.error = error

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def __repr__(self):
        return f"DecodedRow(row_number={self.row_number}, error={self.error!r})"


class _DecodingLineSource:
    """Feeds decoded text lines to csv.reader and remembers undecodable ones."""

    def __init__(self, stream: BinaryIO, encoding: str):
        self._stream = stream
        self._encoding = encoding
        self.malformed = False

    def __iter__(self) -> Iterator[str]:
        for raw_line in self._stream:
            try:
                yield raw_line.decode(self._encoding)
            except UnicodeDecodeError:
                self.malformed = True
                yield raw_line.decode(self._encoding, errors="replace")


class RowDecoder:
    """
    Single-pass decoder over an uploaded CSV stream.

    ``open`` reads and checks the header line and raises CSVProcessingException
    when the file as a whole cannot be trusted. ``rows`` then lazily yields one
    DecodedRow per data record; malformed records come back with ``error`` set
    and are also appended to ``errors``.
    """

    def __init__(self, stream: BinaryIO, kind: EntityKind, encoding: str = "utf-8"):
        self.schema = schema_for(kind)
        self.errors: List[Tuple[int, str]] = []
        self._source = _DecodingLineSource(stream, encoding)
        self._reader = csv.reader(iter(self._source))
        self._header_index: Optional[Dict[str, int]] = None
        self._header_width = 0
        self._consumed = False

    def open(self) -> "RowDecoder":
        """
        Read the header line and map recognized columns to positions.

        Raises:
            CSVProcessingException: If the header is absent, undecodable or
                missing a required column
        """
        if self._header_index is not None:
            return self

        try:
            header = next(self._reader, None)
        except csv.Error as e:
            raise CSVProcessingException(f"Failed to read CSV header: {str(e)}") from e

        while header is not None and not header:
            header = next(self._reader, None)

        if header is None:
            raise CSVProcessingException("CSV file is empty")
        if self._source.malformed:
            raise CSVProcessingException("File must be a valid UTF-8 encoded CSV")

        if header and header[0].startswith("\ufeff"):
            header[0] = header[0][1:]
        names = [name.strip() for name in header]

        index = {}
        for position, name in enumerate(names):
            if name in self.schema.columns and name not in index:
                index[name] = position

        missing = [column for column in self.schema.required if column not in index]
        if missing:
            raise CSVProcessingException(
                f"Missing required columns: {', '.join(missing)}. "
                f"Expected headers: {', '.join(self.schema.columns)}"
            )

        self._header_index = index
        self._header_width = len(names)
        logger.debug("CSV headers for %s upload: %s", self.schema.kind.value, names)
        return self

    def rows(self) -> Iterator[DecodedRow]:
        """
        Yield numbered rows in source order. The stream is consumed once.

        Raises:
            CSVProcessingException: If called a second time
        """
        if self._consumed:
            raise CSVProcessingException("Upload stream has already been consumed")
        self.open()
        self._consumed = True
        return self._iter_rows()

    def _iter_rows(self) -> Iterator[DecodedRow]:
        row_number = 0
        while True:
            self._source.malformed = False
            try:
                record = next(self._reader)
            except StopIteration:
                return
            except csv.Error as e:
                row_number += 1
                yield self._error_row(row_number, {}, f"Malformed CSV row: {str(e)}")
                continue

            if not record:
                continue
            row_number += 1

            fields = self._map_fields(record)
            if self._source.malformed:
                yield self._error_row(row_number, fields, "Row is not valid UTF-8")
            elif len(record) != self._header_width:
                yield self._error_row(
                    row_number,
                    fields,
                    f"Expected {self._header_width} columns, found {len(record)}"
                )
            else:
                yield DecodedRow(row_number, fields)

    def _map_fields(self, record: List[str]) -> Dict[str, str]:
        return {
            name: record[position]
            for name, position in self._header_index.items()
            if position < len(record)
        }

    def _error_row(self, row_number: int, fields: Dict[str, str], message: str) -> DecodedRow:
        self.errors.append((row_number, message))
        return DecodedRow(row_number, fields, error=message)
