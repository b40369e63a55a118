"""Row encoding into delimited text records."""

from __future__ import annotations

import csv
import io
from typing import Sequence

from .errors import EncodingError

QUOTE = '"'
# characters that can never serve as a field delimiter
RESERVED_DELIMITERS = (QUOTE, "\n", "\r")


class RowEncoder:
    """
    Encode rows as delimited UTF-8 records.

    Quoting follows the usual CSV rules: a field containing the delimiter, a
    quote or a line break (``\\n`` or ``\\r``) is wrapped in quotes and inner
    quotes are doubled. Every record ends with ``\\n``. One encoder is built
    per run and reused for every row.
    """

    def __init__(self, delimiter: str):
        if delimiter in RESERVED_DELIMITERS:
            raise EncodingError(f"Delimiter {delimiter!r} clashes with the quote or line break characters")
        self.delimiter = delimiter
        self._buf = io.StringIO()
        try:
            self._writer = csv.writer(
                self._buf,
                delimiter=delimiter,
                quotechar=QUOTE,
                quoting=csv.QUOTE_MINIMAL,
                lineterminator="\n",
            )
        except (TypeError, ValueError, csv.Error) as e:
            raise EncodingError(f"Delimiter {delimiter!r} cannot be used: {e}") from e

    def _quote(self, field: str) -> str:
        if self.delimiter in field or QUOTE in field or "\n" in field or "\r" in field:
            return QUOTE + field.replace(QUOTE, QUOTE * 2) + QUOTE
        return field

    def encode(self, row: Sequence[str]) -> bytes:
        try:
            # csv.writer only quotes line breaks found in its lineterminator
            if any("\r" in field for field in row):
                text = self.delimiter.join(self._quote(field) for field in row) + "\n"
            else:
                self._buf.seek(0)
                self._buf.truncate()
                self._writer.writerow(row)
                text = self._buf.getvalue()
            return text.encode("utf-8")
        except (csv.Error, UnicodeEncodeError) as e:
            raise EncodingError(f"Cannot encode row: {e}") from e


def encode_row(row: Sequence[str], delimiter: str) -> bytes:
    """Encode a single row; see :class:`RowEncoder`."""
    return RowEncoder(delimiter).encode(row)
