"""
Buffered, optionally gzip-compressed output file.

The layers are stacked as ``BufferedWriter -> [GzipFile ->] file`` so that
the write buffer sits on top and compression (if any) sees large chunks.
"""

from __future__ import annotations

import contextlib
import gzip
import io
import logging
import os
from typing import Optional

from .config import CompressionType
from .errors import OutputError

logger = logging.getLogger(__name__)

GZIP_LEVEL = 6


class OutputSink:
    """
    Scoped byte sink bound to ``path``.

    Use as a context manager. On every exit path the buffer is flushed and
    every layer is closed; :meth:`size_bytes` may only be called afterwards.
    """

    def __init__(self, path: str, compression: CompressionType = CompressionType.none, buffer_size: int = io.DEFAULT_BUFFER_SIZE):
        self.path = path
        self.compression = compression
        self.buffer_size = buffer_size
        self._stack: Optional[contextlib.ExitStack] = None
        self._writer: Optional[io.BufferedWriter] = None
        self._closed = False

    def open(self) -> "OutputSink":
        stack = contextlib.ExitStack()
        try:
            raw = stack.enter_context(open(self.path, "wb", buffering=0))
            if self.compression == CompressionType.gzip:
                # empty name and mtime=0 keep the gzip header identical across runs
                inner = stack.enter_context(
                    gzip.GzipFile(filename="", fileobj=raw, mode="wb", compresslevel=GZIP_LEVEL, mtime=0)
                )
            else:
                inner = raw
            self._writer = stack.enter_context(io.BufferedWriter(inner, buffer_size=self.buffer_size))
        except OSError as e:
            stack.close()
            raise OutputError(f"Failed to create output file ({e.strerror or e})", self.path) from e
        self._stack = stack
        logger.debug("Opened %s (compression=%s, buffer=%d bytes)", self.path, self.compression.value, self.buffer_size)
        return self

    def write(self, data: bytes) -> None:
        if self._writer is None:
            raise OutputError("Output file is not open", self.path)
        try:
            self._writer.write(data)
        except OSError as e:
            raise OutputError(f"Failed to write output file ({e.strerror or e})", self.path) from e

    def close(self) -> None:
        if self._stack is None:
            return
        stack, self._stack = self._stack, None
        self._writer = None
        try:
            stack.close()
        except OSError as e:
            raise OutputError(f"Failed to flush output file ({e.strerror or e})", self.path) from e
        self._closed = True

    def size_bytes(self) -> int:
        """On-disk size of the finished file."""
        if not self._closed:
            raise OutputError("File size requested before the output was closed", self.path)
        try:
            return os.path.getsize(self.path)
        except OSError as e:
            raise OutputError(f"Cannot stat output file ({e.strerror or e})", self.path) from e

    def __enter__(self) -> "OutputSink":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
            return
        # keep the original error; a secondary flush failure must not mask it
        try:
            self.close()
        except OutputError as close_err:
            logger.warning("Closing %s after failure also failed: %s", self.path, close_err)
