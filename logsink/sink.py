"""Thread-safe append-only sink — one JSON record per line."""

import errno
import logging
import os
import threading

logger = logging.getLogger(__name__)


class SinkWriteError(Exception):
    """Raised when a record could not be appended. Not fatal to the caller."""


class SinkWriter:
    """Append-only file writer shared by every stream session.

    The file is opened once and never truncated. Each append writes the whole
    line under a process-wide lock so lines from concurrent sessions never
    interleave; a line cut short by a failed write is closed off with a
    newline so later records stay parseable.
    """

    def __init__(self, path: str):
        self._path = path
        self._lock = threading.Lock()
        self._partial_line = False

        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        # unbuffered: nothing is left in a buffer after a failed append
        self._file = open(path, "ab", buffering=0)
        logger.info("Appending access logs to %s", path)

    @property
    def path(self) -> str:
        return self._path

    @property
    def closed(self) -> bool:
        return self._file is None

    def append(self, data: bytes):
        """Write *data* followed by a newline.

        Raises SinkWriteError on I/O failure or after close().
        """
        line = data + b"\n"
        with self._lock:
            if self._file is None:
                raise SinkWriteError(f"sink {self._path} is closed")
            if self._partial_line:
                line = b"\n" + line
            try:
                self._write_all(line)
            except OSError as exc:
                self._end_partial_line()
                raise SinkWriteError(f"write to {self._path} failed: {exc}") from exc

    def _write_all(self, data: bytes):
        view = memoryview(data)
        while view:
            written = self._file.write(view)
            if not written:
                raise OSError(errno.EIO, "write made no progress")
            view = view[written:]
            # set while the file ends mid-record
            self._partial_line = bool(view)

    def _end_partial_line(self):
        """Terminate a fragment left by a failed write so the next record starts clean."""
        if not self._partial_line:
            return
        try:
            self._write_all(b"\n")
        except OSError as exc:
            logger.warning("Could not terminate partial record in %s (%s); "
                           "the next record will start on a new line", self._path, exc)

    def close(self):
        """Close the file handle. Safe to call more than once."""
        with self._lock:
            if self._file is None:
                return
            try:
                self._file.close()
            finally:
                self._file = None
        logger.info("Closed access log sink %s", self._path)
