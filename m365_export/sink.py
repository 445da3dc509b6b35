"""
CSV sink — writes projected rows to the export file.

`create` starts a new file and refuses to replace an existing one unless told
to. `append` adds rows to a shared file (multi-geo runs) and writes the header
only if the file is new; an existing header must match the expected columns.
"""

from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence

from .errors import SinkWriteError

logger = logging.getLogger("m365_export.sink")

CREATE = "create"
APPEND = "append"
MODES = (CREATE, APPEND)


def format_cell(value: Any) -> Any:
    """Serialize a record value for a CSV cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, (list, tuple)):
        return ";".join(str(format_cell(v)) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, separators=(",", ":"), default=str, ensure_ascii=False)
    return value


class CsvSink:
    """Context-managed CSV writer bound to one output file and column list."""

    def __init__(
        self,
        path: str | Path,
        fieldnames: Sequence[str],
        mode: str = CREATE,
        overwrite: bool = False,
    ):
        if mode not in MODES:
            raise ValueError(f"Unknown sink mode: {mode}")
        self.path = Path(path)
        self.fieldnames = list(dict.fromkeys(fieldnames))
        self.mode = mode
        self.overwrite = overwrite
        self.rows_written = 0
        self._fh = None
        self._writer: Optional[csv.DictWriter] = None

    def __enter__(self) -> "CsvSink":
        self.open()
        return self

    def __exit__(self, *args):
        self.close()

    def open(self):
        write_header = True
        try:
            if self.mode == CREATE:
                if self.path.exists() and not self.overwrite:
                    raise SinkWriteError(f"Refusing to overwrite existing file {self.path}")
                file_mode = "w"
            else:
                if self.path.exists() and self.path.stat().st_size > 0:
                    self._check_header()
                    write_header = False
                file_mode = "a"
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self.path, file_mode, newline="", encoding="utf-8")
        except SinkWriteError as e:
            logger.error(str(e))
            raise
        except OSError as e:
            logger.error(f"Cannot open {self.path}: {e}")
            raise SinkWriteError(f"Cannot open {self.path}: {e}") from e

        self._writer = csv.DictWriter(
            self._fh, fieldnames=self.fieldnames, restval="", extrasaction="raise"
        )
        if write_header:
            self._writer.writeheader()

    def _check_header(self):
        with open(self.path, "r", newline="", encoding="utf-8") as fh:
            existing = next(csv.reader(fh), [])
        if existing != self.fieldnames:
            raise SinkWriteError(
                f"Header of {self.path} ({', '.join(existing)}) does not match "
                f"export columns ({', '.join(self.fieldnames)})"
            )

    def write(self, row: Mapping[str, Any]):
        if self._writer is None:
            raise SinkWriteError(f"Sink for {self.path} is not open")
        try:
            self._writer.writerow({k: format_cell(v) for k, v in row.items()})
        except ValueError as e:
            # DictWriter raises ValueError for columns outside the header
            logger.error(f"Row does not fit {self.path}: {e}")
            raise SinkWriteError(f"Row does not fit {self.path}: {e}") from e
        except OSError as e:
            logger.error(f"Cannot write to {self.path}: {e}")
            raise SinkWriteError(f"Cannot write to {self.path}: {e}") from e
        self.rows_written += 1

    def close(self):
        if self._fh is not None:
            try:
                self._fh.close()
            except OSError as e:
                raise SinkWriteError(f"Cannot close {self.path}: {e}") from e
            finally:
                self._fh = None
                self._writer = None


def write_rows(
    rows: Iterable[Mapping[str, Any]],
    path: str | Path,
    mode: str = CREATE,
    fieldnames: Optional[Sequence[str]] = None,
    overwrite: bool = False,
) -> int:
    """
    Write rows to `path` and return how many were written.
    Without `fieldnames` the header is the union of the row keys in
    first-seen order, which requires holding the rows in memory.
    """
    if fieldnames is None:
        rows = list(rows)
        fieldnames = list(dict.fromkeys(key for row in rows for key in row))
    with CsvSink(path, fieldnames, mode=mode, overwrite=overwrite) as sink:
        for row in rows:
            sink.write(row)
    return sink.rows_written
