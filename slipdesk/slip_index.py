"""
Salary slip index.

Scans the slip directory once and maps employee ids to PDF files. The
index is rebuilt wholesale by `load()`; there is no filesystem watching.
"""

import logging
import re
import threading
from pathlib import Path

from slipdesk.config import DEFAULT_SLIP_FILE_PATTERN
from slipdesk.errors import StorageError
from slipdesk.models import SlipRecord
from slipdesk.observability import trace_span

ID_GROUP = "empid"


def compile_slip_pattern(pattern: str | re.Pattern = DEFAULT_SLIP_FILE_PATTERN) -> re.Pattern:
    """Compile a filename pattern; it must define an `empid` named group."""
    if isinstance(pattern, re.Pattern):
        compiled = pattern
    else:
        compiled = re.compile(pattern, re.IGNORECASE)
    if ID_GROUP not in compiled.groupindex:
        raise ValueError(f"Slip file pattern must define a named group '{ID_GROUP}'")
    return compiled


def parse_slip_filename(file_name: str, pattern: re.Pattern) -> str | None:
    """Return the employee id encoded in `file_name`, or None when it does not match."""
    match = pattern.match(file_name)
    if not match:
        return None
    return match.group(ID_GROUP) or None


class SlipIndex:
    """
    Lookup of employee id -> SlipRecord.

    Lookups read the current map reference without locking; `load()` builds
    a fresh map and publishes it with a single assignment under the lock.
    """

    def __init__(
        self,
        directory: Path | str,
        pattern: str | re.Pattern = DEFAULT_SLIP_FILE_PATTERN,
        logger: logging.Logger | None = None,
    ):
        self.directory = Path(directory)
        self.pattern = compile_slip_pattern(pattern)
        self.logger = logger or logging.getLogger(__name__)
        self._index: dict[str, SlipRecord] = {}
        self._lock = threading.Lock()

    def load(self) -> int:
        """
        Scan the directory and replace the index.

        Returns:
            Number of indexed slips

        Raises:
            StorageError: If the directory is missing or unreadable
        """
        if not self.directory.is_dir():
            raise StorageError(f"Salary slip directory not found at {self.directory}")

        with self._lock, trace_span("slip_index_load", directory=self.directory):
            index: dict[str, SlipRecord] = {}
            try:
                entries = sorted(self.directory.iterdir(), key=lambda p: p.name)
            except OSError as e:
                raise StorageError(f"Failed to list {self.directory}: {e}") from e

            for entry in entries:
                if not entry.is_file():
                    continue

                employee_id = parse_slip_filename(entry.name, self.pattern)
                if employee_id is None:
                    self.logger.warning(f"Skipping non-matching salary slip file: {entry.name}")
                    continue

                index[employee_id] = SlipRecord(
                    employee_id=employee_id,
                    file_name=entry.name,
                    absolute_path=entry.resolve(),
                )

            self._index = index

        self.logger.info(f"Salary slip index loaded: {len(index)} slips")
        return len(index)

    def lookup(self, employee_id: str) -> SlipRecord | None:
        return self._index.get(employee_id)

    def __len__(self) -> int:
        return len(self._index)
