"""
In-memory employee directory backed by a JSON snapshot file.

All live reads and writes go through this cache. Mutations schedule a
debounced rewrite of the whole snapshot; `flush()` forces a pending
rewrite to happen immediately and must be called on shutdown.
"""

import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import ValidationError

from slipdesk.errors import InvalidInputError, StorageError
from slipdesk.models import Employee
from slipdesk.observability import trace_span
from slipdesk.utils.debounce import Debouncer


class DirectoryCache:
    """
    Lock-guarded map of employee id -> Employee.

    A reentrant lock covers the map and the persist timer. Callers that
    need several operations to be atomic (export, reload) hold it via
    `transaction()`. Snapshot writes are serialized by a second lock and
    never hold the map lock during file I/O.
    """

    def __init__(
        self,
        snapshot_path: Path | str,
        debounce_seconds: float = 0.5,
        logger: logging.Logger | None = None,
    ):
        self.snapshot_path = Path(snapshot_path)
        self.logger = logger or logging.getLogger(__name__)
        self._employees: dict[str, Employee] = {}
        self._lock = threading.RLock()
        self._persist_lock = threading.Lock()
        self._debouncer = Debouncer(
            self.persist, delay=debounce_seconds, lock=self._lock, name="snapshot-persist"
        )

    @contextmanager
    def transaction(self) -> Iterator["DirectoryCache"]:
        with self._lock:
            yield self

    def load(self) -> int:
        """
        Load the snapshot, creating an empty one when the file is absent.

        Returns:
            Number of employees loaded

        Raises:
            StorageError: If the snapshot exists but cannot be read or parsed
        """
        with self._persist_lock, self._lock:
            if not self.snapshot_path.exists():
                try:
                    self._write_rows([])
                except OSError as e:
                    raise StorageError(
                        f"Failed to create snapshot {self.snapshot_path}: {e}"
                    ) from e
                self._employees.clear()
                self.logger.info(f"Local employee store initialized at {self.snapshot_path}")
                return 0

            try:
                raw = self.snapshot_path.read_text(encoding="utf-8")
                rows = json.loads(raw or "[]")
            except (OSError, ValueError) as e:
                self.logger.error(f"Failed to load local employee store: {e}")
                raise StorageError(f"Failed to load snapshot {self.snapshot_path}: {e}") from e

            if not isinstance(rows, list):
                raise StorageError(f"Snapshot {self.snapshot_path} is not a JSON array")

            employees: dict[str, Employee] = {}
            for row in rows:
                try:
                    employee = Employee.model_validate(row)
                except ValidationError:
                    self.logger.warning(f"Skipping invalid snapshot row: {row}")
                    continue
                employees[employee.id] = employee

            self._employees = employees
            self.logger.info(
                f"Local employee store loaded: {len(employees)} employees from {self.snapshot_path}"
            )
            return len(employees)

    def is_empty(self) -> bool:
        with self._lock:
            return not self._employees

    def __len__(self) -> int:
        with self._lock:
            return len(self._employees)

    def get(self, employee_id: str) -> Employee | None:
        with self._lock:
            return self._employees.get(employee_id)

    def all(self) -> list[Employee]:
        """Employees in insertion order."""
        with self._lock:
            return list(self._employees.values())

    def replace_all(self, employees: Iterable[Employee]) -> int:
        """Discard the current contents, import `employees` and schedule a persist."""
        with self._lock:
            self._employees = {employee.id: employee for employee in employees}
            self._debouncer.schedule()
            return len(self._employees)

    def upsert_mobile(self, employee_id: str, mobile: str | None) -> Employee:
        """
        Set or clear the mobile of `employee_id`, creating the employee if needed.

        Only the mobile changes on an existing record; the name is preserved.
        """
        employee_id = (employee_id or "").strip()
        if not employee_id:
            raise InvalidInputError("empid is required")

        with self._lock:
            current = self._employees.get(employee_id)
            if current is None:
                updated = Employee(id=employee_id, mobile=mobile)
            else:
                updated = current.model_copy(update={"mobile": mobile or None})
            self._employees[employee_id] = updated
            self._debouncer.schedule()
            return updated

    @property
    def persist_pending(self) -> bool:
        return self._debouncer.pending

    def persist(self) -> bool:
        """
        Write the whole cache to the snapshot file.

        Failures are logged and reported as False; the in-memory state is
        kept as is and the next scheduled persist tries again.
        """
        with self._persist_lock:
            # Rows are taken under the persist lock so writes land in snapshot order.
            with self._lock:
                rows = [employee.to_row() for employee in self._employees.values()]
            try:
                with trace_span("snapshot_persist", count=len(rows)):
                    self._write_rows(rows)
            except OSError as e:
                self.logger.error(f"Failed to save local employee snapshot: {e}")
                return False

        self.logger.info(f"Local employee snapshot saved: {len(rows)} employees")
        return True

    def flush(self) -> bool:
        """Run a pending debounced persist synchronously."""
        return self._debouncer.flush()

    def _write_rows(self, rows: list[dict[str, str]]) -> None:
        self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.snapshot_path.parent, prefix=f".{self.snapshot_path.stem}-", suffix=".json"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(rows, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.snapshot_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
