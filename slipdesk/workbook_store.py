"""
Employee workbook adapter (the authoritative store).

Reads the first sheet of an .xlsx file with tolerant header matching and
writes the directory back as a single `Employees` sheet. Holds no state
between calls.
"""

import logging
import os
import re
import tempfile
import zipfile
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from slipdesk.errors import StorageError
from slipdesk.models import Employee, clean_cell
from slipdesk.observability import trace_span

SHEET_NAME = "Employees"
READ_ERRORS = (OSError, InvalidFileException, zipfile.BadZipFile, KeyError, ValueError)
HEADER = ["empid", "name", "mobileNo"]

# Header aliases, compared after lower-casing and dropping non-alphanumerics
ID_ALIASES = ("empid", "employeeid", "employeecode", "empcode", "id", "code")
NAME_ALIASES = ("name", "employeename", "empname", "fullname")
MOBILE_ALIASES = (
    "mobileno",
    "mobile",
    "mobilenumber",
    "phone",
    "phonenumber",
    "contact",
    "contactno",
    "contactnumber",
    "phoneno",
)


def normalize_header(header: Any) -> str:
    if header is None:
        return ""
    return re.sub(r"[^a-z0-9]", "", str(header).lower())


def _first(row: dict[str, Any], aliases: Iterable[str]) -> Any:
    for alias in aliases:
        if alias in row:
            return row[alias]
    return None


class WorkbookStore:
    """Read/write contract over the employee workbook."""

    def __init__(self, path: Path | str, logger: logging.Logger | None = None):
        self.path = Path(path)
        self.logger = logger or logging.getLogger(__name__)

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> list[Employee]:
        """
        Read employees from the first sheet.

        Rows without an id are skipped; when an id repeats, the later row wins.

        Raises:
            StorageError: If the workbook is missing or cannot be parsed
        """
        if not self.exists():
            raise StorageError(f"Employee workbook not found at {self.path}")

        with trace_span("workbook_read", path=self.path):
            try:
                workbook = load_workbook(self.path, read_only=True, data_only=True)
            except READ_ERRORS as e:
                raise StorageError(f"Failed to read workbook {self.path}: {e}") from e

            try:
                if not workbook.sheetnames:
                    self.logger.warning("Employee workbook does not contain any sheets")
                    return []

                sheet = workbook[workbook.sheetnames[0]]
                rows = sheet.iter_rows(values_only=True)
                header = next(rows, None)
                if header is None:
                    self.logger.warning(f"Employee workbook sheet '{sheet.title}' is empty")
                    return []

                keys = [normalize_header(h) for h in header]
                employees: dict[str, Employee] = {}

                for values in rows:
                    if values is None or all(clean_cell(v) is None for v in values):
                        continue

                    row: dict[str, Any] = {}
                    for key, value in zip(keys, values):
                        if key and key not in row:
                            row[key] = value

                    employee_id = clean_cell(_first(row, ID_ALIASES))
                    if not employee_id:
                        self.logger.warning(f"Skipping workbook row without employee id: {values}")
                        continue

                    employees[employee_id] = Employee(
                        id=employee_id,
                        name=_first(row, NAME_ALIASES),
                        mobile=_first(row, MOBILE_ALIASES),
                    )
            finally:
                workbook.close()

        self.logger.info(f"Employee workbook loaded: {len(employees)} employees")
        return list(employees.values())

    def write(self, employees: Iterable[Employee]) -> int:
        """
        Overwrite the workbook with one `Employees` sheet in the given order.

        Returns:
            Number of rows written
        """
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = SHEET_NAME
        sheet.append(HEADER)

        count = 0
        for employee in employees:
            row = employee.to_row()
            sheet.append([row[column] for column in HEADER])
            count += 1

        with trace_span("workbook_write", path=self.path, count=count):
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    dir=self.path.parent, prefix=f".{self.path.stem}-", suffix=".xlsx"
                )
                os.close(fd)
                try:
                    workbook.save(tmp_name)
                    os.replace(tmp_name, self.path)
                except BaseException:
                    Path(tmp_name).unlink(missing_ok=True)
                    raise
            except OSError as e:
                raise StorageError(f"Failed to write workbook {self.path}: {e}") from e

        self.logger.info(f"Employee workbook saved: {count} rows to {self.path}")
        return count
