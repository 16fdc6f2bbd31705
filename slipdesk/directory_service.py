"""
Directory service: the single entry point the HTTP routes and the chatbot
use to read and change the employee directory.

The local cache serves all live traffic. The workbook is read once at
bootstrap (only when the cache is completely empty) and afterwards only on
an explicit export or reload, both of which are whole-table overwrites.
"""

import logging
from pathlib import Path

from slipdesk.config import settings
from slipdesk.directory_cache import DirectoryCache
from slipdesk.errors import InvalidInputError, NotFoundError, StorageError
from slipdesk.models import (
    EmployeeListing,
    EmployeeRecord,
    ExportResult,
    ReloadResult,
    SlipRecord,
)
from slipdesk.observability import trace_span
from slipdesk.phone import PhoneMatcher, normalize
from slipdesk.slip_index import SlipIndex
from slipdesk.workbook_store import WorkbookStore


class DirectoryService:
    def __init__(
        self,
        cache: DirectoryCache,
        workbook: WorkbookStore,
        slips: SlipIndex,
        matcher: PhoneMatcher | None = None,
        logger: logging.Logger | None = None,
    ):
        self.cache = cache
        self.workbook = workbook
        self.slips = slips
        self.matcher = matcher or PhoneMatcher()
        self.logger = logger or logging.getLogger(__name__)
        self.initialized = False

    def initialize(self) -> None:
        """
        Load the snapshot, hydrate it from the workbook when empty, and index slips.

        A missing workbook is logged and the service starts with whatever the
        snapshot holds. A missing slip directory is fatal.

        Raises:
            StorageError: If the slip directory or the snapshot cannot be read
        """
        if self.initialized:
            return

        self.cache.load()

        if self.cache.is_empty():
            self._bootstrap_from_workbook()

        self.slips.load()

        self.initialized = True
        self.logger.info(
            f"Directory initialized: {len(self.cache)} employees, {len(self.slips)} salary slips"
        )

    def _bootstrap_from_workbook(self) -> None:
        if not self.workbook.exists():
            self.logger.warning(
                f"Employee workbook not found at {self.workbook.path}; "
                "continuing with empty directory"
            )
            return

        try:
            employees = self.workbook.read()
        except StorageError as e:
            self.logger.error(f"Bootstrap import skipped: {e}")
            return

        if employees:
            imported = self.cache.replace_all(employees)
            self.logger.info(f"Bootstrapped local store from workbook: {imported} employees")

    def _ensure_initialized(self) -> None:
        if not self.initialized:
            raise StorageError("Directory not initialized. Call initialize() first.")

    def get_employee(self, employee_id: str) -> EmployeeRecord:
        """
        Raises:
            NotFoundError: If the employee does not exist
        """
        self._ensure_initialized()

        employee = self.cache.get(employee_id)
        if employee is None:
            raise NotFoundError(f"Employee {employee_id} not found")

        return EmployeeRecord(employee=employee, slip=self.slips.lookup(employee.id))

    def list_employees(self) -> list[EmployeeListing]:
        """Employees in cache insertion order; sort by id if a stable order matters."""
        self._ensure_initialized()

        return [
            EmployeeListing(
                employee=employee, slip_available=self.slips.lookup(employee.id) is not None
            )
            for employee in self.cache.all()
        ]

    def find_by_contact(self, contact: str) -> EmployeeRecord | None:
        """First employee whose stored mobile matches the contact address."""
        for listing in self.list_employees():
            if self.matcher.matches(listing.employee.mobile, contact):
                return EmployeeRecord(
                    employee=listing.employee, slip=self.slips.lookup(listing.employee.id)
                )
        return None

    def read_slip(self, slip: SlipRecord) -> bytes:
        try:
            return Path(slip.absolute_path).read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read salary slip {slip.file_name}: {e}") from e

    def get_slip_content(self, employee_id: str) -> tuple[EmployeeRecord, bytes]:
        """
        Raises:
            NotFoundError: If the employee or their salary slip does not exist
        """
        record = self.get_employee(employee_id)
        if record.slip is None:
            raise NotFoundError(f"Salary slip not available for employee {employee_id}")
        return record, self.read_slip(record.slip)

    def update_mobile(self, employee_id: str | None, mobile: str | None) -> EmployeeRecord:
        """
        Set (or clear, when `mobile` is empty) an employee's mobile.

        Creates the employee without a name when the id is unknown. Only the
        local cache changes; the workbook is untouched until export.

        Raises:
            InvalidInputError: If the id is empty or the mobile has no digits
        """
        self._ensure_initialized()

        employee_id = (employee_id or "").strip()
        if not employee_id:
            raise InvalidInputError("empid is required")

        digits = None
        if mobile not in (None, ""):
            # Range checks belong to the HTTP boundary; chat registrations
            # store whatever number the transport reports.
            digits = normalize(mobile)
            if not digits:
                raise InvalidInputError(f"Invalid mobile number: {mobile!r}")

        employee = self.cache.upsert_mobile(employee_id, digits)
        self.logger.info(f"Mobile {'updated' if digits else 'cleared'} for employee {employee_id}")
        return EmployeeRecord(employee=employee, slip=self.slips.lookup(employee.id))

    def export_to_authoritative(self) -> ExportResult:
        """Overwrite the workbook with the cache, sorted by id."""
        self._ensure_initialized()

        with self.cache.transaction(), trace_span("export_to_workbook"):
            employees = sorted(self.cache.all(), key=lambda e: e.id)
            count = self.workbook.write(employees)

        self.logger.info(f"Exported {count} employees to {self.workbook.path}")
        return ExportResult(count=count, path=self.workbook.path)

    def reload_from_authoritative(self) -> ReloadResult:
        """
        Replace the whole cache with the workbook contents.

        Edits not yet exported are discarded.

        Raises:
            StorageError: If the workbook is missing or unreadable; the cache is left untouched
        """
        self._ensure_initialized()

        with self.cache.transaction(), trace_span("reload_from_workbook"):
            employees = self.workbook.read()
            imported = self.cache.replace_all(employees)

        self.logger.info(f"Reloaded local store from workbook: {imported} employees")
        return ReloadResult(imported=imported)

    def reload_slips(self) -> int:
        self._ensure_initialized()
        return self.slips.load()

    def shutdown(self) -> None:
        """Flush any pending snapshot write."""
        if self.cache.flush():
            self.logger.info("Pending snapshot flushed on shutdown")


# Global directory service instance
directory_service = None


def get_directory_service() -> DirectoryService:
    """Get or create global directory service instance."""
    global directory_service
    if directory_service is None:
        matcher = PhoneMatcher(country_code=settings.default_country_code)
        directory_service = DirectoryService(
            cache=DirectoryCache(
                settings.employee_snapshot_path,
                debounce_seconds=settings.snapshot_debounce_seconds,
            ),
            workbook=WorkbookStore(settings.employee_workbook_path),
            slips=SlipIndex(settings.salary_slip_dir, settings.slip_file_pattern),
            matcher=matcher,
        )
    return directory_service
