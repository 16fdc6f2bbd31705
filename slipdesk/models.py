"""
Domain models for the employee directory and salary slip index.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from slipdesk.phone import normalize


def clean_cell(value: Any) -> str | None:
    """Trim a raw cell/JSON value; blank becomes None, 9825533053.0 becomes '9825533053'."""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


class Employee(BaseModel):
    """
    A directory entry.

    `id` is the primary key and never changes once the record exists; a
    record without `mobile` is a valid, unregistered employee. Aliases
    match the snapshot file layout (`empid`, `name`, `mobileNo`).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., alias="empid", min_length=1)
    name: str | None = None
    mobile: str | None = Field(default=None, alias="mobileNo")

    @field_validator("id", "name", mode="before")
    @classmethod
    def _clean(cls, value: Any) -> str | None:
        return clean_cell(value)

    @field_validator("mobile", mode="before")
    @classmethod
    def _digits_only(cls, value: Any) -> str | None:
        # Stored mobiles are always bare digits, whatever the source formatting.
        return normalize(clean_cell(value)) or None

    def to_row(self) -> dict[str, str]:
        """Row form used by the snapshot file and the workbook."""
        return {"empid": self.id, "name": self.name or "", "mobileNo": self.mobile or ""}


@dataclass(frozen=True)
class SlipRecord:
    employee_id: str
    file_name: str
    absolute_path: Path


@dataclass(frozen=True)
class EmployeeRecord:
    employee: Employee
    slip: SlipRecord | None = None

    @property
    def slip_available(self) -> bool:
        return self.slip is not None


@dataclass(frozen=True)
class EmployeeListing:
    employee: Employee
    slip_available: bool


@dataclass(frozen=True)
class ExportResult:
    count: int
    path: Path


@dataclass(frozen=True)
class ReloadResult:
    imported: int


@dataclass(frozen=True)
class InboundMessage:
    """A chat message as reported by the transport."""

    sender: str
    text: str
    from_me: bool = False
