"""
Pytest configuration and fixtures.
Shared directories, workbooks and a recording gateway.
"""

from pathlib import Path

import pytest
from openpyxl import Workbook

from slipdesk.chatbot import ConversationEngine
from slipdesk.directory_cache import DirectoryCache
from slipdesk.directory_service import DirectoryService
from slipdesk.errors import TransportError
from slipdesk.gateway import ConnectionState, MessageGateway
from slipdesk.phone import PhoneMatcher
from slipdesk.slip_index import SlipIndex
from slipdesk.workbook_store import WorkbookStore

REGISTERED_CONTACT = "919825533053@s.whatsapp.net"
UNREGISTERED_CONTACT = "919111111111@s.whatsapp.net"


def write_workbook(path: Path, rows, header=("empid", "name", "mobileNo"), title="Sheet1"):
    """Create an .xlsx file with one sheet."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = title
    sheet.append(list(header))
    for row in rows:
        sheet.append(list(row))
    workbook.save(path)
    return path


class RecordingGateway(MessageGateway):
    """Gateway double that records every send."""

    def __init__(self):
        self.state = ConnectionState.CONNECTED
        self.fail_documents = False
        self.sent = []

    @property
    def connection_state(self) -> ConnectionState:
        return self.state

    def send_text(self, address, text):
        self.ensure_connected()
        self.sent.append(("text", address, text))

    def send_document(self, address, content, file_name, caption=None):
        self.ensure_connected()
        if self.fail_documents:
            raise TransportError("upload failed")
        self.sent.append(("document", address, file_name, caption, content))

    @property
    def texts(self):
        return [item[2] for item in self.sent if item[0] == "text"]

    @property
    def documents(self):
        return [item for item in self.sent if item[0] == "document"]


@pytest.fixture
def slip_dir(tmp_path):
    """Slip directory with slips for E001 and E002 and one unrelated file."""
    directory = tmp_path / "salary-pdf"
    directory.mkdir()
    (directory / "E001_salaryslip.pdf").write_bytes(b"%PDF-1.4 E001")
    (directory / "E002_SalarySlip.PDF").write_bytes(b"%PDF-1.4 E002")
    (directory / "notes.txt").write_text("not a slip")
    return directory


@pytest.fixture
def workbook_path(tmp_path):
    """Workbook with a registered (E001) and two unregistered employees."""
    return write_workbook(
        tmp_path / "employees.xlsx",
        [
            ("E001", "John Doe", "9825533053"),
            ("E002", "Priya Sharma", None),
            ("E003", "Amit Patel", ""),
        ],
    )


@pytest.fixture
def snapshot_path(tmp_path):
    return tmp_path / "data" / "employees.json"


@pytest.fixture
def make_directory(snapshot_path, workbook_path, slip_dir):
    """Factory for an uninitialized DirectoryService over the temp files."""
    services = []

    def factory(workbook=workbook_path, slips=slip_dir, snapshot=snapshot_path, debounce=0.05):
        service = DirectoryService(
            cache=DirectoryCache(snapshot, debounce_seconds=debounce),
            workbook=WorkbookStore(workbook),
            slips=SlipIndex(slips),
            matcher=PhoneMatcher(country_code="91"),
        )
        services.append(service)
        return service

    yield factory

    for service in services:
        service.shutdown()


@pytest.fixture
def directory(make_directory):
    """Initialized DirectoryService bootstrapped from the workbook."""
    service = make_directory()
    service.initialize()
    return service


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def engine(directory, gateway):
    return ConversationEngine(
        directory=directory,
        gateway=gateway,
        trigger_keyword="sobha",
        max_age_seconds=1800,
        hr_signature="Sobha HR",
    )
