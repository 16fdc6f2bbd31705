"""
WhatsApp self-registration chatbot.

A contact sends the trigger keyword. If their number is already on file
they get their salary slip straight away; otherwise the bot asks for an
employee id, registers the number against it and then delivers the slip.
"""

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager

from slipdesk.config import settings
from slipdesk.conversation_state import ConversationStage, ConversationState
from slipdesk.directory_service import DirectoryService, get_directory_service
from slipdesk.errors import NotFoundError
from slipdesk.gateway import MessageGateway, get_gateway
from slipdesk.models import EmployeeRecord, InboundMessage
from slipdesk.observability import trace_span
from slipdesk.phone import PhoneMatcher, contact_digits, is_group_address

ASK_EMPLOYEE_ID = (
    "Hello! 👋\n\n"
    "I don't have your mobile number registered.\n\n"
    "Please share your Employee ID to proceed."
)
SLIP_NOT_AVAILABLE = "Your salary slip is not available yet. Please contact HR."
TRIGGER_FAILED = "Sorry, something went wrong. Please try again later."
EMPLOYEE_ID_FAILED = (
    "Sorry, something went wrong while processing your Employee ID. Please try again."
)


class _ContactTurns:
    """Ticket queue that admits one handler at a time per contact, in arrival order."""

    __slots__ = ("turn", "next_ticket", "serving")

    def __init__(self, lock: threading.Lock):
        self.turn = threading.Condition(lock)
        self.next_ticket = 0
        self.serving = 0


class ConversationEngine:
    """
    Per-contact state machine: idle (no entry) -> awaiting employee id -> idle.

    Messages from the same contact are handled strictly one after another in
    the order they reached `handle_message`; different contacts proceed in
    parallel. A failure while handling one message is logged, answered with
    a generic notice and never reaches the caller.
    """

    def __init__(
        self,
        directory: DirectoryService,
        gateway: MessageGateway,
        matcher: PhoneMatcher | None = None,
        trigger_keyword: str = "sobha",
        max_age_seconds: float = 1800,
        hr_signature: str = "HR",
        logger: logging.Logger | None = None,
    ):
        self.directory = directory
        self.gateway = gateway
        self.matcher = matcher or directory.matcher
        self.trigger_keyword = trigger_keyword.strip().casefold()
        self.max_age_seconds = max_age_seconds
        self.hr_signature = hr_signature
        self.logger = logger or logging.getLogger(__name__)

        self.conversations: dict[str, ConversationState] = {}
        self._lock = threading.Lock()
        self._turns: dict[str, _ContactTurns] = {}

    @property
    def active_conversations(self) -> int:
        with self._lock:
            return len(self.conversations)

    def get_state(self, contact_id: str) -> ConversationState | None:
        with self._lock:
            return self.conversations.get(contact_id)

    def _set_state(self, contact_id: str, state: ConversationState) -> None:
        with self._lock:
            self.conversations[contact_id] = state

    def _clear_state(self, contact_id: str) -> None:
        with self._lock:
            self.conversations.pop(contact_id, None)

    @contextmanager
    def _turn(self, contact_id: str) -> Iterator[None]:
        with self._lock:
            turns = self._turns.get(contact_id)
            if turns is None:
                turns = self._turns[contact_id] = _ContactTurns(self._lock)
            ticket = turns.next_ticket
            turns.next_ticket += 1
            while turns.serving != ticket:
                turns.turn.wait()
        try:
            yield
        finally:
            with self._lock:
                turns.serving += 1
                if turns.serving == turns.next_ticket:
                    del self._turns[contact_id]
                else:
                    turns.turn.notify_all()

    def handle_message(self, message: InboundMessage) -> None:
        """Entry point for every inbound chat message."""
        if message.from_me or is_group_address(message.sender):
            return

        text = (message.text or "").strip()
        if not text:
            return

        contact_id = message.sender.split("@", 1)[0]
        with self._turn(contact_id), trace_span("handle_message", contact=contact_id):
            self.logger.info(f"Received message from {contact_id}")
            if text.casefold() == self.trigger_keyword:
                self._guarded(contact_id, self._handle_trigger, TRIGGER_FAILED)
            elif self.get_state(contact_id) is not None:
                self._guarded(
                    contact_id,
                    lambda contact: self._handle_employee_id(contact, text),
                    EMPLOYEE_ID_FAILED,
                )
            # Anything else from an idle contact is ignored.

    def _guarded(self, contact_id: str, handler, failure_text: str) -> None:
        try:
            handler(contact_id)
        except Exception as e:
            self.logger.error(f"Error handling message from {contact_id}: {e}", exc_info=True)
            try:
                self.gateway.send_text(self._address(contact_id), failure_text)
            except Exception as send_error:
                self.logger.error(f"Could not notify {contact_id} of failure: {send_error}")

    def _address(self, contact_id: str) -> str:
        return self.matcher.to_address(contact_digits(contact_id))

    def _handle_trigger(self, contact_id: str) -> None:
        address = self._address(contact_id)
        record = self.directory.find_by_contact(contact_id)

        if record is None:
            self.gateway.send_text(address, ASK_EMPLOYEE_ID)
            self._set_state(contact_id, ConversationState(ConversationStage.AWAITING_EMPLOYEE_ID))
            self.logger.info(f"Awaiting employee id from {contact_id}")
            return

        self._clear_state(contact_id)
        if record.slip is not None:
            self._send_slip(record, address)
        else:
            employee = record.employee
            self.gateway.send_text(
                address,
                f"Hello {employee.name or 'there'}! ✋\n\n"
                f"Your Employee ID: {employee.id}\n\n"
                f"{SLIP_NOT_AVAILABLE}",
            )

    def _handle_employee_id(self, contact_id: str, employee_id: str) -> None:
        address = self._address(contact_id)

        try:
            self.directory.get_employee(employee_id)
        except NotFoundError:
            self.gateway.send_text(
                address,
                f'Employee ID "{employee_id}" not found. ❌\n\n'
                "Please check and send the correct Employee ID.",
            )
            return

        record = self.directory.update_mobile(employee_id, contact_digits(contact_id))
        try:
            self.gateway.send_text(
                address,
                f"Thank you, {record.employee.name or record.employee.id}! ✅\n\n"
                "Your mobile number has been registered.",
            )
            if record.slip is not None:
                self._send_slip(record, address)
            else:
                self.gateway.send_text(address, SLIP_NOT_AVAILABLE)
        finally:
            self._clear_state(contact_id)

    def _send_slip(self, record: EmployeeRecord, address: str) -> None:
        caption = (
            f"Dear {record.employee.name or 'Employee'},\n\n"
            "Please find attached your salary slip. 📄\n\n"
            f"Regards,\n{self.hr_signature}"
        )
        content = self.directory.read_slip(record.slip)
        self.gateway.send_document(address, content, record.slip.file_name, caption)
        self.logger.info(f"Salary slip sent via chatbot: employee={record.employee.id}")

    def sweep_expired(self, max_age_seconds: float | None = None) -> int:
        """Drop conversations older than the max age without notifying anyone."""
        max_age = self.max_age_seconds if max_age_seconds is None else max_age_seconds
        now = time.time()

        with self._lock:
            expired = [
                contact
                for contact, state in self.conversations.items()
                if state.is_expired(max_age, now)
            ]
            for contact in expired:
                del self.conversations[contact]

        for contact in expired:
            self.logger.info(f"Cleaned up old conversation: {contact}")
        return len(expired)

    def reset_conversation(self, contact_id: str) -> bool:
        """Forget any conversation with `contact_id`."""
        with self._lock:
            removed = self.conversations.pop(contact_id, None) is not None
        if removed:
            self.logger.info(f"Conversation reset for {contact_id}")
        return removed


# Global engine instance
engine = None


def get_engine() -> ConversationEngine:
    """Get or create global engine instance."""
    global engine
    if engine is None:
        directory = get_directory_service()
        engine = ConversationEngine(
            directory=directory,
            gateway=get_gateway(),
            matcher=directory.matcher,
            trigger_keyword=settings.trigger_keyword,
            max_age_seconds=settings.conversation_max_age_seconds,
            hr_signature=settings.hr_signature,
        )
    return engine
