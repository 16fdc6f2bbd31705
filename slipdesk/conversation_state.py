"""
Per-contact conversation state.

Absence of an entry is the implicit idle state; the only tracked stage is
waiting for the contact to reply with their employee id. State is volatile
and starts empty on every restart.
"""

import time
from dataclasses import dataclass, field
from enum import Enum


class ConversationStage(Enum):
    AWAITING_EMPLOYEE_ID = "awaiting_empid"


@dataclass
class ConversationState:
    stage: ConversationStage = ConversationStage.AWAITING_EMPLOYEE_ID
    started_at: float = field(default_factory=time.time)

    def age_seconds(self, now: float | None = None) -> float:
        return (now if now is not None else time.time()) - self.started_at

    def is_expired(self, max_age_seconds: float, now: float | None = None) -> bool:
        return self.age_seconds(now) > max_age_seconds
