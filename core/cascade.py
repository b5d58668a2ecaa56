"""Cross-task transitions triggered by resolving a specific task."""

import logging
from datetime import datetime

from core.models import Resident
from core.schedule import ANY_TIME_TASK_KEY, start_of_next_day

logger = logging.getLogger(__name__)


class NightCheckCascade:
    """
    Resolving the night check starts a new day of care.

    Every other personal-care slot is flagged due again, with its due time
    set to the start of the next calendar day. Re-applying it is a no-op.
    """

    task_key = ANY_TIME_TASK_KEY

    def applies_to(self, task_key: str) -> bool:
        return task_key == self.task_key

    def apply(self, resident: Resident, now: datetime) -> int:
        """
        Reset all other personal-care slots to due.

        Returns:
            Number of slots reset
        """
        next_day = start_of_next_day(now)
        reset = 0
        for key, definition in resident.personal_care.items():
            if key == self.task_key:
                continue
            for status in definition.statuses:
                status.is_due = True
                status.last_due_time = next_day
                reset += 1

        logger.info(f"Night check cascade reset {reset} slots for resident {resident.id}")
        return reset


night_check_cascade = NightCheckCascade()
