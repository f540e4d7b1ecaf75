"""Error isolation policy for extraction runs."""

from __future__ import annotations

import logging
import threading
from typing import List, Optional

from .errors import ErrorCategory, ErrorRecord

logger = logging.getLogger(__name__)

# Failures in these categories stay inside one unit or one candidate.
ISOLATED_CATEGORIES = frozenset(
    {
        ErrorCategory.SCAN,
        ErrorCategory.KEY_GENERATION,
        ErrorCategory.BINDING,
        ErrorCategory.TRANSLATION,
    }
)


class ErrorPolicy:
    """Records isolated failures so the run can report them at the end.

    Catalog and file errors are recorded too, but they end the run: the
    caller re-raises them after recording.
    """

    def __init__(self) -> None:
        self.records: List[ErrorRecord] = []
        self._lock = threading.Lock()

    def handle_error(
        self,
        category: ErrorCategory,
        message: str,
        *,
        unit: Optional[str] = None,
        details: Optional[str] = None,
    ) -> bool:
        """Record an error; return True when the run may continue."""

        record = ErrorRecord(category=category, message=message, details=details, unit=unit)
        with self._lock:
            self.records.append(record)
        if category in ISOLATED_CATEGORIES:
            logger.warning("%s%s", f"[{unit}] " if unit else "", message)
            return True
        logger.error("%s%s", f"[{unit}] " if unit else "", message)
        return False

    def messages(self) -> List[str]:
        return [
            f"{record.unit}: {record.message}" if record.unit else record.message
            for record in self.records
        ]
