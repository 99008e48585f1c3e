from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Optional

from salesdesk.internal_core.contracts import CorrectionRecord
from salesdesk.internal_core.event_log import EventLog, utc_iso, utc_now, validate_day

logger = logging.getLogger(__name__)

DEFAULT_CORRECTED_BY = "operator"


class CorrectionValidationError(ValueError):
    """Raised when a correction request is missing required fields."""


class CorrectionStore:
    def __init__(self, event_log: EventLog, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._event_log = event_log
        self._clock = clock

    def apply(
        self,
        day: str,
        session_id: str,
        customer_name: str,
        corrected_by: Optional[str] = None,
    ) -> CorrectionRecord:
        resolved_day = validate_day(day)
        resolved_session_id = str(session_id or "").strip()
        resolved_name = str(customer_name or "").strip()
        if not resolved_session_id:
            raise CorrectionValidationError("session_id is required.")
        if not resolved_name:
            raise CorrectionValidationError("customer_name is required.")

        record = CorrectionRecord(
            corrected_at=utc_iso(self._clock()),
            corrected_by=str(corrected_by or "").strip() or DEFAULT_CORRECTED_BY,
            day=resolved_day,
            session_id=resolved_session_id,
            customer_name=resolved_name,
        )
        persisted = self._event_log.append_correction(record)
        logger.info(
            "correction applied: day=%s session_id=%s name=%s by=%s persisted=%s",
            record.day,
            record.session_id,
            record.customer_name,
            record.corrected_by,
            persisted,
        )
        return record

    def latest(self, day: str) -> dict[str, CorrectionRecord]:
        return latest_by_session(self._event_log.read_corrections(validate_day(day)))

    def history(self, day: str, session_id: str) -> list[CorrectionRecord]:
        target = str(session_id or "").strip()
        return [
            item
            for item in self._event_log.read_corrections(validate_day(day))
            if item.session_id == target
        ]


def latest_by_session(records: list[CorrectionRecord]) -> dict[str, CorrectionRecord]:
    # Last appended wins; correctedAt is informational only.
    latest: dict[str, CorrectionRecord] = {}
    for record in records:
        latest[record.session_id] = record
    return latest


def apply_correction(summary: Any, correction: CorrectionRecord) -> Any:
    """Overlay a correction onto a frozen summary; always ends in `corrected`."""
    return replace(
        summary,
        customer_name=correction.customer_name,
        customer_status="corrected",
        corrected_by=correction.corrected_by,
        corrected_at=correction.corrected_at,
    )
