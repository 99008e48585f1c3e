from datetime import datetime, timedelta, timezone

import pytest

from salesdesk.corrections.store import (
    CorrectionStore,
    CorrectionValidationError,
    apply_correction,
    latest_by_session,
)
from salesdesk.internal_core.contracts import CorrectionRecord
from salesdesk.internal_core.event_log import EventLog, InvalidDayError
from salesdesk.report.builder import SessionSummary


def _clock_sequence(*moments: datetime):
    remaining = list(moments)

    def clock() -> datetime:
        return remaining.pop(0)

    return clock


def test_apply_appends_record_even_for_unknown_session(tmp_path) -> None:
    store = CorrectionStore(EventLog(tmp_path))
    record = store.apply("2024-05-01", " sess-404 ", " 김민수 ", None)
    assert record.session_id == "sess-404"
    assert record.customer_name == "김민수"
    assert record.corrected_by == "operator"
    assert record.type == "session_correction"
    assert store.latest("2024-05-01")["sess-404"].customer_name == "김민수"


@pytest.mark.parametrize(
    "session_id,customer_name,message",
    [
        ("", "김민수", "session_id is required."),
        ("s1", "   ", "customer_name is required."),
    ],
)
def test_apply_rejects_missing_fields(tmp_path, session_id, customer_name, message) -> None:
    store = CorrectionStore(EventLog(tmp_path))
    with pytest.raises(CorrectionValidationError, match=message):
        store.apply("2024-05-01", session_id, customer_name, "kim")
    assert store.latest("2024-05-01") == {}


def test_apply_rejects_bad_day(tmp_path) -> None:
    store = CorrectionStore(EventLog(tmp_path))
    with pytest.raises(InvalidDayError):
        store.apply("05/01/2024", "s1", "김민수")


def test_latest_uses_append_order_not_declared_timestamp(tmp_path) -> None:
    base = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    # Second correction carries an earlier clock reading (skew) but is appended last.
    store = CorrectionStore(
        EventLog(tmp_path),
        clock=_clock_sequence(base, base - timedelta(hours=3)),
    )
    store.apply("2024-05-01", "s1", "이영희", "kim")
    store.apply("2024-05-01", "s1", "이영호", "lee")

    latest = store.latest("2024-05-01")
    assert latest["s1"].customer_name == "이영호"
    assert latest["s1"].corrected_by == "lee"
    assert [item.customer_name for item in store.history("2024-05-01", "s1")] == ["이영희", "이영호"]


def test_latest_by_session_keeps_last_per_session() -> None:
    def record(session_id: str, name: str) -> CorrectionRecord:
        return CorrectionRecord(
            corrected_at="2024-05-01T10:00:00.000Z",
            corrected_by="op",
            day="2024-05-01",
            session_id=session_id,
            customer_name=name,
        )

    latest = latest_by_session([record("a", "1"), record("b", "2"), record("a", "3")])
    assert {key: value.customer_name for key, value in latest.items()} == {"a": "3", "b": "2"}


def test_apply_correction_overrides_recognized_status() -> None:
    summary = SessionSummary(session_id="s1", customer_name="박지성", customer_status="recognized")
    correction = CorrectionRecord(
        corrected_at="2024-05-01T10:00:00.000Z",
        corrected_by="op",
        day="2024-05-01",
        session_id="s1",
        customer_name="박지성",
    )
    corrected = apply_correction(summary, correction)
    assert corrected.customer_status == "corrected"
    assert corrected.customer_name == "박지성"
    assert corrected.corrected_by == "op"
    assert summary.customer_status == "recognized"
