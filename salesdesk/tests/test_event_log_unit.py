from datetime import datetime, timezone

import pytest

from salesdesk.internal_core.contracts import (
    CorrectionRecord,
    CustomerDetectedRecord,
    MessageRecord,
    SessionSnapshot,
    SessionStartRecord,
)
from salesdesk.internal_core.event_log import (
    EventLog,
    InvalidDayError,
    day_of,
    tail_entries,
    utc_iso,
    validate_day,
)


def _snapshot(session_id: str = "s1") -> SessionSnapshot:
    return SessionSnapshot(
        session_id=session_id,
        started_at="2024-05-01T09:00:00.000Z",
        started_reason="implicit_start",
    )


def test_validate_day_accepts_iso_dates() -> None:
    assert validate_day(" 2024-05-01 ") == "2024-05-01"


@pytest.mark.parametrize("value", ["", "2024/05/01", "20240501", "2024-5-1", "2024-13-40", None])
def test_validate_day_rejects_bad_format(value) -> None:
    with pytest.raises(InvalidDayError):
        validate_day(value)


def test_utc_iso_uses_z_suffix_and_day_prefix() -> None:
    stamp = utc_iso(datetime(2024, 5, 1, 23, 59, 59, 123456, tzinfo=timezone.utc))
    assert stamp == "2024-05-01T23:59:59.123Z"
    assert day_of(stamp) == "2024-05-01"


def test_append_partitions_by_record_day(tmp_path) -> None:
    log = EventLog(tmp_path)
    assert log.append_message(
        MessageRecord(logged_at="2024-05-01T09:00:00.000Z", client="c", payload="a", session=_snapshot())
    )
    assert log.append_message(
        MessageRecord(logged_at="2024-05-02T00:00:01.000Z", client="c", payload="b", session=_snapshot())
    )
    assert (tmp_path / "stt-messages-2024-05-01.ndjson").exists()
    assert (tmp_path / "stt-messages-2024-05-02.ndjson").exists()
    assert [item.payload for item in log.read_messages("2024-05-01")] == ["a"]
    assert log.list_files("messages") == [
        "stt-messages-2024-05-02.ndjson",
        "stt-messages-2024-05-01.ndjson",
    ]
    assert log.latest_message_file() == tmp_path / "stt-messages-2024-05-02.ndjson"


def test_records_are_written_with_camel_case_keys(tmp_path) -> None:
    log = EventLog(tmp_path)
    log.append_lifecycle(
        SessionStartRecord(
            session_id="s1",
            started_at="2024-05-01T09:00:00.000Z",
            reason="intro_phrase_detected",
            client="c",
        )
    )
    line = (tmp_path / "stt-sessions-2024-05-01.ndjson").read_text(encoding="utf-8")
    assert '"sessionId": "s1"' in line
    assert '"type": "session_start"' in line
    assert line.endswith("\n")


def test_corrupted_lines_are_skipped_not_fatal(tmp_path) -> None:
    log = EventLog(tmp_path)
    log.append_lifecycle(
        SessionStartRecord(session_id="s1", started_at="2024-05-01T09:00:00.000Z", reason="implicit_start")
    )
    path = tmp_path / "stt-sessions-2024-05-01.ndjson"
    with path.open("a", encoding="utf-8") as handle:
        handle.write("{not json\n")
        handle.write('["a list"]\n')
        handle.write('{"type": "unknown_kind", "sessionId": "s9"}\n')
        handle.write('{"type": "customer_detected", "sessionId": "s1"}\n')
    log.append_lifecycle(
        CustomerDetectedRecord(
            session_id="s1",
            detected_at="2024-05-01T09:00:05.000Z",
            customer_name="김민수",
        )
    )

    records = log.read_lifecycle("2024-05-01")
    assert [item.type for item in records] == ["session_start", "customer_detected"]
    assert records[1].customer_name == "김민수"


def test_messages_without_session_snapshot_still_parse(tmp_path) -> None:
    path = tmp_path / "stt-messages-2024-05-01.ndjson"
    path.write_text(
        '{"type":"stt","loggedAt":"2024-05-01T09:00:00.000Z","client":"c","payload":"legacy"}\n',
        encoding="utf-8",
    )
    records = EventLog(tmp_path).read_messages("2024-05-01")
    assert len(records) == 1
    assert records[0].session is None


def test_missing_partition_reads_as_empty(tmp_path) -> None:
    log = EventLog(tmp_path / "never_created")
    assert log.read_messages("2024-05-01") == []
    assert log.read_lifecycle("2024-05-01") == []
    assert log.read_corrections("2024-05-01") == []
    assert log.list_files() == []
    assert log.latest_message_file() is None


def test_corrections_partition_by_target_day(tmp_path) -> None:
    log = EventLog(tmp_path)
    log.append_correction(
        CorrectionRecord(
            corrected_at="2024-05-03T10:00:00.000Z",
            corrected_by="kim",
            day="2024-05-01",
            session_id="s1",
            customer_name="박지성",
        )
    )
    assert (tmp_path / "stt-corrections-2024-05-01.ndjson").exists()
    assert [item.customer_name for item in log.read_corrections("2024-05-01")] == ["박지성"]


def test_fixed_file_mode_filters_messages_by_day(tmp_path) -> None:
    fixed = tmp_path / "pinned" / "all.ndjson"
    log = EventLog(tmp_path, fixed_message_file=fixed)
    assert log.mode == "fixed_file"
    log.append_message(MessageRecord(logged_at="2024-05-01T09:00:00.000Z", payload="a", session=_snapshot()))
    log.append_message(MessageRecord(logged_at="2024-05-02T09:00:00.000Z", payload="b", session=_snapshot()))
    assert fixed.exists()
    assert [item.payload for item in log.read_messages("2024-05-02")] == ["b"]
    assert log.latest_message_file() == fixed
    assert EventLog(tmp_path).mode == "daily_rollover"


def test_tail_entries_returns_last_lines_and_raw_fallback(tmp_path) -> None:
    path = tmp_path / "tail.ndjson"
    path.write_text('{"n": 1}\n{"n": 2}\nbroken\n{"n": 3}\n', encoding="utf-8")
    assert tail_entries(path, 2) == [{"raw": "broken"}, {"n": 3}]
    assert len(tail_entries(path, 100)) == 4
    assert tail_entries(None, 10) == []
    assert tail_entries(tmp_path / "missing.ndjson", 10) == []
