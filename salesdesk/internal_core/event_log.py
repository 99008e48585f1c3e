from __future__ import annotations

"""
Append-only, date-partitioned NDJSON storage for the three event streams.

Design intent:
- One file per stream per UTC day: `{prefix}-{YYYY-MM-DD}.ndjson`.
- Each append is a single write of one serialized line; no locking.
- Readers take whatever was flushed when the file is opened and skip
  lines that fail to parse instead of aborting the read.
"""

import json
import logging
import re
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, ValidationError

from .config import ServiceConfig
from .contracts import (
    LIFECYCLE_RECORD_ADAPTER,
    CorrectionRecord,
    LifecycleRecord,
    LogRecord,
    MessageRecord,
)

logger = logging.getLogger(__name__)

Stream = Literal["messages", "sessions", "corrections"]

_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class InvalidDayError(ValueError):
    """Raised when a day parameter is not a valid YYYY-MM-DD date."""


def validate_day(day: str) -> str:
    value = str(day or "").strip()
    if not _DAY_RE.match(value):
        raise InvalidDayError(f"Invalid date format: {value!r}. Use YYYY-MM-DD.")
    try:
        date.fromisoformat(value)
    except ValueError as exc:
        raise InvalidDayError(f"Invalid calendar date: {value!r}.") from exc
    return value


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_iso(moment: Optional[datetime] = None) -> str:
    moment = moment or utc_now()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def day_of(timestamp: str) -> str:
    return str(timestamp or "")[:10]


class EventLog:
    def __init__(
        self,
        log_dir: Path | str,
        *,
        message_prefix: str = "stt-messages",
        session_prefix: str = "stt-sessions",
        correction_prefix: str = "stt-corrections",
        fixed_message_file: Path | str | None = None,
    ) -> None:
        self._log_dir = Path(log_dir)
        self._prefixes: dict[str, str] = {
            "messages": message_prefix,
            "sessions": session_prefix,
            "corrections": correction_prefix,
        }
        self._fixed_message_file = Path(fixed_message_file) if fixed_message_file else None

    @classmethod
    def from_config(cls, cfg: ServiceConfig) -> "EventLog":
        return cls(
            cfg.log_dir_path(),
            message_prefix=cfg.SALESDESK_MESSAGE_LOG_PREFIX,
            session_prefix=cfg.SALESDESK_SESSION_LOG_PREFIX,
            correction_prefix=cfg.SALESDESK_CORRECTION_LOG_PREFIX,
            fixed_message_file=cfg.fixed_log_file_path(),
        )

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    @property
    def mode(self) -> str:
        return "fixed_file" if self._fixed_message_file else "daily_rollover"

    def path_for(self, stream: Stream, day: str) -> Path:
        if stream == "messages" and self._fixed_message_file is not None:
            return self._fixed_message_file
        return self._log_dir / f"{self._prefixes[stream]}-{day}.ndjson"

    # -- append side -----------------------------------------------------

    def append(self, stream: Stream, record: LogRecord, *, day: str) -> bool:
        path = self.path_for(stream, day)
        line = record.to_json_line()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as handle:
                handle.write(line)
        except OSError as exc:
            logger.error("log write failed: stream=%s path=%s error=%s", stream, path, exc)
            return False
        return True

    def append_message(self, record: MessageRecord) -> bool:
        return self.append("messages", record, day=day_of(record.logged_at))

    def append_lifecycle(self, record: LifecycleRecord) -> bool:
        stamp = getattr(record, "started_at", None) or getattr(record, "detected_at", "")
        return self.append("sessions", record, day=day_of(stamp))

    def append_correction(self, record: CorrectionRecord) -> bool:
        # Corrections live in the partition of the day they correct.
        return self.append("corrections", record, day=record.day)

    # -- read side -------------------------------------------------------

    def read_raw(self, stream: Stream, day: str) -> list[dict[str, Any]]:
        path = self.path_for(stream, day)
        entries: list[dict[str, Any]] = []
        skipped = 0
        for line in _read_lines(path):
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                skipped += 1
                continue
            if not isinstance(entry, dict):
                skipped += 1
                continue
            entries.append(entry)
        if skipped:
            logger.debug("skipped %d unparsable lines in %s", skipped, path)
        return entries

    def read_messages(self, day: str) -> list[MessageRecord]:
        records = _validate_entries(self.read_raw("messages", day), MessageRecord)
        if self._fixed_message_file is not None:
            records = [item for item in records if day_of(item.logged_at) == day]
        return records

    def read_lifecycle(self, day: str) -> list[LifecycleRecord]:
        records: list[LifecycleRecord] = []
        for entry in self.read_raw("sessions", day):
            try:
                records.append(LIFECYCLE_RECORD_ADAPTER.validate_python(entry))
            except ValidationError:
                logger.debug("skipped invalid lifecycle entry: %s", entry.get("type"))
        return records

    def read_corrections(self, day: str) -> list[CorrectionRecord]:
        records = _validate_entries(self.read_raw("corrections", day), CorrectionRecord)
        return [item for item in records if item.day == day]

    def list_files(self, stream: Stream = "messages") -> list[str]:
        prefix = f"{self._prefixes[stream]}-"
        try:
            names = [item.name for item in self._log_dir.iterdir() if item.is_file()]
        except OSError:
            return []
        return sorted(
            (name for name in names if name.startswith(prefix) and name.endswith(".ndjson")),
            reverse=True,
        )

    def latest_message_file(self) -> Optional[Path]:
        if self._fixed_message_file is not None:
            return self._fixed_message_file
        names = self.list_files("messages")
        return self._log_dir / names[0] if names else None


def tail_entries(path: Optional[Path], limit: int) -> list[dict[str, Any]]:
    if path is None:
        return []
    lines = _read_lines(path)
    entries: list[dict[str, Any]] = []
    for line in lines[-limit:] if limit > 0 else []:
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            entry = None
        entries.append(entry if isinstance(entry, dict) else {"raw": line})
    return entries


def _read_lines(path: Path) -> list[str]:
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return []
    except OSError as exc:
        logger.warning("Failed to read log file: %s error=%s", path, exc)
        return []
    return [line for line in content.split("\n") if line.strip()]


def _validate_entries(entries: list[dict[str, Any]], model: type[BaseModel]) -> list[Any]:
    records = []
    for entry in entries:
        try:
            records.append(model.model_validate(entry))
        except ValidationError:
            logger.debug("skipped invalid %s entry", model.__name__)
    return records
