from __future__ import annotations

"""
Per-connection session state machine for live transcript ingestion.

Design intent:
- The transport layer owns a SessionRegistry and hands each connection a
  ConnectionHandle; only that connection's task mutates its handle.
- Sessions start implicitly on the first message or whenever the
  operator intro phrase is heard, even mid-call.
- Acknowledgments reflect session state; log durability is best-effort.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Callable, Dict, Optional

from salesdesk.internal_core.config import DEFAULT_INTRO_PHRASE
from salesdesk.internal_core.contracts import (
    UNKNOWN_CUSTOMER,
    CustomerDetectedRecord,
    CustomerStatus,
    LogRecord,
    MessageRecord,
    SessionSnapshot,
    SessionStartRecord,
    StartedReason,
)
from salesdesk.internal_core.event_log import EventLog, utc_iso, utc_now

from .name_detector import NameDetector, is_intro_phrase

logger = logging.getLogger(__name__)


def new_session_id(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    stamp = moment.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
    return f"{stamp}-{uuid.uuid4().hex[:8]}"


@dataclass
class SessionState:
    session_id: str
    started_at: str
    started_reason: StartedReason
    customer_name: str = UNKNOWN_CUSTOMER
    customer_status: CustomerStatus = "unrecognized"
    message_count: int = 0
    last_message_at: Optional[str] = None

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            started_at=self.started_at,
            started_reason=self.started_reason,
            customer_name=self.customer_name,
            customer_status=self.customer_status,
            message_count=self.message_count,
            last_message_at=self.last_message_at,
        )


@dataclass
class ConnectionHandle:
    connection_id: str
    client: str
    connected_at: str
    session: Optional[SessionState] = field(default=None)


class SessionRegistry:
    def __init__(self) -> None:
        self._lock = RLock()
        self._connections: Dict[str, ConnectionHandle] = {}

    def open(self, client: str) -> ConnectionHandle:
        handle = ConnectionHandle(
            connection_id=uuid.uuid4().hex,
            client=client,
            connected_at=utc_iso(),
        )
        with self._lock:
            self._connections[handle.connection_id] = handle
        return handle

    def close(self, handle: ConnectionHandle) -> None:
        with self._lock:
            self._connections.pop(handle.connection_id, None)

    def get(self, connection_id: str) -> Optional[ConnectionHandle]:
        with self._lock:
            return self._connections.get(connection_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        with self._lock:
            return connection_id in self._connections


@dataclass(frozen=True)
class IngestResult:
    ack: dict[str, Any]
    # Lifecycle records first, then the message record, in append order.
    records: tuple[LogRecord, ...] = ()


class SessionTracker:
    def __init__(
        self,
        event_log: EventLog,
        *,
        detector: Optional[NameDetector] = None,
        intro_phrase: str = DEFAULT_INTRO_PHRASE,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._event_log = event_log
        self._detector = detector or NameDetector()
        self._intro_phrase = intro_phrase
        self._clock = clock

    def accept(self, handle: ConnectionHandle, text: str) -> IngestResult:
        """Advance the connection's session state without touching disk.

        Returns the ack to send plus the records still to be persisted.
        """
        now = self._clock()
        received_at = utc_iso(now)
        records: list[LogRecord] = []

        intro = is_intro_phrase(text, self._intro_phrase)
        if intro or handle.session is None:
            reason: StartedReason = "intro_phrase_detected" if intro else "implicit_start"
            handle.session, start_record = self._start_session(handle, reason=reason, now=now)
            records.append(start_record)
        session = handle.session

        if session.customer_status == "unrecognized":
            detected = self._try_detect(handle, session, text, received_at)
            if detected is not None:
                records.append(detected)

        session.message_count += 1
        session.last_message_at = received_at
        snapshot = session.snapshot()

        records.append(
            MessageRecord(
                logged_at=received_at,
                client=handle.client,
                payload=text,
                session=snapshot,
            )
        )
        ack = {
            "type": "ack",
            "receivedAt": received_at,
            "payload": text,
            "session": snapshot.to_log_dict(),
        }
        return IngestResult(ack=ack, records=tuple(records))

    def persist(self, result: IngestResult) -> bool:
        persisted = True
        for record in result.records:
            if isinstance(record, MessageRecord):
                persisted = self._event_log.append_message(record) and persisted
            else:
                persisted = self._event_log.append_lifecycle(record) and persisted
        return persisted

    def ingest(self, handle: ConnectionHandle, text: str) -> dict[str, Any]:
        result = self.accept(handle, text)
        self.persist(result)
        return result.ack

    def current_session(self, handle: ConnectionHandle) -> Optional[dict[str, Any]]:
        if handle.session is None:
            return None
        return handle.session.snapshot().to_log_dict()

    def _start_session(
        self,
        handle: ConnectionHandle,
        *,
        reason: StartedReason,
        now: datetime,
    ) -> tuple[SessionState, SessionStartRecord]:
        session = SessionState(
            session_id=new_session_id(now),
            started_at=utc_iso(now),
            started_reason=reason,
        )
        logger.info(
            "session started: session_id=%s reason=%s client=%s",
            session.session_id,
            reason,
            handle.client,
        )
        record = SessionStartRecord(
            session_id=session.session_id,
            started_at=session.started_at,
            reason=reason,
            client=handle.client,
        )
        return session, record

    def _try_detect(
        self,
        handle: ConnectionHandle,
        session: SessionState,
        text: str,
        detected_at: str,
    ) -> Optional[CustomerDetectedRecord]:
        try:
            name = self._detector.detect(text)
        except Exception:
            logger.exception("customer detection failed: session_id=%s", session.session_id)
            return None
        if not name:
            return None

        session.customer_name = name
        session.customer_status = "recognized"
        logger.info(
            "customer detected: session_id=%s name=%s client=%s",
            session.session_id,
            name,
            handle.client,
        )
        return CustomerDetectedRecord(
            session_id=session.session_id,
            detected_at=detected_at,
            customer_name=name,
            customer_status="recognized",
            source_text=text,
        )
