from __future__ import annotations

"""
Rebuild sessions and customer summaries from one day's logs.

Design intent:
- Session state is a fold over lifecycle records, then message records,
  then the correction overlay (manual fixes always win).
- Customers are groups of sessions sharing (status, name).
- Same logs in, same report out: every ordering has a total tie-break.
"""

import logging
from dataclasses import dataclass, replace
from functools import reduce
from typing import Any, Iterable, Literal, Optional, Sequence

from salesdesk.corrections.store import CorrectionStore, apply_correction, latest_by_session
from salesdesk.internal_core.config import DEFAULT_INTRO_PHRASE
from salesdesk.internal_core.contracts import (
    UNKNOWN_CUSTOMER,
    CorrectionRecord,
    CustomerDetectedRecord,
    CustomerStatus,
    LifecycleRecord,
    MessageRecord,
    SessionStartRecord,
)
from salesdesk.internal_core.event_log import EventLog, validate_day
from salesdesk.sessions.name_detector import is_intro_phrase

logger = logging.getLogger(__name__)

ReactionBucket = Literal["positive", "negative", "mixed", "unclassified"]

SALES_CONTENT_CAP = 4
SALES_CONTENT_SEPARATOR = " / "
INSUFFICIENT_CONTENT_NOTICE = "대화 내용이 부족합니다. 수동 보완이 필요합니다."

# Matched against text with all whitespace removed.
# Negatives are checked first and removed, so "관심이없" is not interest.
NEGATIVE_KEYWORDS: tuple[str, ...] = (
    "관심이없",
    "관심없",
    "필요없",
    "생각없",
    "안할게",
    "안하겠",
    "거절",
    "싫",
    "부담",
    "바빠",
    "바쁘",
    "나중에",
    "됐습니다",
    "됐어요",
    "곤란",
)
POSITIVE_KEYWORDS: tuple[str, ...] = (
    "관심있",
    "관심이",
    "좋습니다",
    "좋아요",
    "좋네요",
    "가입",
    "신청",
    "진행해",
    "진행하",
    "검토해",
    "알겠습니다",
    "동의",
    "궁금",
)

REACTION_LABELS: dict[str, str] = {
    "positive": "긍정적 (관심/동의 표현)",
    "negative": "부정적 (거절/망설임 표현)",
    "mixed": "긍정/부정 혼재 (후속 확인 필요)",
    "unclassified": "반응 판단 불가 (후속 확인 필요)",
}

NEXT_PLAN_BY_STATUS: dict[str, str] = {
    "unrecognized": "고객 식별 정보를 먼저 보정하세요.",
    "recognized": "다음 통화에서 구체적인 조건을 확인하세요.",
    "corrected": "보정된 고객 정보를 CRM에 동기화하세요.",
}


@dataclass(frozen=True)
class ReportMessage:
    logged_at: str
    text: str
    client: str
    seq: int

    def to_dict(self) -> dict[str, Any]:
        return {"loggedAt": self.logged_at, "text": self.text, "client": self.client}


@dataclass(frozen=True)
class SessionSummary:
    session_id: str
    started_at: Optional[str] = None
    started_reason: Optional[str] = None
    customer_name: str = UNKNOWN_CUSTOMER
    customer_status: CustomerStatus = "unrecognized"
    message_count: int = 0
    first_message_at: Optional[str] = None
    last_message_at: Optional[str] = None
    messages: tuple[ReportMessage, ...] = ()
    corrected_by: Optional[str] = None
    corrected_at: Optional[str] = None

    @property
    def start_key(self) -> str:
        return self.started_at or self.first_message_at or ""

    def to_dict(self, *, include_messages: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "sessionId": self.session_id,
            "startedAt": self.started_at,
            "startedReason": self.started_reason,
            "customerName": self.customer_name,
            "customerStatus": self.customer_status,
            "messageCount": self.message_count,
            "firstMessageAt": self.first_message_at,
            "lastMessageAt": self.last_message_at,
            "correctedBy": self.corrected_by,
            "correctedAt": self.corrected_at,
        }
        if include_messages:
            payload["messages"] = [item.to_dict() for item in self.messages]
        return payload


@dataclass(frozen=True)
class CustomerAggregate:
    customer_name: str
    customer_status: CustomerStatus
    first_started_at: str
    last_message_at: Optional[str]
    session_count: int
    message_count: int
    sessions: tuple[SessionSummary, ...]
    messages: tuple[ReportMessage, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "customerName": self.customer_name,
            "customerStatus": self.customer_status,
            "firstStartedAt": self.first_started_at,
            "lastMessageAt": self.last_message_at,
            "sessionCount": self.session_count,
            "messageCount": self.message_count,
            "sessions": [item.to_dict(include_messages=True) for item in self.sessions],
        }


@dataclass(frozen=True)
class CustomerReport:
    customer_name: str
    customer_status: CustomerStatus
    first_started_at: str
    last_message_at: Optional[str]
    session_count: int
    message_count: int
    session_ids: tuple[str, ...]
    sales_content: str
    customer_reaction: ReactionBucket
    customer_reaction_label: str
    next_plan: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "customerName": self.customer_name,
            "customerStatus": self.customer_status,
            "firstStartedAt": self.first_started_at,
            "lastMessageAt": self.last_message_at,
            "sessionCount": self.session_count,
            "messageCount": self.message_count,
            "sessionIds": list(self.session_ids),
            "salesContent": self.sales_content,
            "customerReaction": self.customer_reaction,
            "customerReactionLabel": self.customer_reaction_label,
            "nextPlan": self.next_plan,
        }


@dataclass(frozen=True)
class DailyReport:
    date: str
    unrecognized_only: bool
    reports: tuple[CustomerReport, ...]

    @property
    def count(self) -> int:
        return len(self.reports)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "unrecognizedOnly": self.unrecognized_only,
            "count": self.count,
            "reports": [item.to_dict() for item in self.reports],
        }


# -- session reconstruction ---------------------------------------------------

SessionIndex = dict[str, SessionSummary]


def _fold_lifecycle(acc: SessionIndex, record: LifecycleRecord) -> SessionIndex:
    current = acc.get(record.session_id) or SessionSummary(session_id=record.session_id)
    if isinstance(record, SessionStartRecord):
        if current.started_at is None:
            current = replace(current, started_at=record.started_at, started_reason=record.reason)
    elif isinstance(record, CustomerDetectedRecord):
        # First detection wins; later ones in the same session are ignored.
        if current.customer_status == "unrecognized":
            current = replace(
                current,
                customer_name=record.customer_name,
                customer_status="recognized",
            )
    acc[record.session_id] = current
    return acc


def _fold_message(acc: SessionIndex, item: tuple[int, MessageRecord]) -> SessionIndex:
    seq, record = item
    snapshot = record.session
    if snapshot is None:
        return acc

    current = acc.get(snapshot.session_id) or SessionSummary(session_id=snapshot.session_id)
    updates: dict[str, Any] = {}
    if current.started_at is None:
        updates["started_at"] = snapshot.started_at
        updates["started_reason"] = snapshot.started_reason
    # Backfill identity only from a stronger snapshot; never downgrade.
    if current.customer_status == "unrecognized" and snapshot.customer_status != "unrecognized":
        updates["customer_name"] = snapshot.customer_name
        updates["customer_status"] = snapshot.customer_status

    message = ReportMessage(
        logged_at=record.logged_at,
        text=record.payload,
        client=record.client,
        seq=seq,
    )
    first_at = current.first_message_at
    last_at = current.last_message_at
    acc[snapshot.session_id] = replace(
        current,
        message_count=current.message_count + 1,
        first_message_at=record.logged_at if first_at is None else min(first_at, record.logged_at),
        last_message_at=record.logged_at if last_at is None else max(last_at, record.logged_at),
        messages=current.messages + (message,),
        **updates,
    )
    return acc


def _fold_correction(acc: SessionIndex, correction: CorrectionRecord) -> SessionIndex:
    current = acc.get(correction.session_id)
    if current is not None:
        acc[correction.session_id] = apply_correction(current, correction)
    return acc


def reconstruct_sessions(
    lifecycle: Sequence[LifecycleRecord],
    messages: Sequence[MessageRecord],
    corrections: Sequence[CorrectionRecord] = (),
) -> list[SessionSummary]:
    index: SessionIndex = reduce(_fold_lifecycle, lifecycle, {})
    index = reduce(_fold_message, enumerate(messages), index)
    index = reduce(_fold_correction, latest_by_session(list(corrections)).values(), index)
    return sort_sessions(index.values())


def sort_sessions(sessions: Iterable[SessionSummary]) -> list[SessionSummary]:
    ordered = []
    for session in sessions:
        ordered.append(
            replace(session, messages=tuple(sorted(session.messages, key=lambda m: (m.logged_at, m.seq))))
        )
    return sorted(ordered, key=lambda s: (s.start_key, s.session_id), reverse=True)


# -- customer aggregation ----------------------------------------------------


def aggregate_customers(sessions: Sequence[SessionSummary]) -> list[CustomerAggregate]:
    groups: dict[tuple[str, str], list[SessionSummary]] = {}
    for session in sessions:
        groups.setdefault((session.customer_status, session.customer_name), []).append(session)

    aggregates: list[CustomerAggregate] = []
    for (status, name) in sorted(groups):
        members = sort_sessions(groups[(status, name)])
        last_times = [item.last_message_at for item in members if item.last_message_at]
        merged = sorted(
            (message for member in members for message in member.messages),
            key=lambda m: (m.logged_at, m.seq),
        )
        aggregates.append(
            CustomerAggregate(
                customer_name=name,
                customer_status=status,
                first_started_at=min(item.start_key for item in members),
                last_message_at=max(last_times) if last_times else None,
                session_count=len(members),
                message_count=sum(item.message_count for item in members),
                sessions=tuple(members),
                messages=tuple(merged),
            )
        )
    # Stable sort keeps the (status, name) order for equal start times.
    return sorted(aggregates, key=lambda a: a.first_started_at, reverse=True)


def summarize_sales_content(
    messages: Sequence[ReportMessage],
    *,
    intro_phrase: str = DEFAULT_INTRO_PHRASE,
    cap: int = SALES_CONTENT_CAP,
) -> str:
    items = _dedupe_in_order(
        text
        for text in (" ".join(str(m.text or "").split()) for m in messages)
        if text and not is_intro_phrase(text, intro_phrase)
    )
    if not items:
        return INSUFFICIENT_CONTENT_NOTICE
    return SALES_CONTENT_SEPARATOR.join(items[:cap])


def classify_reaction(text: str) -> ReactionBucket:
    remaining = "".join(str(text or "").split())
    negative = False
    for keyword in NEGATIVE_KEYWORDS:
        if keyword in remaining:
            negative = True
            remaining = remaining.replace(keyword, " ")
    positive = any(keyword in remaining for keyword in POSITIVE_KEYWORDS)

    if positive and negative:
        return "mixed"
    if positive:
        return "positive"
    if negative:
        return "negative"
    return "unclassified"


def next_plan_for(status: str) -> str:
    return NEXT_PLAN_BY_STATUS.get(status, NEXT_PLAN_BY_STATUS["unrecognized"])


def build_customer_report(
    aggregate: CustomerAggregate,
    *,
    intro_phrase: str = DEFAULT_INTRO_PHRASE,
) -> CustomerReport:
    reaction = classify_reaction(" ".join(m.text for m in aggregate.messages))
    return CustomerReport(
        customer_name=aggregate.customer_name,
        customer_status=aggregate.customer_status,
        first_started_at=aggregate.first_started_at,
        last_message_at=aggregate.last_message_at,
        session_count=aggregate.session_count,
        message_count=aggregate.message_count,
        session_ids=tuple(item.session_id for item in aggregate.sessions),
        sales_content=summarize_sales_content(aggregate.messages, intro_phrase=intro_phrase),
        customer_reaction=reaction,
        customer_reaction_label=REACTION_LABELS[reaction],
        next_plan=next_plan_for(aggregate.customer_status),
    )


def _dedupe_in_order(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        out.append(value)
    return out


# -- batch surface -------------------------------------------------------------


class ReportBuilder:
    def __init__(
        self,
        event_log: EventLog,
        *,
        correction_store: Optional[CorrectionStore] = None,
        intro_phrase: str = DEFAULT_INTRO_PHRASE,
    ) -> None:
        self._event_log = event_log
        self._corrections = correction_store or CorrectionStore(event_log)
        self._intro_phrase = intro_phrase

    def list_sessions(self, day: str, *, unrecognized_only: bool = False) -> list[SessionSummary]:
        resolved_day = validate_day(day)
        sessions = reconstruct_sessions(
            self._event_log.read_lifecycle(resolved_day),
            self._event_log.read_messages(resolved_day),
            list(self._corrections.latest(resolved_day).values()),
        )
        if unrecognized_only:
            sessions = [item for item in sessions if item.customer_status == "unrecognized"]
        logger.debug("sessions rebuilt: day=%s count=%d", resolved_day, len(sessions))
        return sessions

    def list_customers(self, day: str, *, unrecognized_only: bool = False) -> list[CustomerAggregate]:
        return aggregate_customers(self.list_sessions(day, unrecognized_only=unrecognized_only))

    def build_daily_report(self, day: str, *, unrecognized_only: bool = False) -> DailyReport:
        resolved_day = validate_day(day)
        customers = self.list_customers(resolved_day, unrecognized_only=unrecognized_only)
        reports = tuple(
            build_customer_report(item, intro_phrase=self._intro_phrase) for item in customers
        )
        logger.info(
            "daily report built: day=%s unrecognized_only=%s customers=%d",
            resolved_day,
            unrecognized_only,
            len(reports),
        )
        return DailyReport(date=resolved_day, unrecognized_only=unrecognized_only, reports=reports)
