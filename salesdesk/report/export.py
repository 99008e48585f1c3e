from __future__ import annotations

import csv
import io
from typing import Literal

from .builder import DailyReport

ExportFormat = Literal["markdown", "csv"]

CSV_COLUMNS: tuple[str, ...] = (
    "date",
    "customer_name",
    "customer_status",
    "first_started_at",
    "last_message_at",
    "session_count",
    "message_count",
    "session_ids",
    "sales_content",
    "customer_reaction",
    "customer_reaction_label",
    "next_plan",
)

_STATUS_LABELS = {
    "unrecognized": "미인식",
    "recognized": "자동 인식",
    "corrected": "수동 보정",
}


def render_markdown(report: DailyReport) -> str:
    scope = "미인식 고객만" if report.unrecognized_only else "전체"
    lines = [
        f"# 일일 영업 활동 보고서 ({report.date})",
        "",
        f"- 대상 범위: {scope}",
        f"- 고객 수: {report.count}",
    ]
    for index, item in enumerate(report.reports, start=1):
        status_label = _STATUS_LABELS.get(item.customer_status, item.customer_status)
        lines.extend(
            [
                "",
                f"## {index}. {item.customer_name} ({status_label})",
                "",
                f"- 첫 통화 시작: {item.first_started_at or '-'}",
                f"- 마지막 메시지: {item.last_message_at or '-'}",
                f"- 세션 수: {item.session_count}",
                f"- 메시지 수: {item.message_count}",
                f"- 세션 ID: {', '.join(item.session_ids) or '-'}",
                f"- 영업 내용: {item.sales_content}",
                f"- 고객 반응: {item.customer_reaction_label}",
                f"- 다음 계획: {item.next_plan}",
            ]
        )
    return "\n".join(lines) + "\n"


def render_csv(report: DailyReport) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for item in report.reports:
        writer.writerow(
            [
                report.date,
                item.customer_name,
                item.customer_status,
                item.first_started_at,
                item.last_message_at or "",
                item.session_count,
                item.message_count,
                ";".join(item.session_ids),
                item.sales_content,
                item.customer_reaction,
                item.customer_reaction_label,
                item.next_plan,
            ]
        )
    return buffer.getvalue()


def render_report(report: DailyReport, fmt: str) -> str:
    normalized = str(fmt or "").strip().lower()
    if normalized in {"markdown", "md"}:
        return render_markdown(report)
    if normalized == "csv":
        return render_csv(report)
    raise ValueError(f"Unsupported export format: {fmt!r}. Use markdown or csv.")
