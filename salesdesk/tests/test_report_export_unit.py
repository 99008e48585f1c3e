import csv
import io

import pytest

from salesdesk.report.builder import CustomerReport, DailyReport
from salesdesk.report.export import CSV_COLUMNS, render_csv, render_markdown, render_report


def _report(*items: CustomerReport, unrecognized_only: bool = False) -> DailyReport:
    return DailyReport(date="2024-05-01", unrecognized_only=unrecognized_only, reports=tuple(items))


def _customer(**overrides) -> CustomerReport:
    values = dict(
        customer_name="김민수",
        customer_status="recognized",
        first_started_at="2024-05-01T09:00:00.000Z",
        last_message_at="2024-05-01T09:00:02.000Z",
        session_count=1,
        message_count=3,
        session_ids=("20240501T090000000000-abcd1234",),
        sales_content="김민수 고객님 맞으신가요 / 네 맞습니다 관심있습니다",
        customer_reaction="positive",
        customer_reaction_label="긍정적 (관심/동의 표현)",
        next_plan="다음 통화에서 구체적인 조건을 확인하세요.",
    )
    values.update(overrides)
    return CustomerReport(**values)


def test_empty_report_markdown_is_header_only() -> None:
    text = render_markdown(_report())
    assert text.startswith("# 일일 영업 활동 보고서 (2024-05-01)\n")
    assert "- 고객 수: 0" in text
    assert "## " not in text
    assert text.endswith("\n")


def test_empty_report_csv_is_header_row_only() -> None:
    assert render_csv(_report()) == ",".join(CSV_COLUMNS) + "\n"


def test_markdown_has_one_section_per_customer_in_fixed_field_order() -> None:
    text = render_markdown(_report(_customer(), _customer(customer_name="미인식", customer_status="unrecognized")))
    assert text.count("\n## ") == 2
    assert "## 1. 김민수 (자동 인식)" in text
    assert "## 2. 미인식 (미인식)" in text
    section = text.split("## 1.")[1].split("## 2.")[0]
    labels = [line.split(":")[0] for line in section.splitlines() if line.startswith("- ")]
    assert labels == [
        "- 첫 통화 시작",
        "- 마지막 메시지",
        "- 세션 수",
        "- 메시지 수",
        "- 세션 ID",
        "- 영업 내용",
        "- 고객 반응",
        "- 다음 계획",
    ]


def test_markdown_marks_unrecognized_scope() -> None:
    assert "- 대상 범위: 미인식 고객만" in render_markdown(_report(unrecognized_only=True))


def test_csv_round_trips_fields_with_commas_quotes_and_newlines() -> None:
    tricky = 'He said "yes", then\nasked about fees, twice'
    text = render_csv(_report(_customer(sales_content=tricky, customer_name='김 "민수", Jr')))
    rows = list(csv.reader(io.StringIO(text)))
    assert rows[0] == list(CSV_COLUMNS)
    row = dict(zip(rows[0], rows[1]))
    assert row["sales_content"] == tricky
    assert row["customer_name"] == '김 "민수", Jr'
    assert row["session_count"] == "1"
    assert row["customer_reaction"] == "positive"
    assert row["customer_reaction_label"] == "긍정적 (관심/동의 표현)"
    assert '"He said ""yes"", then' in text


def test_render_report_dispatch() -> None:
    report = _report(_customer())
    assert render_report(report, "markdown") == render_markdown(report)
    assert render_report(report, "MD") == render_markdown(report)
    assert render_report(report, "csv") == render_csv(report)
    with pytest.raises(ValueError):
        render_report(report, "pdf")


def test_renderers_are_pure() -> None:
    report = _report(_customer())
    assert render_markdown(report) == render_markdown(report)
    assert render_csv(report) == render_csv(report)
