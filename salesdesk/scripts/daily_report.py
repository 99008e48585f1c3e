from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from salesdesk.internal_core.config import load_config
from salesdesk.internal_core.event_log import EventLog, InvalidDayError, utc_now, validate_day
from salesdesk.report.builder import ReportBuilder
from salesdesk.report.export import render_report


def main() -> None:
    cfg = load_config()
    parser = argparse.ArgumentParser(
        description="Build the daily sales-activity report from transcript logs"
    )
    parser.add_argument(
        "--log-dir",
        default=cfg.SALESDESK_LOG_DIR,
        help=f"Directory holding the NDJSON logs (default: {cfg.SALESDESK_LOG_DIR})",
    )
    parser.add_argument(
        "--date",
        default=utc_now().date().isoformat(),
        help="Day to report on, YYYY-MM-DD (default: today, UTC)",
    )
    parser.add_argument(
        "--format",
        choices=["markdown", "csv", "json"],
        default="markdown",
        help="Output format (default: markdown)",
    )
    parser.add_argument(
        "--unrecognized-only",
        action="store_true",
        help="Only include customers whose identity is still unrecognized.",
    )
    parser.add_argument("--output", default="", help="Write to this file instead of stdout.")
    args = parser.parse_args()

    logging.basicConfig(level=cfg.SALESDESK_LOG_LEVEL.upper())

    try:
        day = validate_day(args.date)
    except InvalidDayError as exc:
        raise SystemExit(str(exc)) from exc

    event_log = EventLog(
        Path(args.log_dir).expanduser(),
        message_prefix=cfg.SALESDESK_MESSAGE_LOG_PREFIX,
        session_prefix=cfg.SALESDESK_SESSION_LOG_PREFIX,
        correction_prefix=cfg.SALESDESK_CORRECTION_LOG_PREFIX,
        fixed_message_file=cfg.fixed_log_file_path(),
    )
    builder = ReportBuilder(event_log, intro_phrase=cfg.SALESDESK_INTRO_PHRASE)
    report = builder.build_daily_report(day, unrecognized_only=args.unrecognized_only)

    if args.format == "json":
        body = json.dumps(report.to_dict(), ensure_ascii=False, indent=2) + "\n"
    else:
        body = render_report(report, args.format)

    if args.output:
        Path(args.output).expanduser().write_text(body, encoding="utf-8")
        print(f"wrote {report.count} customer(s) to {args.output}")
    else:
        print(body, end="")


if __name__ == "__main__":
    main()
