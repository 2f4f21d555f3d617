"""
Run one extraction task from the CLI and print a JSON summary.
"""

from __future__ import annotations

import argparse
import json
import logging
import os

from app.extraction.config import get_extraction_settings
from app.services.extraction_service import ExtractionService, build_extraction_store


def _parse_selectors(raw: str | None) -> dict | None:
    if not raw:
        return None
    value = json.loads(raw)
    if not isinstance(value, dict):
        raise argparse.ArgumentTypeError("--selectors must be a JSON object.")
    return value


def main() -> int:
    parser = argparse.ArgumentParser(description="Run an adaptive extraction task synchronously.")
    parser.add_argument("url", help="Absolute http(s) URL of the first page.")
    parser.add_argument("--name", default=None, help="Task name (defaults to the host).")
    parser.add_argument("--max-pages", dest="max_pages", type=int, default=None)
    parser.add_argument("--delay", dest="delay_seconds", type=float, default=None)
    parser.add_argument(
        "--pagination-mode",
        dest="pagination_mode",
        choices=["query", "path", "next_link"],
        default="query",
    )
    parser.add_argument("--page-param", dest="page_param", default="page")
    parser.add_argument(
        "--render-mode",
        dest="render_mode",
        choices=["static", "dynamic", "stealth"],
        default=None,
        help="Force a render mode instead of classifying the first page.",
    )
    parser.add_argument("--scroll", dest="scroll_to_bottom", action="store_true")
    parser.add_argument(
        "--ignore-next-page",
        dest="require_next_page",
        action="store_false",
        help="Keep paginating even when a page shows no next-page link.",
    )
    parser.add_argument(
        "--selectors",
        dest="selectors",
        default=None,
        help='Selector set as JSON, e.g. \'{"primary": ".product", "fields": {"title": ["h2"]}}\'.',
    )
    parser.add_argument("--hint", dest="analysis_hint", default=None)
    parser.add_argument("--records", dest="records", type=int, default=5, help="Records to include in the output.")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "WARNING").strip().upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    options = {
        "max_pages": args.max_pages,
        "delay_seconds": args.delay_seconds,
        "pagination_mode": args.pagination_mode,
        "page_param": args.page_param,
        "render_mode": args.render_mode,
        "scroll_to_bottom": args.scroll_to_bottom,
        "require_next_page": args.require_next_page,
        "analysis_hint": args.analysis_hint,
    }

    settings = get_extraction_settings()
    service = ExtractionService(settings=settings, store=build_extraction_store(settings))
    task = service.create_task(
        url=args.url,
        name=args.name,
        selectors=_parse_selectors(args.selectors),
        options={key: value for key, value in options.items() if value is not None},
    )
    outcome = service.run_task(task.id)
    task = service.get_task(task.id)
    records, total = service.list_records(task.id, limit=max(0, args.records))

    payload = {
        "task_id": str(task.id),
        "status": task.status,
        "strategy": task.strategy,
        "selectors": task.selectors,
        "pages_fetched": outcome.pages_fetched,
        "stop_reason": outcome.stop_reason,
        "scraped_items": task.scraped_items,
        "error_message": task.error_message,
        "records": [record.data for record in records],
        "records_total": total,
        "logs": [
            {"level": entry.level, "message": entry.message}
            for entry in service.list_logs(task.id)
        ],
    }
    print(json.dumps(payload, indent=2))
    return 0 if task.status == "completed" else 1


if __name__ == "__main__":
    raise SystemExit(main())
