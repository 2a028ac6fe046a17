"""CLI entry point for menuscan."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

from .config import load_config
from .cost import estimate_extraction_cost, format_cost
from .models import DocumentRef


def parse_document_arg(value: str) -> DocumentRef:
    """Parse ``URL[,NAME[,MIME]]``; NAME defaults to the last URL path segment."""
    parts = [p.strip() for p in value.split(",")]
    url = parts[0]
    name = parts[1] if len(parts) > 1 and parts[1] else url.rstrip("/").rsplit("/", 1)[-1]
    mime_type = parts[2] if len(parts) > 2 else ""
    if not url:
        raise argparse.ArgumentTypeError(f"Document has no URL: {value!r}")
    return DocumentRef(url=url, name=name, mime_type=mime_type)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="menuscan",
        description="Extract structured menu items from menu documents with a multimodal model",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to the configuration file (TOML)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command")

    # extract
    extract_parser = sub.add_parser("extract", help="Run extraction for a job now")
    extract_parser.add_argument("--job", required=True, help="Job ID")
    extract_parser.add_argument(
        "--doc", type=parse_document_arg, action="append", required=True,
        metavar="URL[,NAME[,MIME]]", help="Document to extract (repeatable)",
    )
    extract_parser.add_argument("--json", action="store_true", help="Print JSON output")

    # enqueue
    enqueue_parser = sub.add_parser("enqueue", help="Queue extraction for the worker")
    enqueue_parser.add_argument("--job", required=True, help="Job ID")
    enqueue_parser.add_argument(
        "--doc", type=parse_document_arg, action="append", required=True,
        metavar="URL[,NAME[,MIME]]", help="Document to extract (repeatable)",
    )

    # worker
    sub.add_parser("worker", help="Run the background worker until interrupted")

    # status
    status_parser = sub.add_parser("status", help="Show job status and results")
    status_parser.add_argument("--job", required=True, help="Job ID")

    # items
    items_parser = sub.add_parser("items", help="List persisted items for a job")
    items_parser.add_argument("--job", required=True, help="Job ID")
    items_parser.add_argument("--json", action="store_true", help="Print JSON output")

    # estimate
    estimate_parser = sub.add_parser("estimate", help="Quick cost estimate before a run")
    estimate_parser.add_argument("--documents", type=int, required=True)
    estimate_parser.add_argument("--items", type=int, required=True)
    estimate_parser.add_argument("--images", action="store_true", help="Documents are images")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    load_dotenv()
    config = load_config(args.config)

    match args.command:
        case "extract":
            ok = asyncio.run(_cmd_extract(config, args))
            if not ok:
                sys.exit(1)
        case "enqueue":
            _cmd_enqueue(config, args)
        case "worker":
            asyncio.run(_cmd_worker(config))
        case "status":
            _cmd_status(config, args)
        case "items":
            _cmd_items(config, args)
        case "estimate":
            _cmd_estimate(args)


async def _cmd_extract(config, args) -> bool:
    from .pipeline import ExtractionPipeline

    pipeline = ExtractionPipeline.from_config(config)
    try:
        outcome = await pipeline.run(args.job, args.doc)
    finally:
        pipeline.close()

    results = outcome.results
    if args.json:
        print(json.dumps(results, ensure_ascii=False, indent=2))
        return outcome.success

    if not outcome.success:
        print(f"Extraction failed during {results['stage']}: {results['error']}", file=sys.stderr)
        return False

    print(f"Job {args.job}: {results['insertedItems']} new items "
          f"({results['skippedDuplicates']} duplicates skipped) "
          f"from {results['totalDocuments']} documents [{results['extractionMode']}]")
    for category, count in sorted(results["summary"]["categories"].items()):
        print(f"  {category:<24} {count}")
    print(f"Estimated cost: {format_cost(results['totalCost'])} (estimate, not a bill)")
    return True


def _cmd_enqueue(config, args) -> None:
    from .db import RequestQueueDB

    queue = RequestQueueDB(config.database.path)
    try:
        request_id = queue.enqueue(args.job, args.doc)
    finally:
        queue.close()
    print(f"Queued request {request_id} for job {args.job}")


async def _cmd_worker(config) -> None:
    from .scheduler import ExtractionWorker

    worker = ExtractionWorker(config)
    worker.start()
    for job in worker.get_jobs():
        print(f"  {job['id']}: next run {job['next_run']}")
    try:
        await asyncio.Event().wait()
    finally:
        worker.stop()


def _cmd_status(config, args) -> None:
    from .db import JobsDB

    jobs = JobsDB(config.database.path)
    try:
        job = jobs.get_job(args.job)
    finally:
        jobs.close()

    if job is None:
        print(f"Job {args.job} not found", file=sys.stderr)
        sys.exit(1)
    print(json.dumps(job, ensure_ascii=False, indent=2))


def _cmd_items(config, args) -> None:
    from .db import MenuItemsDB

    db = MenuItemsDB(config.database.path)
    try:
        items = db.list_items(args.job)
    finally:
        db.close()

    if args.json:
        print(json.dumps(items, ensure_ascii=False, indent=2))
        return
    if not items:
        print("No items.")
        return
    for item in items:
        sizes = ", ".join(f"{s['size']} ${s['price']}" for s in item["sizes"]) or "-"
        print(f"{item['name']:<32} [{item['subcategory']}] {sizes}")
        for group in item["modifier_groups"]:
            options = ", ".join(
                o["name"] + (f" +${o['price']}" if "price" in o else "")
                for o in group["options"]
            )
            print(f"    {group['name']}: {options}")


def _cmd_estimate(args) -> None:
    cost = estimate_extraction_cost(args.documents, args.items, has_images=args.images)
    print(f"Estimated cost: {format_cost(cost)} (${cost:.4f}, estimate only)")


if __name__ == "__main__":
    main()
