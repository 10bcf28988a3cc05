# leadpipe/cli.py
from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from leadpipe.config import STAGES, configure_logging, load_settings
from leadpipe.db import Store
from leadpipe.exceptions import InvalidStatusTransition, PipelineError
from leadpipe.ingest.intake import enqueue_image
from leadpipe.models import CompanyStatus
from leadpipe.queueing.pgq import Pgq
from leadpipe.queueing.redis_conn import get_redis
from leadpipe.stages import build_context, run_stage


def _print_section_title(title: str) -> None:
    print()
    print(title)
    print("-" * len(title))


def _print_summary(summary: dict[str, Any]) -> None:
    _print_section_title(f"Stage {summary['stage']} ({summary['status']})")
    for key in ("read", "processed", "skipped", "failed", "acked", "archived"):
        print(f"  {key:10} {int(summary.get(key, 0)):6d}")
    errors = summary.get("errors") or []
    if errors:
        print()
        print("  Errors:")
        for err in errors:
            print(f"    msg {err['msg_id']}: {err['error']}")


def cmd_init_db() -> int:
    cfg = load_settings()
    store = Store.from_url(cfg.db_url)
    store.init_schema()
    print(f"Initialized schema at {store.db_path}")
    return 0


def cmd_enqueue_image(path: str, location: str | None) -> int:
    cfg = load_settings()
    with build_context(cfg) as ctx:
        msg_id = enqueue_image(ctx, path, location)
    print(f"Queued {path} on {cfg.queue.image_queue} as message {msg_id}")
    return 0


def cmd_run_stage(stage: str, as_json: bool) -> int:
    cfg = load_settings()
    try:
        summary = run_stage(cfg, stage).to_dict()
    except PipelineError as exc:
        print(f"error: {stage}: {exc}", file=sys.stderr)
        return 1
    if as_json:
        print(json.dumps(summary, indent=2, sort_keys=True))
    else:
        _print_summary(summary)
    return 0 if summary["failed"] == 0 else 2


def cmd_queues(format_: str) -> int:
    cfg = load_settings()
    pgq = Pgq(get_redis(cfg.queue.redis_url), prefix=cfg.queue.key_prefix)
    rows = []
    for stage in STAGES:
        name = cfg.queue.for_stage(stage)
        rows.append(
            {
                "queue": name,
                "stage": stage,
                "depth": pgq.depth(name),
                "archived": len(pgq.archived(name)),
            }
        )

    if format_ == "json":
        print(json.dumps(rows, indent=2))
        return 0

    _print_section_title("Queues")
    header = f"{'queue':20} {'stage':20} {'depth':>6} {'archived':>9}"
    print("  " + header)
    print("  " + "-" * len(header))
    for r in rows:
        print(f"  {r['queue']:20} {r['stage']:20} {r['depth']:6d} {r['archived']:9d}")
    return 0


def cmd_dlq(queue: str) -> int:
    cfg = load_settings()
    pgq = Pgq(get_redis(cfg.queue.redis_url), prefix=cfg.queue.key_prefix)
    messages = pgq.archived(queue)
    _print_section_title(f"Dead letters in {queue}")
    if not messages:
        print("  (none)")
        return 0
    for m in messages:
        print(f"  {m.msg_id:6d}  reads={m.read_ct}  {json.dumps(m.message, sort_keys=True)}")
    return 0


def cmd_mark_sent(company_id: str) -> int:
    cfg = load_settings()
    store = Store.from_url(cfg.db_url)
    try:
        store.update_company_status(company_id, CompanyStatus.SENT)
    except KeyError:
        print(f"error: company {company_id} not found", file=sys.stderr)
        return 1
    except InvalidStatusTransition as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(f"Company {company_id} marked as sent")
    return 0


def cmd_worker(burst: bool) -> int:
    from leadpipe.queueing.worker import run

    run(burst=burst)
    return 0


def cmd_serve(host: str, port: int, reload: bool) -> int:
    import uvicorn

    uvicorn.run("leadpipe.api.app:app", host=host, port=port, reload=reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="leadpipe",
        description="Vehicle-photo lead pipeline: intake, stage runs and queue inspection.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create the SQLite schema.")

    p = subparsers.add_parser("enqueue-image", help="Register a stored photo and queue it.")
    p.add_argument("path", help="Object storage path of the photo.")
    p.add_argument("--location", default=None, help="Free-text address where it was taken.")

    p = subparsers.add_parser("run-stage", help="Run one batch of a stage inline.")
    p.add_argument("stage", choices=STAGES)
    p.add_argument("--json", dest="as_json", action="store_true", help="Print the summary as JSON.")

    p = subparsers.add_parser("queues", help="Show depth and dead-letter count per queue.")
    p.add_argument(
        "--format",
        dest="format_",
        choices=["table", "json"],
        default="table",
        help="Output format (default: table).",
    )

    p = subparsers.add_parser("dlq", help="List archived (dead-letter) messages of a queue.")
    p.add_argument("queue")

    p = subparsers.add_parser("mark-sent", help="Mark a company as contacted.")
    p.add_argument("company_id")

    p = subparsers.add_parser("worker", help="Run an RQ worker for background stage runs.")
    p.add_argument("--burst", action="store_true", help="Exit once the queue is empty.")

    p = subparsers.add_parser("serve", help="Serve the HTTP API with uvicorn.")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    p.add_argument("--reload", action="store_true", help="Reload on code changes (dev only).")

    return parser


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "init-db":
        return cmd_init_db()
    if args.command == "enqueue-image":
        return cmd_enqueue_image(args.path, args.location)
    if args.command == "run-stage":
        return cmd_run_stage(args.stage, args.as_json)
    if args.command == "queues":
        return cmd_queues(args.format_)
    if args.command == "dlq":
        return cmd_dlq(args.queue)
    if args.command == "mark-sent":
        return cmd_mark_sent(args.company_id)
    if args.command == "worker":
        return cmd_worker(args.burst)
    if args.command == "serve":
        return cmd_serve(args.host, args.port, args.reload)

    parser.error("unknown command")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
