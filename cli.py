import argparse
import json
from pathlib import Path

from config.settings import get_settings
from db import schema
from db.connection import get_connection
from db.repos.accounts_repo import AccountsRepo
from db.repos.clients_repo import ClientsRepo
from db.repos.raw_posts_repo import RawPostsRepo
from pipelines.orchestrator import STAGE_ORDER, Orchestrator
from pipelines.retry import reconcile, reconcile_loop, retry_posts
from services.mapping import map_scraped_posts
from services.reporting import print_retry, print_run_summary, print_snapshot, print_status
from utils.logging_setup import init_logging


def _open(args):
    conn = get_connection(args.db)
    schema.bootstrap(conn)
    return conn


def cmd_bootstrap(args):
    conn = get_connection(args.db)
    schema.bootstrap(conn)
    print("Schema ready")


def cmd_import_raw(args):
    conn = _open(args)
    data = json.loads(Path(args.input).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        items = data.get("posts") or data.get("items") or []
    else:
        items = data
    count = RawPostsRepo(conn).insert_many(args.dataset, map_scraped_posts(items))
    print(f"Imported {count} raw posts into dataset {args.dataset}")


def cmd_run(args):
    conn = _open(args)
    ctx = Orchestrator(conn).start(args.dataset, filter_batch=args.filter_batch)
    print_run_summary(ctx)


def cmd_stage(args):
    conn = _open(args)
    ctx = Orchestrator(conn).run_stage(args.stage, args.dataset, batch_size=args.batch_size, chain=args.chain)
    print_run_summary(ctx)


def cmd_continue(args):
    conn = _open(args)
    ctx = Orchestrator(conn).continue_(args.dataset)
    print_run_summary(ctx)


def cmd_status(args):
    conn = _open(args)
    print_status(Orchestrator(conn).status(args.dataset))


def cmd_bottlenecks(args):
    conn = _open(args)
    print_snapshot(Orchestrator(conn).bottlenecks(args.dataset))


def cmd_retry(args):
    conn = _open(args)
    result = retry_posts(
        conn,
        statuses=args.status,
        post_ids=args.post_id,
        older_than_minutes=args.older_than_minutes,
        limit=args.limit,
        force=args.force,
        include_stuck=args.stuck,
        dataset_id=args.dataset,
    )
    print_retry(result)


def cmd_reconcile(args):
    conn = _open(args)
    if args.loop:
        reconcile_loop(conn, interval_seconds=args.interval)
        return
    print_retry(reconcile(conn), label="Reconcile")


def cmd_add_client(args):
    conn = _open(args)
    client_id = ClientsRepo(conn).add(args.name, args.linkedin_id)
    print(f"Client {client_id} added: {args.name}")


def cmd_add_account(args):
    conn = _open(args)
    row_id = AccountsRepo(conn).upsert(args.account_id, args.label)
    print(f"Enrichment account {row_id} ready: {args.account_id}")


def main():
    settings = get_settings()
    init_logging(settings.log_level)
    parser = argparse.ArgumentParser(description="LinkedIn post to lead pipeline CLI")
    parser.add_argument("--db", default=settings.db_path, help="Path to SQLite DB (default from settings)")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_boot = sub.add_parser("bootstrap", help="Create tables and indexes")
    p_boot.set_defaults(func=cmd_bootstrap)

    p_imp = sub.add_parser("import-raw", help="Load a scraped posts JSON export into posts_raw")
    p_imp.add_argument("--input", required=True, help="Path to JSON file (array, or object with 'posts'/'items')")
    p_imp.add_argument("--dataset", required=True, help="Ingestion batch / dataset id")
    p_imp.set_defaults(func=cmd_import_raw)

    p_run = sub.add_parser("run", help="Run the full chain for a dataset")
    p_run.add_argument("dataset", help="Dataset id")
    p_run.add_argument("--filter-batch", type=int, default=None, help="Raw posts to filter (default: FILTER_BATCH_SIZE)")
    p_run.set_defaults(func=cmd_run)

    p_stage = sub.add_parser("stage", help="Run a single stage")
    p_stage.add_argument("stage", choices=STAGE_ORDER)
    p_stage.add_argument("dataset", nargs="?", default=None, help="Dataset id (all datasets when omitted; required for filter)")
    p_stage.add_argument("--batch-size", type=int, default=None, help="Records to claim (default per stage)")
    p_stage.add_argument("--chain", action="store_true", help="Trigger the following stages when records advance")
    p_stage.set_defaults(func=cmd_stage)

    p_cont = sub.add_parser("continue", help="Run every stage that has a backlog")
    p_cont.add_argument("dataset", nargs="?", default=None)
    p_cont.set_defaults(func=cmd_continue)

    p_status = sub.add_parser("status", help="Counts by status and next steps")
    p_status.add_argument("dataset", nargs="?", default=None)
    p_status.set_defaults(func=cmd_status)

    p_bn = sub.add_parser("bottlenecks", help="Backlog snapshot with recommendations")
    p_bn.add_argument("dataset", nargs="?", default=None)
    p_bn.set_defaults(func=cmd_bottlenecks)

    p_retry = sub.add_parser("retry", help="Reset errored or stuck posts to their queue")
    p_retry.add_argument("--status", action="append", default=None, help="Status to retry (repeatable; default: all error_*)")
    p_retry.add_argument("--post-id", type=int, action="append", default=None, help="Restrict to post id (repeatable)")
    p_retry.add_argument("--older-than-minutes", type=int, default=None, help="Only posts not updated for this long")
    p_retry.add_argument("--limit", type=int, default=None, help="Max posts to reset (default: RETRY_LIMIT)")
    p_retry.add_argument("--dataset", default=None, help="Restrict to a dataset")
    p_retry.add_argument("--force", action="store_true", help="Ignore RETRY_MAX_ATTEMPTS and the stuck age")
    p_retry.add_argument("--stuck", action="store_true", help="Also reset processing_* posts older than STUCK_AFTER_MINUTES")
    p_retry.set_defaults(func=cmd_retry)

    p_rec = sub.add_parser("reconcile", help="Retry errored posts whose backoff elapsed")
    p_rec.add_argument("--loop", action="store_true", help="Keep running")
    p_rec.add_argument("--interval", type=float, default=60.0, help="Seconds between passes with --loop")
    p_rec.set_defaults(func=cmd_reconcile)

    p_client = sub.add_parser("add-client", help="Register a client company")
    p_client.add_argument("name")
    p_client.add_argument("--linkedin-id", default=None, help="Company LinkedIn id")
    p_client.set_defaults(func=cmd_add_client)

    p_acc = sub.add_parser("add-account", help="Register an enrichment account")
    p_acc.add_argument("account_id")
    p_acc.add_argument("--label", default=None)
    p_acc.set_defaults(func=cmd_add_account)

    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
