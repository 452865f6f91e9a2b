"""Run scenario queue maintenance from the command line.

Examples:
  kaiwa-process-queue --stats
  kaiwa-process-queue --job <job-id>
  kaiwa-process-queue --failed 20
  kaiwa-process-queue --owner week:<week-id> --owner-status
  kaiwa-process-queue --owner week:<week-id> --limit 20
  kaiwa-process-queue --skip <job-id> --reason "Day removed from path"
  kaiwa-process-queue --limit 3 --dry-run
  kaiwa-process-queue --retry-failed --cleanup
"""

from __future__ import annotations

import argparse
import asyncio
import json

from scenario_queue.ai.generator import StaticScenarioGenerator
from scenario_queue.config import get_database_settings, get_settings
from scenario_queue.core.database import Database
from scenario_queue.core.logging import initialize_logging
from scenario_queue.jobs.errors import JobNotFoundError, JobStateError
from scenario_queue.jobs.models import OwnerKind, QueueJob, QueueOwner
from scenario_queue.services.factory import build_postgres_runtime


def parse_owner(raw: str) -> QueueOwner:
  """Parse `path:<id>` or `week:<id>`."""
  kind, _, owner_id = raw.partition(":")
  try:
    owner_kind = OwnerKind(kind.strip().lower())
  except ValueError as exc:
    raise argparse.ArgumentTypeError(f"owner kind must be one of: {', '.join(item.value for item in OwnerKind)}") from exc
  if not owner_id.strip():
    raise argparse.ArgumentTypeError("owner must look like path:<id> or week:<id>")
  return QueueOwner(kind=owner_kind, owner_id=owner_id.strip())


def _job_summary(job: QueueJob) -> dict:
  return {**job.log_context(), "status": job.status.value, "target_date": job.target_date.isoformat(), "last_error": job.last_error, "result_ref": job.result_ref}


def build_parser() -> argparse.ArgumentParser:
  parser = argparse.ArgumentParser(description="Process the scenario generation queue once.")
  parser.add_argument("--limit", type=int, default=None, help="Jobs to run in this pass (defaults to KAIWA_QUEUE_DEFAULT_LIMIT).")
  parser.add_argument("--dry-run", action="store_true", help="Claim and release jobs without generating anything.")
  parser.add_argument("--owner", type=parse_owner, default=None, metavar="KIND:ID", help="Restrict the pass and --retry-failed to one path or week.")
  parser.add_argument("--stats", action="store_true", help="Print queue counts and exit.")
  parser.add_argument("--owner-status", action="store_true", help="Print the --owner progress and exit.")
  parser.add_argument("--job", metavar="JOB_ID", default=None, help="Print one job and exit.")
  parser.add_argument("--failed", type=int, nargs="?", const=50, default=None, metavar="N", help="Print up to N permanently failed jobs and exit.")
  parser.add_argument("--skip", metavar="JOB_ID", default=None, help="Retire one pending job and exit.")
  parser.add_argument("--reason", default="Skipped by operator", help="Reason stored with --skip.")
  parser.add_argument("--retry-failed", action="store_true", help="Reset failed jobs to pending before the pass.")
  parser.add_argument("--cleanup", action="store_true", help="Delete finished jobs older than the retention window after the pass.")
  return parser


async def _run(args: argparse.Namespace) -> int:
  settings = get_settings()
  initialize_logging(settings)
  database = Database(get_database_settings())
  database.open()
  try:
    # Read-only commands and dry runs never call the adapter, so they work without an API key.
    read_only = args.stats or args.owner_status or args.job or args.failed is not None or args.skip
    generator = StaticScenarioGenerator() if read_only or args.dry_run else None
    runtime = build_postgres_runtime(settings, database, generator=generator)
    processor = runtime.processor

    if args.stats:
      stats = await processor.get_queue_stats()
      print(json.dumps(stats.to_dict(), indent=2))
      return 0

    if args.owner_status:
      owner_state = await processor.get_owner_status(args.owner)
      print(json.dumps(owner_state.to_dict(), indent=2))
      return 0

    if args.job or args.skip:
      try:
        job = await processor.get_job(args.job) if args.job else await processor.skip_job(args.skip, args.reason)
      except (JobNotFoundError, JobStateError) as exc:
        print(exc)
        return 1
      print(json.dumps(_job_summary(job), indent=2))
      return 0

    if args.failed is not None:
      failed = await processor.list_failed_jobs(args.failed)
      print(json.dumps([_job_summary(job) for job in failed], indent=2))
      return 0

    if args.retry_failed:
      reset = await processor.retry_failed_jobs(owner=args.owner)
      print(f"Reset {reset} failed job(s) to pending.")

    result = await processor.process_pending_jobs(args.limit, dry_run=args.dry_run, owner=args.owner)
    print(json.dumps(result.summary(), indent=2))

    if args.cleanup:
      deleted = await processor.cleanup_old_jobs()
      print(f"Deleted {deleted} finished job(s).")

    return 1 if result.failed else 0
  finally:
    await database.close()


def main(argv: list[str] | None = None) -> None:
  parser = build_parser()
  args = parser.parse_args(argv)
  if args.owner_status and args.owner is None:
    parser.error("--owner-status requires --owner")
  raise SystemExit(asyncio.run(_run(args)))


if __name__ == "__main__":
  main()
