#!/usr/bin/env python3
"""
Manual Job Runner

Runs one of the scheduled jobs once, outside the web process. Useful after
adding a company or fixing a mapping, or when a cron run was missed.

Usage:
    python scripts/run_job.py <job> [--company-ids a,b] [--start YYYY-MM-DD --end YYYY-MM-DD]

Examples:
    # Warm the point cache for every company (default 30-day range)
    python scripts/run_job.py refresh-cache

    # Incremental normalized sync for two companies
    python scripts/run_job.py sync-analytics --company-ids acme,globex

    # Refresh one company for a custom range
    python scripts/run_job.py refresh-cache --company-ids acme --start 2025-01-01 --end 2025-01-31

Jobs:
    refresh-cache, sync-analytics, portfolio-cache, sweep-cache
"""
import asyncio
import sys
import argparse
import json
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from marketing_hub.models.base import init_db
from marketing_hub.services.container import get_services
from marketing_hub.utils.dates import to_date
from marketing_hub.utils.logger import log

JOBS = ["refresh-cache", "sync-analytics", "portfolio-cache", "sweep-cache"]


async def run_job(job: str, ids=None, start=None, end=None) -> dict:
    services = get_services()

    if job == "refresh-cache":
        report = await services.orchestrator.refresh_cache(ids, start, end)
    elif job == "sync-analytics":
        report = await services.orchestrator.sync_analytics(ids)
    elif job == "portfolio-cache":
        report = await services.portfolio.rebuild_all(ids)
    else:
        return {
            "cache_entries_removed": services.orchestrator.sweep_cache(),
            "normalized_rows_removed": services.orchestrator.cleanup(),
        }

    await services.refresh_queue.stop()
    return report.to_dict()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Run a scheduled job once",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("job", choices=JOBS)
    parser.add_argument(
        "--company-ids", type=str, default=None,
        help="Comma separated company ids (user ids for portfolio-cache); default all"
    )
    parser.add_argument("--start", type=str, default=None, help="Range start for refresh-cache")
    parser.add_argument("--end", type=str, default=None, help="Range end for refresh-cache")
    args = parser.parse_args()

    if bool(args.start) != bool(args.end):
        parser.error("--start and --end must be given together")

    ids = [c.strip() for c in args.company_ids.split(",") if c.strip()] if args.company_ids else None
    start = to_date(args.start) if args.start else None
    end = to_date(args.end) if args.end else None

    init_db()
    log.info(f"Running {args.job}" + (f" for {', '.join(ids)}" if ids else ""))
    result = asyncio.run(run_job(args.job, ids, start, end))
    print(json.dumps(result, indent=2, default=str))

    failed = result.get("failed", 0) if isinstance(result, dict) else 0
    sys.exit(1 if failed else 0)
