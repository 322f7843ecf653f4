"""
Run the leave sweeps once. Meant to be called by cron, e.g. daily at 00:05:

    python run_sweeps.py                 # all sweeps
    python run_sweeps.py expire-kitchen-leaves
"""
import asyncio
import sys

from campus_leave.config import settings
from campus_leave.core.cache import build_cache
from campus_leave.core.database import build_mongo_services, connect
from campus_leave.core.logging import setup_logging
from campus_leave.services.leaves import SWEEP_NAMES


async def run(job: str) -> int:
    client = await connect(settings)
    cache = build_cache(settings)
    try:
        services = build_mongo_services(cache)
        if job == "all":
            reports = await services.leaves.run_all_sweeps()
        else:
            reports = [await services.leaves.run_sweep(job)]
    finally:
        await cache.close()
        client.close()

    failed = 0
    for report in reports:
        print(f"{report.job}: processed={report.processed} failed={len(report.failed_ids)}")
        failed += len(report.failed_ids)
    return 1 if failed else 0


if __name__ == "__main__":
    setup_logging(settings)
    job = sys.argv[1] if len(sys.argv) > 1 else "all"
    if job != "all" and job not in SWEEP_NAMES:
        print(f"Unknown sweep '{job}'. Choose one of: all, {', '.join(SWEEP_NAMES)}")
        sys.exit(2)
    sys.exit(asyncio.run(run(job)))
