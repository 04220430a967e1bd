#!/usr/bin/env python3
"""
Retention sweep entrypoint, invoked by an external scheduler.

Usage:
    python -m apps.billing.scripts.run_retention_sweep
    python -m apps.billing.scripts.run_retention_sweep --max-tenants 20000 --no-lock

Exit code 0 when the run completed, 1 otherwise (the run record says why).
"""

import asyncio
import argparse
import sys

from framework.config import settings
from framework.database.manager import DatabaseManager
from framework.jobs.lock import JobLock, JobLockError
from framework.logging.logger import LogConfig, get_logger
from framework.repository.unit_of_work import UnitOfWork
from framework.storage import get_storage
from apps.billing.sweep import RetentionSweep

JOB_NAME = "retention_sweep"

logger = get_logger("run_retention_sweep")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Evict oldest models of tenants whose retention window has passed",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m apps.billing.scripts.run_retention_sweep
  python -m apps.billing.scripts.run_retention_sweep --batch-size 50
  python -m apps.billing.scripts.run_retention_sweep --max-tenants 20000 --no-lock
        """
    )
    parser.add_argument("--batch-size", type=int, default=100, help="Tenants loaded per page")
    parser.add_argument(
        "--max-tenants",
        type=int,
        default=settings.RETENTION_MAX_TENANTS_PER_RUN,
        help="Abort before touching anything when more tenants are in grace (0 disables)"
    )
    parser.add_argument("--no-lock", action="store_true", help="Skip the redis job lock")
    return parser


async def run_sweep(args, db_manager: DatabaseManager) -> int:
    async with db_manager.sql.session_factory() as session:
        sweep = RetentionSweep(
            UnitOfWork(session=session),
            storage=get_storage(),
            batch_size=args.batch_size,
            max_tenants=args.max_tenants,
        )
        summary = await sweep.run()
    logger.info(f"Run {summary.run_id} finished with status {summary.status.value}")
    return 0


async def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    LogConfig.setup_job_logging(JOB_NAME)

    db_manager = DatabaseManager.get_instance()
    exit_code = 1
    try:
        await db_manager.sql.connect()
        logger.info("=" * 60)
        logger.info("Retention Sweep Started")
        logger.info("=" * 60)

        if args.no_lock:
            logger.warning("Running without job lock")
            exit_code = await run_sweep(args, db_manager)
        else:
            await db_manager.redis.connect()
            async with JobLock(db_manager.redis.get_client(), JOB_NAME):
                exit_code = await run_sweep(args, db_manager)
    except JobLockError as e:
        logger.error(f"Another retention sweep is running: {e}")
    except Exception as e:
        logger.opt(exception=True).error(f"Retention sweep failed: {e!r}")
    finally:
        await db_manager.close()

    return exit_code


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
