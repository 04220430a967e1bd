#!/usr/bin/env python3
"""
Account deletion sweep entrypoint, invoked by an external scheduler.

Usage:
    python -m apps.account_deletion.scripts.run_account_deletion_sweep
    python -m apps.account_deletion.scripts.run_account_deletion_sweep --batch-size 500 --max-users 2000

Exit code 0 when the run completed, 1 otherwise (the run record says why).
"""

import asyncio
import argparse
import sys

from framework.billing import get_billing_provider
from framework.config import settings
from framework.database.manager import DatabaseManager
from framework.jobs.lock import JobLock, JobLockError
from framework.logging.logger import LogConfig, get_logger
from framework.repository.unit_of_work import UnitOfWork
from framework.storage import get_storage
from apps.account_deletion.sweep import AccountDeletionSweep

JOB_NAME = "account_deletion_sweep"

logger = get_logger("run_account_deletion_sweep")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Permanently delete accounts whose deletion deadline has passed",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m apps.account_deletion.scripts.run_account_deletion_sweep
  python -m apps.account_deletion.scripts.run_account_deletion_sweep --batch-size 250
  python -m apps.account_deletion.scripts.run_account_deletion_sweep --max-users 2000 --no-lock
        """
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=settings.STORAGE_DELETE_BATCH_SIZE,
        help="Storage objects listed and deleted per request (max 1000)"
    )
    parser.add_argument(
        "--max-users",
        type=int,
        default=settings.ACCOUNT_DELETION_MAX_USERS_PER_RUN,
        help="Abort before touching anything when more accounts are due (0 disables)"
    )
    parser.add_argument("--no-lock", action="store_true", help="Skip the redis job lock")
    return parser


async def run_sweep(args, db_manager: DatabaseManager) -> int:
    async with db_manager.sql.session_factory() as session:
        sweep = AccountDeletionSweep(
            UnitOfWork(session=session),
            storage=get_storage(),
            billing=get_billing_provider(),
            batch_size=args.batch_size,
            max_users=args.max_users,
        )
        summary = await sweep.run()
    logger.info(f"Run {summary.run_id} finished with status {summary.status.value}")
    return 0


async def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if not 0 < args.batch_size <= 1000:
        logger.error("--batch-size must be between 1 and 1000")
        return 1
    LogConfig.setup_job_logging(JOB_NAME)

    db_manager = DatabaseManager.get_instance()
    exit_code = 1
    try:
        await db_manager.sql.connect()
        logger.info("=" * 60)
        logger.info("Account Deletion Sweep Started")
        logger.info("=" * 60)

        if args.no_lock:
            logger.warning("Running without job lock")
            exit_code = await run_sweep(args, db_manager)
        else:
            await db_manager.redis.connect()
            async with JobLock(db_manager.redis.get_client(), JOB_NAME):
                exit_code = await run_sweep(args, db_manager)
    except JobLockError as e:
        logger.error(f"Another account deletion sweep is running: {e}")
    except Exception as e:
        logger.opt(exception=True).error(f"Account deletion sweep failed: {e!r}")
    finally:
        await db_manager.close()

    return exit_code


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
