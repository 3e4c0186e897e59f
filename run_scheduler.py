#!/usr/bin/env python3
"""
Maifead Refresh Scheduler Runner
================================

Main entry point for running the Maifead refresh scheduler.
Handles initialization, startup, and graceful shutdown.
"""

import sys
import asyncio
import argparse

from maifead.scheduler.refresh_scheduler import RefreshScheduler
from maifead.config.settings import get_settings
from maifead.database.schema import DatabaseSchema
from maifead.utils.logging import setup_logger


async def main():
    """Main entry point for the scheduler service."""
    parser = argparse.ArgumentParser(description='Maifead Refresh Scheduler')
    parser.add_argument('--service', action='store_true',
                        help='Run as continuous service (for Docker/systemd)')
    parser.add_argument('--sweep', action='store_true',
                        help='Run the retention sweep in this one-time cycle')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')

    args = parser.parse_args()

    settings = get_settings()

    logger = setup_logger(
        name="maifead",
        level="DEBUG" if args.debug else settings.logging.level.value,
        log_file=settings.logging.file_path,
        console=settings.logging.console_logging
    )

    logger.info("Starting Maifead Refresh Scheduler...")

    try:
        DatabaseSchema(settings.database.path).create_tables()
        scheduler = RefreshScheduler(settings)

        if args.service:
            logger.info("Starting service mode...")
            print(f"Checking for due sources every {settings.scheduler.check_interval_seconds}s")
            print("Press Ctrl+C to stop.")
            await scheduler.run_forever()

        else:
            logger.info("Running one-time cycle...")
            result = await scheduler.run_cycle(force_sweep=args.sweep)

            if result.refresh is not None:
                print(f"Refreshed {result.refresh.sources_refreshed} sources, "
                      f"{result.refresh.total_new_items} new items, "
                      f"{result.refresh.sources_failed} failed")
                for source_id, error in result.refresh.per_source_errors.items():
                    print(f"  source {source_id}: {error}")
            if result.sweep is not None:
                print(f"Retention removed {result.sweep.items_deleted} items")

            sys.exit(0 if result.error is None else 1)

    except KeyboardInterrupt:
        print("\nScheduler stopped by user")
        logger.info("Scheduler stopped by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        print(f"Failed to start scheduler: {e}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
