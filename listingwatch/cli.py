"""Command-line scan runner.

Runs one scan cycle over all enabled topics (fetch → detect → notify) and
exits, which is how the scheduled CI workflow uses it. With ``--loop`` it
keeps running and scans on a cron schedule instead.
"""

import argparse
import asyncio
import logging
import sys

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from listingwatch.config import ConfigError, load_config, manual_override_from_env
from listingwatch.pipeline.cycle import build_components, run_cycle

logger = logging.getLogger("listingwatch.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scan listing searches and notify about new listings")
    parser.add_argument("--config", help="Path to config.json (default: $LISTINGWATCH_CONFIG or ./config.json)")
    parser.add_argument("--loop", action="store_true", help="Keep running and scan on a schedule")
    parser.add_argument("--interval", type=int, default=15, help="Minutes between scans with --loop (default: 15)")
    parser.add_argument("--force-notify", action="store_true", help="Notify regardless of the time of day")
    parser.add_argument("--dry-run", action="store_true", help="Log notifications instead of sending them")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def cycle_failed(report: dict) -> bool:
    if report["status"] != "completed":
        return True
    return any(r["status"] == "failed" for r in report["topics"].values())


async def run_loop(config, store, strategy, notifier, args) -> None:
    """Scan now, then every ``args.interval`` minutes until interrupted."""
    async def scan():
        await run_cycle(
            config, store, strategy, notifier,
            manual_override=args.force_notify,
            require_credentials=not args.dry_run,
        )

    await scan()

    scheduler = AsyncIOScheduler(timezone=config.notification_window.timezone)
    scheduler.add_job(
        scan,
        CronTrigger(minute=f"*/{args.interval}", timezone=config.notification_window.timezone),
        id="scan",
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Scheduler running, scanning every %d minutes", args.interval)
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error("%s", e)
        return 1

    if not 1 <= args.interval <= 59:
        logger.error("--interval must be between 1 and 59 minutes")
        return 1

    store, strategy, notifier = build_components(config, dry_run=args.dry_run)
    args.force_notify = args.force_notify or manual_override_from_env()

    if args.loop:
        try:
            asyncio.run(run_loop(config, store, strategy, notifier, args))
        except KeyboardInterrupt:
            logger.info("Stopped")
        return 0

    logger.info("Starting scan for %d topics", len(config.enabled_projects))
    report = asyncio.run(run_cycle(
        config, store, strategy, notifier,
        manual_override=args.force_notify,
        require_credentials=not args.dry_run,
    ))
    logger.info("Scan complete: %s", report)

    if cycle_failed(report):
        failed = [t for t, r in report["topics"].items() if r["status"] == "failed"]
        logger.error("Scan failed (%s), failed topics: %s", report["status"], failed)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
