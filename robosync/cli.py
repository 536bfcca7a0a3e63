"""CLI entry point: one sync run (full / new / live) or the live loop."""

import argparse
import asyncio
import logging
import sys
import time

from robosync.config import LIVE_PUBLISH_STRATEGY, get_api_keys, get_target_season_id
from robosync.errors import FATAL_ERRORS
from robosync.models import SyncMode, SyncSummary
from robosync.services.firebase import get_firestore, get_realtime_db
from robosync.services.firestore_writer import FirestoreWriter
from robosync.services.key_pool import KeyPool
from robosync.services.live_loop import CYCLE_INTERVAL, LOOP_DURATION, run_live_loop
from robosync.services.robotevents_client import RobotEventsClient
from robosync.services.rtdb_publisher import LivePublisher, PublishCache
from robosync.services.sync_service import SyncService

logger = logging.getLogger("robosync")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="robosync",
        description="Sync RobotEvents season data into Firestore and the Realtime Database.",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--full", dest="mode", action="store_const", const=SyncMode.FULL,
        help="Re-sync every event that is not known to be complete (default)",
    )
    mode.add_argument(
        "--new", dest="mode", action="store_const", const=SyncMode.NEW,
        help="Only sync events not yet stored",
    )
    mode.add_argument(
        "--live", dest="mode", action="store_const", const=SyncMode.LIVE,
        help="Refresh rankings and matches of today's events",
    )
    parser.set_defaults(mode=SyncMode.FULL)
    parser.add_argument(
        "--loop", action="store_true", default=False,
        help="With --live: repeat cycles until the duration is spent",
    )
    parser.add_argument(
        "--duration-minutes", type=float, default=LOOP_DURATION / 60,
        help="Live loop budget in minutes (default: 55)",
    )
    parser.add_argument(
        "--interval-seconds", type=float, default=CYCLE_INTERVAL,
        help="Seconds between live cycle starts (default: 120)",
    )
    parser.add_argument(
        "--log-level", choices=["INFO", "DEBUG"], default="INFO",
        help="Logging level (default: INFO)",
    )
    return parser


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )


def _log_summary(summary: SyncSummary, writer: FirestoreWriter, elapsed: float) -> None:
    logger.info("=== Summary ===")
    logger.info("Mode: %s", summary.mode.value)
    logger.info(
        "Events: %d processed, %d skipped, %d failed (of %d)",
        summary.processed, summary.skipped, summary.failed, summary.total_events,
    )
    if summary.failed_events:
        logger.info("Failed events: %s", ", ".join(summary.failed_events))
    logger.info("Last processed event: %s", summary.last_event_id)
    logger.info("Firestore: %d written, %d unchanged", writer.totals["written"], writer.totals["skipped"])
    logger.info("Elapsed: %.1fs", elapsed)


async def _run(args: argparse.Namespace, keys: list[str], season_id: int) -> None:
    client = RobotEventsClient(KeyPool(keys))
    writer = FirestoreWriter(get_firestore())
    publisher = None
    if args.mode is SyncMode.LIVE:
        publisher = LivePublisher(
            get_realtime_db(),
            change_aware=LIVE_PUBLISH_STRATEGY != "blind",
            cache=PublishCache() if args.loop else None,
        )
    service = SyncService(client, writer, publisher, season_id, args.mode)

    start_time = time.time()
    try:
        if args.mode is SyncMode.LIVE and args.loop:
            await run_live_loop(
                service.run,
                duration=args.duration_minutes * 60,
                interval=args.interval_seconds,
            )
            logger.info(
                "Firestore: %d written, %d unchanged",
                writer.totals["written"], writer.totals["skipped"],
            )
        else:
            summary = await service.run()
            _log_summary(summary, writer, time.time() - start_time)
    finally:
        await client.aclose()


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    _setup_logging(args.log_level)

    if args.loop and args.mode is not SyncMode.LIVE:
        parser.error("--loop requires --live")

    keys = get_api_keys()
    if not keys:
        logger.error("ROBOTEVENTS_API_KEYS not set. Please set it in environment variables.")
        sys.exit(1)
    try:
        season_id = get_target_season_id()
    except ValueError as e:
        logger.error("%s", e)
        sys.exit(1)
    if season_id is None:
        logger.error("TARGET_SEASON_ID not set. Please set it in environment variables.")
        sys.exit(1)

    logger.info("Starting RobotEvents sync: season=%s mode=%s keys=%d", season_id, args.mode.value, len(keys))
    try:
        asyncio.run(_run(args, keys, season_id))
    except FATAL_ERRORS as e:
        logger.error("Fatal error: %s", e)
        sys.exit(1)
    except Exception as e:
        logger.error("Unexpected error: %s", e, exc_info=True)
        sys.exit(1)
    logger.info("Sync completed successfully!")
