import argparse
import asyncio
import logging
import sys
from datetime import timedelta

from dashboard_api.core.config import settings
from dashboard_api.domains.audit.services import UsageAggregator

logger = logging.getLogger(__name__)


async def run_periodically(aggregator: UsageAggregator, interval_seconds: float) -> None:
    """Run the aggregation every `interval_seconds` until cancelled; a failed run is logged and skipped"""
    while True:
        try:
            await aggregator.run()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Resource usage aggregation failed")
        await asyncio.sleep(interval_seconds)


def build_aggregator(session_factory=None, storage=None) -> UsageAggregator:
    if session_factory is None:
        from dashboard_api.core.db import SessionLocal

        session_factory = SessionLocal
    if storage is None:
        from dashboard_api.domains.storage.services import storage_service_factory

        storage = storage_service_factory()
    return UsageAggregator(
        session_factory,
        storage,
        retention_days=settings.retention_days,
        active_window=timedelta(hours=settings.active_window_hours),
    )


async def _run(once: bool, interval: float) -> None:
    from dashboard_api.core.db import engine, init_models

    await init_models()
    aggregator = build_aggregator()
    try:
        if once:
            snapshot = await aggregator.run()
            print(f"usage ok: {snapshot.to_dict()}")
        else:
            await run_periodically(aggregator, interval)
    finally:
        await engine.dispose()


def main() -> int:
    parser = argparse.ArgumentParser(description="Aggregate resource usage and prune old activity records")
    parser.add_argument("--once", action="store_true", help="Run a single aggregation and exit")
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.usage_interval_seconds,
        help="Seconds between runs when not using --once",
    )
    args = parser.parse_args()

    logging.basicConfig(level=settings.log_level)
    try:
        asyncio.run(_run(args.once, args.interval))
    except KeyboardInterrupt:
        return 0
    except Exception as exc:
        print(f"usage failed: {exc}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
