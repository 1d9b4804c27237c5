"""CLI entry point for the production line monitor.

Usage:
    python -m src.data_sync.main snapshot
    python -m src.data_sync.main watch --interval 10 --cycles 6
    python -m src.data_sync.main set-goal 1 150
    python -m src.data_sync.main event start 1 3
    python -m src.data_sync.main scan 1 1209F25A16806100
    python -m src.data_sync.main alert create 2 1
    python -m src.data_sync.main product 1209F25A16806101

    # Against another backend:
    python -m src.data_sync.main --api-url http://10.0.0.5:3000 snapshot
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from src.api_client import ProductionAPI
from src.api_client.errors import MonitorError
from src.common.config import Settings, settings as default_settings
from src.common.logging import setup_logging
from src.common.timeutils import format_duration

from .store import ProductionDataSync

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Production line monitor")
    parser.add_argument("--api-url", type=str, help="Backend base URL (overrides MONITOR_API_URL)")
    parser.add_argument("--log-level", type=str, help="Logging level (default from settings)")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("snapshot", help="Load once and print the snapshot as JSON")

    watch = sub.add_parser("watch", help="Poll the backend and log a summary per cycle")
    watch.add_argument("--interval", type=float, help="Seconds between refreshes")
    watch.add_argument("--cycles", type=int, help="Stop after this many cycles")

    goal = sub.add_parser("set-goal", help="Set a line's daily production goal")
    goal.add_argument("line_id", type=int)
    goal.add_argument("goal", type=str)

    event = sub.add_parser("event", help="Send a start/stop event for a stage")
    event.add_argument("kind", choices=["start", "stop"])
    event.add_argument("line_id", type=int)
    event.add_argument("stage", type=int)

    scan = sub.add_parser("scan", help="Associate a scanned serial number")
    scan.add_argument("line_id", type=int)
    scan.add_argument("serial", type=str)

    alert = sub.add_parser("alert", help="Create or resolve an alert on a stage")
    alert.add_argument("action", choices=["create", "resolve"])
    alert.add_argument("line_id", type=int)
    alert.add_argument("stage", type=int)

    product = sub.add_parser("product", help="Print a product's stage analysis")
    product.add_argument("product_id", type=str)

    return parser


def summarize(store: ProductionDataSync) -> str:
    """One-line summary of the current snapshot."""
    if store.error:
        return f"sync error: {store.error}"
    m = store.metrics
    downtime = sum(store.downtime_by_line().values())
    return (
        f"produced {m.total_produced}/{m.total_target} ({m.overall_efficiency}%), "
        f"{m.active_lines}/{len(store.lines)} lines running, "
        f"{m.total_issues} open issues, downtime {format_duration(downtime)}"
    )


def _print_json(data: object) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


async def _watch(store: ProductionDataSync, interval: float | None, cycles: int | None) -> bool:
    done = asyncio.Event()
    seen = 0

    def on_change(_snapshot) -> None:
        nonlocal seen
        seen += 1
        logger.info(summarize(store))
        if cycles and seen >= cycles:
            done.set()

    store.subscribe(on_change)
    await store.start(interval)
    try:
        await done.wait()
    finally:
        await store.stop()
    return store.error is None


async def run(args: argparse.Namespace, settings: Settings) -> bool:
    async with ProductionAPI(base_url=args.api_url, settings=settings) as api:
        store = ProductionDataSync(api, settings=settings)

        if args.command == "snapshot":
            ok = await store.load()
            if ok:
                _print_json(store.snapshot.to_dict())
            else:
                logger.error("Could not load production data: %s", store.error)
            return ok

        if args.command == "watch":
            return await _watch(store, args.interval, args.cycles)

        if args.command == "set-goal":
            ok = await store.set_daily_production_goal(args.line_id, args.goal)
            if ok:
                logger.info("Daily goal of %s units set for line %d", args.goal, args.line_id)
            return ok

        if args.command == "event":
            product_id = await api.process_production_event(args.kind, args.stage, args.line_id)
            logger.info("Event %s on line %d stage %d -> product %s",
                        args.kind, args.line_id, args.stage, product_id or "-")
            return True

        if args.command == "scan":
            result = await store.associate_serial_number(args.serial, args.line_id)
            if result is None:
                return False
            logger.info("Serial %s associated on line %d", args.serial, args.line_id)
            return True

        if args.command == "alert":
            if args.action == "create":
                failure = await store.report_failure(args.line_id, args.stage)
                if failure is None:
                    return False
                _print_json(failure.model_dump(mode="json", by_alias=True))
                return True
            alert = await api.resolve_alert(args.line_id, args.stage)
            if alert is None:
                logger.error("No alert resolved on line %d stage %d", args.line_id, args.stage)
                return False
            _print_json(alert.model_dump(mode="json"))
            return True

        if args.command == "product":
            analysis = await store.get_product_analysis(args.product_id)
            if analysis is None:
                logger.error("Product %s not found", args.product_id)
                return False
            _print_json(analysis.model_dump(mode="json", by_alias=True))
            return True

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = default_settings
    setup_logging(args.log_level or settings.log_level, module_name="src")

    try:
        ok = asyncio.run(run(args, settings))
    except MonitorError as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        return 130
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
