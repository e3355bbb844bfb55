#!/usr/bin/env python3
"""
CLI script for running an injectability probe without the queue.

Usage: python run_probe.py --url <ordering_page_url> [--runs 3] [--cooldown 30] [--no-headless]
"""

import argparse
import json
from dataclasses import replace
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

from checkout_engine.artifacts import JsonFileReportWriter
from checkout_engine.probe import run_probe
from checkout_engine.storage import target_slug
from shared.config import get_config
from shared.logging import configure_logging


async def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description="Probe an ordering page for automatability")
    parser.add_argument("--url", required=True, help="Ordering page URL to probe")
    parser.add_argument("--runs", type=int, default=None, help="Number of runs (default: PROBE_RUNS)")
    parser.add_argument(
        "--cooldown",
        type=float,
        default=None,
        help="Seconds between runs (default: PROBE_COOLDOWN_SECONDS)",
    )
    parser.add_argument(
        "--no-headless",
        action="store_true",
        help="Show browser window (Chrome). Use for local debugging.",
    )
    args = parser.parse_args()

    config = get_config()
    if args.no_headless:
        config = replace(config, headless=False)
    configure_logging(level=config.log_level, log_file=config.log_file, log_stdout=config.log_stdout)

    writer = JsonFileReportWriter(config.reports_dir)
    result = await run_probe(
        args.url,
        runs=args.runs,
        cooldown_seconds=args.cooldown,
        config=config,
        report_writer=writer,
        screenshot_dir=Path(config.artifacts_dir) / target_slug(args.url),
    )

    print("\n" + "=" * 80)
    print("PROBE RESULTS")
    print("=" * 80)
    print(f"\nTarget: {result.target}")
    print(f"Platform: {result.platform}")
    print(f"Score: {result.injectability_score}/100 ({result.recommendation})")
    print(f"Runs: {result.consistency.runs_successful}/{result.consistency.runs_completed} successful")

    if result.blockers:
        print(f"\nBlockers ({len(result.blockers)}):")
        for blocker in result.blockers:
            print(f"  - {blocker}")
    if result.advantages:
        print(f"\nAdvantages ({len(result.advantages)}):")
        for advantage in result.advantages:
            print(f"  - {advantage}")

    print("\n" + "=" * 80)
    print("JSON OUTPUT")
    print("=" * 80)
    print(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
