#!/usr/bin/env python3
"""
CLI script for placing (or rehearsing) an order.

Usage: python run_order.py --request order.json [--dry-run] [--no-headless]
"""

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

from checkout_engine.models import OrderRequest
from checkout_engine.order_agent import place_order
from checkout_engine.storage import target_slug
from shared.config import get_config
from shared.logging import configure_logging


async def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description="Place an order on a third-party ordering page")
    parser.add_argument("--request", required=True, help="Path to an OrderRequest JSON file")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Force a dry run (test card, expect a decline) regardless of the request file.",
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

    payload = json.loads(Path(args.request).read_text(encoding="utf-8"))
    request = OrderRequest.model_validate(payload)
    if args.dry_run:
        request = request.model_copy(update={"dry_run": True})

    result = await place_order(
        request,
        config=config,
        screenshot_dir=Path(config.artifacts_dir) / target_slug(request.restaurant_url),
    )

    print("\n" + "=" * 80)
    print("ORDER RESULT")
    print("=" * 80)
    print(f"\nSuccess: {result.success}")
    print(f"Stage: {result.stage.value}")
    print(f"Message: {result.message}")
    if result.order_id:
        print(f"Order ID: {result.order_id}")
    if result.screenshots:
        print(f"\nScreenshots ({len(result.screenshots)}):")
        for name in result.screenshots:
            print(f"  - {name}")

    print("\n" + "=" * 80)
    print("JSON OUTPUT")
    print("=" * 80)
    print(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))

    if not result.success:
        sys.exit(1)


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
