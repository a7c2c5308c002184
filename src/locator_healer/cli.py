"""Command line entry point: ``python -m locator_healer <command>``."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .core.config import settings
from .core.config_loader import ConfigurationError, SelfHealingConfigLoader, get_healing_config
from .core.exceptions import LocatorFileError, LocatorHealerError
from .core.logging_config import setup_healing_logging
from .core.models import FailureDetails
from .crew_ai.llm_output_cleaner import formatting_monitor
from .crew_ai.repair_oracle import RepairOracle
from .services.failure_details import details_from_text, load_failure_details
from .services.failure_pipeline import FailurePipeline
from .services.locator_file import load_definitions
from .services.page_capture import open_page
from .services.xpath_validator import XPathValidator

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="locator-healer",
        description="Resolve and heal broken UI test locators"
    )
    parser.add_argument(
        "--config",
        help=f"Healing configuration YAML (default: {settings.SELF_HEALING_CONFIG_PATH})"
    )
    parser.add_argument(
        "--project-root",
        default=settings.PROJECT_ROOT,
        help="Root of the UI test project (default: PROJECT_ROOT or .)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    heal = subparsers.add_parser("heal", help="Resolve and heal from a saved artifacts folder")
    heal.add_argument("artifacts_dir", help="Folder containing full-error.txt and faileddom.html")
    heal.add_argument("--title", default="", help="Title of the failed test")
    heal.add_argument(
        "--no-oracle",
        action="store_true",
        help="Resolve only; skip oracle-assisted search and healing"
    )

    validate = subparsers.add_parser("validate", help="Check every locator of a file against a DOM snapshot")
    validate.add_argument("locator_file", help="Locator-definition file")
    validate.add_argument("dom_html", help="Saved DOM snapshot (HTML)")

    capture = subparsers.add_parser("capture", help="Open a page and run the full failure pipeline")
    capture.add_argument("url", help="Page to open")
    capture.add_argument("--error-file", required=True, help="Failure details JSON or plain error text")
    capture.add_argument("--title", required=True, help="Title of the failed test")
    capture.add_argument("--headed", action="store_true", help="Show the browser window")

    return parser


def _load_details(path: str, title: str) -> FailureDetails:
    if path.endswith(".json"):
        return load_failure_details(path)
    return details_from_text(Path(path).read_text(encoding="utf-8"), title)


def run_validate(args) -> int:
    try:
        definitions = load_definitions(args.locator_file)
        html = Path(args.dom_html).read_text(encoding="utf-8")
    except (LocatorFileError, OSError) as e:
        print(f"❌ {e}")
        return 2

    if not definitions:
        print(f"No xpath locators found in {args.locator_file}")
        return 0

    results = XPathValidator().validate_definitions(html, definitions)
    for key, is_valid in results.items():
        print(f"✅ {key} is valid." if is_valid else f"❌ {key} is INVALID.")
    return 0 if all(results.values()) else 1


async def run_heal(args, pipeline: FailurePipeline) -> int:
    report = await pipeline.heal_from_artifacts(args.artifacts_dir, args.title)
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.resolution.resolved else 1


async def run_capture(args, pipeline: FailurePipeline) -> int:
    details = _load_details(args.error_file, args.title)
    async with open_page(args.url, headless=not args.headed) as page:
        report = await pipeline.handle_failure(page, details, args.title, status="failed")
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.resolution.resolved else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "validate":
        return run_validate(args)

    setup_healing_logging(settings.LOG_LEVEL, settings.LOG_DIR)

    try:
        if args.config:
            config = SelfHealingConfigLoader(args.config).load_config()
        else:
            config = get_healing_config()
    except ConfigurationError as e:
        print(f"❌ {e}")
        return 2

    oracle = None
    if not getattr(args, "no_oracle", False):
        oracle = RepairOracle(timeout=config.oracle_timeout)

    pipeline = FailurePipeline(oracle=oracle, config=config, project_root=args.project_root)

    try:
        if args.command == "heal":
            code = asyncio.run(run_heal(args, pipeline))
        else:
            code = asyncio.run(run_capture(args, pipeline))
    except (LocatorHealerError, OSError) as e:
        logger.error(f"Healing failed: {e}")
        print(f"❌ {e}")
        code = 1

    if oracle is not None:
        logger.info(formatting_monitor.get_stats())
    return code


if __name__ == "__main__":
    sys.exit(main())
