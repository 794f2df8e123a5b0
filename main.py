#!/usr/bin/env python3
"""QuantMesh Configuration Wizard - Main Entry Point.

Runs the configuration wizard against the trading bot's web API from a
JSON plan and prints the generated configuration preview.

Usage:
    python main.py --plan plan.json
    python main.py --plan plan.json --apply
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from dotenv import load_dotenv

# Load environment variables first
load_dotenv(override=True)

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "src"))

from quantmesh_wizard.clients import BackendClient
from quantmesh_wizard.config import ConfigManager, ConfigValidationError
from quantmesh_wizard.wizard import TransitionFailure, WizardSession
from quantmesh_wizard.wizard.plan import PlanError, load_plan, run_plan

# Setup logging (stdout carries the preview)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)-8s | %(name)-40s | %(message)s',
    datefmt='%H:%M:%S',
    handlers=[logging.StreamHandler(sys.stderr)],
)
logger = logging.getLogger(__name__)
logging.getLogger("urllib3").setLevel(logging.WARNING)
logging.getLogger("requests").setLevel(logging.WARNING)


async def main(args) -> int:
    """Main entry point for the configuration wizard."""
    logger.info("=" * 70)
    logger.info("🧭 QUANTMESH - CONFIGURATION WIZARD")
    logger.info("=" * 70)

    # Load configuration
    try:
        config = ConfigManager(args.config).load()
        logger.info("✅ Configuration loaded and validated")
    except ConfigValidationError as e:
        logger.error(f"❌ Configuration error: {e}")
        return 1

    try:
        plan = load_plan(args.plan)
    except PlanError as e:
        logger.error(f"❌ Plan error: {e}")
        return 1

    client = BackendClient(config.backend, ai_api_key=config.ai.api_key)
    session = WizardSession(
        exchange_source=client,
        balance_source=client,
        strategy_type_source=client,
        sink=client,
        recommender=client if config.ai.enabled else None,
        config=config.wizard,
    )

    await session.open()
    for notice in session.notices:
        logger.warning(f"⚠️ {notice.message}")

    credential = config.ai.api_key if config.ai.enabled else ""
    try:
        failure = await run_plan(session, plan, ai_credential=credential)
    except PlanError as e:
        logger.error(f"❌ Plan error: {e}")
        return 1
    if failure is not None:
        logger.error(f"❌ Wizard stopped on {failure.step.value}: {failure.message}")
        return 1

    print(json.dumps(session.preview, indent=2, ensure_ascii=False))

    if args.apply:
        result = await session.apply()
        if isinstance(result, TransitionFailure):
            logger.error(f"❌ Apply failed: {result.message}")
            return 1
        logger.info("🎉 Configuration applied")

    session.close()
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="QuantMesh Configuration Wizard")
    parser.add_argument("--plan", required=True, help="JSON plan with exchanges, symbols and capital")
    parser.add_argument("--config", default=None, help="Path to wizard.json")
    parser.add_argument("--apply", action="store_true", help="Apply the generated configuration")
    sys.exit(asyncio.run(main(parser.parse_args())))
