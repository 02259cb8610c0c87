#!/usr/bin/env python3
"""
Autopilot Runner
================

Runs the autonomous orchestrator against the Codegen agent service.

Usage:
  python -m autopilot.runner                      # Loop until SIGINT/SIGTERM
  python -m autopilot.runner --once               # Single cycle, print status
  python -m autopilot.runner --interval 10        # Override check interval (seconds)
  python -m autopilot.runner --config ./settings.yaml
"""

import os
import sys
import json
import signal
import asyncio
import logging
import argparse
from typing import Optional, Dict, Any

import httpx

from autopilot.config import load_settings, orchestrator_config_from_settings
from autopilot.orchestrator import AutonomousOrchestrator
from integrations.codegen_client import CodegenClient

logger = logging.getLogger('autopilot')


def configure_logging(level: str = 'INFO') -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


async def run(
    settings: Dict[str, Any],
    once: bool = False,
    interval: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> Dict[str, Any]:
    """
    Run the orchestrator until stopped (or for one cycle). Returns the final status.

    ``transport`` is handed to the HTTP client, e.g. an httpx.MockTransport.
    """
    config = orchestrator_config_from_settings(settings)
    if interval:
        config = config.replace(check_interval=interval)

    async with CodegenClient.from_settings(settings, transport=transport) as client:
        orchestrator = AutonomousOrchestrator(client, config)

        if once:
            await orchestrator.run_cycle()
            return orchestrator.get_status()

        stop_requested = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_requested.set)

        orchestrator.start()
        await stop_requested.wait()

        logger.info("Shutdown requested, stopping orchestrator...")
        orchestrator.stop()
        await orchestrator.wait_idle()
        return orchestrator.get_status()


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Codegen Autopilot - autonomous orchestrator for the Codegen agent service'
    )
    parser.add_argument(
        '--config', '-c',
        default=None,
        help='Path to settings.yaml (default: AUTOPILOT_CONFIG or config/settings.yaml)'
    )
    parser.add_argument(
        '--once',
        action='store_true',
        help='Run a single orchestration cycle and print the status as JSON'
    )
    parser.add_argument(
        '--interval', '-i',
        type=float,
        default=None,
        help='Check interval in seconds (overrides settings)'
    )
    parser.add_argument(
        '--log-level',
        default=os.environ.get('LOG_LEVEL', 'INFO'),
        help='Logging level (default: INFO)'
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    configure_logging(args.log_level)
    settings = load_settings(args.config)

    try:
        status = asyncio.run(run(settings, once=args.once, interval=args.interval))
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    if args.once:
        print(json.dumps(status, indent=2, default=str))
    return 0


if __name__ == '__main__':
    sys.exit(main())
