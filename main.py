"""
Repair quote engine entry point.

Runs the offline wizard demo. The engine itself is a library: hosts embed
``QuoteSession`` and supply real inventory, availability, identity, and
persistence providers.

Usage:
    python main.py
    python main.py --scenario store-visit
"""

import logging

from quote_engine.config import settings

logger = logging.getLogger(__name__)


def _run_console_mode() -> None:
    """Start the offline console demo (no network required)."""
    from console_demo import main as console_main

    logger.info("Starting %s console demo", settings.app_name)
    console_main()


if __name__ == "__main__":
    _run_console_mode()
