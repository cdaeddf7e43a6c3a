#!/usr/bin/env python3
"""
hyperwatch - Telegram bot for monitoring Hyperliquid perp positions

Authorized chats subscribe to wallet addresses. Every polling interval each
subscribed address is fetched once from the Hyperliquid Info API, compared
with the last notified state, and every subscriber of that address is told
about opened, closed and resized positions.
"""

import asyncio
import logging
import os
import sqlite3
import sys

from hyperwatch.bot import attach_monitor, build_application
from hyperwatch.client import HyperliquidClient
from hyperwatch.config import Config, ConfigError, load_config
from hyperwatch.models import Subscription
from hyperwatch.monitor import PositionMonitor
from hyperwatch.registry import Registry
from hyperwatch.store import Store

logger = logging.getLogger("hyperwatch")


def setup_logging():
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Our app at INFO unless told otherwise
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logger.setLevel(getattr(logging, level, logging.INFO))

    # Mute noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("telegram").setLevel(logging.WARNING)
    logging.getLogger("telegram.ext").setLevel(logging.WARNING)


def seed_single_tenant(registry: Registry, config: Config):
    """Make sure the configured account is the subscription of the configured chat."""
    subscription = Subscription(
        recipient=config.monitor_chat_id,
        address=config.monitor_address,
        name=config.monitor_name,
    )
    if registry.add_subscription(subscription):
        logger.info(f"Single-tenant mode: monitoring {config.monitor_address} for chat {config.monitor_chat_id}")


async def run(config: Config, registry: Registry):
    app = build_application(config)
    client = HyperliquidClient(api_url=config.api_url, timeout=config.request_timeout)
    monitor = PositionMonitor(
        registry,
        client,
        app.bot_data["sender"].send_text,
        polling_interval=config.polling_interval,
        report_account_value_changes=config.report_account_value_changes,
    )
    attach_monitor(app, monitor)

    await app.initialize()
    await app.start()
    await app.updater.start_polling()
    logger.info(f"Telegram bot authorized as @{app.bot.username}")

    try:
        await monitor.run()
    finally:
        logger.info("Shutting down...")
        await monitor.close()
        await app.updater.stop()
        await app.stop()
        await app.shutdown()
        await client.aclose()


def main():
    """Main entry point."""
    setup_logging()

    try:
        config = load_config()
    except ConfigError as e:
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    try:
        store = Store(config.db_path)
        registry = Registry(store, super_admin=config.super_admin_id)
        registry.load()
    except sqlite3.Error as e:
        logger.error(f"Failed to open database {config.db_path}: {e}")
        sys.exit(1)

    if config.single_tenant:
        seed_single_tenant(registry, config)
    elif not config.super_admin_id:
        logger.warning("SUPER_ADMIN_ID not set, nobody can authorize new chats")

    logger.info("Starting hyperwatch")
    logger.info(f"Poll interval: {config.polling_interval}s")
    logger.info(f"Database: {config.db_path}")
    logger.info(f"Account value reporting: {'on' if config.report_account_value_changes else 'off'}")

    try:
        asyncio.run(run(config, registry))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        store.close()


if __name__ == "__main__":
    main()
