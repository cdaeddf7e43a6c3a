"""Telegram notifications for Hyperliquid perp position changes."""

__version__ = "0.1.0"
