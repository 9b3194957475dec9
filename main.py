#!/usr/bin/env python3
"""
Discord Trivia Bot - Main Entry Point

This script runs the Discord trivia bot. Configure your bot token in config.json
or set the DISCORD_BOT_TOKEN environment variable.

Usage:
    python main.py [path/to/config.json]

Environment Variables:
    DISCORD_BOT_TOKEN: Your Discord bot token (overrides config.json)
"""

import asyncio
import logging
import sys
from pathlib import Path

from trivia_game.bot import run_bot
from trivia_game.config_manager import AppConfig, load_app_config
from trivia_game.exceptions import ConfigError


def setup_logging_from_config(config: AppConfig):
    """Set up logging based on configuration."""
    log_level = getattr(logging, config.log_level, logging.INFO)
    log_directory = Path(config.log_directory)

    # Create logs directory
    log_directory.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_directory / "bot.log", encoding='utf-8')
        ]
    )

    # Reduce discord.py noise
    logging.getLogger('discord').setLevel(logging.WARNING)
    logging.getLogger('discord.http').setLevel(logging.WARNING)


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    config_path = argv[0] if argv else "config.json"

    try:
        config = load_app_config(config_path)
    except ConfigError as e:
        print(f"❌ Error: {e}")
        print("Please copy config.json and configure your Discord bot token.")
        return 1

    setup_logging_from_config(config)

    if not config.token:
        print("❌ Error: Discord bot token not configured!")
        print("Either:")
        print("  1. Set DISCORD_BOT_TOKEN environment variable")
        print("  2. Update the 'token' field in config.json")
        return 1

    try:
        print("🤖 Starting Discord Trivia Bot...")
        asyncio.run(run_bot(config))
    except KeyboardInterrupt:
        print("\n👋 Bot stopped by user")
    return 0


if __name__ == "__main__":
    sys.exit(main())
