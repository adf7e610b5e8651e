"""
Telegram notifier for delivering dry run and session results.

This module uses the python-telegram-bot library for message delivery.
Delivery failures are logged and reported as False; they never interrupt a
dry run or a session.
"""

import asyncio
import logging
from typing import Union

from telegram import Bot
from telegram.error import NetworkError, TelegramError, TimedOut

from reconbot.aggregator import Summary
from reconbot.config import TelegramConfig
from reconbot.reporter import format_telegram_dry_run, format_telegram_session
from reconbot.session import SessionReport

# Configure module logger
logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4096


def _chat_id(raw: str) -> Union[int, str]:
    try:
        return int(raw)
    except ValueError:
        return raw


def send_telegram_message(message: str, config: TelegramConfig) -> bool:
    """
    Send a message to Telegram safely with error handling.

    Args:
        message: Message text to send (Markdown)
        config: Bot token, chat id and timeout

    Returns:
        True if message sent successfully, False otherwise
    """
    if not config.enabled:
        logger.debug("Telegram not configured (missing token or chat_id)")
        return False

    if not message or not message.strip():
        logger.warning("Empty message, not sending")
        return False

    if len(message) > MAX_MESSAGE_LENGTH:
        message = message[:MAX_MESSAGE_LENGTH - 3] + "..."

    bot = Bot(token=config.bot_token)
    chat_id = _chat_id(config.chat_id)

    logger.debug(f"Sending message to Telegram chat {chat_id}")

    try:
        asyncio.run(bot.send_message(
            chat_id=chat_id,
            text=message,
            parse_mode="Markdown",
            disable_web_page_preview=True,
            read_timeout=config.timeout,
            write_timeout=config.timeout,
        ))

        logger.info("Telegram message sent successfully")
        return True

    except TimedOut:
        logger.error(f"Telegram API request timed out after {config.timeout}s")
        return False

    except NetworkError as e:
        logger.error(f"Network error sending Telegram message: {e}")
        return False

    except TelegramError as e:
        logger.error(f"Telegram API error: {e}")
        return False


def send_dry_run_summary(summary: Summary, config: TelegramConfig) -> bool:
    return send_telegram_message(format_telegram_dry_run(summary), config)


def send_session_report(report: SessionReport, config: TelegramConfig) -> bool:
    return send_telegram_message(format_telegram_session(report), config)
