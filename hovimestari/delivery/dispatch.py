import logging
from functools import partial
from typing import Callable

from ..config import OutputConfig
from .cli import send_cli
from .discord import send_discord_message
from .telegram import send_telegram_message

log = logging.getLogger("hovimestari.delivery")


class DeliveryError(Exception):
    """Every configured delivery channel failed."""


def build_channels(outputs: OutputConfig, dry_run: bool = False) -> list[tuple[str, Callable[[str], bool]]]:
    if dry_run:
        return [("cli", send_cli)]

    channels = []
    if outputs.enable_cli:
        channels.append(("cli", send_cli))
    for i, url in enumerate(outputs.discord_webhook_urls, start=1):
        channels.append((f"discord#{i}", partial(send_discord_message, url)))
    for bot in outputs.telegram_bots:
        channels.append((f"telegram:{bot.chat_id}", partial(send_telegram_message, bot.bot_token, bot.chat_id)))
    if not channels:
        channels.append(("cli", send_cli))
    return channels


def deliver(brief: str, outputs: OutputConfig, dry_run: bool = False) -> list[str]:
    """Send to every channel. Returns the names of channels that failed."""
    channels = build_channels(outputs, dry_run)
    failed = []
    for name, send in channels:
        if not send(brief):
            failed.append(name)

    if failed and len(failed) == len(channels):
        raise DeliveryError(f"all outputs failed: {', '.join(failed)}")
    if failed:
        log.warning("Brief delivered to %d of %d outputs, failed: %s",
                    len(channels) - len(failed), len(channels), ", ".join(failed))
    else:
        log.info("Brief delivered to %d output(s)", len(channels))
    return failed
