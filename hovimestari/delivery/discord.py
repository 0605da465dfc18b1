import logging

import httpx

from .split import split_message

log = logging.getLogger("hovimestari.delivery.discord")

DISCORD_MAX_LEN = 2000


def send_discord_message(webhook_url: str, message: str) -> bool:
    """Post a message to a Discord webhook, split to fit the length limit."""
    parts = split_message(message, DISCORD_MAX_LEN)
    try:
        for i, part in enumerate(parts):
            resp = httpx.post(webhook_url, json={"content": part}, timeout=30)
            resp.raise_for_status()
            if len(parts) > 1:
                log.info("Sent part %d/%d to Discord", i + 1, len(parts))
    except httpx.HTTPError as e:
        log.error("Failed to send brief to Discord: %s", e)
        return False
    log.info("Brief sent to Discord webhook")
    return True
