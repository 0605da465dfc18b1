import logging

import httpx

from .split import split_message

log = logging.getLogger("hovimestari.delivery.telegram")

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"
TELEGRAM_MAX_LEN = 4096


def send_telegram_message(bot_token: str, chat_id: str, message: str) -> bool:
    """Send a plain-text message through the Telegram Bot API."""
    url = TELEGRAM_API_URL.format(token=bot_token)
    parts = split_message(message, TELEGRAM_MAX_LEN)
    try:
        for part in parts:
            resp = httpx.post(url, json={"chat_id": chat_id, "text": part}, timeout=30)
            resp.raise_for_status()
            result = resp.json()
            if not result.get("ok"):
                log.error("Telegram returned failure: %s", result.get("description"))
                return False
    except (httpx.HTTPError, ValueError) as e:
        # The token is part of the URL, keep it out of the log.
        # ValueError covers a 200 response whose body is not JSON.
        log.error("Failed to send brief to Telegram chat %s: %s", chat_id, type(e).__name__)
        return False
    log.info("Brief sent to Telegram chat %s", chat_id)
    return True
