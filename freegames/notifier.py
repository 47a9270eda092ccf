import html
import logging
import os
from typing import Iterable, Optional

import requests

from .config import _env_truthy
from .models import ItemRecord


def build_summary(account: str, records: Iterable[ItemRecord]) -> str:
    parts = [f"<b>epic-games</b> ({html.escape(account)})"]
    for record in records:
        status = record.status.value if record.status else "skipped"
        parts.append(f"<b>{html.escape(record.title)}</b> {status}\n{record.url}")
    return "\n".join(parts)


class TelegramClient:
    def __init__(self, bot_token: Optional[str] = None, chat_id: Optional[str] = None) -> None:
        self.bot_token = bot_token or os.getenv("TELEGRAM_BOT_TOKEN")
        self.chat_id = chat_id or os.getenv("TELEGRAM_CHAT_ID")
        self.dry_run = _env_truthy("TELEGRAM_DRY_RUN", default=False)

        if not self.bot_token or not self.chat_id:
            # Notifications are optional; a claim run must not fail for them.
            logging.info("Telegram not configured (TELEGRAM_BOT_TOKEN/TELEGRAM_CHAT_ID). Summary will only be logged.")
            self.base_url = None
            return

        self.base_url = f"https://api.telegram.org/bot{self.bot_token}"

    def send_message(self, text: str, disable_web_page_preview: bool = True) -> None:
        if self.dry_run:
            logging.info("[DRY_RUN] Would send Telegram message: %s", text)
            return
        if not self.base_url or not self.chat_id:
            logging.info("Telegram not configured, run summary:\n%s", text)
            return
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": disable_web_page_preview,
        }
        resp = requests.post(f"{self.base_url}/sendMessage", json=payload, timeout=20)
        if not resp.ok:
            logging.error("Telegram sendMessage failed: %s %s", resp.status_code, resp.text)
            resp.raise_for_status()
