from __future__ import annotations
import requests
from typing import Optional

from swapbot.models import HistoryEntry
from swapbot.utils.log_config import logger_manager, log_function

logger = logger_manager.setup_logger(__name__)

API_URL = "https://api.telegram.org/bot{token}"

def _esc(s: str) -> str:
    # minimal Markdown escaping
    return (s or "").replace("\\", "\\\\").replace("_", "\\_").replace("*", "\\*").replace("`", "\\`").replace("[","\\[").replace("]","\\]")

def _chat_id(raw: Optional[str]) -> Optional[int | str]:
    """Numeric ids go out as ints, @channel names as text; anything else disables sending."""
    raw = (raw or "").strip()
    if not raw:
        return None
    if raw.lstrip("-").isdigit():
        return int(raw)
    if raw.startswith("@") and len(raw) > 1:
        return raw
    logger.warning(f"Unusable Telegram chat id {raw!r}; notifications disabled.")
    return None


class TelegramService:
    """Push bot status updates to a Telegram chat. Silent when unconfigured."""

    def __init__(self, token: Optional[str] = None, chat_id: Optional[str] = None,
                 session: Optional[requests.Session] = None) -> None:
        self.token = token
        self.chat_id = _chat_id(chat_id)
        self._http = session or requests.Session()
        if not self.enabled:
            logger.info("TelegramService without TOKEN or CHAT_ID; notifications disabled.")

    @property
    def enabled(self) -> bool:
        return bool(self.token and self.chat_id)

    def _send(self, text: str) -> None:
        if not self.enabled:
            return
        payload = {"chat_id": self.chat_id, "text": text, "parse_mode": "Markdown"}
        try:
            self._http.post(f"{API_URL.format(token=self.token)}/sendMessage", json=payload, timeout=10).raise_for_status()
        except requests.RequestException as e:
            logger.error(f"❌ Error sending Telegram message: {e}")

    def notify_status(self, status: str) -> None:
        if status.startswith("Error"):
            self.notify_error(status)
        else:
            self.notify_info(f"Bot Status: {status}")

    @log_function
    def notify_swap(self, entry: HistoryEntry) -> None:
        link = entry.tx_url or entry.tx_hash
        self._send(
            f"🔁 *{entry.direction.value}* {_esc(entry.asset_label)}\n"
            f"*Amount:* {_esc(entry.amount)}\n"
            f"*Tx:* {link}"
        )

    def notify_info(self, message: str) -> None:
        self._send(f"ℹ️ {_esc(message)}")

    def notify_error(self, message: str) -> None:
        self._send(f"🚨 *ERROR*: {_esc(message)}")
