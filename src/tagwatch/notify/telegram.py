from __future__ import annotations

import json
import urllib.error
from dataclasses import dataclass

from ..errors import NotifyError
from ..http_utils import HttpClient, http_error_detail
from ..models import NotificationEvent
from .base import Notifier

DEFAULT_API_BASE = "https://api.telegram.org"
MAX_TEXT_LENGTH = 4096


def _truncate(text: str) -> str:
    if len(text) <= MAX_TEXT_LENGTH:
        return text
    return text[: MAX_TEXT_LENGTH - 1] + "…"


@dataclass(slots=True)
class TelegramNotifier(Notifier):
    """
    Telegram Bot API 通知（sendMessage）。

    说明：
    - chat_id 可以是数字（频道/超级群为 -100 开头）或 "@channelname"
    - parse_mode 固定为 legacy "Markdown"，消息正文由 notify.formatter 负责转义
    - 不做重试：失败抛 NotifyError，由下一个轮询周期重新触发
    """

    bot_token: str
    chat_id: str
    http: HttpClient
    api_base: str = DEFAULT_API_BASE
    disable_web_page_preview: bool = True

    def channel(self) -> str:
        return "telegram"

    def send(self, event: NotificationEvent) -> None:
        payload = self._build_payload(event.text)
        url = f"{self.api_base.rstrip('/')}/bot{self.bot_token}/sendMessage"
        try:
            resp = self.http.post_json(url, payload)
        except urllib.error.HTTPError as e:
            raise NotifyError(f"telegram send failed: {http_error_detail(e)}") from e
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            reason = getattr(e, "reason", e)
            raise NotifyError(f"telegram unreachable: {type(e).__name__}: {reason}") from e

        if resp.status >= 400:
            raise NotifyError(f"telegram send failed: status={resp.status}, body={resp.body[:200]!r}")

        try:
            data = json.loads(resp.body.decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as e:
            raise NotifyError(f"telegram invalid JSON response: {resp.body[:200]!r}") from e

        if not isinstance(data, dict) or data.get("ok") is not True:
            raise NotifyError(f"telegram returned error: {data!r}")

    def _build_payload(self, text: str) -> dict[str, object]:
        chat_id: object = self.chat_id
        if isinstance(chat_id, str) and chat_id.lstrip("-").isdigit():
            chat_id = int(chat_id)
        return {
            "chat_id": chat_id,
            "text": _truncate(text or "-"),
            "parse_mode": "Markdown",
            "disable_web_page_preview": self.disable_web_page_preview,
        }
