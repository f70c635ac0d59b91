from .base import Notifier
from .formatter import format_tag_message, tag_url
from .telegram import TelegramNotifier

__all__ = [
    "Notifier",
    "TelegramNotifier",
    "format_tag_message",
    "tag_url",
]
