"""
tagwatch

轮询监控一组 GitHub 仓库的最新 tag（优先 release，无 release 时回退到原始 tag），
每出现一个新 tag 就向 Telegram 会话发送一次通知；已见状态保存在本地 JSON 文件中，
进程重启或部分失败后仍能正确续跑。
"""

from .detector import ChangeDetector, decide
from .models import Decision, Detection, NotificationEvent

__all__ = [
    "ChangeDetector",
    "Decision",
    "Detection",
    "NotificationEvent",
    "decide",
]
