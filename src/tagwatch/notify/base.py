from __future__ import annotations

from typing import Protocol

from ..models import NotificationEvent


class Notifier(Protocol):
    """
    通知接口：向某个渠道发送一条 tag 更新消息。

    约定：
    - send 失败抛 NotifyError，由 runner 捕获；该 repo 的状态不会被提交，下个周期自然重试
    - channel() 用于日志与故障记录
    """

    def channel(self) -> str: ...

    def send(self, event: NotificationEvent) -> None: ...
