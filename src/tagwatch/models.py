from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def split_repo(repo: str) -> tuple[str, str]:
    """
    将 "owner/name" 拆分为 (owner, name)。

    两段都必须非空，且只能有一个 "/"；否则抛 ValueError。
    """
    owner, sep, name = repo.strip().partition("/")
    if not sep or not owner or not name or "/" in name:
        raise ValueError(f"repo must be owner/name, got {repo!r}")
    return owner, name


class Decision(enum.Enum):
    """
    变化检测结果，只有三种：

    - UNCHANGED：上游无 tag，或与上次记录相同
    - FIRST_SEEN：首次观察到该 repo 的 tag（此前无记录）
    - ADVANCED：已有记录，且上游 tag 与记录不同
    """

    UNCHANGED = "unchanged"
    FIRST_SEEN = "first_seen"
    ADVANCED = "advanced"


@dataclass(frozen=True, slots=True)
class NotificationEvent:
    """
    一次待发送的通知：由 ChangeDetector 构造，Notifier 消费一次，不落盘。
    """

    repo: str
    tag: str
    previous_tag: str | None
    url: str
    text: str
    created_at: datetime


@dataclass(frozen=True, slots=True)
class Detection:
    """
    ChangeDetector 对单个 repo 的输出。

    commit：通知成功（或无需通知）后应写入状态的 tag；None 表示不写。
    event：需要发送的通知；None 表示不发送。
    """

    repo: str
    decision: Decision
    last_seen: str | None
    observed: str | None
    commit: str | None
    event: NotificationEvent | None = None
