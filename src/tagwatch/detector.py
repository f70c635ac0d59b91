from __future__ import annotations

from dataclasses import dataclass

from .models import Decision, Detection, NotificationEvent, utc_now
from .notify.formatter import DEFAULT_WEB_BASE, format_tag_message, tag_url


def decide(last_seen: str | None, observed: str | None) -> Decision:
    """
    纯函数：比较上次记录与本次观察，给出三种判定之一。

    只做字符串比较，不假设 semver 顺序；上游返回的“最新”即为事实，
    即使它看起来比上次记录更旧，也判定为 ADVANCED。
    """
    if observed is None or observed == last_seen:
        return Decision.UNCHANGED
    if last_seen is None:
        return Decision.FIRST_SEEN
    return Decision.ADVANCED


@dataclass(frozen=True, slots=True)
class ChangeDetector:
    """
    将 decide 的结果转换为“是否通知 + 应提交的 tag”。

    notify_on_first_seen：
      - False（默认）：首次观察只静默记录基线，避免新增 repo 时刷屏
      - True：首次观察也发送通知，且与 ADVANCED 一样只在发送成功后提交
    """

    notify_on_first_seen: bool = False
    web_base: str = DEFAULT_WEB_BASE

    def evaluate(self, repo: str, last_seen: str | None, observed: str | None) -> Detection:
        decision = decide(last_seen, observed)
        if decision is Decision.UNCHANGED:
            return Detection(repo=repo, decision=decision, last_seen=last_seen, observed=observed, commit=None)

        assert observed is not None
        if decision is Decision.FIRST_SEEN and not self.notify_on_first_seen:
            return Detection(repo=repo, decision=decision, last_seen=last_seen, observed=observed, commit=observed)

        return Detection(
            repo=repo,
            decision=decision,
            last_seen=last_seen,
            observed=observed,
            commit=observed,
            event=self.build_event(repo, observed, last_seen),
        )

    def build_event(self, repo: str, tag: str, previous_tag: str | None) -> NotificationEvent:
        url = tag_url(repo, tag, web_base=self.web_base)
        return NotificationEvent(
            repo=repo,
            tag=tag,
            previous_tag=previous_tag,
            url=url,
            text=format_tag_message(repo, tag, url, previous_tag),
            created_at=utc_now(),
        )
