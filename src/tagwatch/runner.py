from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, TypeVar

from .config import AppConfig
from .detector import ChangeDetector
from .errors import NotifyError, PersistError, ResolveError
from .http_utils import HttpClient
from .models import Decision, utc_now
from .notify.base import Notifier
from .notify.telegram import TelegramNotifier
from .sources.base import Resolver
from .sources.github import GitHubTagResolver
from .state.json_store import JsonStateStore
from .state.store import StateStore


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class RepoRunReport:
    repo: str
    decision: Decision | None
    last_seen: str | None
    observed: str | None
    committed: str | None
    notify_attempted: bool
    notify_succeeded: bool
    error: str | None
    duration_ms: int


@dataclass(slots=True)
class CycleReport:
    started_at: datetime
    finished_at: datetime
    duration_ms: int
    repos: tuple[RepoRunReport, ...]
    resolved: int
    first_seen: int
    advanced: int
    unchanged: int
    notify_attempts: int
    notify_successes: int
    notify_failures: int
    resolve_errors: int
    persisted: bool
    persist_error: str | None


@dataclass(slots=True)
class Runner:
    """
    核心执行器：负责一次轮询周期内的完整数据流闭环：
    Resolver -> ChangeDetector -> Notifier -> State(commit) ... -> State(persist)

    不变量：
    - 只有 notify 成功（或首次观察静默记基线）才提交新 tag；notify 失败保持旧值，下个周期自然重试
    - 单个 repo 的任何异常只影响该 repo，周期继续
    - 每个周期只 persist 一次，且在所有 repo 处理完之后
    """

    state: StateStore
    resolver: Resolver
    notifier: Notifier
    repos: tuple[str, ...]
    detector: ChangeDetector = field(default_factory=ChangeDetector)
    call_timeout_seconds: float = 30.0

    def run_once(self) -> CycleReport:
        """
        执行一个轮询周期（单次）。

        执行顺序：
        - 逐个 repo：resolve -> decide ->（需要时）notify ->（成功时）commit
        - 最后统一 persist；落盘失败只记录，不影响内存状态
        """
        started_at = utc_now()
        start_t = time.monotonic()

        repo_reports = [self._process_repo(repo) for repo in self.repos]

        persisted = False
        persist_error: str | None = None
        try:
            persisted = self.state.persist()
        except PersistError as e:
            persist_error = str(e)
            logger.error("state persist failed, will retry next cycle: %s", e)

        finished_at = utc_now()
        return CycleReport(
            started_at=started_at,
            finished_at=finished_at,
            duration_ms=int((time.monotonic() - start_t) * 1000),
            repos=tuple(repo_reports),
            resolved=sum(1 for r in repo_reports if r.decision is not None),
            first_seen=sum(1 for r in repo_reports if r.decision is Decision.FIRST_SEEN),
            advanced=sum(1 for r in repo_reports if r.decision is Decision.ADVANCED),
            unchanged=sum(1 for r in repo_reports if r.decision is Decision.UNCHANGED),
            notify_attempts=sum(1 for r in repo_reports if r.notify_attempted),
            notify_successes=sum(1 for r in repo_reports if r.notify_succeeded),
            notify_failures=sum(1 for r in repo_reports if r.notify_attempted and not r.notify_succeeded),
            resolve_errors=sum(1 for r in repo_reports if r.decision is None),
            persisted=persisted,
            persist_error=persist_error,
        )

    def _call(
        self,
        fn: Callable[..., T],
        *args: object,
        error_cls: type[Exception],
        what: str,
    ) -> T:
        # daemon 线程：超时的调用被放弃，不阻塞进程退出
        outcome: dict[str, object] = {}

        def _target() -> None:
            try:
                outcome["value"] = fn(*args)
            except BaseException as e:  # noqa: BLE001
                outcome["error"] = e

        worker = threading.Thread(target=_target, name=f"tagwatch-call-{what}", daemon=True)
        worker.start()
        worker.join(self.call_timeout_seconds)
        if worker.is_alive():
            raise error_cls(f"{what} timed out after {self.call_timeout_seconds:g}s")
        if "error" in outcome:
            raise outcome["error"]  # type: ignore[misc]
        return outcome["value"]  # type: ignore[return-value]

    def _process_repo(self, repo: str) -> RepoRunReport:
        start_t = time.monotonic()
        last_seen = self.state.get(repo)

        def _report(**kwargs: object) -> RepoRunReport:
            values: dict[str, object] = {
                "repo": repo,
                "decision": None,
                "last_seen": last_seen,
                "observed": None,
                "committed": None,
                "notify_attempted": False,
                "notify_succeeded": False,
                "error": None,
            }
            values.update(kwargs)
            return RepoRunReport(duration_ms=int((time.monotonic() - start_t) * 1000), **values)  # type: ignore[arg-type]

        try:
            observed = self._call(self.resolver.resolve, repo, error_cls=ResolveError, what=f"resolve {repo}")
        except Exception as e:  # noqa: BLE001
            logger.exception("resolve failed: repo=%s resolver=%s", repo, self.resolver.key())
            return _report(error=f"{type(e).__name__}: {e}")

        detection = self.detector.evaluate(repo, last_seen, observed)
        if detection.event is None:
            if detection.commit is not None:
                self.state.set(repo, detection.commit)
                logger.info("baseline recorded: repo=%s tag=%s", repo, detection.commit)
            return _report(decision=detection.decision, observed=observed, committed=detection.commit)

        logger.info(
            "new tag detected: repo=%s tag=%s previous=%s decision=%s",
            repo,
            observed,
            last_seen,
            detection.decision.value,
        )
        try:
            self._call(self.notifier.send, detection.event, error_cls=NotifyError, what=f"notify {repo}")
        except Exception as e:  # noqa: BLE001
            logger.exception(
                "notify failed, state left at previous tag: repo=%s tag=%s channel=%s",
                repo,
                observed,
                self.notifier.channel(),
            )
            return _report(
                decision=detection.decision,
                observed=observed,
                notify_attempted=True,
                error=f"{type(e).__name__}: {e}",
            )

        assert detection.commit is not None
        self.state.set(repo, detection.commit)
        return _report(
            decision=detection.decision,
            observed=observed,
            committed=detection.commit,
            notify_attempted=True,
            notify_succeeded=True,
        )


def build_runner(config: AppConfig) -> Runner:
    """
    根据配置构建可运行的 Runner。

    - 统一在这里做“配置 -> 实例”的装配，Runner 内只关注流程编排
    - token 只通过环境变量读取，避免落盘
    - 状态文件在这里加载一次；文件损坏抛 ConfigError
    """
    http = HttpClient()
    state = JsonStateStore.load(config.state_path)

    resolver = GitHubTagResolver(
        http=http,
        token=config.resolve_env(config.github.token_env),
        api_base=config.github.api_base,
    )
    notifier = TelegramNotifier(
        bot_token=config.resolve_env(config.telegram.bot_token_env) or "",
        chat_id=config.telegram_chat_id() or "",
        http=http,
        api_base=config.telegram.api_base,
        disable_web_page_preview=config.telegram.disable_web_page_preview,
    )
    detector = ChangeDetector(
        notify_on_first_seen=config.notify_on_first_seen,
        web_base=config.github.web_base,
    )

    return Runner(
        state=state,
        resolver=resolver,
        notifier=notifier,
        repos=config.repos,
        detector=detector,
        call_timeout_seconds=config.call_timeout_seconds,
    )
