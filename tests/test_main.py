import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime

from tagwatch import main as main_mod
from tagwatch.main import EXIT_CONFIG_ERROR, EXIT_OK, main, run_daemon
from tagwatch.runner import CycleReport, Runner
from tagwatch.state.json_store import JsonStateStore


@dataclass
class _StoppingRunner:
    """run_once 若干次后设置 stop_event，模拟运行中收到停止信号。"""

    stop_event: threading.Event
    stop_after: int
    calls: int = 0
    crash_on: set[int] = field(default_factory=set)

    def run_once(self):  # noqa: ANN201
        self.calls += 1
        if self.calls >= self.stop_after:
            self.stop_event.set()
        if self.calls in self.crash_on:
            raise RuntimeError("cycle bug")
        return _report()


def _report() -> CycleReport:
    now = datetime.now(tz=UTC)
    return CycleReport(
        started_at=now,
        finished_at=now,
        duration_ms=1,
        repos=(),
        resolved=0,
        first_seen=0,
        advanced=0,
        unchanged=0,
        notify_attempts=0,
        notify_successes=0,
        notify_failures=0,
        resolve_errors=0,
        persisted=False,
        persist_error=None,
    )


def test_run_daemon_finishes_cycle_then_exits_on_stop() -> None:
    stop = threading.Event()
    runner = _StoppingRunner(stop_event=stop, stop_after=1)
    rc = run_daemon(runner, poll_interval_seconds=3600, stop_event=stop)  # type: ignore[arg-type]
    assert rc == EXIT_OK
    assert runner.calls == 1


def test_run_daemon_survives_crashed_cycle(monkeypatch, caplog) -> None:  # noqa: ANN001
    stop = threading.Event()
    runner = _StoppingRunner(stop_event=stop, stop_after=3, crash_on={1})
    monkeypatch.setattr(stop, "wait", lambda timeout=None: stop.is_set())
    caplog.set_level(logging.ERROR)

    rc = run_daemon(runner, poll_interval_seconds=0, stop_event=stop)  # type: ignore[arg-type]

    assert rc == EXIT_OK
    assert runner.calls == 3
    assert "cycle crashed" in caplog.text


def test_stop_during_sleep_wakes_immediately() -> None:
    stop = threading.Event()
    runner = _StoppingRunner(stop_event=threading.Event(), stop_after=10**9)
    timer = threading.Timer(0.1, stop.set)
    timer.start()
    try:
        rc = run_daemon(runner, poll_interval_seconds=3600, stop_event=stop, status_interval_seconds=1)  # type: ignore[arg-type]
    finally:
        timer.cancel()
    assert rc == EXIT_OK
    assert runner.calls == 1


def test_main_exits_nonzero_on_config_error(monkeypatch, caplog) -> None:  # noqa: ANN001
    for name in ("REPOS", "GITHUB_TOKEN", "TG_BOT_TOKEN", "TG_CHAT_ID"):
        monkeypatch.delenv(name, raising=False)
    caplog.set_level(logging.ERROR)
    assert main(["--once"]) == EXIT_CONFIG_ERROR
    assert "startup failed" in caplog.text


def test_main_once_runs_single_cycle(tmp_path, monkeypatch) -> None:  # noqa: ANN001
    state_path = tmp_path / "state.json"
    state_path.write_text(json.dumps({"o/r": "v1"}), encoding="utf-8")
    monkeypatch.setenv("REPOS", "o/r")
    monkeypatch.setenv("STATE_PATH", str(state_path))
    monkeypatch.setenv("GITHUB_TOKEN", "gh")
    monkeypatch.setenv("TG_BOT_TOKEN", "t")
    monkeypatch.setenv("TG_CHAT_ID", "1")

    sent = []
    real_build_runner = main_mod.build_runner

    def _build(config):  # noqa: ANN001, ANN202
        runner = real_build_runner(config)
        resolver = type("R", (), {"key": lambda self: "r", "resolve": lambda self, repo: "v2"})()
        notifier = type("N", (), {"channel": lambda self: "n", "send": lambda self, event: sent.append(event)})()
        return Runner(state=runner.state, resolver=resolver, notifier=notifier, repos=runner.repos)

    monkeypatch.setattr("tagwatch.main.build_runner", _build)
    assert main(["--once"]) == EXIT_OK
    assert [e.tag for e in sent] == ["v2"]
    assert JsonStateStore.load(str(state_path)).snapshot() == {"o/r": "v2"}
