from __future__ import annotations

import argparse
import logging
import os
import signal
import threading
import time

from .config import AppConfig, load_config, load_config_from_env, validate_config
from .errors import ConfigError
from .runner import CycleReport, Runner, build_runner


logger = logging.getLogger("tagwatch")

EXIT_OK = 0
EXIT_CONFIG_ERROR = 2


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tagwatch", description="Watch GitHub repos for new tags and post them to Telegram")
    p.add_argument(
        "--config",
        default=None,
        help="Path to JSON config file. Without it, config is read from env (REPOS, POLL_SECS, TG_CHAT_ID, ...)",
    )
    p.add_argument(
        "--log-level",
        default=None,
        help="Log level (DEBUG/INFO/WARNING/ERROR). Defaults to env TAGWATCH_LOG_LEVEL or INFO",
    )
    p.add_argument(
        "--status-interval",
        type=int,
        default=None,
        help="Daemon heartbeat interval seconds. Defaults to env TAGWATCH_STATUS_INTERVAL_SECONDS or 300. Set 0 to disable.",
    )

    mode = p.add_mutually_exclusive_group(required=False)
    mode.add_argument("--once", action="store_true", help="Run one poll cycle and exit")
    mode.add_argument("--daemon", action="store_true", help="Run forever with poll interval (default)")
    return p


def _resolve_log_level(value: str | None) -> int:
    v = (value or "").strip().upper()
    if not v:
        return logging.INFO
    level = logging.getLevelNamesMapping().get(v)
    if isinstance(level, int):
        return level
    return logging.INFO


def _resolve_status_interval(value: int | None) -> int:
    if value is None:
        try:
            value = int(os.environ.get("TAGWATCH_STATUS_INTERVAL_SECONDS") or 300)
        except ValueError:
            value = 300
    return max(0, int(value))


def _log_cycle(report: CycleReport, *, cycle_id: int) -> None:
    logger.info(
        "cycle summary: id=%d duration_ms=%d repos=%d first_seen=%d advanced=%d unchanged=%d notify_failures=%d resolve_errors=%d persisted=%s",
        cycle_id,
        report.duration_ms,
        len(report.repos),
        report.first_seen,
        report.advanced,
        report.unchanged,
        report.notify_failures,
        report.resolve_errors,
        report.persisted,
    )


def run_daemon(
    runner: Runner,
    *,
    poll_interval_seconds: int,
    stop_event: threading.Event,
    status_interval_seconds: int = 0,
) -> int:
    """
    轮询主循环：直到 stop_event 被设置。

    - 周期之间不重叠：上一周期（含 persist）结束后才开始计时
    - 停止信号只设置 event；进行中的周期会跑完（包括落盘）再退出
    - 单个周期意外崩溃只记录日志，短暂等待后继续
    """
    cycle_id = 0
    interval = max(1, poll_interval_seconds)
    next_heartbeat_at = time.monotonic() + status_interval_seconds if status_interval_seconds > 0 else float("inf")
    report: CycleReport | None = None

    while not stop_event.is_set():
        cycle_id += 1
        try:
            report = runner.run_once()
        except Exception:  # noqa: BLE001
            logger.exception("cycle crashed: id=%d", cycle_id)
            stop_event.wait(5)
            continue

        if (
            status_interval_seconds <= 0
            or report.advanced > 0
            or report.notify_failures > 0
            or report.resolve_errors > 0
            or report.persist_error
        ):
            _log_cycle(report, cycle_id=cycle_id)

        sleep_end = time.monotonic() + interval
        while not stop_event.is_set():
            now = time.monotonic()
            if now >= sleep_end:
                break

            if now >= next_heartbeat_at:
                logger.info(
                    "daemon alive: cycles=%d next_poll_in=%ds last_duration_ms=%d last_advanced=%d last_notify_failures=%d last_resolve_errors=%d",
                    cycle_id,
                    max(0, int(sleep_end - now)),
                    report.duration_ms,
                    report.advanced,
                    report.notify_failures,
                    report.resolve_errors,
                )
                next_heartbeat_at = now + status_interval_seconds

            stop_event.wait(min(sleep_end, next_heartbeat_at) - now)

    logger.info("tagwatch stopped: cycles=%d", cycle_id)
    return EXIT_OK


def _install_signal_handlers(stop_event: threading.Event) -> None:
    def _handle(signum: int, _frame: object) -> None:
        logger.info("received %s, finishing current cycle before exit", signal.Signals(signum).name)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def _load(config_path: str | None) -> AppConfig:
    config = load_config(config_path) if config_path else load_config_from_env()
    validate_config(config)
    return config


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    log_level = _resolve_log_level(args.log_level or os.environ.get("TAGWATCH_LOG_LEVEL"))
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        config = _load(args.config)
        runner = build_runner(config)
    except ConfigError as e:
        logger.error("startup failed: %s", e)
        return EXIT_CONFIG_ERROR

    mode = "once" if args.once else "daemon"
    logger.info("tagwatch start: mode=%s config=%s", mode, args.config or "<env>")
    logger.info(
        "config: poll_interval_seconds=%d state_path=%s notify_on_first_seen=%s call_timeout_seconds=%g repos=%s",
        config.poll_interval_seconds,
        config.state_path,
        config.notify_on_first_seen,
        config.call_timeout_seconds,
        ",".join(config.repos),
    )

    if args.once:
        report = runner.run_once()
        _log_cycle(report, cycle_id=1)
        return EXIT_OK

    stop_event = threading.Event()
    _install_signal_handlers(stop_event)
    return run_daemon(
        runner,
        poll_interval_seconds=config.poll_interval_seconds,
        stop_event=stop_event,
        status_interval_seconds=_resolve_status_interval(args.status_interval),
    )


if __name__ == "__main__":
    raise SystemExit(main())
