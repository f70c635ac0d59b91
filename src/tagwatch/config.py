from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Mapping

from .errors import ConfigError
from .models import split_repo
from .notify.formatter import DEFAULT_WEB_BASE
from .notify.telegram import DEFAULT_API_BASE as TELEGRAM_API_BASE
from .sources.github import DEFAULT_API_BASE as GITHUB_API_BASE

DEFAULT_POLL_INTERVAL_SECONDS = 120
DEFAULT_CALL_TIMEOUT_SECONDS = 30.0
DEFAULT_STATE_PATH = "state.json"

_TRUE_STRINGS = ("1", "true", "yes", "on")


def _require_dict(value: Any, *, where: str) -> Mapping[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(f"Expected object at {where}, got {type(value).__name__}")
    return value


def _get_bool(d: Mapping[str, Any], key: str, default: bool) -> bool:
    v = d.get(key, default)
    if isinstance(v, str):
        return v.strip().lower() in _TRUE_STRINGS
    return bool(v)


def _get_int(d: Mapping[str, Any], key: str, default: int) -> int:
    v = d.get(key, default)
    if isinstance(v, bool):
        raise ConfigError(f"{key} must be an integer, got {v!r}")
    try:
        return int(v)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{key} must be an integer, got {v!r}") from e


def _get_float(d: Mapping[str, Any], key: str, default: float) -> float:
    v = d.get(key, default)
    if isinstance(v, bool):
        raise ConfigError(f"{key} must be a number, got {v!r}")
    try:
        return float(v)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{key} must be a number, got {v!r}") from e


def _get_str(d: Mapping[str, Any], key: str, default: str | None = None) -> str | None:
    v = d.get(key, default)
    if v is None:
        return None
    return str(v)


def _get_str_list(d: Mapping[str, Any], key: str, default: list[str]) -> list[str]:
    v = d.get(key, default)
    if v is None:
        return list(default)
    if isinstance(v, str):
        return split_csv(v)
    if isinstance(v, list):
        return [str(x) for x in v]
    raise ConfigError(f"{key} must be a list of strings, got {type(v).__name__}")


def split_csv(value: str) -> list[str]:
    return [s.strip() for s in value.split(",") if s.strip()]


def _dedupe(items: list[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    out: list[str] = []
    for x in items:
        x = x.strip()
        if x and x not in seen:
            seen.add(x)
            out.append(x)
    return tuple(out)


@dataclass(frozen=True, slots=True)
class GitHubSourceConfig:
    """
    GitHub 解析配置。

    token_env:
      - GitHub Token 的环境变量名（必填；匿名访问 60 次/小时，很容易触发限流）
    api_base / web_base:
      - REST API 与网页地址，GitHub Enterprise 时改为自建域名
    """

    token_env: str = "GITHUB_TOKEN"
    api_base: str = GITHUB_API_BASE
    web_base: str = DEFAULT_WEB_BASE


@dataclass(frozen=True, slots=True)
class TelegramNotifyConfig:
    """
    Telegram 通知配置。

    bot_token_env:
      - Bot Token 的环境变量名（例如 123456:ABC-DEF...）
    chat_id / chat_id_env:
      - 目标会话；chat_id 未配置时从 chat_id_env 读取
    """

    bot_token_env: str = "TG_BOT_TOKEN"
    chat_id: str | None = None
    chat_id_env: str = "TG_CHAT_ID"
    api_base: str = TELEGRAM_API_BASE
    disable_web_page_preview: bool = True


@dataclass(frozen=True, slots=True)
class AppConfig:
    """
    应用总配置。

    poll_interval_seconds:
      - 两个轮询周期之间的间隔
    repos:
      - 形如 "owner/repo" 的字符串列表（保序去重）
    state_path:
      - 状态 JSON 文件路径
    notify_on_first_seen:
      - 首次观察到某 repo 的 tag 时是否通知（默认否，只记录基线）
    call_timeout_seconds:
      - 单次 resolve / notify 调用的超时上限
    """

    poll_interval_seconds: int
    repos: tuple[str, ...]
    state_path: str
    github: GitHubSourceConfig
    telegram: TelegramNotifyConfig
    notify_on_first_seen: bool = False
    call_timeout_seconds: float = DEFAULT_CALL_TIMEOUT_SECONDS

    def resolve_env(self, env_name: str | None) -> str | None:
        if not env_name:
            return None
        value = os.environ.get(env_name)
        if value is None or not value.strip():
            return None
        return value.strip()

    def telegram_chat_id(self) -> str | None:
        if self.telegram.chat_id:
            return self.telegram.chat_id
        return self.resolve_env(self.telegram.chat_id_env)


def load_config(config_path: str) -> AppConfig:
    """
    JSON 配置文件，secret 只通过环境变量名引用，避免落盘。

    JSON 顶层结构（示意）：
    {
      "poll_interval_seconds": 120,
      "repos": ["owner/repo"],
      "notify_on_first_seen": false,
      "state": { "path": "./state.json" },
      "github": { "token_env": "GITHUB_TOKEN" },
      "telegram": { "bot_token_env": "TG_BOT_TOKEN", "chat_id": "-1001234567890" }
    }
    """
    try:
        with open(config_path, "rb") as f:
            raw = json.loads(f.read().decode("utf-8"))
    except OSError as e:
        raise ConfigError(f"cannot read config {config_path}: {e}") from e
    except (ValueError, UnicodeDecodeError) as e:
        raise ConfigError(f"config {config_path} is not valid JSON: {e}") from e

    root = _require_dict(raw, where="$")

    state = _require_dict(root.get("state", {}), where="$.state")
    gh = _require_dict(root.get("github", {}), where="$.github")
    tg = _require_dict(root.get("telegram", {}), where="$.telegram")

    github_cfg = GitHubSourceConfig(
        token_env=str(gh.get("token_env") or "GITHUB_TOKEN"),
        api_base=str(gh.get("api_base") or GITHUB_API_BASE),
        web_base=str(gh.get("web_base") or DEFAULT_WEB_BASE),
    )
    telegram_cfg = TelegramNotifyConfig(
        bot_token_env=str(tg.get("bot_token_env") or "TG_BOT_TOKEN"),
        chat_id=_get_str(tg, "chat_id", None),
        chat_id_env=str(tg.get("chat_id_env") or "TG_CHAT_ID"),
        api_base=str(tg.get("api_base") or TELEGRAM_API_BASE),
        disable_web_page_preview=_get_bool(tg, "disable_web_page_preview", True),
    )

    return AppConfig(
        poll_interval_seconds=_get_int(root, "poll_interval_seconds", DEFAULT_POLL_INTERVAL_SECONDS),
        repos=_dedupe(_get_str_list(root, "repos", [])),
        state_path=str(state.get("path") or DEFAULT_STATE_PATH),
        github=github_cfg,
        telegram=telegram_cfg,
        notify_on_first_seen=_get_bool(root, "notify_on_first_seen", False),
        call_timeout_seconds=_get_float(root, "call_timeout_seconds", DEFAULT_CALL_TIMEOUT_SECONDS),
    )


def load_config_from_env(environ: Mapping[str, str] | None = None) -> AppConfig:
    """
    无配置文件时的纯环境变量模式：

    REPOS=owner1/repo1,owner2/repo2
    POLL_SECS=120
    GITHUB_TOKEN / TG_BOT_TOKEN / TG_CHAT_ID
    STATE_PATH=state.json
    NOTIFY_ON_FIRST_SEEN=false
    """
    env = os.environ if environ is None else environ
    return AppConfig(
        poll_interval_seconds=_get_int(env, "POLL_SECS", DEFAULT_POLL_INTERVAL_SECONDS),
        repos=_dedupe(split_csv(env.get("REPOS", ""))),
        state_path=env.get("STATE_PATH") or DEFAULT_STATE_PATH,
        github=GitHubSourceConfig(),
        telegram=TelegramNotifyConfig(chat_id=env.get("TG_CHAT_ID") or None),
        notify_on_first_seen=_get_bool(env, "NOTIFY_ON_FIRST_SEEN", False),
        call_timeout_seconds=_get_float(env, "CALL_TIMEOUT_SECS", DEFAULT_CALL_TIMEOUT_SECONDS),
    )


def validate_config(config: AppConfig) -> None:
    """
    启动前校验；任何一项不满足都抛 ConfigError，进程拒绝启动。
    """
    problems: list[str] = []
    if not config.repos:
        problems.append("no repos configured")
    for repo in config.repos:
        try:
            split_repo(repo)
        except ValueError as e:
            problems.append(str(e))
    if config.poll_interval_seconds < 1:
        problems.append(f"poll_interval_seconds must be >= 1, got {config.poll_interval_seconds}")
    if config.call_timeout_seconds <= 0:
        problems.append(f"call_timeout_seconds must be > 0, got {config.call_timeout_seconds}")
    if not config.resolve_env(config.github.token_env):
        problems.append(f"GitHub token missing: set env {config.github.token_env}")
    if not config.resolve_env(config.telegram.bot_token_env):
        problems.append(f"Telegram bot token missing: set env {config.telegram.bot_token_env}")
    if not config.telegram_chat_id():
        problems.append(f"Telegram chat id missing: set telegram.chat_id or env {config.telegram.chat_id_env}")

    if problems:
        raise ConfigError("invalid configuration: " + "; ".join(problems))
