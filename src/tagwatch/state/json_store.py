from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, field
from typing import Any

from ..errors import ConfigError, PersistError


logger = logging.getLogger(__name__)


def _validate_record(raw: Any, *, path: str) -> dict[str, str]:
    if not isinstance(raw, dict):
        raise ConfigError(f"state file {path} must contain a JSON object, got {type(raw).__name__}")
    record: dict[str, str] = {}
    for k, v in raw.items():
        if not isinstance(v, str):
            raise ConfigError(f"state file {path}: value for {k!r} must be a string, got {type(v).__name__}")
        record[k] = v
    return record


def _fsync_dir(dir_path: str) -> None:
    # Windows 不支持对目录 open/fsync
    if not hasattr(os, "O_DIRECTORY"):
        return
    fd = os.open(dir_path, os.O_RDONLY | os.O_DIRECTORY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def atomic_write_json(path: str, data: Any) -> None:
    """
    原子写 JSON：同目录临时文件 -> flush + fsync -> os.replace -> fsync 目录。

    任一步失败都会删除临时文件并把异常抛给调用方；path 的旧内容保持不变，
    rename 是唯一对外可见的修改。
    """
    dir_path = os.path.dirname(os.path.abspath(path))
    fd, tmp = tempfile.mkstemp(dir=dir_path, prefix=".tagwatch-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True, ensure_ascii=False)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise
    _fsync_dir(dir_path)


@dataclass(slots=True)
class JsonStateStore:
    """
    默认状态存储：单个 JSON 文件 {"owner/repo": "last_seen_tag", ...}。

    生命周期：
    - 启动时 load 一次；文件不存在视为空状态，文件损坏则 ConfigError（宁可启动失败，也不丢历史）
    - 运行中 set 只改内存（加锁）
    - 每个轮询周期结束 persist 一次；未变化时跳过写盘
    """

    path: str
    _record: dict[str, str] = field(default_factory=dict)
    _dirty: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @classmethod
    def load(cls, path: str) -> JsonStateStore:
        try:
            with open(path, "rb") as f:
                raw_bytes = f.read()
        except FileNotFoundError:
            logger.info("state file not found, starting empty: path=%s", path)
            return cls(path=path)
        except OSError as e:
            raise ConfigError(f"cannot read state file {path}: {e}") from e

        try:
            raw = json.loads(raw_bytes.decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as e:
            raise ConfigError(f"state file {path} is not valid JSON: {e}") from e

        record = _validate_record(raw, path=path)
        logger.info("state loaded: path=%s repos=%d", path, len(record))
        return cls(path=path, _record=record)

    def get(self, repo: str) -> str | None:
        with self._lock:
            return self._record.get(repo)

    def set(self, repo: str, tag: str) -> None:
        with self._lock:
            if self._record.get(repo) == tag:
                return
            self._record[repo] = tag
            self._dirty = True

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return dict(self._record)

    def persist(self) -> bool:
        """
        落盘当前映射；返回是否实际写了文件。

        失败抛 PersistError，dirty 标记保留，下次 persist 会再次写入。
        """
        with self._lock:
            if not self._dirty:
                return False
            data = dict(self._record)
            try:
                atomic_write_json(self.path, data)
            except OSError as e:
                raise PersistError(f"writing state {self.path}: {e}") from e
            self._dirty = False
        logger.debug("state persisted: path=%s repos=%d", self.path, len(data))
        return True
