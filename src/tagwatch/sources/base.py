from __future__ import annotations

from typing import Protocol


class Resolver(Protocol):
    """
    上游适配器接口：给定 "owner/name"，返回当前“最新”的 tag。

    约定：
    - 有 tag 时返回字符串；仓库存在但从未发布任何 tag 时返回 None
    - 任何失败（网络、限流、404、响应格式异常）抛 ResolveError，由 runner 按 repo 隔离处理
    """

    def key(self) -> str: ...

    def resolve(self, repo: str) -> str | None: ...
