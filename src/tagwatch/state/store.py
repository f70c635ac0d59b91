from __future__ import annotations

from typing import Protocol


class StateStore(Protocol):
    """
    状态层接口：repo -> 上次看到的 tag。

    - get/set：内存读写，set 幂等
    - persist：把当前映射整体落盘，失败抛 PersistError
    """

    def get(self, repo: str) -> str | None: ...

    def set(self, repo: str, tag: str) -> None: ...

    def snapshot(self) -> dict[str, str]: ...

    def persist(self) -> bool: ...
