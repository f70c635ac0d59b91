from __future__ import annotations


class TagWatchError(Exception):
    """tagwatch 所有可预期异常的基类。"""


class ConfigError(TagWatchError):
    """
    启动期致命错误：配置缺失/非法、状态文件损坏等。

    只在进入轮询循环之前抛出；main 捕获后以非零退出码结束进程。
    """


class ResolveError(TagWatchError):
    """
    上游查询失败（网络、限流、404、响应格式异常、超时）。

    作用域：单个 repo、单个周期；runner 记录日志后跳过该 repo。
    """


class NotifyError(TagWatchError):
    """
    通知发送失败。

    runner 不会提交该 repo 的新 tag，下一个周期会重新得到同一个 ADVANCED 判定并再次发送。
    """


class PersistError(TagWatchError):
    """状态文件落盘失败；内存状态仍然有效，下个周期再次尝试写入。"""
