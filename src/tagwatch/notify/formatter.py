from __future__ import annotations

import urllib.parse

DEFAULT_WEB_BASE = "https://github.com"

_MARKDOWN_SPECIALS = ("_", "*", "[", "`")


def escape_markdown(text: str) -> str:
    """Telegram legacy Markdown：对实体外文本中的 _ * [ ` 加反斜杠转义。"""
    for ch in _MARKDOWN_SPECIALS:
        text = text.replace(ch, "\\" + ch)
    return text


def _code_span(text: str) -> str:
    # code span 内无法转义反引号，只能替换
    return "`" + text.replace("`", "'") + "`"


def tag_url(repo: str, tag: str, *, web_base: str = DEFAULT_WEB_BASE) -> str:
    return f"{web_base.rstrip('/')}/{repo}/releases/tag/{urllib.parse.quote(tag)}"


def format_tag_message(repo: str, tag: str, url: str, previous_tag: str | None = None) -> str:
    """
    Telegram Markdown 格式的消息正文，例如：

        🚀 New tag in *owner/repo*: `v1.2.3` (previous: `v1.2.2`)
        https://github.com/owner/repo/releases/tag/v1.2.3
    """
    # 实体内部不支持转义；GitHub 仓库名不含 *，原样放入粗体
    head = f"🚀 New tag in *{repo.replace('*', '')}*: {_code_span(tag)}"
    if previous_tag:
        head += f" (previous: {_code_span(previous_tag)})"
    return f"{head}\n{escape_markdown(url)}"
