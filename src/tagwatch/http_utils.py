from __future__ import annotations

import json
import random
import ssl
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class HttpResponse:
    status: int
    url: str
    headers: Mapping[str, str]
    body: bytes

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding, errors="replace")

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))


class HttpClient:
    """
    轻量 HTTP 客户端（仅依赖标准库），供 GitHub 查询与 Telegram 发送共用。

    策略：
    - GET：对 5xx 与网络错误做有限次退避重试；429 为限流，不在调用内重试（单次调用内的传输层重试）
    - POST：不重试，避免重复投递；失败直接抛给调用方
    - 统一超时、User-Agent
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 20.0,
        user_agent: str = "tagwatch/0",
        max_retries: int = 3,
        base_backoff_seconds: float = 0.8,
        verify_ssl: bool = True,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._user_agent = user_agent
        self._max_retries = max_retries
        self._base_backoff_seconds = base_backoff_seconds
        self._ssl_context = ssl.create_default_context() if verify_ssl else ssl._create_unverified_context()

    def get(self, url: str, *, headers: Mapping[str, str] | None = None) -> HttpResponse:
        request_headers = {"User-Agent": self._user_agent}
        if headers:
            request_headers.update(dict(headers))

        last_error: Exception | None = None
        for attempt in range(self._max_retries + 1):
            try:
                req = urllib.request.Request(url=url, headers=request_headers, method="GET")
                return self._open(req)
            except urllib.error.HTTPError as e:
                last_error = e
                retry = e.code in (500, 502, 503, 504)
                if (not retry) or attempt >= self._max_retries:
                    raise
            except (urllib.error.URLError, TimeoutError) as e:
                last_error = e
                if attempt >= self._max_retries:
                    raise

            backoff = self._base_backoff_seconds * (2**attempt)
            jitter = random.random() * 0.25 * backoff
            time.sleep(backoff + jitter)

        assert last_error is not None
        raise last_error

    def post_json(
        self,
        url: str,
        payload: Mapping[str, Any],
        *,
        headers: Mapping[str, str] | None = None,
    ) -> HttpResponse:
        request_headers = {
            "User-Agent": self._user_agent,
            "Content-Type": "application/json; charset=utf-8",
            "Accept": "application/json",
        }
        if headers:
            request_headers.update(dict(headers))
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        req = urllib.request.Request(url=url, data=data, headers=request_headers, method="POST")
        return self._open(req)

    def _open(self, req: urllib.request.Request) -> HttpResponse:
        with urllib.request.urlopen(req, timeout=self._timeout_seconds, context=self._ssl_context) as resp:  # noqa: S310
            resp_headers = {k: v for k, v in resp.headers.items()}
            return HttpResponse(
                status=getattr(resp, "status", 200),
                url=resp.geturl(),
                headers=resp_headers,
                body=resp.read(),
            )


def with_query_params(url: str, params: Mapping[str, str]) -> str:
    parsed = urllib.parse.urlparse(url)
    q = dict(urllib.parse.parse_qsl(parsed.query, keep_blank_values=True))
    q.update({k: v for k, v in params.items() if v is not None})
    new_query = urllib.parse.urlencode(q)
    return urllib.parse.urlunparse(parsed._replace(query=new_query))


def http_error_detail(e: urllib.error.HTTPError, limit: int = 200) -> str:
    """
    提取 HTTPError 的状态码与响应体前若干字节，便于日志定位（例如 GitHub 限流提示）。
    """
    try:
        body = e.read()
    except OSError:
        body = b""
    return f"status={e.code}, body={body[:limit]!r}"
