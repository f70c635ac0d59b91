from __future__ import annotations

import json
import urllib.error
from dataclasses import dataclass
from typing import Any, Mapping

from ..errors import ResolveError
from ..http_utils import HttpClient, http_error_detail, with_query_params
from ..models import split_repo

DEFAULT_API_BASE = "https://api.github.com"


def pick_latest_tag(release_tag: str | None, raw_tag: str | None) -> str | None:
    """
    “最新 tag” 的取舍规则：优先使用最新 release 的 tag_name；
    仓库没有任何 release 时，回退到最近创建的原始 tag；两者都没有则为 None。
    """
    if release_tag:
        return release_tag
    if raw_tag:
        return raw_tag
    return None


@dataclass(slots=True)
class GitHubTagResolver:
    """
    通过 GitHub REST API 解析仓库的最新 tag。

    - releases?per_page=1：GitHub 按创建时间倒序返回，取第一条的 tag_name
    - tags?per_page=1：仅在 release 列表为空时查询；GitHub 的顺序不保证是 semver 最大值
    - 查询 release 出错（包括 404）直接抛 ResolveError，不会回退到 tags
    """

    http: HttpClient
    token: str | None = None
    api_base: str = DEFAULT_API_BASE

    def key(self) -> str:
        return "github"

    def _headers(self) -> Mapping[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def resolve(self, repo: str) -> str | None:
        try:
            owner, name = split_repo(repo)
        except ValueError as e:
            raise ResolveError(str(e)) from e

        release_tag = self.latest_release_tag(owner, name)
        raw_tag = None if release_tag else self.latest_raw_tag(owner, name)
        return pick_latest_tag(release_tag, raw_tag)

    def latest_release_tag(self, owner: str, name: str) -> str | None:
        items = self._get_list(f"/repos/{owner}/{name}/releases")
        return _first_str(items, "tag_name", what=f"{owner}/{name} releases")

    def latest_raw_tag(self, owner: str, name: str) -> str | None:
        items = self._get_list(f"/repos/{owner}/{name}/tags")
        return _first_str(items, "name", what=f"{owner}/{name} tags")

    def _get_list(self, path: str) -> list[Any]:
        url = with_query_params(self.api_base.rstrip("/") + path, {"per_page": "1"})
        try:
            resp = self.http.get(url, headers=self._headers())
        except urllib.error.HTTPError as e:
            raise ResolveError(f"GitHub API error for {path}: {http_error_detail(e)}") from e
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            raise ResolveError(f"GitHub API unreachable for {path}: {type(e).__name__}: {e}") from e

        try:
            data = resp.json()
        except (ValueError, UnicodeDecodeError) as e:
            raise ResolveError(f"GitHub API returned invalid JSON for {path}") from e
        if not isinstance(data, list):
            raise ResolveError(f"GitHub API expected list, got {type(data).__name__}: {resp.url}")
        return data


def _first_str(items: list[Any], field: str, *, what: str) -> str | None:
    if not items:
        return None
    first = items[0]
    value = first.get(field) if isinstance(first, dict) else None
    if not isinstance(value, str) or not value:
        raise ResolveError(f"malformed {what} entry: missing {field!r}: {json.dumps(first)[:200]}")
    return value
