"""Pytest configuration for modledger tests."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from modledger.exceptions import APINotFoundError, DownloadNetworkError
from modledger.models import (
    DependencyInfo,
    FileInfo,
    ModLedgerConfig,
    ResolvedArtifact,
    VersionEntry,
)
from modledger.services.http import HttpClient


class FakeHttp(HttpClient):
    """按 URL 返回预置响应的 HttpClient，不访问网络"""

    def __init__(
        self,
        config: ModLedgerConfig,
        responses: Optional[Dict[str, object]] = None,
        files: Optional[Dict[str, bytes]] = None,
    ):
        super().__init__(config)
        self.responses = responses or {}
        self.files = files or {}
        self.requests: List[tuple] = []
        self.downloads: List[str] = []

    async def get_json(self, url, params=None, headers=None):
        self.requests.append((url, params, headers))
        if url not in self.responses:
            raise APINotFoundError(f"资源不存在: {url}", status=404, url=url)
        value = self.responses[url]
        if isinstance(value, Exception):
            raise value
        return value

    async def download(self, url, dest, headers=None):
        self.downloads.append(url)
        if url not in self.files:
            raise DownloadNetworkError(f"无法下载: {url}", context={"url": url})
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(self.files[url])
        return len(self.files[url])


def make_entry(
    version: str,
    game_versions: List[str],
    loaders: Optional[List[str]] = None,
    published: Optional[str] = None,
    idx: Optional[str] = None,
    url: Optional[str] = None,
    dependencies: Optional[List[DependencyInfo]] = None,
) -> VersionEntry:
    filename = f"mod-{version}.jar"
    return VersionEntry(
        id=idx or f"id-{version}-{'-'.join(game_versions)}",
        version=version,
        loaders=loaders if loaders is not None else ["fabric"],
        game_versions=game_versions,
        files=[FileInfo(url=url or f"https://cdn.example.com/{filename}", filename=filename, primary=True)],
        dependencies=dependencies or [],
        published=(
            datetime.fromisoformat(published).replace(tzinfo=timezone.utc) if published else None
        ),
    )


@pytest.fixture
def config(tmp_path):
    """Create a test configuration rooted in a temporary directory."""
    return ModLedgerConfig.from_dict(
        {
            "game_version": "1.21.5",
            "loader": "fabric",
            "network": {"max_retries": 2, "retry_delay": 0.01, "max_retry_delay": 0.05},
            "paths": {
                "database": str(tmp_path / "modlist.csv"),
                "download_dir": str(tmp_path / "download"),
                "cache_dir": str(tmp_path / ".cache"),
                "api_cache_dir": str(tmp_path / "apiresponse"),
            },
        }
    )


@pytest.fixture
def fake_http(config):
    return FakeHttp(config)


class FakeResolver:
    """
    按记录 ID 返回预置解析结果的解析器

    键可以是 (ID, 选择器) 或只有 ID；值为异常时直接抛出。
    """

    def __init__(self, artifacts: Optional[Dict[object, object]] = None):
        self.artifacts = artifacts or {}
        self.calls: List[tuple] = []

    def _lookup(self, record, selector: str):
        value = self.artifacts.get((record.id, selector), self.artifacts.get(record.id))
        if isinstance(value, Exception):
            raise value
        return value or ResolvedArtifact.not_found(f"无法解析 {record.id}")

    async def resolve_record(self, record, selector, game_version=""):
        self.calls.append((record.id, str(selector), game_version))
        return self._lookup(record, str(selector))

    async def resolve_system(self, record, game_version):
        self.calls.append((record.id, "system", game_version))
        return self._lookup(record, "system")


GITHUB = "https://api.github.com"


def github_responses():
    """owner/mod 的两个发布：v1.1.0 对应 1.21.6，v1.0.0 对应 1.21.5"""
    return {
        f"{GITHUB}/repos/owner/mod": {"full_name": "owner/mod", "name": "mod"},
        f"{GITHUB}/repos/owner/mod/releases": [
            {
                "tag_name": "v1.1.0",
                "published_at": "2025-06-01T00:00:00Z",
                "assets": [
                    {
                        "name": "mod-1.1.0-1.21.6.jar",
                        "browser_download_url": "https://gh/mod-1.1.0-1.21.6.jar",
                    }
                ],
            },
            {
                "tag_name": "v1.0.0",
                "published_at": "2025-05-01T00:00:00Z",
                "assets": [
                    {
                        "name": "mod-1.0.0-1.21.5.jar",
                        "browser_download_url": "https://gh/mod-1.0.0-1.21.5.jar",
                    }
                ],
            },
        ],
    }
