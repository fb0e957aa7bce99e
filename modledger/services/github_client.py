"""
GitHub Releases 客户端

模组以 release 资产发布，资产文件名约定为 *-{version}-{gameVersion}.jar。
"""

import re
from typing import Any, Dict, List, Optional

from modledger.exceptions import ConfigValidationError
from modledger.models import FileInfo, GitHubRelease, ProjectInfo, VersionEntry
from modledger.services.api_client import RegistryClient

RELEASES_PAGE_SIZE = 100
ASSET_PATTERN = re.compile(
    r"^(?P<name>.+)-(?P<version>[^-]+)-(?P<game>\d+\.\d+(?:\.\d+)?)\.jar$"
)


def asset_game_version(filename: str) -> Optional[str]:
    """从 mod-1.0.0-1.21.5.jar 中取出游戏版本"""
    match = ASSET_PATTERN.match(filename)
    return match.group("game") if match else None


def split_repo(repo: str):
    parts = [part for part in repo.strip().split("/") if part]
    if len(parts) != 2:
        raise ConfigValidationError(
            f"GitHub 仓库必须是 owner/repo 形式: {repo}", context={"repo": repo}
        )
    return parts[0], parts[1]


class GitHubClient(RegistryClient):
    """GitHub API 客户端"""

    host = "github"

    @property
    def base_url(self) -> str:
        return self.http.config.api.github_base_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        token = self.http.config.api.github_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def get_project(self, idx: str) -> ProjectInfo:
        """获取仓库信息"""
        owner, repo = split_repo(idx)
        data = await self._fetch(f"{owner}-{repo}", f"{self.base_url}/repos/{owner}/{repo}")
        return ProjectInfo.from_github(data or {})

    async def _fetch_all_releases(self, owner: str, repo: str) -> List[Dict[str, Any]]:
        releases: List[Dict[str, Any]] = []
        page = 1
        while True:
            data = await self.http.get_json(
                f"{self.base_url}/repos/{owner}/{repo}/releases",
                params={"per_page": RELEASES_PAGE_SIZE, "page": page},
                headers=self._headers(),
            )
            data = data or []
            releases.extend(data)
            if len(data) < RELEASES_PAGE_SIZE:
                return releases
            page += 1

    async def get_releases(self, idx: str) -> List[GitHubRelease]:
        """获取全部 release（忽略草稿），按发布时间倒序"""
        owner, repo = split_repo(idx)
        key = f"{owner}-{repo}-releases"

        raw = None
        if self.cache is not None:
            raw = await self.cache.load(self.host, key)
        if raw is None:
            raw = await self._fetch_all_releases(owner, repo)
            if self.cache is not None:
                await self.cache.store(self.host, key, raw)

        releases = [GitHubRelease.from_github(item) for item in raw]
        return [release for release in releases if not release.draft]

    async def get_versions(self, idx: str) -> List[VersionEntry]:
        """把 release 转换为版本条目，游戏版本取自资产文件名"""
        entries = []
        for release in await self.get_releases(idx):
            jars = [asset for asset in release.assets if asset.name.endswith(".jar")]
            game_versions = []
            for asset in jars:
                game = asset_game_version(asset.name)
                if game and game not in game_versions:
                    game_versions.append(game)
            entries.append(
                VersionEntry(
                    id=release.tag,
                    version=release.version,
                    loaders=[],
                    game_versions=game_versions,
                    files=[
                        FileInfo(url=asset.url, filename=asset.name, size=asset.size)
                        for asset in jars
                    ],
                    published=release.published,
                    version_type="beta" if release.prerelease else "release",
                )
            )
        return entries
