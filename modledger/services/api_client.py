"""
API 客户端抽象

提供统一的注册中心客户端接口与 Modrinth 实现。
项目不存在时抛出 APINotFoundError，速率限制抛出 APIRateLimitError，
调用方可以区分这几类情况。
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from modledger.models import ProjectInfo, VersionEntry
from modledger.services.http import HttpClient
from modledger.services.response_cache import ApiResponseCache


class CachedClient:
    """带 JSON 快照缓存的客户端基类"""

    host: str = ""

    def __init__(self, http: HttpClient, cache: Optional[ApiResponseCache] = None):
        self.http = http
        self.cache = cache

    def _headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    async def _fetch(
        self,
        key: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """先查快照缓存，未命中再请求并写入缓存"""
        if self.cache is not None:
            cached = await self.cache.load(self.host, key)
            if cached is not None:
                return cached

        data = await self.http.get_json(url, params=params, headers=self._headers())

        if self.cache is not None:
            await self.cache.store(self.host, key, data)
        return data


class RegistryClient(CachedClient, ABC):
    """注册中心客户端接口"""

    @abstractmethod
    async def get_project(self, idx: str) -> ProjectInfo:
        """
        通过 idx 获取项目详情。
        """

    @abstractmethod
    async def get_versions(self, idx: str) -> List[VersionEntry]:
        """
        获取项目的全部版本/文件列表。
        """


class ModrinthClient(RegistryClient):
    """Modrinth API 客户端"""

    host = "modrinth"

    @property
    def base_url(self) -> str:
        return self.http.config.api.modrinth_base_url.rstrip("/")

    async def get_project(self, idx: str) -> ProjectInfo:
        """获取项目信息"""
        data = await self._fetch(idx, f"{self.base_url}/project/{idx}")
        return ProjectInfo.from_modrinth(data)

    async def get_versions(self, idx: str) -> List[VersionEntry]:
        """获取项目全部版本（Modrinth 按发布时间倒序返回）"""
        data = await self._fetch(
            f"{idx}-versions", f"{self.base_url}/project/{idx}/version"
        )
        return [VersionEntry.from_modrinth(version) for version in data or []]
