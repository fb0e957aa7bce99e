"""
CurseForge API 客户端

文件/版本接口只接受数字 ID，slug 或 URL 需要先通过搜索接口换成数字 ID。
所有调用都需要 API 密钥，缺失时在发出请求前抛出 MissingAPIKeyError。
"""

from typing import Any, Dict, List, Union

from loguru import logger

from modledger.exceptions import APINotFoundError, MissingAPIKeyError
from modledger.models import ProjectInfo, VersionEntry, identity_from_url
from modledger.services.api_client import RegistryClient

MINECRAFT_GAME_ID = 432
FILES_PAGE_SIZE = 50


class CurseForgeClient(RegistryClient):
    """CurseForge API 客户端"""

    host = "curseforge"

    @property
    def base_url(self) -> str:
        return self.http.config.api.curseforge_base_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        api_key = self.http.config.api.curseforge_api_key
        if not api_key:
            raise MissingAPIKeyError(
                "缺少 CurseForge API 密钥，请设置环境变量 CURSEFORGE_API_KEY"
            )
        return {"Accept": "application/json", "x-api-key": api_key}

    def require_api_key(self):
        """检查 API 密钥（不发出请求）"""
        self._headers()

    async def resolve_project_id(self, slug_or_url: Union[str, int]) -> int:
        """
        把 slug / 项目 URL 解析为数字 ID

        搜索结果中优先取 slug 完全一致的项，否则取第一个搜索结果。
        """
        self.require_api_key()
        text = str(slug_or_url).strip()
        if text.isdigit():
            return int(text)

        _, slug, _ = identity_from_url(text)
        data = await self._fetch(
            f"search-{slug}",
            f"{self.base_url}/mods/search",
            params={"gameId": MINECRAFT_GAME_ID, "searchFilter": slug},
        )
        results = [r for r in (data or {}).get("data") or [] if r.get("id") is not None]
        if not results:
            raise APINotFoundError(
                f"CurseForge 上找不到项目: {slug}", context={"slug": slug}
            )

        for result in results:
            if result.get("slug") == slug:
                return int(result["id"])

        top = results[0]
        logger.info(
            f"[决策] CurseForge 没有 slug 完全匹配 '{slug}' 的项目，"
            f"使用第一个搜索结果 {top.get('slug')} (ID: {top.get('id')})"
        )
        return int(top["id"])

    async def get_project(self, idx: str) -> ProjectInfo:
        """获取项目信息"""
        project_id = await self.resolve_project_id(idx)
        data = await self._fetch(str(project_id), f"{self.base_url}/mods/{project_id}")
        return ProjectInfo.from_curseforge((data or {}).get("data") or {})

    async def _fetch_all_files(self, project_id: int) -> List[Dict[str, Any]]:
        """分页获取全部文件"""
        files: List[Dict[str, Any]] = []
        index = 0
        while True:
            page = await self.http.get_json(
                f"{self.base_url}/mods/{project_id}/files",
                params={"index": index, "pageSize": FILES_PAGE_SIZE},
                headers=self._headers(),
            )
            data = (page or {}).get("data") or []
            files.extend(data)
            pagination = (page or {}).get("pagination") or {}
            total = pagination.get("totalCount", len(files))
            index += FILES_PAGE_SIZE
            if not data or index >= total:
                return files

    async def get_versions(self, idx: str) -> List[VersionEntry]:
        """获取项目全部文件"""
        project_id = await self.resolve_project_id(idx)
        key = f"{project_id}-versions"

        files = None
        if self.cache is not None:
            files = await self.cache.load(self.host, key)
        if files is None:
            files = await self._fetch_all_files(project_id)
            if self.cache is not None:
                await self.cache.store(self.host, key, files)

        return [VersionEntry.from_curseforge(file) for file in files]
