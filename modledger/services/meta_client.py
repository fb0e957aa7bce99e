"""
Fabric Meta 与 Mojang 版本清单客户端

用于服务端 jar 这类系统文件的下载地址解析。
"""

from typing import Any, Dict, List, Optional

from loguru import logger

from modledger.exceptions import APINotFoundError
from modledger.models import ResolvedArtifact
from modledger.services.api_client import CachedClient


def _first_stable(entries: List[Dict[str, Any]], key: Optional[str] = None) -> Optional[str]:
    """取第一个 stable 版本，没有时取第一个"""
    if not entries:
        return None
    items = [entry.get(key, {}) if key else entry for entry in entries]
    for item in items:
        if item.get("stable"):
            return item.get("version")
    return items[0].get("version")


class FabricMetaClient(CachedClient):
    """Fabric Meta 客户端"""

    host = "fabric"

    @property
    def base_url(self) -> str:
        return self.http.config.api.fabric_meta_base_url.rstrip("/")

    async def get_loader_versions(self, game_version: str) -> List[Dict[str, Any]]:
        """获取指定游戏版本可用的加载器列表"""
        data = await self._fetch(
            f"loader-{game_version}", f"{self.base_url}/v2/versions/loader/{game_version}"
        )
        return data or []

    async def get_installer_versions(self) -> List[Dict[str, Any]]:
        data = await self._fetch("installer", f"{self.base_url}/v2/versions/installer")
        return data or []

    async def get_loader_version(self, game_version: str) -> Optional[str]:
        """获取 Fabric 加载器版本（优先 stable）"""
        return _first_stable(await self.get_loader_versions(game_version), key="loader")

    def server_jar_url(
        self, game_version: str, loader_version: str, installer_version: str
    ) -> str:
        return (
            f"{self.base_url}/v2/versions/loader/{game_version}/"
            f"{loader_version}/{installer_version}/server/jar"
        )

    async def resolve_server(self, game_version: str) -> ResolvedArtifact:
        """解析 Fabric 服务端启动器 jar"""
        loader_version = await self.get_loader_version(game_version)
        if not loader_version:
            return ResolvedArtifact.not_found(
                f"Fabric 不支持游戏版本 {game_version}"
            )
        installer_version = _first_stable(await self.get_installer_versions())
        if not installer_version:
            return ResolvedArtifact.not_found("无法获取 Fabric installer 版本")

        logger.debug(
            f"[解析] Fabric {game_version}: loader {loader_version}, installer {installer_version}"
        )
        return ResolvedArtifact(
            found=True,
            version=loader_version,
            version_url=self.server_jar_url(game_version, loader_version, installer_version),
            game_version=game_version,
            jar=(
                f"fabric-server-mc.{game_version}-loader.{loader_version}"
                f"-launcher.{installer_version}.jar"
            ),
        )


class MojangClient(CachedClient):
    """Mojang 版本清单客户端"""

    host = "mojang"

    async def get_manifest(self) -> Dict[str, Any]:
        return await self._fetch(
            "version_manifest_v2", self.http.config.api.mojang_manifest_url
        ) or {}

    async def get_version_manifest(self, game_version: str) -> Dict[str, Any]:
        """获取单个游戏版本的清单"""
        manifest = await self.get_manifest()
        for version in manifest.get("versions", []):
            if version.get("id") == game_version:
                return await self._fetch(f"version-{game_version}", version["url"]) or {}
        raise APINotFoundError(
            f"Mojang 版本清单中找不到 {game_version}",
            context={"game_version": game_version},
        )

    async def resolve_server(self, game_version: str) -> ResolvedArtifact:
        """解析原版服务端 jar"""
        try:
            data = await self.get_version_manifest(game_version)
        except APINotFoundError as e:
            return ResolvedArtifact.not_found(e.message)

        server = (data.get("downloads") or {}).get("server")
        if not server or not server.get("url"):
            return ResolvedArtifact.not_found(f"游戏版本 {game_version} 没有服务端下载")

        return ResolvedArtifact(
            found=True,
            version=game_version,
            version_url=server["url"],
            game_version=game_version,
            jar=f"minecraft_server.{game_version}.jar",
            size=server.get("size", 0),
        )
