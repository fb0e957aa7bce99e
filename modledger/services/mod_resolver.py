"""
模组解析服务

给定 (模组 ID, 版本选择器, 加载器, 游戏版本, 来源)，返回一个 ResolvedArtifact。
项目不存在、没有匹配版本、重试耗尽等情况返回 found=False 并附带可读错误；
配置错误（如缺少 API 密钥）直接抛出。
"""

from typing import List, Optional, Tuple

from loguru import logger

from modledger.exceptions import APIError, APINotFoundError
from modledger.models import (
    GitHubAsset,
    GitHubRelease,
    Host,
    ModLedgerConfig,
    ModRecord,
    RecordType,
    ResolvedArtifact,
    VersionEntry,
    VersionKeyword,
    VersionSelector,
)
from modledger.services.api_client import ModrinthClient, RegistryClient
from modledger.services.curseforge_client import CurseForgeClient
from modledger.services.github_client import GitHubClient, asset_game_version
from modledger.services.http import HttpClient
from modledger.services.meta_client import FabricMetaClient, MojangClient
from modledger.services.response_cache import ApiResponseCache
from modledger.services.version_matcher import EPOCH, VersionMatcher
from modledger.utils import game_version_key, highest_game_version, strip_v


class VersionResolver:
    """版本解析器"""

    def __init__(
        self,
        config: ModLedgerConfig,
        modrinth: ModrinthClient,
        curseforge: CurseForgeClient,
        github: GitHubClient,
        fabric: Optional[FabricMetaClient] = None,
        mojang: Optional[MojangClient] = None,
        matcher: Optional[VersionMatcher] = None,
        store=None,
    ):
        self.config = config
        self.modrinth = modrinth
        self.curseforge = curseforge
        self.github = github
        self.fabric = fabric
        self.mojang = mojang
        self.matcher = matcher or VersionMatcher()
        self.store = store

    @classmethod
    def create(
        cls,
        config: ModLedgerConfig,
        http: HttpClient,
        cache: Optional[ApiResponseCache] = None,
        store=None,
    ) -> "VersionResolver":
        """用同一个 HttpClient 与缓存创建全部客户端"""
        return cls(
            config,
            modrinth=ModrinthClient(http, cache),
            curseforge=CurseForgeClient(http, cache),
            github=GitHubClient(http, cache),
            fabric=FabricMetaClient(http, cache),
            mojang=MojangClient(http, cache),
            store=store,
        )

    def _reduce_current(self, mod_id: str, selector: VersionSelector) -> VersionSelector:
        """把 CURRENT 替换为数据库中的显式版本，读不到时退回 LATEST"""
        if selector.keyword != VersionKeyword.CURRENT:
            return selector
        record = self.store.find(mod_id) if self.store is not None else None
        if record is not None:
            stored = VersionSelector.parse(record.current_version)
            if record.current_version and stored.is_exact:
                logger.debug(f"[解析] {mod_id}: current -> {stored.version}")
                return stored
        logger.debug(f"[解析] {mod_id}: 没有当前版本记录，current -> latest")
        return VersionSelector.latest()

    def _registry(self, host: Host) -> Optional[RegistryClient]:
        if host == Host.MODRINTH:
            return self.modrinth
        if host == Host.CURSEFORGE:
            return self.curseforge
        return None

    async def resolve(
        self,
        mod_id: str,
        selector: VersionSelector,
        loader: Optional[str] = None,
        game_version: str = "",
        host: Host = Host.MODRINTH,
    ) -> ResolvedArtifact:
        """
        解析模组版本

        Args:
            mod_id: slug、数字 ID 或 owner/repo
            selector: 版本选择器
            loader: 加载器
            game_version: 目标游戏版本（可为空）
            host: 来源

        Returns:
            ResolvedArtifact
        """
        selector = self._reduce_current(mod_id, selector)
        logger.debug(
            f"[解析] {host.value}:{mod_id} 版本 {selector} "
            f"加载器 {loader or '-'} 游戏版本 {game_version or '-'}"
        )
        try:
            if host == Host.GITHUB:
                return await self._resolve_github(mod_id, selector, game_version)
            client = self._registry(host)
            if client is None:
                return ResolvedArtifact.not_found(f"来源 {host.value} 不支持版本解析")
            return await self._resolve_registry(client, mod_id, selector, loader, game_version)
        except APINotFoundError:
            return ResolvedArtifact.not_found(f"项目不存在: {host.value}:{mod_id}")
        except APIError as e:
            # 速率限制、服务器错误在重试耗尽后降级为解析失败
            return ResolvedArtifact.not_found(f"请求 {host.value}:{mod_id} 失败: {e}")

    async def _resolve_registry(
        self,
        client: RegistryClient,
        mod_id: str,
        selector: VersionSelector,
        loader: Optional[str],
        game_version: str,
    ) -> ResolvedArtifact:
        project = await client.get_project(mod_id)
        entries = await client.get_versions(mod_id)
        if not entries:
            return ResolvedArtifact.not_found(f"{mod_id} 没有任何版本")

        if selector.is_exact:
            outcome = self.matcher.select_exact(entries, selector.version, loader, game_version)
        else:
            outcome = self.matcher.select_latest(
                entries,
                loader,
                game_version,
                require_game_version=selector.keyword == VersionKeyword.NEXT,
            )

        available = self._available_game_versions(self.matcher.filter_loader(entries, loader) or entries)
        if not outcome.found:
            artifact = ResolvedArtifact.not_found(f"{mod_id}: {outcome.error}")
            artifact.available_game_versions = available
            return artifact

        entry = outcome.entry
        file = entry.primary_file
        if file is None or not file.url:
            return ResolvedArtifact.not_found(f"{mod_id} {entry.version} 没有可下载的文件")

        return ResolvedArtifact(
            found=True,
            version=entry.version,
            version_url=file.url,
            game_version=outcome.game_version,
            jar=file.filename,
            dependencies=list(entry.dependencies),
            available_game_versions=available,
            latest_game_version=highest_game_version(available) or "",
            size=file.size,
            sha1=(file.hashes or {}).get("sha1", ""),
            project=project,
        )

    @staticmethod
    def _available_game_versions(entries: List[VersionEntry]) -> List[str]:
        versions = {version for entry in entries for version in entry.game_versions}
        return sorted(versions, key=game_version_key)

    def _select_asset(
        self,
        release: GitHubRelease,
        game_version: str,
        allow_compatible: bool = False,
    ) -> Optional[Tuple[GitHubAsset, str]]:
        """
        在 release 中选择资产

        指定游戏版本时只接受 *-{version}-{gameVersion}.jar（next 模式下允许同
        minor 线的旧补丁版本）；未指定时依次尝试 *-{version}.jar 与任意 jar。
        """
        version = release.version
        jars = [asset for asset in release.assets if asset.name.endswith(".jar")]
        if not jars:
            return None

        if game_version:
            for asset in jars:
                if asset.name.endswith(f"-{version}-{game_version}.jar"):
                    return asset, game_version
            if allow_compatible:
                compatible = [
                    (asset, asset_game_version(asset.name))
                    for asset in jars
                    if f"-{version}-" in asset.name
                    and asset_game_version(asset.name)
                    and self.matcher.matches([asset_game_version(asset.name)], game_version)
                ]
                if compatible:
                    return max(compatible, key=lambda pair: game_version_key(pair[1]))
            return None

        for asset in jars:
            if asset.name.endswith(f"-{version}.jar"):
                return asset, ""

        tagged = [(asset, asset_game_version(asset.name)) for asset in jars]
        tagged = [(asset, game) for asset, game in tagged if game]
        if tagged:
            return max(tagged, key=lambda pair: game_version_key(pair[1]))
        logger.info(f"[决策] release {release.tag} 没有按约定命名的资产，使用 {jars[0].name}")
        return jars[0], ""

    async def _resolve_github(
        self, repo: str, selector: VersionSelector, game_version: str
    ) -> ResolvedArtifact:
        project = await self.github.get_project(repo)
        releases = sorted(
            await self.github.get_releases(repo),
            key=lambda release: release.published or EPOCH,
            reverse=True,
        )
        if not releases:
            return ResolvedArtifact.not_found(f"{repo} 没有任何 release")

        # 扫描全部 release 的资产，而不只是匹配到的那个
        available = sorted(
            {
                game
                for release in releases
                for asset in release.assets
                if (game := asset_game_version(asset.name))
            },
            key=game_version_key,
        )

        chosen: Optional[Tuple[GitHubRelease, GitHubAsset, str]] = None
        if selector.is_exact:
            wanted = strip_v(selector.version.strip())
            matched = [
                release
                for release in releases
                if release.tag == selector.version or release.version == wanted
            ]
            if not matched:
                return ResolvedArtifact.not_found(f"{repo} 不存在 release {selector.version}")
            for release in matched:
                selected = self._select_asset(release, game_version)
                if selected:
                    chosen = (release, selected[0], selected[1])
                    break
            if chosen is None:
                if game_version:
                    error = (
                        f"{repo} release {selector.version} 没有适用于游戏版本 "
                        f"{game_version} 的资产 (*-{wanted}-{game_version}.jar)"
                    )
                else:
                    error = f"{repo} release {selector.version} 没有 jar 资产"
                artifact = ResolvedArtifact.not_found(error)
                artifact.available_game_versions = available
                return artifact
        else:
            is_next = selector.keyword == VersionKeyword.NEXT
            for release in releases:
                selected = self._select_asset(release, game_version, allow_compatible=is_next)
                if selected:
                    chosen = (release, selected[0], selected[1])
                    break
            if chosen is None and game_version and not is_next:
                # latest 不受游戏版本限制，退回最新 release
                for release in releases:
                    selected = self._select_asset(release, "")
                    if selected:
                        chosen = (release, selected[0], selected[1])
                        break
            if chosen is None:
                target = f"游戏版本 {game_version} " if game_version else ""
                artifact = ResolvedArtifact.not_found(f"{repo} 没有适用于{target}的 release 资产")
                artifact.available_game_versions = available
                return artifact

        release, asset, asset_game = chosen
        return ResolvedArtifact(
            found=True,
            version=release.version,
            version_url=asset.url,
            game_version=asset_game or game_version,
            jar=asset.name,
            available_game_versions=available,
            latest_game_version=highest_game_version(available) or "",
            size=asset.size,
            project=project,
        )

    async def resolve_system(self, record: ModRecord, game_version: str) -> ResolvedArtifact:
        """解析系统文件：服务端 jar 通过 Fabric Meta / Mojang 获取"""
        if record.type.lower() != RecordType.SERVER.value:
            return ResolvedArtifact.not_found(
                f"系统文件 {record.display_name} 需要在 UrlDirect 中提供下载地址"
            )
        if not game_version:
            return ResolvedArtifact.not_found(f"系统文件 {record.display_name} 缺少游戏版本")
        try:
            if record.loader.lower() == "fabric" and self.fabric is not None:
                return await self.fabric.resolve_server(game_version)
            if self.mojang is not None:
                return await self.mojang.resolve_server(game_version)
        except APIError as e:
            return ResolvedArtifact.not_found(f"解析服务端 {game_version} 失败: {e}")
        return ResolvedArtifact.not_found("没有可用的服务端解析客户端")

    def loader_for(self, record: ModRecord) -> Optional[str]:
        """记录自身的加载器；普通模组缺省时用配置中的加载器"""
        if record.loader:
            return record.loader
        if record.type.lower() == RecordType.MOD.value:
            return self.config.loader
        return None

    async def resolve_record(
        self,
        record: ModRecord,
        selector: VersionSelector,
        game_version: str = "",
    ) -> ResolvedArtifact:
        """解析数据库中的一条记录"""
        if record.is_system:
            return await self.resolve_system(record, game_version)
        return await self.resolve(
            record.id,
            selector,
            loader=self.loader_for(record),
            game_version=game_version,
            host=record.host_type,
        )
