"""
记录校验与更新

对数据库中所有注册中心托管的记录解析 current / latest / next 三个版本系列，
写回版本号、下载地址、游戏版本、Jar 与依赖列表。单条记录失败不影响其它记录。
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from loguru import logger

from modledger.exceptions import (
    APIError,
    ConfigError,
    DuplicateRecordError,
    ResolutionError,
)
from modledger.models import (
    DependencyKind,
    Group,
    Host,
    ModLedgerConfig,
    ModRecord,
    RecordType,
    ResolvedArtifact,
    VersionFamily,
    VersionSelector,
    identity_from_url,
)
from modledger.services.dependency_resolver import DependencyResolver
from modledger.services.mod_resolver import VersionResolver
from modledger.store import RecordStore
from modledger.utils import join_csv_list


@dataclass
class ValidationReport:
    """校验结果"""

    checked: int = 0
    updated: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)
    dangling: Dict[str, List[str]] = field(default_factory=dict)


class RecordUpdater:
    """记录更新器"""

    def __init__(
        self,
        config: ModLedgerConfig,
        store: RecordStore,
        resolver: VersionResolver,
    ):
        self.config = config
        self.store = store
        self.resolver = resolver

    async def _resolve_family(
        self, record: ModRecord, family: VersionFamily, game_version: str
    ) -> Optional[ResolvedArtifact]:
        if family == VersionFamily.CURRENT:
            selector = (
                VersionSelector.parse(record.current_version)
                if record.current_version
                else VersionSelector.latest()
            )
        elif family == VersionFamily.NEXT:
            selector = VersionSelector.next()
        else:
            selector = VersionSelector.latest()

        artifact = await self.resolver.resolve_record(record, selector, game_version)
        if not artifact.found:
            logger.warning(f"[校验] {record.id} {family.value}: {artifact.error}")
            return None
        return artifact

    def _apply(
        self,
        record: ModRecord,
        family: VersionFamily,
        artifact: ResolvedArtifact,
        dependencies: DependencyResolver,
    ) -> List[str]:
        prefix = family.value
        changes = {
            f"{prefix}_version": artifact.version,
            f"{prefix}_version_url": artifact.version_url,
            f"{prefix}_game_version": artifact.game_version,
        }
        if family == VersionFamily.CURRENT:
            changes["jar"] = artifact.jar
        if family in (VersionFamily.CURRENT, VersionFamily.LATEST):
            changes[f"{prefix}_dependencies_required"] = dependencies.normalize(
                artifact.dependency_ids(DependencyKind.REQUIRED)
            )
            changes[f"{prefix}_dependencies_optional"] = dependencies.normalize(
                artifact.dependency_ids(DependencyKind.OPTIONAL)
            )
        if family == VersionFamily.LATEST and record.host_type == Host.GITHUB:
            # GitHub 的最新游戏版本取全部发布资产中的最高值
            changes["latest_game_version"] = artifact.latest_game_version or artifact.game_version
        if family == VersionFamily.LATEST and artifact.available_game_versions:
            changes["available_game_versions"] = join_csv_list(artifact.available_game_versions)
        if artifact.project is not None:
            changes.update(self._metadata(record, artifact))
        return record.update(**changes)

    @staticmethod
    def _metadata(record: ModRecord, artifact: ResolvedArtifact) -> Dict[str, str]:
        """项目元数据只补全空字段"""
        project = artifact.project
        values = {
            "title": project.title,
            "project_description": project.description,
            "icon_url": project.icon_url or "",
            "issues_url": project.issues_url or "",
            "source_url": project.source_url or "",
            "wiki_url": project.wiki_url or "",
            "client_side": project.client_side or "",
            "server_side": project.server_side or "",
            "name": project.title,
        }
        return {key: value for key, value in values.items() if value and not getattr(record, key)}

    async def validate_all(self, update: bool = True) -> ValidationReport:
        """
        校验全部记录

        Args:
            update: 为 True 时把结果写回数据库

        Returns:
            ValidationReport
        """
        self.store.load()
        report = ValidationReport()
        dependencies = DependencyResolver(self.store.records)
        latest_target = self.config.game_version
        next_target = self.config.next_game_version

        resolved: List[tuple] = []
        for record in self.store.records:
            if record.is_system or record.host_type == Host.DIRECT:
                continue
            report.checked += 1
            try:
                families = [
                    (VersionFamily.CURRENT, record.current_game_version or latest_target),
                    (VersionFamily.LATEST, latest_target),
                ]
                if next_target:
                    families.append((VersionFamily.NEXT, next_target))
                for family, game_version in families:
                    artifact = await self._resolve_family(record, family, game_version)
                    if artifact is None:
                        continue
                    if artifact.project is not None:
                        dependencies.add_alias(artifact.project.id, record.id)
                    resolved.append((record, family, artifact))
            except (ConfigError, APIError, ResolutionError) as e:
                report.errors[record.id] = e.message
                logger.error(f"[校验] {record.id}: {e}")
            except Exception as e:
                report.errors[record.id] = str(e) or e.__class__.__name__
                logger.exception(f"[校验] {record.id}: 未预期的错误")

        # 别名在全部解析完成后才齐全，依赖 ID 最后统一换算
        for record, family, artifact in resolved:
            if self._apply(record, family, artifact, dependencies) and record.id not in report.updated:
                report.updated.append(record.id)

        report.dangling = dependencies.report(self.store.records)
        logger.info(
            f"[校验] 检查 {report.checked} 条记录，更新 {len(report.updated)} 条，"
            f"失败 {len(report.errors)} 条"
        )
        if update and report.updated:
            self.store.save()
        return report

    async def add_mod(
        self,
        source: str,
        record_type: Optional[str] = None,
        group: str = Group.REQUIRED.value,
        loader: Optional[str] = None,
        game_version: Optional[str] = None,
    ) -> ModRecord:
        """
        从 URL 或 ID 添加模组记录

        Raises:
            DuplicateRecordError: 记录已存在
            ResolutionError: 无法解析当前版本
        """
        self.store.load()
        host, idx, detected_type = identity_from_url(source)
        if self.store.find(idx):
            raise DuplicateRecordError(f"记录已存在: {idx}", context={"id": idx})

        record_type = record_type or (detected_type.value if detected_type else RecordType.MOD.value)
        record = ModRecord(
            group=group,
            type=record_type,
            id=idx,
            host=host.value,
            loader=loader or (self.config.loader if record_type == RecordType.MOD.value else ""),
        )
        if host == Host.DIRECT:
            record.update(url_direct=source, url=source)
            self.store.add(record)
            self.store.save()
            logger.success(f"[添加] {idx} (direct)")
            return record

        target = game_version or self.config.game_version
        artifact = await self.resolver.resolve_record(record, VersionSelector.latest(), target)
        if not artifact.found:
            raise ResolutionError(
                f"无法解析 {idx}: {artifact.error}", context={"source": source}
            )

        dependencies = DependencyResolver(self.store.records)
        if host == Host.CURSEFORGE and artifact.project is not None:
            # CurseForge 依赖使用数字 ID
            dependencies.add_alias(artifact.project.id, idx)
        record.update(url=source if source.startswith("http") else "")
        self._apply(record, VersionFamily.CURRENT, artifact, dependencies)
        self._apply(record, VersionFamily.LATEST, artifact, dependencies)

        self.store.add(record)
        self.store.save()
        dependencies.add_record(record)
        dependencies.report([record])
        logger.success(f"[添加] {idx} {artifact.version} ({artifact.game_version})")
        return record

    async def add_server_records(self, game_version: str) -> List[ModRecord]:
        """
        为新的游戏版本添加服务端系统文件记录（原版与 Fabric）

        已存在的同版本记录会被跳过。
        """
        self.store.load()
        added: List[ModRecord] = []
        for name, loader in (("Minecraft Server", ""), ("Fabric Server", "fabric")):
            record = ModRecord(
                group=Group.ADMIN.value,
                type=RecordType.SERVER.value,
                id=f"{name.lower().replace(' ', '-')}-{game_version}",
                name=name,
                loader=loader,
                host=Host.DIRECT.value,
                current_game_version=game_version,
            )
            artifact = await self.resolver.resolve_system(record, game_version)
            if not artifact.found:
                logger.warning(f"[添加] {name} {game_version}: {artifact.error}")
                continue
            record.update(
                current_version=artifact.version,
                current_version_url=artifact.version_url,
                url_direct=artifact.version_url,
                jar=artifact.jar,
            )
            try:
                self.store.add(record)
            except DuplicateRecordError as e:
                logger.info(f"[跳过] {e.message}")
                continue
            added.append(record)
            logger.success(f"[添加] {name} {game_version}: {artifact.jar}")

        if added:
            self.store.save()
        return added
