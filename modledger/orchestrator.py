"""
主协调器

按数据库中的顺序逐条处理记录：确定下载地址（记录中已有的地址或调用解析器）、
确定目标路径、经由缓存下载。单条记录的失败只记入结果，不会中断批处理。
"""

import csv
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from loguru import logger

from modledger.download import (
    DownloadManager,
    FileVerifier,
    destination_path,
    select_filename,
)
from modledger.exceptions import (
    DownloadFileError,
    MissingSystemFileError,
    ModLedgerError,
    ResolutionError,
)
from modledger.models import (
    Host,
    ModLedgerConfig,
    ModRecord,
    RecordType,
    VersionFamily,
    VersionSelector,
)
from modledger.services.http import PART_SUFFIX
from modledger.services.mod_resolver import VersionResolver
from modledger.store import RecordStore
from modledger.utils import game_version_key, is_game_version

SKIP_EXISTS = "File already exists"
RESULT_COLUMNS = ["Name", "Status", "Version", "File", "Path", "Size", "Error"]


class DownloadState(Enum):
    """单条记录的处理状态"""

    PENDING = "Pending"
    RESOLVING_URL = "ResolvingURL"
    RESOLVED_DIRECT = "ResolvedDirect"
    RESOLVED_VIA_API = "ResolvedViaAPI"
    DOWNLOADING = "Downloading"
    SUCCEEDED = "Success"
    SKIPPED = "Skipped"
    FAILED = "Failed"


@dataclass
class DownloadResult:
    """单条记录的处理结果"""

    name: str
    record_id: str = ""
    state: DownloadState = DownloadState.PENDING
    version: str = ""
    file: str = ""
    path: str = ""
    size: int = 0
    error: str = ""
    missing_system_file: bool = False
    from_cache: bool = False

    def to_row(self) -> Dict[str, str]:
        return {
            "Name": self.name,
            "Status": self.state.value,
            "Version": self.version,
            "File": self.file,
            "Path": self.path,
            "Size": str(self.size) if self.size else "",
            "Error": self.error,
        }


@dataclass
class BatchReport:
    """一次批处理的汇总"""

    family: VersionFamily
    game_version: str
    results: List[DownloadResult] = field(default_factory=list)

    def count(self, state: DownloadState) -> int:
        return sum(1 for result in self.results if result.state == state)

    @property
    def succeeded(self) -> int:
        return self.count(DownloadState.SUCCEEDED)

    @property
    def skipped(self) -> int:
        return self.count(DownloadState.SKIPPED)

    @property
    def failed(self) -> int:
        return self.count(DownloadState.FAILED)

    @property
    def missing_system_files(self) -> List[DownloadResult]:
        return [result for result in self.results if result.missing_system_file]

    @property
    def failures(self) -> List[DownloadResult]:
        """下载/解析失败（不含缺失的系统文件）"""
        return [
            result
            for result in self.results
            if result.state == DownloadState.FAILED and not result.missing_system_file
        ]

    def write_csv(self, path: Path):
        """写出结果表"""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=RESULT_COLUMNS)
            writer.writeheader()
            for result in self.results:
                writer.writerow(result.to_row())


def render_summary(report: BatchReport) -> str:
    """生成可读的汇总文本"""
    lines = [
        f"下载汇总 ({report.family.value}, 游戏版本 {report.game_version or '-'})",
        f"  共 {len(report.results)} 条: 成功 {report.succeeded}, "
        f"跳过 {report.skipped}, 失败 {report.failed}",
    ]
    if report.missing_system_files:
        lines.append("缺失的系统文件（需要在数据库中添加对应游戏版本的记录）:")
        for result in report.missing_system_files:
            lines.append(f"  - {result.name}: {result.error}")
    if report.failures:
        lines.append("下载失败:")
        for result in report.failures:
            lines.append(f"  - {result.name}: {result.error}")
    return "\n".join(lines)


def consensus_game_version(records: List[ModRecord], family: VersionFamily) -> str:
    """
    多数游戏版本

    取各模组记录该系列游戏版本的众数；票数相同时取数值最高的版本，
    结果与记录顺序无关。
    """
    votes = Counter()
    for record in records:
        if record.is_system:
            continue
        _, _, game_version = record.family_fields(family)
        if is_game_version(game_version):
            votes[game_version] += 1
    if not votes:
        return ""
    return max(votes, key=lambda version: (votes[version], game_version_key(version)))


@dataclass
class DownloadPlan:
    """确定了地址与目标路径的下载计划"""

    url: str
    version: str
    game_version: str
    filename: str
    dest: Path
    via_api: bool = False
    sha1: str = ""


class DownloadOrchestrator:
    """ModLedger 下载协调器"""

    def __init__(
        self,
        config: ModLedgerConfig,
        store: RecordStore,
        resolver: VersionResolver,
        downloader: DownloadManager,
        verifier: Optional[FileVerifier] = None,
    ):
        self.config = config
        self.store = store
        self.resolver = resolver
        self.downloader = downloader
        self.verifier = verifier or FileVerifier()
        self.download_root = Path(config.paths.download_dir)
        self.cache_root = Path(config.paths.cache_dir)
        self._dirty = False

    def _prepare(self):
        """批处理前置检查，任何一项失败都会终止整个批处理"""
        self.store.load()
        for root in (self.download_root, self.cache_root):
            try:
                root.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise DownloadFileError(
                    f"无法创建目录: {root}", context={"error": str(e)}
                ) from e
        self.cleanup_partials()

    def cleanup_partials(self) -> int:
        """删除上次中断留下的 .part 文件"""
        removed = 0
        for root in (self.download_root, self.cache_root):
            for part in root.rglob(f"*{PART_SUFFIX}"):
                if part.is_file():
                    part.unlink()
                    removed += 1
                    logger.info(f"[清理] 删除不完整文件: {part}")
        return removed

    def target_game_version(self, family: VersionFamily, game_version: Optional[str]) -> str:
        if game_version:
            return game_version
        if family == VersionFamily.CURRENT and self.config.game_version:
            return self.config.game_version
        if family == VersionFamily.NEXT and self.config.next_game_version:
            return self.config.next_game_version
        consensus = consensus_game_version(self.store.records, family)
        if consensus:
            logger.info(f"[决策] {family.value} 的多数游戏版本: {consensus}")
        return consensus

    async def run(
        self,
        family: VersionFamily = VersionFamily.CURRENT,
        force: bool = False,
        game_version: Optional[str] = None,
    ) -> BatchReport:
        """
        运行批处理

        Args:
            family: 版本系列
            force: 覆盖已存在的文件
            game_version: 目标游戏版本（缺省时取配置或多数版本）

        Returns:
            BatchReport
        """
        self._prepare()
        target = self.target_game_version(family, game_version)
        report = BatchReport(family=family, game_version=target)
        logger.info(
            f"开始下载 {len(self.store.records)} 条记录 "
            f"(系列: {family.value}, 游戏版本: {target or '-'})"
        )

        system_choice = self._choose_system_records(family, target)
        pre_existing = self.scan_existing(family, target)
        downloaded_this_run: Set[Path] = set()
        self._dirty = False

        for index, record in enumerate(self.store.records, 1):
            logger.info(f"[{index}/{len(self.store.records)}] {record.display_name}")
            result = await self.process_record(
                record,
                family,
                target,
                force=force,
                pre_existing=pre_existing,
                downloaded_this_run=downloaded_this_run,
                system_choice=system_choice,
            )
            report.results.append(result)

        if self._dirty:
            self.store.save()
        report.write_csv(self.config.paths.results_path)
        logger.info(render_summary(report))
        return report

    def _choose_system_records(
        self, family: VersionFamily, target: str
    ) -> Dict[Tuple[str, str], Optional[ModRecord]]:
        """
        多版本模式下为每组 (Name, Type) 的系统文件选出目标游戏版本对应的那一行

        当前模式下每行系统文件各自处理，返回空字典。
        """
        if family == VersionFamily.CURRENT:
            return {}
        choice: Dict[Tuple[str, str], Optional[ModRecord]] = {}
        for record in self.store.records:
            if not record.is_system:
                continue
            key = (record.name, record.type.lower())
            if choice.get(key) is not None:
                continue
            choice[key] = record if record.current_game_version == target else None
        return choice

    def _planned_filename(self, record: ModRecord, family: VersionFamily) -> str:
        """不联网即可确定的文件名，无法确定时返回空字符串"""
        version, url, _ = record.family_fields(family)
        if record.is_system:
            version = record.current_version
            url = record.current_version_url or record.url_direct
        elif not url and record.host_type == Host.DIRECT:
            url = record.url_direct or record.url
        use_jar = record.is_system or family == VersionFamily.CURRENT
        if (use_jar and record.jar) or url:
            return select_filename(record, url, version, use_jar=use_jar)
        return ""

    def scan_existing(self, family: VersionFamily, target: str) -> Set[Path]:
        """预扫描：运行前已经完整存在的目标文件"""
        existing: Set[Path] = set()
        for record in self.store.records:
            filename = self._planned_filename(record, family)
            if not filename:
                continue
            dest = destination_path(
                self.download_root, self._folder_for(record, family, target), record, filename
            )
            if self.verifier.is_complete(str(dest)):
                existing.add(dest)
        return existing

    def _folder_for(self, record: ModRecord, family: VersionFamily, target: str) -> str:
        if record.is_system and family == VersionFamily.CURRENT:
            return record.current_game_version or target
        return target

    async def process_record(
        self,
        record: ModRecord,
        family: VersionFamily,
        target: str,
        force: bool,
        pre_existing: Set[Path],
        downloaded_this_run: Set[Path],
        system_choice: Optional[Dict[Tuple[str, str], Optional[ModRecord]]] = None,
    ) -> DownloadResult:
        """处理单条记录，所有异常都在这里转为结果"""
        result = DownloadResult(name=record.display_name, record_id=record.id)
        try:
            if record.is_system and system_choice:
                key = (record.name, record.type.lower())
                chosen = system_choice.get(key)
                if chosen is None:
                    if self._first_of_group(record):
                        raise MissingSystemFileError(
                            f"缺少 {record.name} ({record.type}) 游戏版本 {target} 的记录",
                            context={"name": record.name, "game_version": target},
                        )
                    result.state = DownloadState.SKIPPED
                    result.error = f"已作为 {record.name} 缺失记录报告"
                    return result
                if chosen is not record:
                    result.state = DownloadState.SKIPPED
                    result.error = f"游戏版本 {record.current_game_version} 不是目标版本"
                    return result

            filename = self._planned_filename(record, family)
            if filename:
                dest = destination_path(
                    self.download_root, self._folder_for(record, family, target), record, filename
                )
                if self._should_skip(dest, force, pre_existing, downloaded_this_run):
                    version, _, _ = record.family_fields(family)
                    return self._skipped(result, dest, version)

            result.state = DownloadState.RESOLVING_URL
            plan = await self._plan(record, family, target)
            result.state = (
                DownloadState.RESOLVED_VIA_API if plan.via_api else DownloadState.RESOLVED_DIRECT
            )
            result.version = plan.version
            result.file = plan.filename
            result.path = str(plan.dest)

            if plan.dest in downloaded_this_run:
                # 本次运行中已写入的文件视为最新，不重复下载也不算跳过
                result.state = DownloadState.SUCCEEDED
                result.size = self.verifier.get_size(str(plan.dest))
                logger.info(f"[下载] '{plan.filename}' 本次运行中已写入")
                return result
            if self._should_skip(plan.dest, force, pre_existing, downloaded_this_run):
                return self._skipped(result, plan.dest, plan.version)

            result.state = DownloadState.DOWNLOADING
            outcome = await self.downloader.fetch(
                plan.url, plan.dest, expected_sha1=plan.sha1, host=record.host_type.value
            )
            downloaded_this_run.add(plan.dest)
            result.state = DownloadState.SUCCEEDED
            result.size = outcome.size
            result.from_cache = outcome.from_cache
            return result

        except MissingSystemFileError as e:
            result.state = DownloadState.FAILED
            result.missing_system_file = True
            result.error = e.message
            logger.warning(f"[缺失] {e.message}")
        except ModLedgerError as e:
            result.state = DownloadState.FAILED
            result.error = e.message
            logger.error(f"[错误] {record.display_name}: {e}")
        except Exception as e:
            result.state = DownloadState.FAILED
            result.error = str(e) or e.__class__.__name__
            logger.exception(f"[错误] {record.display_name}: 未预期的错误")
        return result

    def _first_of_group(self, record: ModRecord) -> bool:
        siblings = self.store.find_siblings(record.name, record.type)
        return not siblings or siblings[0] is record

    def _should_skip(
        self,
        dest: Path,
        force: bool,
        pre_existing: Set[Path],
        downloaded_this_run: Set[Path],
    ) -> bool:
        if force or dest in downloaded_this_run:
            return False
        return dest in pre_existing or self.verifier.is_complete(str(dest))

    def _skipped(self, result: DownloadResult, dest: Path, version: str) -> DownloadResult:
        result.state = DownloadState.SKIPPED
        result.error = SKIP_EXISTS
        result.version = result.version or version
        result.file = dest.name
        result.path = str(dest)
        result.size = self.verifier.get_size(str(dest))
        logger.info(f"[跳过] '{dest.name}' 已存在")
        return result

    async def _plan(self, record: ModRecord, family: VersionFamily, target: str) -> DownloadPlan:
        if record.is_system:
            return await self._plan_system(record, family, target)
        return await self._plan_mod(record, family, target)

    async def _plan_mod(
        self, record: ModRecord, family: VersionFamily, target: str
    ) -> DownloadPlan:
        version, url, game_version = record.family_fields(family)
        use_jar = family == VersionFamily.CURRENT

        if family != VersionFamily.CURRENT and game_version and target and game_version != target:
            logger.warning(
                f"[决策] {record.display_name} 没有游戏版本 {target} 的{family.value}版本，"
                f"使用其自身的 {game_version}"
            )

        if url:
            filename = select_filename(record, url, version, use_jar=use_jar)
            return DownloadPlan(
                url=url,
                version=version,
                game_version=game_version,
                filename=filename,
                dest=destination_path(self.download_root, target, record, filename),
            )

        if record.host_type == Host.DIRECT:
            url = record.url_direct or record.url
            if not url:
                raise ResolutionError(f"{record.display_name} 没有下载地址")
            filename = select_filename(record, url, version, use_jar=use_jar)
            return DownloadPlan(
                url=url,
                version=version,
                game_version=game_version,
                filename=filename,
                dest=destination_path(self.download_root, target, record, filename),
            )

        if family == VersionFamily.CURRENT:
            selector = VersionSelector.parse(version) if version else VersionSelector.current()
        elif family == VersionFamily.NEXT:
            selector = VersionSelector.next()
        else:
            selector = VersionSelector.latest()

        artifact = await self.resolver.resolve_record(
            record, selector, game_version=game_version or target
        )
        if not artifact.found:
            raise ResolutionError(artifact.error or f"无法解析 {record.display_name}")

        prefix = family.value
        if record.update(
            **{
                f"{prefix}_version": artifact.version,
                f"{prefix}_version_url": artifact.version_url,
                f"{prefix}_game_version": artifact.game_version,
            }
        ):
            self._dirty = True

        filename = select_filename(
            record, artifact.version_url, artifact.version, use_jar=use_jar
        )
        return DownloadPlan(
            url=artifact.version_url,
            version=artifact.version,
            game_version=artifact.game_version,
            filename=filename,
            dest=destination_path(self.download_root, target, record, filename),
            via_api=True,
            sha1=artifact.sha1,
        )

    async def _plan_system(
        self, record: ModRecord, family: VersionFamily, target: str
    ) -> DownloadPlan:
        folder = self._folder_for(record, family, target)
        url = record.current_version_url or record.url_direct
        version = record.current_version
        via_api = False

        if not url:
            if record.type.lower() != RecordType.SERVER.value:
                raise ResolutionError(f"系统文件 {record.display_name} 缺少 UrlDirect")
            artifact = await self.resolver.resolve_system(
                record, record.current_game_version or folder
            )
            if not artifact.found:
                raise ResolutionError(artifact.error or f"无法解析 {record.display_name}")
            url = artifact.version_url
            version = artifact.version
            via_api = True
            changes = {"current_version": version, "current_version_url": url}
            if artifact.jar and not record.jar:
                changes["jar"] = artifact.jar
            if record.update(**changes):
                self._dirty = True

        filename = select_filename(record, url, version)
        return DownloadPlan(
            url=url,
            version=version,
            game_version=record.current_game_version or folder,
            filename=filename,
            dest=destination_path(self.download_root, folder, record, filename),
            via_api=via_api,
        )
